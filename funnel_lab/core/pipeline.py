"""
Request pipeline for the funnel coherence analysis.

Steps run strictly in this order (step 4 is bypassed when the cache is
disabled):

1. Authenticate the bearer token                     -> 401
2. Validate adText / landingPageText                 -> 400
3. Check plan entitlement                            -> 403
4. Cache lookup; a hit answers immediately           -> 200
5. Resolve the AI configuration                      -> 500 on ConfigNotFound
6. Invoke the provider                               -> 500 on any provider failure
7. Record the successful call and the feature usage
8. Populate the cache
9. Write the analysis log and return the analysis    -> 200

Side effects of earlier steps are never rolled back. Cache writes,
counters, the analysis log and the error log are side channels: their
failures are logged and dropped, never surfaced to the caller.
"""

import logging
import time
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional, Tuple

from .access import AccessDecision, FeatureAccessGate
from .auth import SessionAuthenticator
from .cache import CacheStore
from .config_resolver import ConfigResolver
from .error_log import ErrorLog
from .errors import (
    AccessDeniedError,
    FunnelLabError,
    GENERIC_FAILURE_MESSAGE,
    ProviderFailure,
    ProviderNotConfigured,
    ValidationError,
)
from .pricing import calculate_cost
from .prompts import DEFAULT_SYSTEM_PROMPT, FunnelAnalysisResult, build_funnel_prompt
from .token_counter import estimate_tokens
from .usage import UsageTracker, utc_now
from ..config.loader import AppSettings
from ..sdk.openai_client import ProviderClient, ProviderResponse
from ..storage.models import AIConfiguration, AnalysisLog, UsageMetric
from ..storage.repository import insert_analysis_log

logger = logging.getLogger(__name__)

ENDPOINT = "/funnel-analysis"
USAGE_METRIC = "funnel_analysis_usage"

UPGRADE_MESSAGE = (
    "Your current plan does not include the Funnel Optimization Lab. "
    "Upgrade your plan to unlock funnel analyses."
)
QUOTA_MESSAGE = (
    "You have used all funnel analyses included in your plan this month. "
    "Upgrade your plan for more analyses."
)

# Stands in for a request body that could not be decoded as JSON
MALFORMED_BODY = object()


@dataclass(frozen=True)
class PipelineResponse:
    """HTTP-shaped outcome of one request."""
    status_code: int
    body: Dict[str, Any]
    cache_hit: bool = False


def validate_request(payload: Any) -> Tuple[str, str]:
    """Extract the two texts from a request body.

    Raises:
        ValidationError: If either text is missing, not a string or blank
    """
    if payload is MALFORMED_BODY:
        raise ValidationError("Request body must be valid JSON")
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object")

    ad_text = payload.get("adText")
    landing_page_text = payload.get("landingPageText")
    if not isinstance(ad_text, str) or not isinstance(landing_page_text, str) \
            or not ad_text.strip() or not landing_page_text.strip():
        raise ValidationError("adText and landingPageText are required")
    return ad_text, landing_page_text


class RequestPipeline:
    """Orchestrates one funnel analysis request end to end."""

    def __init__(
        self,
        settings: AppSettings,
        authenticator: Optional[SessionAuthenticator] = None,
        gate: Optional[FeatureAccessGate] = None,
        cache: Optional[CacheStore] = None,
        resolver: Optional[ConfigResolver] = None,
        provider: Optional[ProviderClient] = None,
        tracker: Optional[UsageTracker] = None,
        error_log: Optional[ErrorLog] = None,
        clock: Optional[Callable[[], datetime]] = None
    ):
        db_path = settings.db_path
        self.settings = settings
        self.clock = clock or utc_now
        self.tracker = tracker or UsageTracker(db_path, clock=self.clock)
        self.authenticator = authenticator or SessionAuthenticator(db_path, clock=self.clock)
        self.gate = gate or FeatureAccessGate(db_path, tracker=self.tracker)
        self.cache = cache or CacheStore(
            db_path,
            ttl=timedelta(hours=settings.cache.ttl_hours),
            prefix=settings.cache.key_prefix,
            tracker=self.tracker,
            clock=self.clock
        )
        self.resolver = resolver or ConfigResolver(db_path)
        self.provider = provider or ProviderClient(db_path, settings.provider.timeout_seconds)
        self.error_log = error_log or ErrorLog(db_path, clock=self.clock)

    @property
    def feature(self) -> str:
        return self.settings.feature.name

    def handle(self, authorization: Optional[str], payload: Any) -> PipelineResponse:
        """Run the pipeline for one request.

        Args:
            authorization: Raw Authorization header value
            payload: Decoded JSON request body, or MALFORMED_BODY

        Returns:
            PipelineResponse; errors are mapped to their status codes
        """
        started = time.monotonic()
        user_id = None
        try:
            user_id = self.authenticator.authenticate(authorization)
            ad_text, landing_page_text = validate_request(payload)
            decision = self._check_access(user_id)

            cache_key = None
            if self.settings.cache.enabled:
                cache_key = self.cache.compute_key([ad_text, landing_page_text])
                cached = self.cache.get(cache_key)
                if cached is not None:
                    logger.info("Cache hit for user %s (%s)", user_id, cache_key)
                    self._log_analysis(user_id, ad_text, landing_page_text, cached, started, cache_hit=True)
                    return PipelineResponse(200, cached, cache_hit=True)

            config = self.resolver.resolve(self.settings.feature.service, plan_name=decision.plan_name)
            prompt = build_funnel_prompt(ad_text, landing_page_text)
            response = self._invoke(user_id, config, prompt, started)
            body = response.result.to_dict()

            self._record_success(user_id, response)
            if cache_key is not None:
                self._best_effort("cache write", self.cache.put, cache_key, body)
            self._log_analysis(user_id, ad_text, landing_page_text, body, started, cache_hit=False)
            return PipelineResponse(200, body)

        except FunnelLabError as e:
            return self._fail(e, user_id)
        except Exception as e:
            logger.exception("Unexpected failure in funnel analysis for user %s", user_id)
            self.error_log.record("UnexpectedError", f"{type(e).__name__}: {e}", ENDPOINT, user_id)
            return PipelineResponse(500, {"error": GENERIC_FAILURE_MESSAGE})

    def _check_access(self, user_id: str) -> AccessDecision:
        decision = self.gate.check(user_id, self.feature)
        if not decision.allowed:
            logger.info("Access to %s denied for user %s: %s", self.feature, user_id, decision.reason)
            message = QUOTA_MESSAGE if decision.reason == "monthly quota exhausted" else UPGRADE_MESSAGE
            raise AccessDeniedError(message)
        return decision

    def _invoke(
        self,
        user_id: str,
        config: AIConfiguration,
        prompt: str,
        started: float
    ) -> ProviderResponse:
        try:
            return self.provider.invoke(config, prompt, parser=FunnelAnalysisResult.from_dict)
        except ProviderFailure as e:
            self._record_failure(user_id, config, prompt, started, e)
            raise

    def _record_success(self, user_id: str, response: ProviderResponse) -> None:
        usage = response.usage
        metric = UsageMetric(
            timestamp=self.clock(),
            user_id=user_id,
            model_name=response.model_name,
            service_type=self.settings.feature.service,
            tokens_input=usage.prompt_tokens,
            tokens_output=usage.completion_tokens,
            estimated_cost=calculate_cost(
                response.model_name, usage.prompt_tokens, usage.completion_tokens
            ),
            response_time_ms=response.latency_ms,
            success=True
        )
        self._best_effort("usage metric", self.tracker.record, metric)
        self._best_effort("feature usage counter", self.tracker.increment_feature_usage, user_id, self.feature)
        self._best_effort("daily usage counter", self.tracker.increment_global_metric, USAGE_METRIC)

    def _record_failure(
        self,
        user_id: str,
        config: AIConfiguration,
        prompt: str,
        started: float,
        error: ProviderFailure
    ) -> None:
        # Nothing was sent when the provider could not be configured
        if isinstance(error, ProviderNotConfigured):
            tokens_in = 0
        else:
            tokens_in = estimate_tokens((config.system_prompt or DEFAULT_SYSTEM_PROMPT) + prompt)
        metric = UsageMetric(
            timestamp=self.clock(),
            user_id=user_id,
            model_name=config.model.model_name,
            service_type=self.settings.feature.service,
            tokens_input=tokens_in,
            tokens_output=0,
            estimated_cost=calculate_cost(config.model.model_name, tokens_in, 0),
            response_time_ms=_elapsed_ms(started),
            success=False,
            error_type=error.error_type
        )
        self._best_effort("failed usage metric", self.tracker.record, metric)

    def _fail(self, error: FunnelLabError, user_id: Optional[str]) -> PipelineResponse:
        if error.loggable:
            logger.error("Funnel analysis failed for user %s: %s: %s", user_id, error.error_type, error)
            self.error_log.record(error.error_type, str(error), ENDPOINT, user_id)
        else:
            logger.info("Funnel analysis rejected (%d): %s", error.status_code, error)
        return PipelineResponse(error.status_code, {"error": error.public_message})

    def _log_analysis(
        self,
        user_id: str,
        ad_text: str,
        landing_page_text: str,
        body: Dict[str, Any],
        started: float,
        cache_hit: bool
    ) -> None:
        def write():
            insert_analysis_log(AnalysisLog(
                timestamp=self.clock(),
                user_id=user_id,
                ad_text=ad_text,
                landing_page_text=landing_page_text,
                coherence_score=float(body.get("funnelCoherenceScore", 0)),
                suggestions=list(body.get("syncSuggestions", [])),
                optimized_ad=str(body.get("optimizedAd", "")),
                processing_time_ms=_elapsed_ms(started),
                cache_hit=cache_hit
            ), self.settings.db_path)

        self._best_effort("analysis log", write)

    @staticmethod
    def _best_effort(description: str, fn: Callable, *args) -> None:
        try:
            fn(*args)
        except Exception as e:
            logger.warning("%s failed, continuing: %s", description, e)


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)
