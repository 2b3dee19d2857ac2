"""
Provider client for OpenAI-compatible chat-completion endpoints.

Builds the request from a resolved AI configuration, calls the provider
through the OpenAI SDK and decodes the JSON payload of the reply.
"""

import logging
import os
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional, Tuple

from openai import APIConnectionError, APIStatusError, APITimeoutError, OpenAI, OpenAIError

from ..core.errors import MalformedProviderResponse, ProviderError, ProviderNotConfigured
from ..core.prompts import DEFAULT_SYSTEM_PROMPT, extract_json
from ..core.token_counter import TokenUsage, estimate_tokens
from ..storage.db import DEFAULT_DB_PATH
from ..storage.models import AIConfiguration
from ..storage.repository import fetch_provider_connection

logger = logging.getLogger(__name__)

# Value the admin screens store in place of a real key
API_KEY_PLACEHOLDER = "***CONFIGURED***"

PROVIDER_ENV_KEYS = {
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
    "novita": "NOVITA_API_KEY",
    "google": "GOOGLE_API_KEY",
    "deepseek": "DEEPSEEK_API_KEY",
}

DEFAULT_BASE_URLS = {
    "openai": "https://api.openai.com/v1",
    "anthropic": "https://api.anthropic.com/v1/",
    "novita": "https://api.novita.ai/v3/openai",
    "google": "https://generativelanguage.googleapis.com/v1beta/openai/",
    "deepseek": "https://api.deepseek.com/v1",
}

_COMPLETIONS_SUFFIX = "/chat/completions"


@dataclass(frozen=True)
class ProviderResponse:
    """Parsed result of one provider call plus its metering data."""
    result: Any
    usage: TokenUsage
    latency_ms: int
    model_name: str
    request_id: Optional[str] = None
    usage_estimated: bool = False


class ProviderClient:
    """Chat-completion client driven by AIConfiguration.

    Provider failures are raised as the pipeline's error types; nothing
    is retried here.
    """

    def __init__(self, db_path: str = DEFAULT_DB_PATH, timeout_seconds: float = 60):
        """Initialize the provider client.

        Args:
            db_path: Database holding the provider connection registry
            timeout_seconds: Per-call timeout; exceeding it is a ProviderError
        """
        if timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be > 0")
        self.db_path = db_path
        self.timeout_seconds = timeout_seconds

    def resolve_connection(self, provider: str) -> Tuple[str, str]:
        """Find the base URL and API key for a provider.

        The registry row wins; a missing row falls back to the provider's
        environment variable and default endpoint.

        Raises:
            ProviderNotConfigured: If the provider is inactive or has no key
        """
        connection = fetch_provider_connection(provider, self.db_path)
        if connection is not None and not connection.is_active:
            raise ProviderNotConfigured(f"Provider '{provider}' is inactive")

        api_key = connection.api_key if connection else None
        if not api_key or api_key == API_KEY_PLACEHOLDER:
            env_name = PROVIDER_ENV_KEYS.get(provider)
            api_key = os.environ.get(env_name) if env_name else None
        if not api_key:
            raise ProviderNotConfigured(f"No API key configured for provider '{provider}'")

        base_url = (connection.api_endpoint if connection else None) or DEFAULT_BASE_URLS.get(provider)
        if not base_url:
            raise ProviderNotConfigured(f"No endpoint configured for provider '{provider}'")
        return _normalize_base_url(base_url), api_key

    def invoke(
        self,
        config: AIConfiguration,
        prompt: str,
        parser: Optional[Callable[[Any], Any]] = None
    ) -> ProviderResponse:
        """Run one chat completion and decode its JSON payload.

        Args:
            config: Resolved configuration (model, system prompt, sampling)
            prompt: User message
            parser: Optional validator applied to the decoded JSON; a
                ValueError from it is reported as a malformed response

        Returns:
            ProviderResponse with the parsed result, token usage and latency

        Raises:
            ProviderNotConfigured: If the provider cannot be reached
            ProviderError: On non-2xx status, timeout or connection failure
            MalformedProviderResponse: If the reply is not the expected JSON
        """
        model = config.model
        base_url, api_key = self.resolve_connection(model.provider)
        if model.api_endpoint:
            base_url = _normalize_base_url(model.api_endpoint)

        client = OpenAI(
            api_key=api_key,
            base_url=base_url,
            timeout=self.timeout_seconds,
            max_retries=0
        )
        messages = [
            {"role": "system", "content": config.system_prompt or DEFAULT_SYSTEM_PROMPT},
            {"role": "user", "content": prompt},
        ]

        started = time.monotonic()
        try:
            response = client.chat.completions.create(
                model=model.provider_model_id,
                messages=messages,
                temperature=config.temperature,
                top_p=config.top_p,
                max_tokens=config.max_tokens,
                frequency_penalty=config.frequency_penalty,
                presence_penalty=config.presence_penalty
            )
        except APITimeoutError as e:
            raise ProviderError(
                f"{model.provider} call timed out after {self.timeout_seconds}s"
            ) from e
        except APIConnectionError as e:
            raise ProviderError(f"Could not connect to {model.provider}: {e}") from e
        except APIStatusError as e:
            raise ProviderError(
                f"{model.provider} returned an error",
                status=e.status_code,
                body=_response_text(e)
            ) from e
        except OpenAIError as e:
            raise ProviderError(f"{model.provider} call failed: {e}") from e
        finally:
            client.close()
        latency_ms = int((time.monotonic() - started) * 1000)

        content = _message_content(response)
        try:
            payload = extract_json(content)
            result = parser(payload) if parser else payload
        except ValueError as e:
            raise MalformedProviderResponse(
                f"Malformed reply from {model.provider}/{model.provider_model_id}: {e}",
                raw_text=content
            ) from e

        usage, estimated = _token_usage(response, prompt, content)
        if estimated:
            logger.warning(
                "%s returned no usage information; estimating tokens", model.provider
            )

        return ProviderResponse(
            result=result,
            usage=usage,
            latency_ms=latency_ms,
            model_name=model.model_name,
            request_id=getattr(response, "id", None),
            usage_estimated=estimated
        )


def _normalize_base_url(url: str) -> str:
    url = url.strip()
    if url.rstrip("/").endswith(_COMPLETIONS_SUFFIX):
        url = url.rstrip("/")[:-len(_COMPLETIONS_SUFFIX)]
    return url


def _response_text(error: APIStatusError) -> str:
    try:
        return error.response.text
    except Exception:
        return str(error.body) if error.body is not None else ""


def _message_content(response) -> str:
    try:
        content = response.choices[0].message.content
    except (AttributeError, IndexError, TypeError) as e:
        raise MalformedProviderResponse("Provider reply has no message content") from e
    if not content:
        raise MalformedProviderResponse("Provider reply has empty message content")
    return content


def _token_usage(response, prompt: str, content: str) -> Tuple[TokenUsage, bool]:
    usage = getattr(response, "usage", None)
    if usage is not None and isinstance(getattr(usage, "prompt_tokens", None), int):
        return TokenUsage(
            prompt_tokens=usage.prompt_tokens,
            completion_tokens=usage.completion_tokens or 0
        ), False
    return TokenUsage(
        prompt_tokens=estimate_tokens(prompt),
        completion_tokens=estimate_tokens(content)
    ), True
