"""
Data models for storage layer.

Defines database entities and data structures.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional


DEFAULT_TEMPERATURE = 0.7
DEFAULT_TOP_P = 0.9
DEFAULT_MAX_TOKENS = 2048
DEFAULT_FREQUENCY_PENALTY = 0.0
DEFAULT_PRESENCE_PENALTY = 0.0


class ConfigLevel(Enum):
    """Levels of the AI configuration hierarchy, least specific first."""
    GLOBAL = "global"
    PLAN = "plan"
    SERVICE = "service"


@dataclass(frozen=True)
class CacheEntry:
    """Cached analysis result addressed by a content hash."""
    key: str
    value: Dict[str, Any]
    created_at: datetime


@dataclass(frozen=True)
class AIModel:
    """Model reference a configuration points at."""
    model_name: str
    provider: str
    provider_model_id: str
    api_endpoint: Optional[str] = None
    is_active: bool = True
    id: Optional[int] = None


@dataclass(frozen=True)
class AIConfiguration:
    """Effective model, prompt and sampling parameters for one level.

    Created and edited by administrators; read-only for the pipeline.
    """
    level: ConfigLevel
    model: AIModel
    identifier: Optional[str] = None
    system_prompt: str = ""
    temperature: float = DEFAULT_TEMPERATURE
    top_p: float = DEFAULT_TOP_P
    max_tokens: int = DEFAULT_MAX_TOKENS
    frequency_penalty: float = DEFAULT_FREQUENCY_PENALTY
    presence_penalty: float = DEFAULT_PRESENCE_PENALTY
    is_active: bool = True
    id: Optional[int] = None

    def __post_init__(self):
        """Validate the level/identifier pairing and sampling ranges."""
        if self.level != ConfigLevel.GLOBAL and not self.identifier:
            raise ValueError(f"identifier is required for {self.level.value} configurations")
        if not 0 <= self.temperature <= 2:
            raise ValueError("temperature must be between 0 and 2")
        if not 0 <= self.top_p <= 1:
            raise ValueError("top_p must be between 0 and 1")
        if self.max_tokens <= 0:
            raise ValueError("max_tokens must be > 0")


@dataclass(frozen=True)
class ProviderConnection:
    """Connection details for one AI provider."""
    provider_name: str
    api_endpoint: Optional[str] = None
    api_key: Optional[str] = None
    is_active: bool = True


@dataclass(frozen=True)
class UsageMetric:
    """Immutable record of a single provider call.

    Append-only events that form an auditable ledger of AI spend.
    Once written, these records must never be modified.
    """
    timestamp: datetime
    user_id: str
    model_name: str
    service_type: str
    tokens_input: int
    tokens_output: int
    estimated_cost: Decimal
    response_time_ms: int
    success: bool
    error_type: Optional[str] = None


@dataclass(frozen=True)
class ErrorLogEntry:
    """Deduplicated record of a recurring failure."""
    error_type: str
    error_message: str
    fingerprint: str
    first_occurrence: datetime
    last_occurrence: datetime
    frequency: int = 1
    resolved: bool = False
    endpoint: Optional[str] = None
    user_id: Optional[str] = None
    id: Optional[int] = None


@dataclass(frozen=True)
class FeatureUsage:
    """Per-user, per-feature counter for one billing period."""
    user_id: str
    feature: str
    period_start: date
    period_end: date
    count: int


@dataclass(frozen=True)
class SubscriptionPlan:
    """Plan with its feature map (booleans, quotas or tier labels)."""
    name: str
    features: Dict[str, Any] = field(default_factory=dict)
    is_active: bool = True


@dataclass(frozen=True)
class Subscription:
    """A user's subscription joined with its plan."""
    user_id: str
    plan: SubscriptionPlan
    status: str = "active"


@dataclass(frozen=True)
class AuthSession:
    """Bearer token issued by the external auth service."""
    token: str
    user_id: str
    expires_at: Optional[datetime] = None


@dataclass(frozen=True)
class AnalysisLog:
    """One answered funnel analysis, cached or fresh."""
    timestamp: datetime
    user_id: str
    ad_text: str
    landing_page_text: str
    coherence_score: float
    suggestions: List[str]
    optimized_ad: str
    processing_time_ms: int
    cache_hit: bool
