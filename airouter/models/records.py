"""
Typed provider records used by the routing layer.

A ``ProviderRecord`` owns exactly one ``HealthState`` and one
``LoadBalancingConfig``. All three are immutable; health changes produce a
new record through ``ProviderRecord.with_health``.
"""
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional, Set

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    SecretStr,
    SerializationInfo,
    field_serializer,
    field_validator,
)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ProviderType(str, Enum):
    """Upstream vendor tag."""
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    GOOGLE = "google"
    COHERE = "cohere"
    HUGGINGFACE = "huggingface"
    REPLICATE = "replicate"
    TOGETHER = "together"
    CUSTOM = "custom"


class Capability(str, Enum):
    """Feature a provider can serve."""
    CHAT = "chat"
    EMBEDDINGS = "embeddings"
    IMAGE_GENERATION = "image-generation"
    AUDIO = "audio"
    VISION = "vision"
    FUNCTION_CALLING = "function-calling"
    STREAMING = "streaming"


class RoutingStrategy(str, Enum):
    """How a provider pool is weighted and selected."""
    ROUND_ROBIN = "round-robin"
    LEAST_LATENCY = "least-latency"
    COST_OPTIMIZED = "cost-optimized"
    CAPABILITY_BASED = "capability-based"


class CheckStatus(str, Enum):
    """Outcome of the latest active connectivity test."""
    SUCCESS = "success"
    FAILED = "failed"
    PENDING = "pending"


class RateLimits(BaseModel):
    """Advisory limits used for scheduling, not enforced here."""

    model_config = ConfigDict(frozen=True)

    requests_per_minute: int = Field(default=60, ge=0)
    requests_per_hour: int = Field(default=1000, ge=0)
    tokens_per_minute: int = Field(default=100000, ge=0)
    tokens_per_hour: int = Field(default=1000000, ge=0)


class HealthState(BaseModel):
    """Rolling health of one provider."""

    model_config = ConfigDict(frozen=True)

    last_check: Optional[datetime] = None
    is_healthy: bool = True
    response_time_ms: float = Field(default=0.0, ge=0)
    error_rate: float = 0.0
    consecutive_failures: int = Field(default=0, ge=0)
    terminal_failures: int = Field(default=0, ge=0)
    last_error: Optional[str] = None

    @field_validator("error_rate", mode="before")
    @classmethod
    def clamp_error_rate(cls, value: float) -> float:
        return max(0.0, min(100.0, float(value)))


class LoadBalancingConfig(BaseModel):
    """Per-provider routing and failover configuration."""

    model_config = ConfigDict(frozen=True)

    strategy: RoutingStrategy = RoutingStrategy.ROUND_ROBIN
    failover_enabled: bool = True
    max_retries: int = Field(default=3, ge=0)
    retry_delay_ms: int = Field(default=1000, ge=0)
    circuit_breaker_threshold: int = Field(default=5, ge=1)
    health_check_interval_ms: int = Field(default=30000, ge=0)


class ProviderRecord(BaseModel):
    """
    One upstream AI provider registered by an organization.

    The credential is a ``SecretStr``: it renders masked in reprs and logs,
    and is only serialized in clear text when ``reveal_credential`` is set
    in the serialization context.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    organization_id: str
    user_id: Optional[str] = None
    name: str = Field(min_length=1)
    type: ProviderType
    base_url: str
    credential: SecretStr
    health_check_url: Optional[str] = None

    models: List[str] = Field(default_factory=list)
    supported_features: Set[Capability] = Field(
        default_factory=lambda: {Capability.CHAT}
    )
    rate_limits: RateLimits = Field(default_factory=RateLimits)
    cost_per_token: float = Field(default=0.002, ge=0)
    is_active: bool = True

    health: HealthState = Field(default_factory=HealthState)
    load_balancing: LoadBalancingConfig = Field(default_factory=LoadBalancingConfig)

    last_tested: Optional[datetime] = None
    test_status: CheckStatus = CheckStatus.PENDING

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @field_validator("name", "base_url")
    @classmethod
    def strip_whitespace(cls, value: str) -> str:
        return value.strip()

    @field_serializer("credential")
    def serialize_credential(self, value: SecretStr, info: SerializationInfo) -> str:
        if info.context and info.context.get("reveal_credential"):
            return value.get_secret_value()
        return str(value)

    @property
    def is_circuit_open(self) -> bool:
        """True once consecutive failures reach the circuit-breaker threshold."""
        return (
            self.health.consecutive_failures
            >= self.load_balancing.circuit_breaker_threshold
        )

    def supports(self, capability: Capability) -> bool:
        return capability in self.supported_features

    def with_health(self, health: HealthState) -> "ProviderRecord":
        """Return a copy of this record carrying ``health``."""
        return self.model_copy(update={"health": health})

    def to_storage(self) -> dict:
        """Full JSON-compatible dump, credential included."""
        return self.model_dump(mode="json", context={"reveal_credential": True})
