"""
API request/response schemas using Pydantic models.
"""
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Set, Union

from pydantic import BaseModel, Field

from airouter.models.records import (
    Capability,
    CheckStatus,
    HealthState,
    LoadBalancingConfig,
    ProviderRecord,
    ProviderType,
    RateLimits,
    RoutingStrategy,
)


# ============================================================================
# Chat Schemas (OpenAI compatible)
# ============================================================================

class MessageRole(str, Enum):
    """Chat message role."""
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    FUNCTION = "function"
    TOOL = "tool"


class ChatMessage(BaseModel):
    """Chat message model."""
    role: MessageRole
    content: Optional[str] = None
    name: Optional[str] = None
    function_call: Optional[Dict[str, Any]] = None
    tool_calls: Optional[List[Dict[str, Any]]] = None
    tool_call_id: Optional[str] = None


class ChatCompletionRequest(BaseModel):
    """Chat completion request model."""
    model: str
    messages: List[ChatMessage] = Field(min_length=1)
    temperature: Optional[float] = Field(default=None, ge=0, le=2)
    top_p: Optional[float] = Field(default=None, ge=0, le=1)
    max_tokens: Optional[int] = Field(default=None, ge=1)
    stop: Optional[Union[str, List[str]]] = None
    user: Optional[str] = None
    tools: Optional[List[Dict[str, Any]]] = None
    tool_choice: Optional[Union[str, Dict[str, Any]]] = None


class ChatCompletionChoice(BaseModel):
    index: int
    message: ChatMessage
    finish_reason: Optional[str] = None


class Usage(BaseModel):
    """Token usage information."""
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class ChatCompletionResponse(BaseModel):
    """Chat completion response model."""
    id: str
    object: str = "chat.completion"
    created: int
    model: str
    choices: List[ChatCompletionChoice]
    usage: Optional[Usage] = None

    provider: Optional[str] = Field(
        default=None,
        description="Provider that handled the request"
    )


class EmbeddingRequest(BaseModel):
    model: str
    input: Union[str, List[str]]
    user: Optional[str] = None


class EmbeddingData(BaseModel):
    object: str = "embedding"
    embedding: List[float]
    index: int


class EmbeddingResponse(BaseModel):
    object: str = "list"
    data: List[EmbeddingData]
    model: str
    usage: Optional[Usage] = None


class HealthCheckResult(BaseModel):
    """Outcome of one active health check."""
    is_healthy: bool
    response_time_ms: float
    error: Optional[str] = None
    timestamp: datetime


# ============================================================================
# Provider Management Schemas
# ============================================================================

class ProviderCreate(BaseModel):
    """Provider registration payload."""
    id: Optional[str] = Field(default=None, max_length=64)
    organization_id: str = Field(min_length=1, max_length=64)
    user_id: Optional[str] = None
    name: str = Field(min_length=1, max_length=100)
    type: ProviderType
    base_url: str = Field(min_length=1)
    api_key: str = Field(min_length=1, description="API key for the provider")
    health_check_url: Optional[str] = None
    models: List[str] = Field(min_length=1)
    supported_features: Set[Capability] = Field(default_factory=lambda: {Capability.CHAT})
    rate_limits: RateLimits = Field(default_factory=RateLimits)
    cost_per_token: float = Field(default=0.002, ge=0)
    load_balancing: LoadBalancingConfig = Field(default_factory=LoadBalancingConfig)


class ProviderResponse(BaseModel):
    """Provider as returned by the admin API (credential never included)."""
    id: str
    organization_id: str
    user_id: Optional[str] = None
    name: str
    type: ProviderType
    base_url: str
    health_check_url: Optional[str] = None
    models: List[str]
    supported_features: List[Capability]
    rate_limits: RateLimits
    cost_per_token: float
    is_active: bool
    health: HealthState
    load_balancing: LoadBalancingConfig
    last_tested: Optional[datetime] = None
    test_status: CheckStatus
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_record(cls, record: ProviderRecord) -> "ProviderResponse":
        data = record.model_dump(exclude={"credential"})
        data["supported_features"] = sorted(
            record.supported_features, key=lambda f: f.value
        )
        return cls(**data)


class HealthReport(BaseModel):
    """Out-of-band health check result reported by an external monitor."""
    success: bool
    latency_ms: float = Field(ge=0)
    error: Optional[str] = None


class RouteResponse(BaseModel):
    """Selection preview."""
    organization_id: str
    capability: Capability
    provider: ProviderResponse
    strategy: RoutingStrategy
    weight: float
