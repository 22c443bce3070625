"""
Pytest configuration and shared fixtures
"""
import random
from datetime import datetime, timezone
from typing import Optional

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from airouter.api.schemas import HealthCheckResult
from airouter.core.config import settings
from airouter.core.database import Base
from airouter.models import provider as _orm_models  # noqa: F401
from airouter.models.records import (
    Capability,
    HealthState,
    LoadBalancingConfig,
    ProviderRecord,
    ProviderType,
    RoutingStrategy,
)
from airouter.services.balancer import ProviderSelector
from airouter.services.health_tracker import HealthTracker
from airouter.services.router import RoutingService
from airouter.services.store import InMemoryProviderStore, SqlProviderStore


def build_provider(
    provider_id: str = "p1",
    organization_id: str = "org-1",
    *,
    strategy: RoutingStrategy = RoutingStrategy.ROUND_ROBIN,
    features=(Capability.CHAT,),
    response_time_ms: float = 100.0,
    is_healthy: bool = True,
    consecutive_failures: int = 0,
    cost_per_token: float = 0.002,
    is_active: bool = True,
    max_retries: int = 3,
    retry_delay_ms: int = 0,
    failover_enabled: bool = True,
    circuit_breaker_threshold: int = 5,
    provider_type: ProviderType = ProviderType.OPENAI,
    last_check: Optional[datetime] = None,
) -> ProviderRecord:
    """Build a provider record with sensible test defaults."""
    return ProviderRecord(
        id=provider_id,
        organization_id=organization_id,
        name=f"provider-{provider_id}",
        type=provider_type,
        base_url="https://api.example.test/v1",
        credential=f"sk-{provider_id}",
        models=["gpt-4o-mini"],
        supported_features=set(features),
        cost_per_token=cost_per_token,
        is_active=is_active,
        health=HealthState(
            is_healthy=is_healthy,
            response_time_ms=response_time_ms,
            consecutive_failures=consecutive_failures,
            last_check=last_check,
        ),
        load_balancing=LoadBalancingConfig(
            strategy=strategy,
            max_retries=max_retries,
            retry_delay_ms=retry_delay_ms,
            failover_enabled=failover_enabled,
            circuit_breaker_threshold=circuit_breaker_threshold,
        ),
    )


@pytest.fixture
def make_provider():
    return build_provider


@pytest.fixture
def store():
    return InMemoryProviderStore()


@pytest.fixture
def tracker(store):
    return HealthTracker(store, unhealthy_threshold=5, window_size=20, ema_alpha=0.3)


@pytest.fixture
def selector(store, tracker):
    return ProviderSelector(store, tracker, rng=random.Random(42))


@pytest_asyncio.fixture
async def session_factory():
    """In-memory SQLite shared across sessions"""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest_asyncio.fixture
async def sql_store(session_factory):
    return SqlProviderStore(session_factory)


class FakeAdapter:
    """Adapter double returning canned health check results and responses."""

    def __init__(self, record, behaviour):
        self.record = record
        self.behaviour = behaviour

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        return None

    async def health_check(self) -> HealthCheckResult:
        outcome = self.behaviour.get(self.record.id, True)
        return HealthCheckResult(
            is_healthy=outcome is True,
            response_time_ms=42.0,
            error=None if outcome is True else str(outcome),
            timestamp=datetime.now(timezone.utc),
        )

    async def chat_completion(self, request):
        from airouter.api.schemas import (
            ChatCompletionChoice,
            ChatCompletionResponse,
            ChatMessage,
            MessageRole,
        )

        outcome = self.behaviour.get(self.record.id, True)
        if isinstance(outcome, Exception):
            raise outcome
        return ChatCompletionResponse(
            id=f"chatcmpl-{self.record.id}",
            created=1700000000,
            model=request.model,
            choices=[
                ChatCompletionChoice(
                    index=0,
                    message=ChatMessage(role=MessageRole.ASSISTANT, content="Hello!"),
                    finish_reason="stop",
                )
            ],
        )


class FakeAdapterFactory:
    """Stands in for ProviderFactory; ``behaviour`` maps provider id to outcome."""

    def __init__(self, behaviour=None):
        self.behaviour = behaviour if behaviour is not None else {}
        self.created = []

    def supports(self, record):
        return record.type != ProviderType.GOOGLE

    def create_adapter(self, record, timeout=None, transport=None):
        if record.type == ProviderType.GOOGLE:
            raise ValueError("Unsupported provider type: google")
        self.created.append(record.id)
        return FakeAdapter(record, self.behaviour)


@pytest.fixture
def adapter_factory():
    return FakeAdapterFactory()


@pytest.fixture
def routing(store, tracker, selector, adapter_factory):
    return RoutingService(
        store,
        tracker=tracker,
        selector=selector,
        adapter_factory=adapter_factory,
    )


@pytest.fixture
def admin_headers():
    return {"Authorization": f"Bearer {settings.admin_key}"}


@pytest_asyncio.fixture
async def test_client(routing, adapter_factory):
    """ASGI client over an app wired to the in-memory routing service"""
    from airouter.main import create_app
    from airouter.services.health_check import HealthCheckService

    app = create_app(
        routing=routing,
        health_checks=HealthCheckService(routing, adapter_factory=adapter_factory),
    )
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client
