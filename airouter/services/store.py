"""
Provider persistence behind a small store interface.

The routing core only depends on ``ProviderStore``; ``SqlProviderStore`` is
the database-backed implementation and ``InMemoryProviderStore`` serves
embedded use and tests.
"""
from datetime import datetime, timezone
from typing import Dict, List, Optional, Protocol

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from airouter.core.exceptions import PersistenceError
from airouter.core.logger import get_logger
from airouter.models.provider import Provider, ProviderHealth
from airouter.models.records import (
    HealthState,
    LoadBalancingConfig,
    ProviderRecord,
    RateLimits,
)

logger = get_logger(__name__)


class ProviderStore(Protocol):
    """Persistence operations the routing layer needs."""

    async def load_providers_for_org(self, organization_id: str) -> List[ProviderRecord]:
        ...

    async def get_provider(self, provider_id: str) -> Optional[ProviderRecord]:
        ...

    async def list_active_providers(self) -> List[ProviderRecord]:
        ...

    async def save_health_state(self, provider_id: str, state: HealthState) -> None:
        ...

    async def save_provider(self, record: ProviderRecord) -> ProviderRecord:
        ...


class InMemoryProviderStore:
    """Dictionary-backed store."""

    def __init__(self, records: Optional[List[ProviderRecord]] = None):
        self._records: Dict[str, ProviderRecord] = {}
        for record in records or []:
            self._records[record.id] = record

    async def load_providers_for_org(self, organization_id: str) -> List[ProviderRecord]:
        return [
            r for r in self._records.values()
            if r.organization_id == organization_id
        ]

    async def get_provider(self, provider_id: str) -> Optional[ProviderRecord]:
        return self._records.get(provider_id)

    async def list_active_providers(self) -> List[ProviderRecord]:
        return [r for r in self._records.values() if r.is_active]

    async def save_health_state(self, provider_id: str, state: HealthState) -> None:
        record = self._records.get(provider_id)
        if record is None:
            raise PersistenceError(f"Provider {provider_id} not found")
        self._records[provider_id] = record.with_health(state)

    async def save_provider(self, record: ProviderRecord) -> ProviderRecord:
        self._records[record.id] = record
        return record


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite drops tzinfo on the way back
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _row_to_record(row: Provider) -> ProviderRecord:
    health_row = row.health_status
    health = HealthState()
    if health_row is not None:
        health = HealthState(
            last_check=_aware(health_row.last_check),
            is_healthy=health_row.is_healthy,
            response_time_ms=health_row.response_time_ms or 0.0,
            error_rate=health_row.error_rate or 0.0,
            consecutive_failures=health_row.consecutive_failures or 0,
            terminal_failures=health_row.terminal_failures or 0,
            last_error=health_row.last_error,
        )

    return ProviderRecord(
        id=row.id,
        organization_id=row.organization_id,
        user_id=row.user_id,
        name=row.name,
        type=row.type,
        base_url=row.base_url,
        credential=row.api_key,
        health_check_url=row.health_check_url,
        models=list(row.models or []),
        supported_features=set(row.supported_features or []),
        rate_limits=RateLimits(**(row.rate_limits or {})),
        cost_per_token=row.cost_per_token,
        is_active=row.is_active,
        health=health,
        load_balancing=LoadBalancingConfig(
            strategy=row.strategy,
            failover_enabled=row.failover_enabled,
            max_retries=row.max_retries,
            retry_delay_ms=row.retry_delay_ms,
            circuit_breaker_threshold=row.circuit_breaker_threshold,
            health_check_interval_ms=row.health_check_interval_ms,
        ),
        last_tested=_aware(row.last_tested),
        test_status=row.test_status,
        created_at=_aware(row.created_at),
        updated_at=_aware(row.updated_at),
    )


def _apply_health(row: ProviderHealth, state: HealthState) -> None:
    row.last_check = state.last_check
    row.is_healthy = state.is_healthy
    row.response_time_ms = state.response_time_ms
    row.error_rate = state.error_rate
    row.consecutive_failures = state.consecutive_failures
    row.terminal_failures = state.terminal_failures
    row.last_error = state.last_error


def _apply_record(row: Provider, record: ProviderRecord) -> None:
    lb = record.load_balancing
    row.organization_id = record.organization_id
    row.user_id = record.user_id
    row.name = record.name
    row.type = record.type.value
    row.base_url = record.base_url
    row.api_key = record.credential.get_secret_value()
    row.health_check_url = record.health_check_url
    row.models = list(record.models)
    row.supported_features = sorted(f.value for f in record.supported_features)
    row.rate_limits = record.rate_limits.model_dump()
    row.cost_per_token = record.cost_per_token
    row.is_active = record.is_active
    row.strategy = lb.strategy.value
    row.failover_enabled = lb.failover_enabled
    row.max_retries = lb.max_retries
    row.retry_delay_ms = lb.retry_delay_ms
    row.circuit_breaker_threshold = lb.circuit_breaker_threshold
    row.health_check_interval_ms = lb.health_check_interval_ms
    row.last_tested = record.last_tested
    row.test_status = record.test_status.value
    row.created_at = record.created_at
    row.updated_at = record.updated_at


class SqlProviderStore:
    """
    Store backed by the ``ai_providers`` / ``provider_health`` tables.

    Every operation runs in its own session; database errors are re-raised
    as ``PersistenceError``.
    """

    def __init__(self, session_factory: Optional[async_sessionmaker] = None):
        if session_factory is None:
            from airouter.core.database import AsyncSessionLocal
            session_factory = AsyncSessionLocal
        self.session_factory = session_factory

    async def load_providers_for_org(self, organization_id: str) -> List[ProviderRecord]:
        query = (
            select(Provider)
            .where(Provider.organization_id == organization_id)
            .order_by(Provider.id)
        )
        return await self._fetch_all(query)

    async def list_active_providers(self) -> List[ProviderRecord]:
        query = select(Provider).where(Provider.is_active == True).order_by(Provider.id)  # noqa: E712
        return await self._fetch_all(query)

    async def get_provider(self, provider_id: str) -> Optional[ProviderRecord]:
        try:
            async with self.session_factory() as db:
                row = await db.get(Provider, provider_id)
                return _row_to_record(row) if row else None
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to load provider {provider_id}: {e}") from e

    async def save_health_state(self, provider_id: str, state: HealthState) -> None:
        try:
            async with self.session_factory() as db:
                health_row = await self._get_health_row(db, provider_id)
                if health_row is None:
                    if await db.get(Provider, provider_id) is None:
                        raise PersistenceError(f"Provider {provider_id} not found")
                    health_row = ProviderHealth(provider_id=provider_id)
                    db.add(health_row)
                _apply_health(health_row, state)
                await db.commit()
        except SQLAlchemyError as e:
            raise PersistenceError(
                f"Failed to save health state for {provider_id}: {e}"
            ) from e

    async def save_provider(self, record: ProviderRecord) -> ProviderRecord:
        try:
            async with self.session_factory() as db:
                row = await db.get(Provider, record.id)
                if row is None:
                    row = Provider(id=record.id)
                    db.add(row)
                _apply_record(row, record)

                health_row = row.health_status
                if health_row is None:
                    health_row = ProviderHealth(provider_id=record.id)
                    row.health_status = health_row
                _apply_health(health_row, record.health)

                await db.commit()
                logger.info(
                    "Provider saved",
                    provider_id=record.id,
                    organization_id=record.organization_id,
                    provider_type=record.type.value
                )
                return record
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to save provider {record.id}: {e}") from e

    async def _fetch_all(self, query) -> List[ProviderRecord]:
        try:
            async with self.session_factory() as db:
                result = await db.execute(query)
                return [_row_to_record(row) for row in result.scalars().all()]
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to load providers: {e}") from e

    @staticmethod
    async def _get_health_row(db: AsyncSession, provider_id: str) -> Optional[ProviderHealth]:
        result = await db.execute(
            select(ProviderHealth).where(ProviderHealth.provider_id == provider_id)
        )
        return result.scalar_one_or_none()
