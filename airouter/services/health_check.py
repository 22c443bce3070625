"""
Active health probing for registered providers.
"""
import asyncio
import time
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional

from airouter.api.schemas import HealthCheckResult
from airouter.core.config import settings
from airouter.core.exceptions import PersistenceError
from airouter.core.logger import get_logger
from airouter.models.records import CheckStatus, ProviderRecord
from airouter.providers.factory import ProviderFactory
from airouter.services.router import RoutingService

logger = get_logger(__name__)


class HealthCheckService:
    """
    Periodically health-checks active providers.

    Features:
    - Per-provider check interval (``health_check_interval_ms``)
    - Results folded into the same health state as live traffic
    - Legacy ``last_tested`` / ``test_status`` fields kept current
    """

    def __init__(
        self,
        routing: RoutingService,
        adapter_factory: type = ProviderFactory,
        poll_seconds: Optional[int] = None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.routing = routing
        self.store = routing.store
        self.adapter_factory = adapter_factory
        self.poll_seconds = poll_seconds or settings.health_check_poll_seconds
        self._clock = clock

    async def start(self) -> None:
        """Start the health check loop."""
        logger.info("Starting health check service", poll_seconds=self.poll_seconds)

        while True:
            try:
                await self.check_due_providers()
            except Exception as e:
                logger.error("Health check loop error", error=str(e), exc_info=True)

            await asyncio.sleep(self.poll_seconds)

    def is_due(self, provider: ProviderRecord) -> bool:
        last_check = provider.health.last_check
        if last_check is None:
            return True
        elapsed_ms = (self._clock() - last_check).total_seconds() * 1000
        return elapsed_ms >= provider.load_balancing.health_check_interval_ms

    async def check_due_providers(self) -> List[Dict]:
        """Check every active provider whose interval has elapsed."""
        providers = await self.store.list_active_providers()
        due = [
            p for p in providers
            if self.is_due(self.routing.tracker.overlay(p))
        ]
        if not due:
            logger.debug("No providers due for health check")
            return []

        logger.info("Checking provider health", count=len(due))
        outcomes = await asyncio.gather(
            *(self.check_provider(p) for p in due),
            return_exceptions=True
        )

        results = []
        for provider, outcome in zip(due, outcomes):
            if isinstance(outcome, BaseException):
                logger.error(
                    "Health check failed unexpectedly",
                    provider_id=provider.id,
                    error=str(outcome)
                )
            elif outcome is not None:
                results.append(outcome)
        return results

    async def check_provider(self, provider: ProviderRecord) -> Optional[Dict]:
        """
        Check a single provider and record the result.

        Args:
            provider: Provider to check

        Returns:
            Health check result dictionary, or None if the provider type
            has no adapter to check with
        """
        if not self.adapter_factory.supports(provider):
            logger.debug(
                "Skipping health check, no adapter for provider type",
                provider_id=provider.id,
                provider_type=provider.type.value
            )
            return None

        adapter = self.adapter_factory.create_adapter(
            provider,
            timeout=settings.health_check_timeout
        )
        started = time.perf_counter()
        try:
            async with adapter:
                result = await adapter.health_check()
        except Exception as e:
            # Still a failed check, so the provider's health keeps moving
            logger.error(
                "Health check raised unexpectedly",
                provider_id=provider.id,
                error=str(e),
                exc_info=True
            )
            result = HealthCheckResult(
                is_healthy=False,
                response_time_ms=round((time.perf_counter() - started) * 1000, 2),
                error=f"Health check error: {e}",
                timestamp=self._clock()
            )

        state = await self.routing.report_health_check(
            provider.id,
            result.is_healthy,
            result.response_time_ms,
            result.error
        )
        if state is None:
            return None

        await self._record_test_status(provider.id, result.is_healthy, result.timestamp)

        if result.is_healthy:
            logger.info(
                "Provider is healthy",
                provider_id=provider.id,
                response_time_ms=result.response_time_ms
            )
        else:
            logger.warning(
                "Provider health check failed",
                provider_id=provider.id,
                error=result.error
            )

        return {
            "provider_id": provider.id,
            "provider_name": provider.name,
            "is_healthy": state.is_healthy,
            "response_time_ms": result.response_time_ms,
            "consecutive_failures": state.consecutive_failures
        }

    async def manual_check(self, provider_id: str) -> Optional[Dict]:
        """Trigger a health check for one provider, regardless of its interval."""
        provider = await self.store.get_provider(provider_id)
        if provider is None:
            return None
        return await self.check_provider(provider)

    async def _record_test_status(
        self,
        provider_id: str,
        success: bool,
        tested_at: datetime
    ) -> None:
        try:
            record = await self.store.get_provider(provider_id)
            if record is None:
                return
            updated = record.model_copy(update={
                "health": self.routing.tracker.current(record),
                "last_tested": tested_at,
                "test_status": CheckStatus.SUCCESS if success else CheckStatus.FAILED,
                "updated_at": self._clock(),
            })
            await self.store.save_provider(updated)
        except PersistenceError as e:
            logger.error(
                "Failed to record test status",
                provider_id=provider_id,
                error=str(e)
            )


async def start_health_check_service(service: HealthCheckService) -> None:
    """Run the health check service as a background task."""
    if settings.health_check_enabled:
        logger.info("Health check service is enabled")
        await service.start()
    else:
        logger.info("Health check service is disabled")
