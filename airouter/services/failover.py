"""
Retry and failover across an organization's providers.
"""
import asyncio
import time
from typing import Any, Awaitable, Callable, Iterable, List, Optional, Tuple, TypeVar

from airouter.core.config import settings
from airouter.core.exceptions import (
    AllProvidersFailedError,
    ProviderNotFoundError,
    TerminalProviderError,
)
from airouter.core.logger import get_logger
from airouter.models.records import Capability, LoadBalancingConfig, ProviderRecord
from airouter.services.balancer import ProviderSelector
from airouter.services.health_tracker import HealthTracker

logger = get_logger(__name__)

T = TypeVar("T")

Invoke = Callable[[ProviderRecord], Awaitable[T]]


class FailoverCoordinator:
    """
    Sequences attempts for one logical request.

    Each attempt selects a provider not yet tried in this call, invokes it
    and reports the outcome to the health tracker. Retryable failures move on
    to the next provider after a bounded exponential backoff; terminal
    failures are re-raised at once. The total number of attempts never
    exceeds ``1 + max_retries`` of the provider that failed last.

    Cancelling the surrounding task aborts a pending backoff immediately.
    Per-attempt timeouts belong to the ``invoke`` callable.
    """

    def __init__(
        self,
        selector: ProviderSelector,
        tracker: HealthTracker,
        *,
        backoff_multiplier: Optional[float] = None,
        max_retry_delay_ms: Optional[int] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.selector = selector
        self.tracker = tracker
        self.backoff_multiplier = (
            settings.backoff_multiplier if backoff_multiplier is None else backoff_multiplier
        )
        self.max_retry_delay_ms = (
            settings.max_retry_delay_ms if max_retry_delay_ms is None else max_retry_delay_ms
        )
        self._sleep = sleep

    def retry_delay_ms(self, config: LoadBalancingConfig, retries_used: int) -> float:
        """Backoff before retry number ``retries_used + 1``."""
        delay = config.retry_delay_ms * (self.backoff_multiplier ** retries_used)
        return min(delay, self.max_retry_delay_ms)

    async def execute(
        self,
        organization_id: str,
        capability: Capability,
        invoke: Invoke,
        exclude_ids: Iterable[str] = (),
    ) -> T:
        """
        Run ``invoke`` against providers until one succeeds.

        Args:
            organization_id: Owning organization
            capability: Capability the call requires
            invoke: Async callable performing the provider call
            exclude_ids: Providers never to select for this call; not counted
                as attempts

        Returns:
            Whatever ``invoke`` returned for the successful provider

        Raises:
            ProviderNotFoundError: No provider is eligible at all
            TerminalProviderError: A provider rejected the request as non-retryable
            AllProvidersFailedError: Candidates or retry budget exhausted
        """
        capability = Capability(capability)
        tried: List[str] = list(exclude_ids)
        attempts: List[Tuple[str, str]] = []
        retries_used = 0

        provider = await self.selector.select(organization_id, capability, tried)
        if provider is None:
            raise ProviderNotFoundError(organization_id, capability.value)

        while provider is not None:
            attempt = len(attempts) + 1
            start_time = time.perf_counter()
            try:
                result = await invoke(provider)
            except TerminalProviderError as e:
                latency_ms = (time.perf_counter() - start_time) * 1000
                await self.tracker.record_outcome(
                    provider, False, latency_ms, error=str(e), terminal=True
                )
                logger.error(
                    "Provider returned terminal error",
                    organization_id=organization_id,
                    provider_id=provider.id,
                    attempt=attempt,
                    status_code=e.status_code,
                    error=str(e)
                )
                raise
            except Exception as e:
                latency_ms = (time.perf_counter() - start_time) * 1000
                await self.tracker.record_outcome(provider, False, latency_ms, error=str(e))
                attempts.append((provider.id, str(e)))
                tried.append(provider.id)
                logger.warning(
                    "Provider attempt failed",
                    organization_id=organization_id,
                    capability=capability.value,
                    provider_id=provider.id,
                    attempt=attempt,
                    error=str(e)
                )
                provider = await self._next_provider(
                    organization_id, capability, provider, tried, retries_used
                )
                retries_used += 1
                continue

            latency_ms = (time.perf_counter() - start_time) * 1000
            await self.tracker.record_outcome(provider, True, latency_ms)
            if attempt > 1:
                logger.info(
                    "Failover succeeded",
                    organization_id=organization_id,
                    provider_id=provider.id,
                    attempt=attempt
                )
            return result

        logger.error(
            "All providers failed",
            organization_id=organization_id,
            capability=capability.value,
            providers_tried=[provider_id for provider_id, _ in attempts]
        )
        raise AllProvidersFailedError(organization_id, capability.value, attempts)

    async def _next_provider(
        self,
        organization_id: str,
        capability: Capability,
        failed: ProviderRecord,
        tried: List[str],
        retries_used: int,
    ) -> Optional[ProviderRecord]:
        config = failed.load_balancing
        if not config.failover_enabled:
            logger.info("Failover disabled for provider", provider_id=failed.id)
            return None
        if retries_used >= config.max_retries:
            logger.info(
                "Retry budget exhausted",
                provider_id=failed.id,
                max_retries=config.max_retries
            )
            return None
        if not await self.selector.candidates(organization_id, capability, tried):
            return None

        delay_ms = self.retry_delay_ms(config, retries_used)
        if delay_ms > 0:
            logger.debug("Waiting before failover", delay_ms=delay_ms, retry=retries_used + 1)
            await self._sleep(delay_ms / 1000)

        return await self.selector.select(organization_id, capability, tried)
