"""
Routing service: the caller-facing entry point of the routing layer.
"""
import random
from typing import Iterable, List, Optional, Tuple

from airouter.api.schemas import (
    ChatCompletionRequest,
    ChatCompletionResponse,
    EmbeddingRequest,
    EmbeddingResponse,
)
from airouter.core.cache import RedisCache
from airouter.core.logger import get_logger
from airouter.models.records import Capability, HealthState, ProviderRecord, RoutingStrategy
from airouter.providers.factory import ProviderFactory
from airouter.services.balancer import ProviderSelector
from airouter.services.cursor import InMemoryCursor, RedisCursor
from airouter.services.failover import FailoverCoordinator, Invoke
from airouter.services.health_tracker import HealthTracker
from airouter.services.store import ProviderStore

logger = get_logger(__name__)


class RoutingService:
    """
    Wires store, health tracker, selector and failover coordinator.

    Construct one per process and share it; all collaborators are injected.
    """

    def __init__(
        self,
        store: ProviderStore,
        tracker: Optional[HealthTracker] = None,
        selector: Optional[ProviderSelector] = None,
        coordinator: Optional[FailoverCoordinator] = None,
        adapter_factory: type = ProviderFactory,
    ):
        self.store = store
        self.tracker = tracker or HealthTracker(store)
        self.selector = selector or ProviderSelector(store, self.tracker)
        self.coordinator = coordinator or FailoverCoordinator(self.selector, self.tracker)
        self.adapter_factory = adapter_factory

    @classmethod
    def create(
        cls,
        store: ProviderStore,
        cache: Optional[RedisCache] = None,
        rng: Optional[random.Random] = None,
    ) -> "RoutingService":
        """Build a service, sharing round-robin cursors through Redis when given."""
        tracker = HealthTracker(store)
        cursor = RedisCursor(cache) if cache is not None else InMemoryCursor()
        selector = ProviderSelector(store, tracker, cursor=cursor, rng=rng)
        return cls(store, tracker=tracker, selector=selector)

    async def select_provider(
        self,
        organization_id: str,
        capability: Capability
    ) -> Optional[ProviderRecord]:
        """Pick a provider without invoking it. None means nothing is eligible."""
        return await self.selector.select(organization_id, capability)

    async def preview_route(
        self,
        organization_id: str,
        capability: Capability
    ) -> Optional[Tuple[ProviderRecord, RoutingStrategy]]:
        """Likely next provider and the pool strategy, without moving any cursor."""
        return await self.selector.preview(organization_id, capability)

    async def execute_with_failover(
        self,
        organization_id: str,
        capability: Capability,
        invoke: Invoke,
        exclude_ids: Iterable[str] = ()
    ):
        """Run ``invoke`` with retries and failover; see FailoverCoordinator.execute."""
        return await self.coordinator.execute(
            organization_id, capability, invoke, exclude_ids=exclude_ids
        )

    async def _unroutable_ids(self, organization_id: str) -> List[str]:
        """Providers of a type no adapter can talk to."""
        records = await self.store.load_providers_for_org(organization_id)
        unroutable = [r.id for r in records if not self.adapter_factory.supports(r)]
        if unroutable:
            logger.debug(
                "Skipping providers without an adapter",
                organization_id=organization_id,
                provider_ids=unroutable
            )
        return unroutable

    async def report_health_check(
        self,
        provider_id: str,
        success: bool,
        latency_ms: float,
        error: Optional[str] = None
    ) -> Optional[HealthState]:
        """
        Record an out-of-band health check.

        Args:
            provider_id: Checked provider
            success: Check outcome
            latency_ms: Check latency in milliseconds
            error: Failure description

        Returns:
            Updated health state, or None if the provider is unknown
        """
        provider = await self.store.get_provider(provider_id)
        if provider is None:
            logger.warning("Health report for unknown provider", provider_id=provider_id)
            return None
        return await self.tracker.record_outcome(provider, success, latency_ms, error=error)

    def current_health(self, provider: ProviderRecord) -> HealthState:
        return self.tracker.current(provider)

    async def reset_health(self, provider_id: str) -> Optional[HealthState]:
        """Clear a provider's health history. None if the provider is unknown."""
        provider = await self.store.get_provider(provider_id)
        if provider is None:
            return None
        return await self.tracker.reset(provider)

    async def chat(
        self,
        organization_id: str,
        request: ChatCompletionRequest
    ) -> ChatCompletionResponse:
        """Route a chat completion through the organization's providers."""
        capability = Capability.FUNCTION_CALLING if request.tools else Capability.CHAT

        async def invoke(provider: ProviderRecord) -> ChatCompletionResponse:
            async with self.adapter_factory.create_adapter(provider) as adapter:
                response = await adapter.chat_completion(request)
            response.provider = provider.id
            return response

        return await self.execute_with_failover(
            organization_id,
            capability,
            invoke,
            exclude_ids=await self._unroutable_ids(organization_id)
        )

    async def embeddings(
        self,
        organization_id: str,
        request: EmbeddingRequest
    ) -> EmbeddingResponse:
        async def invoke(provider: ProviderRecord) -> EmbeddingResponse:
            async with self.adapter_factory.create_adapter(provider) as adapter:
                return await adapter.embeddings(request)

        return await self.execute_with_failover(
            organization_id,
            Capability.EMBEDDINGS,
            invoke,
            exclude_ids=await self._unroutable_ids(organization_id)
        )
