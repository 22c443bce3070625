"""
Provider selection for an organization and capability.
"""
import random
from typing import Iterable, List, Optional, Sequence, Tuple

from airouter.core.config import settings
from airouter.core.logger import get_logger
from airouter.models.records import Capability, ProviderRecord, RoutingStrategy
from airouter.services.cursor import InMemoryCursor, RoundRobinCursor
from airouter.services.health_tracker import HealthTracker
from airouter.services.store import ProviderStore
from airouter.services.weights import WeightCalculator, is_circuit_open

logger = get_logger(__name__)


class ProviderSelector:
    """
    Picks one provider out of an organization's pool.

    Candidates are filtered to active providers supporting the capability,
    weighted by :class:`WeightCalculator`, then chosen by rotating cursor
    (round-robin) or weighted random draw (every other strategy). When all
    candidates weigh zero, the least-failing one is returned instead of
    nothing so the organization keeps some service.
    """

    def __init__(
        self,
        store: ProviderStore,
        tracker: HealthTracker,
        *,
        calculator: Optional[WeightCalculator] = None,
        cursor: Optional[RoundRobinCursor] = None,
        rng: Optional[random.Random] = None,
        default_strategy: Optional[RoutingStrategy] = None,
    ):
        self.store = store
        self.tracker = tracker
        self.calculator = calculator or WeightCalculator()
        self.cursor = cursor or InMemoryCursor()
        self.rng = rng or random.Random()
        self.default_strategy = default_strategy or RoutingStrategy(
            settings.default_routing_strategy
        )

    async def select(
        self,
        organization_id: str,
        capability: Capability,
        exclude_ids: Iterable[str] = ()
    ) -> Optional[ProviderRecord]:
        """
        Select a provider.

        Args:
            organization_id: Owning organization
            capability: Feature the caller needs
            exclude_ids: Provider ids already tried in this call chain

        Returns:
            Selected provider, or None when no candidate passes the filters

        Raises:
            PersistenceError: If the store cannot load the pool
        """
        capability = Capability(capability)
        exclude_ids = set(exclude_ids)
        candidates = await self.candidates(organization_id, capability, exclude_ids)

        if not candidates:
            logger.warning(
                "No available providers",
                organization_id=organization_id,
                capability=capability.value,
                excluded=sorted(exclude_ids)
            )
            return None

        strategy = self.resolve_strategy(candidates)
        weighted = [
            (provider, self.calculator.weight(provider, strategy))
            for provider in candidates
        ]
        eligible = [(p, w) for p, w in weighted if w > 0]

        if not eligible:
            selected = self._least_unhealthy(candidates)
            logger.warning(
                "Degraded provider selection",
                organization_id=organization_id,
                capability=capability.value,
                provider_id=selected.id,
                consecutive_failures=selected.health.consecutive_failures,
                circuit_open=is_circuit_open(selected)
            )
            return selected

        if strategy == RoutingStrategy.ROUND_ROBIN:
            selected = await self._select_round_robin(
                organization_id, capability, [p for p, _ in eligible]
            )
        else:
            selected = self._select_weighted(eligible)

        logger.info(
            "Provider selected",
            organization_id=organization_id,
            capability=capability.value,
            provider_id=selected.id,
            strategy=strategy.value,
            eligible=len(eligible)
        )
        return selected

    async def preview(
        self,
        organization_id: str,
        capability: Capability
    ) -> Optional[Tuple[ProviderRecord, RoutingStrategy]]:
        """
        Provider the next ``select`` would most likely return, plus the pool strategy.

        Leaves routing state untouched: the round-robin cursor is read, not
        advanced, and weighted pools report their heaviest provider instead
        of drawing from the generator.
        """
        capability = Capability(capability)
        candidates = await self.candidates(organization_id, capability)
        if not candidates:
            return None

        strategy = self.resolve_strategy(candidates)
        eligible = [
            (p, self.calculator.weight(p, strategy))
            for p in candidates
        ]
        eligible = [(p, w) for p, w in eligible if w > 0]

        if not eligible:
            return self._least_unhealthy(candidates), strategy

        if strategy == RoutingStrategy.ROUND_ROBIN:
            ordered = sorted((p for p, _ in eligible), key=lambda p: p.id)
            position = await self.cursor.peek(organization_id, capability.value)
            return ordered[position % len(ordered)], strategy

        heaviest = min(
            eligible,
            key=lambda pw: (-pw[1], pw[0].health.response_time_ms, pw[0].id)
        )
        return heaviest[0], strategy

    async def candidates(
        self,
        organization_id: str,
        capability: Capability,
        exclude_ids: Iterable[str] = ()
    ) -> List[ProviderRecord]:
        """Active, capable, non-excluded providers with tracked health overlaid."""
        excluded = set(exclude_ids)
        records = await self.store.load_providers_for_org(organization_id)
        return [
            self.tracker.overlay(record)
            for record in records
            if record.organization_id == organization_id
            and record.is_active
            and record.supports(capability)
            and record.id not in excluded
        ]

    def resolve_strategy(self, candidates: Sequence[ProviderRecord]) -> RoutingStrategy:
        """Shared strategy of the pool, or the default for mixed pools."""
        strategies = {p.load_balancing.strategy for p in candidates}
        if len(strategies) == 1:
            return strategies.pop()
        return self.default_strategy

    async def _select_round_robin(
        self,
        organization_id: str,
        capability: Capability,
        providers: List[ProviderRecord]
    ) -> ProviderRecord:
        ordered = sorted(providers, key=lambda p: p.id)
        position = await self.cursor.next(organization_id, capability.value)
        return ordered[position % len(ordered)]

    def _select_weighted(self, eligible: List[tuple]) -> ProviderRecord:
        if len(eligible) == 1:
            return eligible[0][0]

        # Stable order so a seeded generator gives repeatable picks
        ordered = sorted(eligible, key=lambda pw: (pw[0].health.response_time_ms, pw[0].id))
        providers = [p for p, _ in ordered]
        weights = [w for _, w in ordered]
        return self.rng.choices(providers, weights=weights, k=1)[0]

    @staticmethod
    def _least_unhealthy(candidates: List[ProviderRecord]) -> ProviderRecord:
        return min(
            candidates,
            key=lambda p: (
                p.health.consecutive_failures,
                p.health.response_time_ms,
                p.id
            )
        )
