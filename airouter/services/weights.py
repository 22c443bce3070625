"""
Selection weights derived from provider health and routing strategy.
"""
from typing import Optional

from airouter.models.records import ProviderRecord, RoutingStrategy

# Providers at or above this latency get zero weight under least-latency
LATENCY_CEILING_MS = 1000.0


def is_circuit_open(provider: ProviderRecord) -> bool:
    return provider.is_circuit_open


def weight(
    provider: ProviderRecord,
    strategy: Optional[RoutingStrategy] = None
) -> float:
    """
    Compute the selection weight of a provider.

    Pure function of the provider snapshot: no I/O, no randomness.

    Args:
        provider: Provider snapshot (health already overlaid)
        strategy: Strategy to weigh by; defaults to the provider's own

    Returns:
        Non-negative weight; 0 when unhealthy or the circuit is open
    """
    if not provider.health.is_healthy or provider.is_circuit_open:
        return 0.0

    strategy = strategy or provider.load_balancing.strategy

    if strategy == RoutingStrategy.LEAST_LATENCY:
        return max(0.0, LATENCY_CEILING_MS - provider.health.response_time_ms)

    if strategy == RoutingStrategy.COST_OPTIMIZED:
        if provider.cost_per_token > 0:
            return 1.0 / provider.cost_per_token
        return 1.0

    # Round-robin and capability-based rely on rotation, not magnitude
    return 1.0


class WeightCalculator:
    """Callable wrapper around :func:`weight` for injection into the selector."""

    def weight(
        self,
        provider: ProviderRecord,
        strategy: Optional[RoutingStrategy] = None
    ) -> float:
        return weight(provider, strategy)

    __call__ = weight
