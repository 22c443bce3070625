"""
Provider records and their database models.
"""
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
from airouter.models.provider import Provider, ProviderHealth

__all__ = [
    "Capability",
    "CheckStatus",
    "HealthState",
    "LoadBalancingConfig",
    "ProviderRecord",
    "ProviderType",
    "RateLimits",
    "RoutingStrategy",
    "Provider",
    "ProviderHealth",
]
