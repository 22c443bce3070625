"""
Provider routing services: health tracking, weighting, selection, failover.
"""
from airouter.services.balancer import ProviderSelector
from airouter.services.failover import FailoverCoordinator
from airouter.services.health_tracker import HealthTracker
from airouter.services.router import RoutingService
from airouter.services.store import InMemoryProviderStore, ProviderStore, SqlProviderStore
from airouter.services.weights import WeightCalculator, weight

__all__ = [
    "FailoverCoordinator",
    "HealthTracker",
    "InMemoryProviderStore",
    "ProviderSelector",
    "ProviderStore",
    "RoutingService",
    "SqlProviderStore",
    "WeightCalculator",
    "weight",
]
