"""
Provider adapters with a unified interface.
"""
from airouter.providers.base import BaseProvider, ProviderConfig
from airouter.providers.factory import ProviderFactory

__all__ = [
    "BaseProvider",
    "ProviderConfig",
    "ProviderFactory",
]
