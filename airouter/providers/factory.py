"""
Provider factory for creating adapter instances from provider records.
"""
from typing import Dict, Optional, Type

import httpx

from airouter.core.config import settings
from airouter.core.logger import get_logger
from airouter.models.records import ProviderRecord, ProviderType
from airouter.providers.anthropic import AnthropicProvider
from airouter.providers.base import BaseProvider, ProviderConfig
from airouter.providers.openai import OpenAIProvider

logger = get_logger(__name__)


class ProviderFactory:
    """Factory for creating provider adapters."""

    # OpenAI-compatible vendors share one adapter
    _providers: Dict[ProviderType, Type[BaseProvider]] = {
        ProviderType.OPENAI: OpenAIProvider,
        ProviderType.TOGETHER: OpenAIProvider,
        ProviderType.HUGGINGFACE: OpenAIProvider,
        ProviderType.CUSTOM: OpenAIProvider,
        ProviderType.ANTHROPIC: AnthropicProvider,
    }

    @classmethod
    def create_adapter(
        cls,
        record: ProviderRecord,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ) -> BaseProvider:
        """
        Create an adapter for a provider record.

        Args:
            record: Provider to connect to
            timeout: Request timeout in seconds (default from settings)
            transport: Optional httpx transport override

        Returns:
            Provider adapter instance

        Raises:
            ValueError: If provider type is not supported
        """
        provider_class = cls._providers.get(record.type)
        if provider_class is None:
            raise ValueError(
                f"Unsupported provider type: {record.type.value}. "
                f"Available types: {', '.join(cls.get_supported_types())}"
            )

        config = ProviderConfig.from_record(
            record,
            timeout=timeout or settings.request_timeout
        )
        logger.debug(
            "Created provider adapter",
            provider_id=record.id,
            provider_type=record.type.value
        )
        return provider_class(config, transport=transport)

    @classmethod
    def supports(cls, record: ProviderRecord) -> bool:
        """Whether an adapter exists for the record's provider type."""
        return record.type in cls._providers

    @classmethod
    def get_supported_types(cls) -> list[str]:
        return [t.value for t in cls._providers]
