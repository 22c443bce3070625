"""
Base provider abstract class and configuration.
"""
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import httpx

from airouter.api.schemas import (
    ChatCompletionRequest,
    ChatCompletionResponse,
    EmbeddingRequest,
    EmbeddingResponse,
    HealthCheckResult,
)
from airouter.core.exceptions import (
    AuthenticationError,
    RateLimitError,
    RetryableProviderError,
    TerminalProviderError,
)
from airouter.core.logger import get_logger
from airouter.models.records import ProviderRecord

logger = get_logger(__name__)

# Status codes worth trying elsewhere
RETRYABLE_STATUS_CODES = {408, 409, 425, 429}


@dataclass
class ProviderConfig:
    """Provider connection configuration."""

    api_key: str
    base_url: Optional[str] = None
    health_check_url: Optional[str] = None
    timeout: float = 60

    @classmethod
    def from_record(cls, record: ProviderRecord, timeout: float = 60) -> "ProviderConfig":
        return cls(
            api_key=record.credential.get_secret_value(),
            base_url=record.base_url,
            health_check_url=record.health_check_url,
            timeout=timeout,
        )

    def get_effective_base_url(self, default_url: str) -> str:
        """Get effective base URL (use config or default)."""
        return (self.base_url or default_url).rstrip("/")


def is_retryable_status(status_code: int) -> bool:
    return status_code in RETRYABLE_STATUS_CODES or status_code >= 500


class BaseProvider(ABC):
    """
    Abstract base class for provider adapters.

    Adapters translate transport and HTTP failures into
    ``RetryableProviderError`` / ``TerminalProviderError`` so the failover
    coordinator can tell transient outages from rejected requests.
    """

    def __init__(
        self,
        config: ProviderConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.config = config
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    @abstractmethod
    def provider_type(self) -> str:
        """Provider type identifier (e.g., 'openai', 'anthropic')."""

    @property
    @abstractmethod
    def default_base_url(self) -> str:
        """Default base URL for the provider."""

    @property
    def base_url(self) -> str:
        return self.config.get_effective_base_url(self.default_base_url)

    @property
    def health_check_path(self) -> str:
        return "/models"

    async def get_client(self) -> httpx.AsyncClient:
        """
        Get or create HTTP client with connection pooling.

        Returns:
            Async HTTP client
        """
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.config.timeout),
                limits=httpx.Limits(
                    max_keepalive_connections=10,
                    max_connections=20,
                    keepalive_expiry=30.0
                ),
                transport=self._transport
            )
        return self._client

    async def close(self) -> None:
        """Close HTTP client and cleanup resources."""
        if self._client:
            await self._client.aclose()
            self._client = None

    @abstractmethod
    async def chat_completion(self, request: ChatCompletionRequest) -> ChatCompletionResponse:
        """Send chat completion request."""

    async def embeddings(self, request: EmbeddingRequest) -> EmbeddingResponse:
        raise TerminalProviderError(
            f"Embeddings are not supported by {self.provider_type}",
            provider_type=self.provider_type
        )

    def prepare_headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "User-Agent": "airouter/1.0"
        }

    async def send(
        self,
        method: str,
        url: str,
        payload: Optional[Dict[str, Any]] = None
    ) -> httpx.Response:
        """
        Send a request and return the successful response, body undecoded.

        Raises:
            RetryableProviderError: Timeouts, transport errors, 408/409/425/429, 5xx
            TerminalProviderError: Any other 4xx response
        """
        client = await self.get_client()
        try:
            response = await client.request(
                method, url, json=payload, headers=self.prepare_headers()
            )
            response.raise_for_status()
            return response
        except httpx.HTTPStatusError as e:
            raise self.classify_status_error(e.response) from e
        except httpx.TimeoutException as e:
            logger.warning("Provider request timed out", provider_type=self.provider_type)
            raise RetryableProviderError(
                f"Timeout calling {self.provider_type}: {e}",
                provider_type=self.provider_type
            ) from e
        except httpx.TransportError as e:
            logger.warning(
                "Provider transport error",
                provider_type=self.provider_type,
                error=str(e)
            )
            raise RetryableProviderError(
                f"Network error calling {self.provider_type}: {e}",
                provider_type=self.provider_type
            ) from e

    async def request(
        self,
        method: str,
        url: str,
        payload: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """
        Send a request and return the decoded JSON body.

        A success response whose body is not JSON is treated as a transient
        upstream fault (``RetryableProviderError``).
        """
        response = await self.send(method, url, payload)
        try:
            return response.json()
        except ValueError as e:
            logger.warning(
                "Provider returned a non-JSON body",
                provider_type=self.provider_type,
                status_code=response.status_code
            )
            raise RetryableProviderError(
                f"Invalid JSON from {self.provider_type}: {e}",
                provider_type=self.provider_type,
                status_code=response.status_code
            ) from e

    def classify_status_error(self, response: httpx.Response):
        status_code = response.status_code
        logger.error(
            "Provider API error",
            provider_type=self.provider_type,
            status_code=status_code,
            error=response.text[:500]
        )

        if status_code == 429:
            retry_after = response.headers.get("retry-after")
            try:
                retry_after_s = float(retry_after) if retry_after else None
            except ValueError:
                retry_after_s = None
            return RateLimitError(self.provider_type, retry_after=retry_after_s)
        if status_code in (401, 403):
            return AuthenticationError(self.provider_type, status_code=status_code)

        message = f"HTTP {status_code}: {response.text[:500]}"
        if is_retryable_status(status_code):
            return RetryableProviderError(message, self.provider_type, status_code)
        return TerminalProviderError(message, self.provider_type, status_code)

    async def health_check(self) -> HealthCheckResult:
        """
        Check provider availability.

        Any 2xx response counts as healthy; the body is not inspected.
        Never raises on provider failure; the outcome is in the result.
        """
        url = self.config.health_check_url or f"{self.base_url}{self.health_check_path}"
        start_time = time.perf_counter()
        error = None
        try:
            await self.send("GET", url)
        except (RetryableProviderError, TerminalProviderError) as e:
            error = str(e)

        return HealthCheckResult(
            is_healthy=error is None,
            response_time_ms=round((time.perf_counter() - start_time) * 1000, 2),
            error=error,
            timestamp=datetime.now(timezone.utc)
        )

    async def __aenter__(self):
        await self.get_client()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
