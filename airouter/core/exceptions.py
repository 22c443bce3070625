"""
Routing error taxonomy.

Provider adapters raise ``RetryableProviderError`` or ``TerminalProviderError``;
the failover coordinator turns exhausted attempts into
``AllProvidersFailedError``. Store failures surface as ``PersistenceError``.
"""
from typing import List, Optional, Tuple


class RoutingError(Exception):
    """Base class for all routing-layer errors."""


class ProviderNotFoundError(RoutingError):
    """No eligible provider is configured for an organization/capability."""

    def __init__(self, organization_id: str, capability: str):
        self.organization_id = organization_id
        self.capability = capability
        super().__init__(
            f"No provider available for organization {organization_id} "
            f"with capability {capability}"
        )


class ProviderError(RoutingError):
    """Error returned by an upstream provider call."""

    retryable: bool = True

    def __init__(
        self,
        message: str,
        provider_type: Optional[str] = None,
        status_code: Optional[int] = None
    ):
        super().__init__(message)
        self.provider_type = provider_type
        self.status_code = status_code


class RetryableProviderError(ProviderError):
    """Transient failure (timeout, 5xx, rate limiting). Triggers failover."""

    retryable = True


class RateLimitError(RetryableProviderError):
    def __init__(
        self,
        provider_type: Optional[str] = None,
        retry_after: Optional[float] = None
    ):
        super().__init__(
            f"Rate limit exceeded for {provider_type or 'provider'}",
            provider_type=provider_type,
            status_code=429
        )
        self.retry_after = retry_after


class TerminalProviderError(ProviderError):
    """Non-retryable failure (bad credentials, malformed request)."""

    retryable = False


class AuthenticationError(TerminalProviderError):
    def __init__(self, provider_type: Optional[str] = None, status_code: int = 401):
        super().__init__(
            f"Authentication failed for {provider_type or 'provider'}",
            provider_type=provider_type,
            status_code=status_code
        )


class AllProvidersFailedError(RoutingError):
    """Every attempted provider failed, or the retry budget ran out."""

    def __init__(
        self,
        organization_id: str,
        capability: str,
        attempts: List[Tuple[str, str]]
    ):
        self.organization_id = organization_id
        self.capability = capability
        self.attempts = attempts
        summary = "; ".join(f"{pid}: {err}" for pid, err in attempts)
        super().__init__(
            f"All providers failed for organization {organization_id} "
            f"({capability}) after {len(attempts)} attempts. Errors: {summary}"
        )


class PersistenceError(RoutingError):
    """The provider store could not complete an operation."""
