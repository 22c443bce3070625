"""
Rolling health bookkeeping for providers.

Every live call outcome and every active health check goes through
``HealthTracker.record_outcome``. The tracker keeps the authoritative
in-process ``HealthState`` per provider and persists it through the injected
store; a failing store never blocks or breaks the caller.
"""
import asyncio
import threading
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Deque, Dict, Optional

from airouter.core.config import settings
from airouter.core.logger import get_logger
from airouter.models.records import HealthState, ProviderRecord
from airouter.services.store import ProviderStore

logger = get_logger(__name__)


@dataclass
class _TrackedProvider:
    state: HealthState
    window: Deque[bool]
    lock: threading.Lock = field(default_factory=threading.Lock)
    samples: int = 0
    # Bumped on every change; saves never go back to an older version
    version: int = 0
    persisted_version: int = 0
    persist_lock: asyncio.Lock = field(default_factory=asyncio.Lock)


class HealthTracker:
    """
    Thread-safe per-provider health tracker.

    Relationship between the two failure thresholds:

    - ``unhealthy_threshold`` (process-wide) flips ``is_healthy`` to False
      once that many consecutive failures are observed.
    - ``circuit_breaker_threshold`` (per provider) opens the circuit, which
      only gates selection weight.

    Either condition alone zeroes the provider's weight. A single success
    clears both.
    """

    def __init__(
        self,
        store: Optional[ProviderStore] = None,
        *,
        unhealthy_threshold: Optional[int] = None,
        window_size: Optional[int] = None,
        ema_alpha: Optional[float] = None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.store = store
        self.unhealthy_threshold = unhealthy_threshold or settings.unhealthy_threshold
        self.window_size = window_size or settings.health_window_size
        self.ema_alpha = ema_alpha or settings.latency_ema_alpha
        self._clock = clock

        self._tracked: Dict[str, _TrackedProvider] = {}
        self._registry_lock = threading.Lock()

    async def record_outcome(
        self,
        provider: ProviderRecord,
        success: bool,
        response_time_ms: float,
        error: Optional[str] = None,
        terminal: bool = False,
    ) -> HealthState:
        """
        Fold one observation into the provider's health and persist it.

        Args:
            provider: Provider the outcome belongs to
            success: Whether the call or health check succeeded
            response_time_ms: Observed latency in milliseconds
            error: Error message for failures
            terminal: Non-retryable failure (bad credentials, bad request);
                tracked in ``terminal_failures`` without advancing the
                consecutive-failure counter

        Returns:
            The updated health state
        """
        entry = self._entry(provider)

        with entry.lock:
            entry.window.append(success)
            previous = entry.state
            if success:
                state = self._apply_success(entry, response_time_ms)
            elif terminal:
                state = self._apply_terminal_failure(entry, error)
            else:
                state = self._apply_failure(entry, error)
            entry.state = state
            entry.version += 1

        if previous.is_healthy and not state.is_healthy:
            logger.warning(
                "Provider marked as unhealthy",
                provider_id=provider.id,
                consecutive_failures=state.consecutive_failures
            )
        elif not previous.is_healthy and state.is_healthy:
            logger.info("Provider recovered", provider_id=provider.id)

        if (
            state.consecutive_failures == provider.load_balancing.circuit_breaker_threshold
            and not success
        ):
            logger.warning(
                "Circuit breaker opened",
                provider_id=provider.id,
                threshold=provider.load_balancing.circuit_breaker_threshold
            )

        await self._persist(provider.id, entry)
        return state

    def current(self, provider: ProviderRecord) -> HealthState:
        """Tracked health for ``provider``, or the health stored on the record."""
        entry = self._tracked.get(provider.id)
        if entry is None:
            return provider.health
        with entry.lock:
            return entry.state

    def overlay(self, provider: ProviderRecord) -> ProviderRecord:
        """Return ``provider`` carrying the tracked in-process health."""
        state = self.current(provider)
        if state is provider.health:
            return provider
        return provider.with_health(state)

    async def reset(self, provider: ProviderRecord) -> HealthState:
        """
        Start the provider over with a clean health history.

        Clears the failure counters, latency average and outcome window,
        which also closes an open circuit, and persists the fresh state.
        """
        entry = self._entry(provider)
        with entry.lock:
            entry.state = HealthState()
            entry.window.clear()
            entry.samples = 0
            entry.version += 1
            state = entry.state

        logger.info("Provider health reset", provider_id=provider.id)
        await self._persist(provider.id, entry)
        return state

    def _entry(self, provider: ProviderRecord) -> _TrackedProvider:
        with self._registry_lock:
            entry = self._tracked.get(provider.id)
            if entry is None:
                entry = _TrackedProvider(
                    state=provider.health,
                    window=deque(maxlen=self.window_size),
                )
                self._tracked[provider.id] = entry
            return entry

    def _error_rate(self, consecutive_failures: int, window: Deque[bool]) -> float:
        rate = consecutive_failures / max(1, len(window)) * 100
        return max(0.0, min(100.0, rate))

    def _apply_success(self, entry: _TrackedProvider, response_time_ms: float) -> HealthState:
        # First observation seeds the average
        sample = max(0.0, float(response_time_ms or 0))
        if entry.samples == 0 and entry.state.response_time_ms == 0:
            response_time = sample
        else:
            previous = entry.state.response_time_ms
            response_time = previous + self.ema_alpha * (sample - previous)
        entry.samples += 1

        return entry.state.model_copy(update={
            "last_check": self._clock(),
            "is_healthy": True,
            "response_time_ms": round(response_time, 2),
            "consecutive_failures": 0,
            "error_rate": self._error_rate(0, entry.window),
            "last_error": None,
        })

    def _apply_failure(self, entry: _TrackedProvider, error: Optional[str]) -> HealthState:
        failures = entry.state.consecutive_failures + 1
        is_healthy = entry.state.is_healthy and failures < self.unhealthy_threshold

        return entry.state.model_copy(update={
            "last_check": self._clock(),
            "is_healthy": is_healthy,
            "consecutive_failures": failures,
            "error_rate": self._error_rate(failures, entry.window),
            "last_error": error or "unknown error",
        })

    def _apply_terminal_failure(self, entry: _TrackedProvider, error: Optional[str]) -> HealthState:
        return entry.state.model_copy(update={
            "last_check": self._clock(),
            "terminal_failures": entry.state.terminal_failures + 1,
            "error_rate": self._error_rate(entry.state.consecutive_failures, entry.window),
            "last_error": error or "unknown error",
        })

    async def _persist(self, provider_id: str, entry: _TrackedProvider) -> None:
        """Save the newest tracked state, one save per provider at a time."""
        if self.store is None:
            return
        async with entry.persist_lock:
            with entry.lock:
                version, state = entry.version, entry.state
            if version <= entry.persisted_version:
                return
            try:
                await self.store.save_health_state(provider_id, state)
            except Exception as e:
                # In-memory state stays authoritative until the store recovers
                logger.error(
                    "Failed to persist health state",
                    provider_id=provider_id,
                    error=str(e)
                )
                return
            entry.persisted_version = version
