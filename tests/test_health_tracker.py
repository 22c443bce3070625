"""
Health tracker tests
"""
import asyncio
from datetime import datetime, timezone

import pytest

from airouter.core.exceptions import PersistenceError
from airouter.models.records import HealthState
from airouter.services.health_tracker import HealthTracker
from airouter.services.store import InMemoryProviderStore
from tests.conftest import build_provider

FIXED_NOW = datetime(2026, 5, 1, 12, 0, tzinfo=timezone.utc)


class FailingStore(InMemoryProviderStore):
    async def save_health_state(self, provider_id, state):
        raise PersistenceError("database is down")


class SlowFirstSaveStore(InMemoryProviderStore):
    """Stalls the first health save."""

    def __init__(self, records=None):
        super().__init__(records)
        self.saves = 0

    async def save_health_state(self, provider_id, state):
        self.saves += 1
        if self.saves == 1:
            await asyncio.sleep(0.05)
        await super().save_health_state(provider_id, state)


def make_tracker(store=None, **kwargs):
    options = {"unhealthy_threshold": 5, "window_size": 20, "ema_alpha": 0.3}
    options.update(kwargs)
    return HealthTracker(store, clock=lambda: FIXED_NOW, **options)


@pytest.mark.asyncio
class TestRecordOutcome:
    """Folding outcomes into health state"""

    @pytest.mark.parametrize("prior_failures", [0, 3, 10])
    async def test_success_resets_failures(self, prior_failures):
        provider = build_provider(
            consecutive_failures=prior_failures,
            is_healthy=prior_failures < 5
        )
        tracker = make_tracker()

        state = await tracker.record_outcome(provider, True, 80)

        assert state.consecutive_failures == 0
        assert state.is_healthy is True
        assert state.last_error is None
        assert state.last_check == FIXED_NOW

    async def test_failure_increments_and_keeps_error(self):
        tracker = make_tracker()
        provider = build_provider()

        state = await tracker.record_outcome(provider, False, 30000, error="timeout")

        assert state.consecutive_failures == 1
        assert state.last_error == "timeout"
        assert state.is_healthy is True

    async def test_unhealthy_after_threshold(self):
        tracker = make_tracker(unhealthy_threshold=3)
        provider = build_provider(circuit_breaker_threshold=10)

        states = [
            await tracker.record_outcome(provider, False, 10, error="boom")
            for _ in range(3)
        ]

        assert [s.is_healthy for s in states] == [True, True, False]
        assert states[-1].consecutive_failures == 3

    async def test_recovery_after_unhealthy(self):
        tracker = make_tracker(unhealthy_threshold=2)
        provider = build_provider()
        await tracker.record_outcome(provider, False, 10, error="boom")
        await tracker.record_outcome(provider, False, 10, error="boom")

        state = await tracker.record_outcome(provider, True, 10)

        assert state.is_healthy is True
        assert state.consecutive_failures == 0

    async def test_terminal_failure_does_not_open_circuit(self):
        tracker = make_tracker()
        provider = build_provider(consecutive_failures=2)

        state = await tracker.record_outcome(
            provider, False, 5, error="invalid api key", terminal=True
        )

        assert state.consecutive_failures == 2
        assert state.terminal_failures == 1
        assert state.last_error == "invalid api key"
        assert state.is_healthy is True

    async def test_current_reflects_tracked_state(self):
        tracker = make_tracker()
        provider = build_provider()
        assert tracker.current(provider) is provider.health

        await tracker.record_outcome(provider, False, 10, error="boom")

        assert tracker.current(provider).consecutive_failures == 1
        assert tracker.overlay(provider).health.consecutive_failures == 1

    async def test_reset_clears_history_and_persists(self):
        store = InMemoryProviderStore()
        provider = await store.save_provider(build_provider(circuit_breaker_threshold=2))
        tracker = make_tracker(store)
        for _ in range(3):
            await tracker.record_outcome(provider, False, 10, error="boom")
        assert tracker.overlay(provider).is_circuit_open is True

        state = await tracker.reset(provider)

        assert state == HealthState()
        assert tracker.overlay(provider).is_circuit_open is False
        assert (await store.get_provider(provider.id)).health.consecutive_failures == 0

        after = await tracker.record_outcome(provider, False, 10, error="again")
        assert after.consecutive_failures == 1
        assert after.error_rate == 100.0


@pytest.mark.asyncio
class TestLatencyAverage:
    """Exponential moving average of response time"""

    async def test_first_sample_seeds_average(self):
        tracker = make_tracker()
        provider = build_provider(response_time_ms=0)

        state = await tracker.record_outcome(provider, True, 100)

        assert state.response_time_ms == 100

    async def test_subsequent_samples_are_smoothed(self):
        tracker = make_tracker(ema_alpha=0.3)
        provider = build_provider(response_time_ms=0)
        await tracker.record_outcome(provider, True, 100)

        state = await tracker.record_outcome(provider, True, 200)

        assert state.response_time_ms == pytest.approx(130)

    async def test_failures_leave_latency_unchanged(self):
        tracker = make_tracker()
        provider = build_provider(response_time_ms=250)

        state = await tracker.record_outcome(provider, False, 30000, error="timeout")

        assert state.response_time_ms == 250


@pytest.mark.asyncio
class TestErrorRate:
    """Error rate over the sliding window"""

    async def test_all_failures(self):
        tracker = make_tracker()
        provider = build_provider()
        await tracker.record_outcome(provider, False, 10, error="boom")

        state = await tracker.record_outcome(provider, False, 10, error="boom")

        assert state.error_rate == 100

    async def test_partial_failures(self):
        tracker = make_tracker()
        provider = build_provider()
        await tracker.record_outcome(provider, True, 10)
        await tracker.record_outcome(provider, True, 10)

        state = await tracker.record_outcome(provider, False, 10, error="boom")

        assert state.error_rate == pytest.approx(100 / 3)

    async def test_window_is_bounded(self):
        tracker = make_tracker(window_size=3)
        provider = build_provider(circuit_breaker_threshold=10)
        for _ in range(5):
            state = await tracker.record_outcome(provider, False, 10, error="boom")

        # 5 consecutive failures over a 3-sample window, clamped
        assert state.consecutive_failures == 5
        assert state.error_rate == 100


@pytest.mark.asyncio
class TestPersistence:
    """Store interaction"""

    async def test_state_is_persisted(self):
        provider = build_provider()
        store = InMemoryProviderStore([provider])
        tracker = make_tracker(store)

        await tracker.record_outcome(provider, False, 10, error="boom")

        saved = await store.get_provider(provider.id)
        assert saved.health.consecutive_failures == 1
        assert saved.health.last_error == "boom"

    async def test_store_failure_is_swallowed(self):
        provider = build_provider()
        tracker = make_tracker(FailingStore([provider]))

        state = await tracker.record_outcome(provider, False, 10, error="boom")

        assert state.consecutive_failures == 1
        assert tracker.current(provider).consecutive_failures == 1

    async def test_concurrent_outcomes_are_not_lost(self):
        provider = build_provider(circuit_breaker_threshold=100)
        tracker = make_tracker(InMemoryProviderStore([provider]), unhealthy_threshold=100)

        await asyncio.gather(*(
            tracker.record_outcome(provider, False, 10, error="boom")
            for _ in range(50)
        ))

        assert tracker.current(provider).consecutive_failures == 50

    async def test_stored_state_never_goes_backwards(self):
        provider = build_provider()
        store = SlowFirstSaveStore([provider])
        tracker = make_tracker(store)

        await asyncio.gather(
            tracker.record_outcome(provider, False, 10, error="first"),
            tracker.record_outcome(provider, False, 10, error="second"),
        )

        saved = await store.get_provider(provider.id)
        assert saved.health.consecutive_failures == 2
        assert saved.health.last_error == "second"


@pytest.mark.unit
@pytest.mark.parametrize("raw,expected", [(150, 100), (-5, 0), (42.5, 42.5)])
def test_health_state_clamps_error_rate(raw, expected):
    assert HealthState(error_rate=raw).error_rate == expected
