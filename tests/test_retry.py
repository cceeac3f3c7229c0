"""Tests for the retry orchestrator and cache fallback."""

from unittest.mock import call

import pytest

from countdown_sync.cache import CachedSnapshot, MemoryCache
from countdown_sync.clock_sync import CountdownEstimator
from countdown_sync.errors import (
    SyncAbortedError,
    SyncHTTPError,
    SyncNetworkError,
    SyncTimeoutError,
)
from countdown_sync.retry import MSG_CANCELLED, RetryOrchestrator
from countdown_sync.validator import MSG_INVALID

from .helpers import NOW, response

HOUR = 3_600_000


@pytest.fixture
def estimator(clock):
    return CountdownEstimator(clock)


@pytest.fixture
def orchestrator(transport, estimator, cache, clock, sleep):
    return RetryOrchestrator(transport, estimator, cache=cache, clock=clock, sleep=sleep)


def usable_snapshot(**overrides):
    values = dict(
        server_end_time=NOW + 120_000,
        server_now=NOW - 10_000,
        client_now=NOW - 10_000,
        synced_at=NOW - 10_000,
    )
    values.update(overrides)
    return CachedSnapshot(**values)


class TestSuccess:

    @pytest.mark.asyncio
    async def test_installs_and_persists(self, orchestrator, transport, estimator, cache, clock):
        transport.fetch_sync.return_value = response(NOW + 60_000, NOW)
        assert await orchestrator.sync_with_retry()

        transport.fetch_sync.assert_awaited_once_with(NOW)
        assert estimator.state.server_end_time == NOW + 60_000
        assert estimator.state.client_now == NOW
        assert cache.load() == CachedSnapshot(NOW + 60_000, NOW, NOW, NOW)
        assert orchestrator.retry_count == 0
        assert orchestrator.request_send_time is None

    @pytest.mark.asyncio
    async def test_persists_raw_seconds(self, orchestrator, transport, estimator, cache):
        transport.fetch_sync.return_value = response((NOW + 60_000) // 1000, NOW // 1000)
        assert await orchestrator.sync_with_retry()
        assert estimator.state.server_end_time == NOW + 60_000
        assert cache.load().server_end_time == (NOW + 60_000) // 1000

    @pytest.mark.asyncio
    async def test_compensates_slow_response(self, orchestrator, transport, estimator, clock):
        async def slow_fetch(send_time):
            clock.advance(5000)
            return response(NOW + 60_000, NOW)

        transport.fetch_sync.side_effect = slow_fetch
        assert await orchestrator.sync_with_retry()
        assert estimator.state.server_now == NOW + 5000
        assert estimator.state.client_now == NOW + 5000
        assert orchestrator.stats.max_delay_ms == 5000


class TestRejection:

    @pytest.mark.asyncio
    async def test_invalid_without_cache(self, orchestrator, transport, estimator):
        transport.fetch_sync.return_value = response(None, NOW)
        assert not await orchestrator.sync_with_retry()
        assert orchestrator.status.error_message == MSG_INVALID + ", and cached data is invalid"
        assert estimator.state is None

    @pytest.mark.asyncio
    async def test_invalid_falls_back_to_cache(self, orchestrator, transport, estimator, cache):
        cache.save(usable_snapshot())
        transport.fetch_sync.return_value = response(NOW - 600_000, NOW)
        assert not await orchestrator.sync_with_retry()
        assert orchestrator.status.error_message == "End time already expired (600s)"
        assert estimator.state.server_end_time == NOW + 120_000
        assert orchestrator.stats.cache_hits == 1

    @pytest.mark.asyncio
    async def test_rejection_is_not_retried(self, orchestrator, transport, sleep):
        transport.fetch_sync.return_value = response(NOW + 40_000_000_000, NOW)
        await orchestrator.sync_with_retry()
        assert transport.fetch_sync.await_count == 1
        sleep.assert_not_awaited()


class TestFailures:

    @pytest.mark.asyncio
    async def test_exhaustion_without_cache(self, orchestrator, transport, estimator, sleep):
        transport.fetch_sync.side_effect = SyncNetworkError("connection refused")
        assert not await orchestrator.sync_with_retry()

        assert transport.fetch_sync.await_count == 4
        assert sleep.await_args_list == [call(1.0), call(3.0), call(5.0)]
        assert not estimator.is_timestamp_valid
        assert orchestrator.retry_count == 0
        assert orchestrator.status.error_message == (
            "Sync failed (retried 3 times), falling back to cached data"
            ", but cached data is also invalid"
        )
        assert orchestrator.request_send_time is None

    @pytest.mark.asyncio
    async def test_exhaustion_with_cache(self, orchestrator, transport, estimator, cache):
        cache.save(usable_snapshot())
        transport.fetch_sync.side_effect = SyncNetworkError("down")
        await orchestrator.sync_with_retry()
        assert estimator.is_timestamp_valid
        assert estimator.state.server_end_time == NOW + 120_000
        assert orchestrator.status.error_message.endswith("falling back to cached data")

    @pytest.mark.asyncio
    async def test_recovers_after_retry(self, orchestrator, transport, estimator, sleep):
        messages = []
        sleep.side_effect = lambda delay: messages.append(orchestrator.status.error_message)
        transport.fetch_sync.side_effect = [
            SyncHTTPError(504, "server_timeout"),
            SyncHTTPError(500, "boom"),
            response(NOW + 60_000, NOW),
        ]
        assert await orchestrator.sync_with_retry()
        assert messages == [
            "Sync failed (timeout), retrying in 1s (1/3)",
            "Sync failed (network error), retrying in 3s (2/3)",
        ]
        assert orchestrator.retry_count == 0
        assert orchestrator.status.error_message is None
        assert estimator.state.server_end_time == NOW + 60_000

    @pytest.mark.asyncio
    async def test_gateway_timeout_reported_as_timeout(self, orchestrator, transport, sleep):
        messages = []
        sleep.side_effect = lambda delay: messages.append(orchestrator.status.error_message)
        transport.fetch_sync.side_effect = [SyncHTTPError(504, "server_timeout"), response(NOW + 1000, NOW)]
        await orchestrator.sync_with_retry()
        assert messages == ["Sync failed (timeout), retrying in 1s (1/3)"]

    @pytest.mark.asyncio
    async def test_unexpected_exception_is_retried(self, orchestrator, transport):
        transport.fetch_sync.side_effect = [RuntimeError("odd"), response(NOW + 1000, NOW)]
        assert await orchestrator.sync_with_retry()
        assert orchestrator.stats.failures == 1

    @pytest.mark.asyncio
    async def test_abort_is_terminal(self, orchestrator, transport, estimator, sleep):
        transport.fetch_sync.side_effect = SyncAbortedError("aborted")
        assert not await orchestrator.sync_with_retry()
        assert transport.fetch_sync.await_count == 1
        sleep.assert_not_awaited()
        assert orchestrator.status.error_message == MSG_CANCELLED
        assert estimator.is_timestamp_valid

    @pytest.mark.asyncio
    async def test_hard_timeout_is_terminal(self, orchestrator, transport, estimator, sleep):
        estimator.install(NOW + 60_000, NOW, NOW)
        transport.fetch_sync.side_effect = SyncTimeoutError("timeout after 15.0s")
        assert not await orchestrator.sync_with_retry()
        assert transport.fetch_sync.await_count == 1
        sleep.assert_not_awaited()
        assert orchestrator.status.error_message == MSG_CANCELLED
        assert orchestrator.retry_count == 0
        assert estimator.is_timestamp_valid
        assert estimator.state.server_end_time == NOW + 60_000

    @pytest.mark.asyncio
    async def test_hard_timeout_after_retry_stops_chain(self, orchestrator, transport, sleep):
        transport.fetch_sync.side_effect = [SyncNetworkError("reset"), SyncTimeoutError("timeout")]
        assert not await orchestrator.sync_with_retry()
        assert transport.fetch_sync.await_count == 2
        assert sleep.await_count == 1
        assert orchestrator.retry_count == 0
        assert orchestrator.status.error_message == MSG_CANCELLED

    @pytest.mark.asyncio
    async def test_retry_uses_fresh_send_time(self, orchestrator, transport, clock, sleep):
        sleep.side_effect = lambda delay: clock.advance(int(delay * 1000))
        transport.fetch_sync.side_effect = [SyncNetworkError("x"), response(NOW + 60_000, NOW + 1000)]
        await orchestrator.sync_with_retry()
        assert [c.args[0] for c in transport.fetch_sync.await_args_list] == [NOW, NOW + 1000]

    def test_delay_schedule_reuses_last(self, orchestrator):
        assert [orchestrator.retry_delay(i) for i in range(5)] == [1000, 3000, 5000, 5000, 5000]


class TestCacheFallback:

    def test_no_snapshot(self, orchestrator):
        assert not orchestrator.try_use_cache()

    def test_no_store(self, transport, estimator, clock):
        assert not RetryOrchestrator(transport, estimator, cache=None, clock=clock).try_use_cache()

    def test_resets_reference_point(self, orchestrator, cache, estimator):
        cache.save(usable_snapshot())
        assert orchestrator.try_use_cache()
        assert estimator.state.client_now == NOW
        assert estimator.state.server_now == NOW
        assert estimator.tick() == 120_000

    def test_snapshot_older_than_a_day(self, orchestrator, cache):
        cache.save(usable_snapshot(synced_at=NOW - 25 * HOUR))
        assert not orchestrator.try_use_cache()

    def test_snapshot_exactly_a_day_old(self, orchestrator, cache):
        cache.save(usable_snapshot(synced_at=NOW - 24 * HOUR))
        assert not orchestrator.try_use_cache()

    def test_stale_deadline(self, orchestrator, cache):
        cache.save(usable_snapshot(server_end_time=NOW - 400_000, server_now=NOW - HOUR, client_now=NOW - HOUR))
        assert not orchestrator.try_use_cache()

    def test_non_numeric_snapshot(self, orchestrator, transport, estimator, clock):
        store = MemoryCache()
        store._data = {"serverEndTime": "soon", "serverNow": "now", "clientNow": NOW, "syncedAt": NOW}
        fallback = RetryOrchestrator(transport, estimator, cache=store, clock=clock)
        assert not fallback.try_use_cache()
