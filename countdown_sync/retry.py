"""
Retry Orchestration
===================

Wraps the sync transport with bounded backoff and falls back to the snapshot
cache when live data is rejected or unreachable.

    attempt → success → validate → install + persist
                      ↘ rejected → cache fallback
            → abort or hard timeout → stop, no retry
            → failure → wait RETRY_DELAYS[n], retry (max MAX_RETRIES)
                      ↘ exhausted → cache fallback → degraded if unusable

Retries run as a loop rather than recursion. Errors flagged non-retryable
(abort, hard timeout) end the cycle explicitly.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Sequence

from .cache import CachedSnapshot
from .clock_sync import CountdownEstimator
from .config import MAX_RETRIES, RETRY_DELAYS
from .stats import SyncStats
from .sync_protocol import SyncResponse, current_time_ms
from .transport import SyncTransport
from .validator import validate_timestamps

logger = logging.getLogger(__name__)

MSG_CANCELLED = "Sync cancelled"
MSG_CACHE_INVALID = ", and cached data is invalid"
MSG_CACHE_ALSO_INVALID = ", but cached data is also invalid"


@dataclass
class SyncStatus:
    """User-visible sync flags, shared by the session and the orchestrator."""
    error_message: Optional[str] = None
    syncing: bool = False
    is_sync_disabled: bool = False

    def append_error(self, suffix: str):
        # Keep the original reason, add the consequence
        self.error_message = (self.error_message or "") + suffix


class RetryOrchestrator:
    """Runs one sync cycle: transport attempts, validation, cache fallback.

    Args:
        transport:     Sync transport.
        estimator:     Receives validated pairs via install().
        cache:         Snapshot store with load()/save(), or None.
        status:        Where user-visible messages go.
        stats:         Outcome counters.
        clock:         Local clock in ms.
        sleep:         Coroutine used for backoff waits (seconds).
        max_retries:   Retries after the first failed attempt.
        retry_delays:  Backoff schedule in ms; the last entry is reused.
    """

    def __init__(
        self,
        transport: SyncTransport,
        estimator: CountdownEstimator,
        cache=None,
        status: Optional[SyncStatus] = None,
        stats: Optional[SyncStats] = None,
        clock: Callable[[], float] = current_time_ms,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        max_retries: int = MAX_RETRIES,
        retry_delays: Sequence[int] = RETRY_DELAYS,
    ):
        self._transport = transport
        self._estimator = estimator
        self._cache = cache
        self.status = status or SyncStatus()
        self.stats = stats or SyncStats()
        self._clock = clock
        self._sleep = sleep
        self.max_retries = max_retries
        self.retry_delays = tuple(retry_delays)
        self.retry_count = 0
        self.request_send_time: Optional[float] = None

    def retry_delay(self, attempt: int) -> int:
        """Backoff for retry number ``attempt`` (0-based), in ms."""
        if attempt < len(self.retry_delays):
            return self.retry_delays[attempt]
        return self.retry_delays[-1]

    # ---- Sync cycle ----------------------------------------------------------

    async def sync_with_retry(self) -> bool:
        """Run attempts until one answers, an abort happens, or retries run out.

        Never raises except for cancellation of the calling task.

        Returns:
            True if a live pair was validated and installed.
        """
        try:
            while True:
                self.request_send_time = self._clock()
                try:
                    response = await self._transport.fetch_sync(self.request_send_time)
                except Exception as e:
                    self.stats.failures += 1
                    if not getattr(e, "retryable", True):
                        logger.info(f"Sync cancelled ({e}), not retrying")
                        self.status.error_message = MSG_CANCELLED
                        self.retry_count = 0
                        return False
                    if self.retry_count < self.max_retries:
                        await self._backoff(e)
                        continue
                    self._exhausted()
                    return False

                self.retry_count = 0
                return self._accept(response)
        finally:
            self.request_send_time = None

    async def _backoff(self, error: Exception):
        delay = self.retry_delay(self.retry_count)
        is_timeout = isinstance(error, asyncio.TimeoutError) or getattr(error, "is_timeout", False)
        kind = "timeout" if is_timeout else "network error"
        self.retry_count += 1
        self.status.error_message = (
            f"Sync failed ({kind}), retrying in {delay / 1000:g}s "
            f"({self.retry_count}/{self.max_retries})"
        )
        logger.warning(f"Sync attempt failed: {error!r}; retry {self.retry_count}/{self.max_retries} in {delay}ms")
        # Stale send time must not compensate the next attempt
        self.request_send_time = None
        await self._sleep(delay / 1000)

    def _exhausted(self):
        self.status.error_message = (
            f"Sync failed (retried {self.max_retries} times), falling back to cached data"
        )
        if not self.try_use_cache():
            self.status.append_error(MSG_CACHE_ALSO_INVALID)
            self._estimator.invalidate()
            logger.error("Sync retries exhausted and cache unusable; timestamps invalid")
        self.retry_count = 0

    def _accept(self, response: SyncResponse) -> bool:
        result = validate_timestamps(
            response.server_end_time,
            response.server_now,
            request_send_time=self.request_send_time,
            clock=self._clock,
        )
        if not result.valid:
            self.stats.rejected += 1
            self.status.error_message = result.error
            if not self.try_use_cache():
                self.status.append_error(MSG_CACHE_INVALID)
            return False

        # Clear retry notices; install() may set an anomaly notice
        self.status.error_message = None
        client_now = self._clock()
        self._estimator.install(result.server_end_time, result.server_now, client_now)
        installed_end = self._estimator.state.server_end_time
        if self._cache is not None:
            # A reverted (anomalous) deadline is persisted as the kept value
            self._cache.save(CachedSnapshot(
                server_end_time=(
                    response.server_end_time
                    if installed_end == result.server_end_time else installed_end
                ),
                server_now=response.server_now,
                client_now=client_now,
                synced_at=self._clock(),
            ))
        self.stats.accepted += 1
        self.stats.record_delay(result.request_delay)
        logger.info(
            f"Synced: end={result.server_end_time:.0f} now={result.server_now:.0f} "
            f"delay={result.request_delay}ms"
        )
        return True

    # ---- Cache fallback ------------------------------------------------------

    def try_use_cache(self) -> bool:
        """Install the cached snapshot if it is complete, young and not stale.

        The client reference point is reset to the current local time and the
        cached server time is projected forward to match it.
        """
        snapshot = self._cache.load() if self._cache is not None else None
        if snapshot is None:
            return False

        now = self._clock()
        try:
            if not snapshot.is_fresh(now):
                logger.info(f"Cache too old ({snapshot.age(now):.0f}ms)")
                return False
            projected_now = snapshot.projected_server_now(now)
        except TypeError:
            logger.warning("Cache holds non-numeric timestamps")
            return False

        result = validate_timestamps(snapshot.server_end_time, projected_now, clock=self._clock)
        if not result.valid:
            logger.info(f"Cache rejected: {result.error}")
            return False

        self._estimator.install(result.server_end_time, result.server_now, now)
        self.stats.cache_hits += 1
        logger.info(f"Using cached sync from {snapshot.age(now):.0f}ms ago")
        return True
