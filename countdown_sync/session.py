"""
Countdown Session
=================

The per-countdown context object: owns the estimator, transport, cache and
retry orchestrator, and drives them from two background tasks.

    tick loop  - every tick_interval, recompute the displayed remaining time
    sync loop  - every normal/fast sync interval, run sync_now() while online

A connectivity change to online triggers sync_now() at once. At most one
sync cycle runs at a time; calls arriving during a cycle or its cooldown are
ignored.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from .cache import JsonFileCache, MemoryCache
from .clock_sync import CountdownEstimator, CountdownParts, CountdownStatus
from .config import DEADLINE_ANOMALY_THRESHOLD, SyncConfig
from .retry import RetryOrchestrator, SyncStatus
from .stats import SyncStats
from .sync_protocol import current_time_ms
from .transport import SyncTransport

logger = logging.getLogger(__name__)

MSG_ANOMALY = "Time anomaly detected, corrected automatically"


class CountdownSession:
    """Keeps a countdown consistent with the server clock.

    Args:
        config:    Session settings.
        transport: Sync transport; built from ``config`` if omitted.
        cache:     Snapshot store; a JsonFileCache at ``config.cache_path``
                   (or a MemoryCache when that is None) if omitted.
        clock:     Local clock in ms.
        sleep:     Coroutine used for retry backoff waits.
    """

    def __init__(
        self,
        config: Optional[SyncConfig] = None,
        transport: Optional[SyncTransport] = None,
        cache=None,
        clock: Callable[[], float] = current_time_ms,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.config = config or SyncConfig()
        self._clock = clock

        if cache is None:
            cache = JsonFileCache(self.config.cache_path) if self.config.cache_path else MemoryCache()
        self.cache = cache
        self.transport = transport or SyncTransport(
            self.config.endpoint_url, timeout=self.config.request_timeout
        )

        self.estimator = CountdownEstimator(clock)
        self.estimator.add_deadline_listener(self._check_deadline_anomaly)
        self.status = SyncStatus()
        self.stats = SyncStats()
        self._retry = RetryOrchestrator(
            self.transport,
            self.estimator,
            cache=self.cache,
            status=self.status,
            stats=self.stats,
            clock=clock,
            sleep=sleep,
        )

        self._online = True
        self._tasks: list[asyncio.Task] = []
        self._cooldown: Optional[asyncio.TimerHandle] = None

    # ---- Properties ----------------------------------------------------------

    @property
    def remaining(self) -> float:
        """Displayed remaining time (ms)."""
        return self.estimator.remaining

    @property
    def parts(self) -> CountdownParts:
        return self.estimator.parts

    @property
    def countdown_status(self) -> CountdownStatus:
        return self.estimator.status

    @property
    def is_expired(self) -> bool:
        return self.estimator.is_expired

    @property
    def is_timestamp_valid(self) -> bool:
        return self.estimator.is_timestamp_valid

    @property
    def syncing(self) -> bool:
        return self.status.syncing

    @property
    def error_message(self) -> Optional[str]:
        return self.status.error_message

    @property
    def is_sync_disabled(self) -> bool:
        return self.status.is_sync_disabled

    @property
    def retry_count(self) -> int:
        return self._retry.retry_count

    @property
    def online(self) -> bool:
        return self._online

    @property
    def debug_info(self) -> dict:
        send_time = self._retry.request_send_time
        info = dict(self.estimator.debug_info)
        info["requestDelay"] = self._clock() - send_time if send_time else 0
        info["stats"] = self.stats.as_dict()
        return info

    @property
    def sync_interval(self) -> float:
        """Seconds until the next periodic sync."""
        if self.is_expired or self.remaining < self.config.near_expiry_threshold:
            return self.config.fast_sync_interval
        return self.config.normal_sync_interval

    # ---- Lifecycle -----------------------------------------------------------

    async def start(self):
        """Restore from cache, then start the tick and sync loops."""
        cache_valid = self._retry.try_use_cache()
        self.tick()
        initial_delay = self.config.cached_startup_delay if cache_valid else 0.0
        logger.info(
            f"Session started ({'cache' if cache_valid else 'no cache'}), "
            f"first sync in {initial_delay:g}s"
        )
        self._tasks.append(asyncio.create_task(self._tick_loop()))
        self._tasks.append(asyncio.create_task(self._sync_loop(initial_delay)))

    async def close(self):
        """Stop background tasks and release the transport."""
        logger.info("Closing...")
        for task in self._tasks:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._tasks.clear()
        if self._cooldown:
            self._cooldown.cancel()
            self._cooldown = None
        await self.transport.close()

    # ---- Display -------------------------------------------------------------

    def tick(self) -> float:
        return self.estimator.tick()

    async def _tick_loop(self):
        try:
            while True:
                self.tick()
                await asyncio.sleep(self.config.tick_interval)
        except asyncio.CancelledError:
            pass

    # ---- Sync ----------------------------------------------------------------

    async def sync_now(self) -> bool:
        """Run one full sync cycle unless one is running or cooling down.

        Never raises; failures end up in ``error_message`` and the validity
        flags.

        Returns:
            True if a live pair was accepted.
        """
        if self.status.syncing or self.status.is_sync_disabled:
            logger.debug("Sync skipped: in flight or cooling down")
            return False

        self.status.is_sync_disabled = True
        self.status.syncing = True
        self.status.error_message = None
        pre_sync_remaining = self.estimator.remaining

        try:
            return await self._retry.sync_with_retry()
        finally:
            self.status.syncing = False
            self._start_cooldown()
            self.tick()
            if pre_sync_remaining > 0 and self.estimator.remaining > pre_sync_remaining:
                self.estimator.clamp(pre_sync_remaining)

    def abort_sync(self) -> bool:
        """Abort the in-flight request; the cycle ends without retrying."""
        return self.transport.abort()

    def _start_cooldown(self):
        if self._cooldown:
            self._cooldown.cancel()
        if self.config.sync_cooldown <= 0:
            self.status.is_sync_disabled = False
            return
        loop = asyncio.get_running_loop()
        self._cooldown = loop.call_later(self.config.sync_cooldown, self._end_cooldown)

    def _end_cooldown(self):
        self._cooldown = None
        self.status.is_sync_disabled = False

    async def _sync_loop(self, initial_delay: float):
        try:
            await asyncio.sleep(initial_delay)
            while True:
                if self._online:
                    await self.sync_now()
                await asyncio.sleep(self.sync_interval)
        except asyncio.CancelledError:
            pass

    # ---- Events --------------------------------------------------------------

    def set_online(self, online: bool):
        """Connectivity signal. Going online triggers an immediate sync."""
        was_online = self._online
        self._online = online
        if online == was_online:
            return
        logger.info(f"Connectivity: {'online' if online else 'offline'}")
        if online and self._tasks:
            self._tasks = [t for t in self._tasks if not t.done()]
            self._tasks.append(asyncio.create_task(self.sync_now()))

    def _check_deadline_anomaly(self, previous_end: Optional[float], new_end: float):
        """Revert a deadline that jumped forward by more than the threshold."""
        if previous_end and new_end > previous_end + DEADLINE_ANOMALY_THRESHOLD:
            logger.warning(
                f"Deadline moved forward by {new_end - previous_end:.0f}ms; keeping {previous_end:.0f}"
            )
            self.estimator.restore_deadline(previous_end)
            self.status.error_message = MSG_ANOMALY
            self.stats.anomalies += 1
