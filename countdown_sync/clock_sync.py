"""
Countdown Estimation
====================

Derives the remaining time of a server-side deadline from the last
validated server timestamp pair plus locally elapsed time.

    current_server_time = server_now + (local_now - client_now)
    candidate           = server_end_time - current_server_time
    remaining           = max(0, min(ceiling, candidate))

The ceiling is the previously displayed value, so time passing can only move
the display toward zero. Only right after a new SyncState is installed, and
only when nothing is displayed yet (unset or 0), does the candidate itself
become the ceiling.
"""

import dataclasses
import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from .config import MS_PER_SECOND
from .sync_protocol import current_time_ms

logger = logging.getLogger(__name__)

DeadlineListener = Callable[[Optional[float], float], None]


class CountdownStatus(Enum):
    UNINITIALIZED = "uninitialized"
    SYNCED = "synced"
    EXPIRED = "expired"


@dataclass(frozen=True)
class SyncState:
    """Reconciled snapshot. Always replaced as a whole, never mutated."""
    server_end_time: float  # ms
    server_now: float       # ms, latency-adjusted
    client_now: float       # local ms at which server_now was accepted


@dataclass(frozen=True)
class CountdownParts:
    """Display decomposition of a remaining duration (floored per unit)."""
    days: int
    hours: int
    minutes: int
    seconds: int
    centiseconds: int

    @classmethod
    def from_remaining(cls, remaining_ms: float) -> 'CountdownParts':
        remaining_ms = max(0, remaining_ms)
        total_seconds = math.floor(remaining_ms / MS_PER_SECOND)
        return cls(
            days=total_seconds // 86400,
            hours=(total_seconds % 86400) // 3600,
            minutes=(total_seconds % 3600) // 60,
            seconds=total_seconds % 60,
            centiseconds=math.floor((remaining_ms % MS_PER_SECOND) / 10),
        )

    def __str__(self) -> str:
        return (
            f"{self.days}d {self.hours:02d}:{self.minutes:02d}:"
            f"{self.seconds:02d}.{self.centiseconds:02d}"
        )


class CountdownEstimator:
    """Owns SyncState and the displayed remaining time.

    Listeners registered with add_deadline_listener() are called
    synchronously as ``listener(previous_end, new_end)`` whenever an
    installation changes the end time, before any tick can observe it.

    Args:
        clock: Local clock in ms.
    """

    def __init__(self, clock: Callable[[], float] = current_time_ms):
        self._clock = clock
        self._state: Optional[SyncState] = None
        self._remaining: Optional[float] = None
        self._fresh_install = False
        self._listeners: list[DeadlineListener] = []
        self.is_expired: bool = False
        self.is_timestamp_valid: bool = True
        self.debug_info: dict = {}

    # ---- Properties ----------------------------------------------------------

    @property
    def state(self) -> Optional[SyncState]:
        return self._state

    @property
    def remaining(self) -> float:
        """Last displayed remaining time (ms), 0 when unset."""
        return self._remaining or 0

    @property
    def parts(self) -> CountdownParts:
        return CountdownParts.from_remaining(self.remaining)

    @property
    def status(self) -> CountdownStatus:
        if self._state is None:
            return CountdownStatus.UNINITIALIZED
        if self.is_expired:
            return CountdownStatus.EXPIRED
        return CountdownStatus.SYNCED

    # ---- State installation --------------------------------------------------

    def add_deadline_listener(self, listener: DeadlineListener):
        self._listeners.append(listener)

    def install(self, server_end_time: float, server_now: float, client_now: float):
        """Replace SyncState with a validated pair and its local reference point."""
        previous = self._state
        self._state = SyncState(server_end_time, server_now, client_now)
        self._fresh_install = True
        self.is_timestamp_valid = True

        previous_end = previous.server_end_time if previous else None
        if previous_end != server_end_time:
            for listener in self._listeners:
                listener(previous_end, server_end_time)

    def restore_deadline(self, server_end_time: float):
        """Put back a previous end time without notifying listeners."""
        if self._state is None:
            return
        self._state = dataclasses.replace(self._state, server_end_time=server_end_time)
        logger.debug(f"Deadline restored to {server_end_time}")

    def invalidate(self):
        """Enter the degraded state: ticks report 0 until the next install."""
        self.is_timestamp_valid = False

    def clamp(self, ceiling: float):
        """Never display more than ``ceiling``."""
        if self._remaining is not None and self._remaining > ceiling:
            logger.debug(f"Clamped remaining {self._remaining} -> {ceiling}")
            self._remaining = ceiling

    # ---- Tick ----------------------------------------------------------------

    def tick(self) -> float:
        """Recompute the remaining time. Never suspends."""
        state = self._state
        if state is None or not self.is_timestamp_valid:
            self._remaining = 0
            self.is_expired = True
            return 0

        local_now = self._clock()
        client_elapsed = local_now - state.client_now
        current_server_time = state.server_now + client_elapsed
        candidate = state.server_end_time - current_server_time

        if self._remaining is None or (self._fresh_install and self._remaining <= 0):
            ceiling = candidate
        else:
            ceiling = self._remaining
        self._fresh_install = False

        self._remaining = max(0, min(ceiling, candidate))
        self.is_expired = self._remaining <= 0

        self.debug_info = {
            "serverEndTime": state.server_end_time,
            "serverNow": state.server_now,
            "clientNow": state.client_now,
            "clientTimeElapsed": client_elapsed,
            "currentServerTime": current_server_time,
            "newRemaining": candidate,
        }
        return self._remaining
