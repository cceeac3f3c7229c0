"""
Timestamp Validator
===================

Sanity checks for a (server end, server now) candidate pair, with request
latency compensation. Live responses and cached snapshots both go through
validate_timestamps() so the same rules apply to either source.

Compensation:
    request_delay = now - request_send_time
    server_now    = normalized_now + request_delay   if request_delay > tolerance
                  = normalized_now                   otherwise

The end time is never shifted.
"""

import logging
import math
from dataclasses import dataclass
from typing import Any, Callable, Optional

from .config import (
    MAX_FUTURE_TIME,
    MAX_TIMESTAMP_DEVIATION,
    MS_PER_SECOND,
    REQUEST_DELAY_TOLERANCE,
)
from .sync_protocol import current_time_ms, normalize_timestamp

logger = logging.getLogger(__name__)

MSG_INVALID = "Invalid timestamp (missing, non-numeric or non-positive)"
MSG_TOO_FAR = "End time is too far in the future (over 1 year), possibly invalid"


@dataclass(frozen=True)
class ValidationResult:
    valid: bool
    server_end_time: Optional[float] = None
    server_now: Optional[float] = None
    request_delay: int = 0
    error: Optional[str] = None

    @classmethod
    def rejected(cls, error: str) -> 'ValidationResult':
        return cls(valid=False, error=error)


def _is_timestamp(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value) and value > 0


def validate_timestamps(
    raw_end: Any,
    raw_now: Any,
    request_send_time: Optional[int] = None,
    clock: Callable[[], float] = current_time_ms,
) -> ValidationResult:
    """Check a candidate pair and return the normalized, compensated values.

    Args:
        raw_end:           Server end time, seconds or ms.
        raw_now:           Server now, seconds or ms.
        request_send_time: Local send time of the request that produced the
                           pair, or None when unknown (e.g. cached data).
        clock:             Local clock in ms.

    Returns:
        ValidationResult; ``error`` holds the user-facing reason on rejection.
    """
    if not _is_timestamp(raw_end) or not _is_timestamp(raw_now):
        logger.warning(f"Rejected timestamps: end={raw_end!r} now={raw_now!r}")
        return ValidationResult.rejected(MSG_INVALID)

    normalized_end = normalize_timestamp(raw_end)
    normalized_now = normalize_timestamp(raw_now)
    diff = normalized_end - normalized_now

    if diff < -MAX_TIMESTAMP_DEVIATION:
        seconds = abs(math.floor(diff / MS_PER_SECOND))
        logger.warning(f"Rejected end time: expired {seconds}s ago")
        return ValidationResult.rejected(f"End time already expired ({seconds}s)")
    if diff > MAX_FUTURE_TIME:
        logger.warning(f"Rejected end time: {diff:.0f}ms in the future")
        return ValidationResult.rejected(MSG_TOO_FAR)

    server_now = normalized_now
    request_delay = 0
    if request_send_time:
        request_delay = clock() - request_send_time
        if request_delay > REQUEST_DELAY_TOLERANCE:
            # Server clock has moved on by the round-trip cost
            server_now = normalized_now + request_delay
            logger.info(f"Compensated {request_delay}ms request delay")

    return ValidationResult(
        valid=True,
        server_end_time=normalized_end,
        server_now=server_now,
        request_delay=request_delay,
    )
