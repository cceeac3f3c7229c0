"""
Sync Protocol Module - JSON End-Time Exchange
=============================================

Wire shapes for the end-time sync endpoint and the single ingress step that
maps any accepted response shape onto the internal schema.

REQUEST (client → server, POST):
    { "t": <client send time, ms> }

RESPONSE (server → client, 2xx):
    { "s": <server now>, "e": <server end time>, "t": <echoed send time> }

    Long-form names are accepted as well:
    { "serverNow": ..., "serverEndTime": ... }

ERROR (server → client, 500 / 504):
    { "err": "<reason>" }

Timestamps on the wire may be in seconds or milliseconds. They are kept raw
here; normalize_timestamp() converts them once, right before comparison.
"""

import time
from dataclasses import dataclass
from typing import Any, Optional

from .config import MS_PER_SECOND, SECOND_TIMESTAMP_THRESHOLD


# ===================
# UTILITY FUNCTIONS
# ===================

def current_time_ms() -> int:
    """Current time in milliseconds since Unix epoch."""
    return int(time.time() * 1000)


def normalize_timestamp(timestamp: float) -> float:
    """Convert a seconds-or-milliseconds timestamp to milliseconds.

    Anything below 1e12 is taken to be seconds. Idempotent for any value
    already at or above the threshold.
    """
    if timestamp < SECOND_TIMESTAMP_THRESHOLD:
        return timestamp * MS_PER_SECOND
    return timestamp


def _pick(payload: dict, short: str, long: str) -> Any:
    """Short-form field first, long-form as fallback (falsy short values fall through)."""
    value = payload.get(short)
    if not value:
        value = payload.get(long)
    return value


# =================
# DATA CLASSES
# =================

@dataclass
class SyncRequest:
    """Sync request body."""
    t: int  # Client send time in ms

    def encode(self) -> dict:
        return {"t": self.t}

    @classmethod
    def decode(cls, payload: Any) -> 'SyncRequest':
        if not isinstance(payload, dict):
            raise ValueError(f"Expected JSON object, got {type(payload).__name__}")
        return cls(t=payload["t"])


@dataclass
class SyncResponse:
    """Sync response in the fixed internal schema.

    Values are raw: unvalidated and not normalized. ``server_end_time`` and
    ``server_now`` may be None or non-numeric if the server sent garbage;
    the validator rejects those.
    """
    server_now: Any
    server_end_time: Any
    echoed_send_time: Optional[int] = None

    def encode(self) -> dict:
        body = {"s": self.server_now, "e": self.server_end_time}
        if self.echoed_send_time is not None:
            body["t"] = self.echoed_send_time
        return body

    @classmethod
    def decode(cls, payload: Any) -> 'SyncResponse':
        """Map any accepted response shape onto the internal schema.

        Raises:
            ValueError: payload is not a JSON object.
        """
        if not isinstance(payload, dict):
            raise ValueError(f"Expected JSON object, got {type(payload).__name__}")
        return cls(
            server_now=_pick(payload, "s", "serverNow"),
            server_end_time=_pick(payload, "e", "serverEndTime"),
            echoed_send_time=payload.get("t"),
        )


@dataclass
class ErrorResponse:
    """Error body sent with status 500 (generic) or 504 (server timeout)."""
    err: str

    def encode(self) -> dict:
        return {"err": self.err}

    @classmethod
    def decode(cls, payload: Any) -> Optional['ErrorResponse']:
        if isinstance(payload, dict) and "err" in payload:
            return cls(err=str(payload["err"]))
        return None
