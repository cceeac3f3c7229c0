"""
Sync Errors
===========

Exception types raised by the sync transport. The retry orchestrator is the
only place they are caught; ``retryable`` decides whether it tries again.
Nothing here escapes ``CountdownSession.sync_now``.
"""

from typing import Optional


class SyncError(Exception):
    """Base class for failed sync round trips."""

    retryable = True
    is_timeout = False


class SyncTimeoutError(SyncError):
    """The hard request timeout fired and cancelled the request. Never retried."""

    retryable = False
    is_timeout = True


class SyncAbortedError(SyncError):
    """The in-flight request was aborted on purpose. Never retried."""

    retryable = False


class SyncHTTPError(SyncError):
    """The endpoint answered with a non-success status."""

    def __init__(self, status: int, detail: Optional[str] = None):
        self.status = status
        self.detail = detail
        msg = f"HTTP error! status: {status}"
        if detail:
            msg += f" ({detail})"
        super().__init__(msg)

    @property
    def is_timeout(self) -> bool:
        # 504 is the server's own timeout answer
        return self.status == 504


class SyncNetworkError(SyncError):
    """Connection failure or an unreadable response body."""


__all__ = [
    "SyncError",
    "SyncTimeoutError",
    "SyncAbortedError",
    "SyncHTTPError",
    "SyncNetworkError",
]
