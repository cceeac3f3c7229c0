"""
Countdown Sync Package
======================

Keeps a client-side countdown consistent with an authoritative server
deadline over slow or unreliable links.

Modules:
    sync_protocol  - Wire shapes and timestamp normalization
    validator      - Timestamp sanity checks and latency compensation
    clock_sync     - Countdown estimation (anti-rollback)
    cache          - Snapshot persistence
    transport      - HTTP sync round trip
    retry          - Backoff and cache fallback
    session        - Per-countdown driver
    server         - Reference end-time endpoint
"""

from .sync_protocol import (
    SyncRequest,
    SyncResponse,
    ErrorResponse,
    current_time_ms,
    normalize_timestamp,
)
from .errors import (
    SyncError,
    SyncTimeoutError,
    SyncAbortedError,
    SyncHTTPError,
    SyncNetworkError,
)
from .config import SyncConfig
from .validator import ValidationResult, validate_timestamps
from .clock_sync import CountdownEstimator, CountdownParts, CountdownStatus, SyncState
from .cache import CachedSnapshot, JsonFileCache, MemoryCache
from .stats import SyncStats
from .transport import SyncTransport
from .retry import RetryOrchestrator, SyncStatus
from .session import CountdownSession

__all__ = [
    "SyncRequest",
    "SyncResponse",
    "ErrorResponse",
    "current_time_ms",
    "normalize_timestamp",
    "SyncError",
    "SyncTimeoutError",
    "SyncAbortedError",
    "SyncHTTPError",
    "SyncNetworkError",
    "SyncConfig",
    "ValidationResult",
    "validate_timestamps",
    "CountdownEstimator",
    "CountdownParts",
    "CountdownStatus",
    "SyncState",
    "CachedSnapshot",
    "JsonFileCache",
    "MemoryCache",
    "SyncStats",
    "SyncTransport",
    "RetryOrchestrator",
    "SyncStatus",
    "CountdownSession",
]
