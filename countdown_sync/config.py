"""
Configuration
=============

Tunables for a countdown session plus the fixed sanity constants shared by
the validator, estimator, cache and retry logic. All timestamps and
durations in the constants are milliseconds.
"""

import os
from dataclasses import dataclass, field
from typing import Optional


# =================
# CONSTANTS
# =================

MS_PER_SECOND = 1000

MAX_TIMESTAMP_DEVIATION = 300_000                  # 5 min
MAX_CACHE_AGE = 24 * 60 * 60 * MS_PER_SECOND       # 24 h
MAX_FUTURE_TIME = 365 * 24 * 60 * 60 * MS_PER_SECOND  # 1 year
SECOND_TIMESTAMP_THRESHOLD = 1e12                  # below this a timestamp is in seconds

WEAK_NETWORK_TIMEOUT = 15.0                        # seconds
RETRY_DELAYS = (1000, 3000, 5000)
MAX_RETRIES = 3
REQUEST_DELAY_TOLERANCE = 2000
DEADLINE_ANOMALY_THRESHOLD = 2 * MS_PER_SECOND

STORAGE_KEY = "countdown-sync-state"
CACHE_DIR = ".countdown_sync"


def default_cache_path() -> str:
    """~/.countdown_sync/countdown-sync-state.json"""
    home = os.path.expanduser("~")
    return os.path.join(home, CACHE_DIR, f"{STORAGE_KEY}.json")


@dataclass
class SyncConfig:
    """Per-session settings.

    Args:
        base_url:              Origin of the sync endpoint.
        endpoint_path:         Path of the POST sync endpoint.
        normal_sync_interval:  Seconds between periodic syncs.
        fast_sync_interval:    Seconds between syncs when expired or near expiry.
        near_expiry_threshold: Remaining time (ms) under which the fast interval is used.
        request_timeout:       Hard timeout for one sync round trip (seconds).
        tick_interval:         Display refresh period (seconds).
        sync_cooldown:         Window after a sync cycle during which new syncs are ignored.
        cached_startup_delay:  Delay of the first live sync when the cache was usable.
        cache_path:            JSON snapshot location; None disables persistence.
    """

    base_url: str = "http://localhost:3000"
    endpoint_path: str = "/api/end-time"
    normal_sync_interval: float = 60.0
    fast_sync_interval: float = 5.0
    near_expiry_threshold: int = 60_000
    request_timeout: float = WEAK_NETWORK_TIMEOUT
    tick_interval: float = 0.1
    sync_cooldown: float = 1.0
    cached_startup_delay: float = 3.0
    cache_path: Optional[str] = field(default_factory=default_cache_path)

    @property
    def endpoint_url(self) -> str:
        return f"{self.base_url.rstrip('/')}/{self.endpoint_path.lstrip('/')}"
