"""
Snapshot Cache
==============

Persists the last validated sync so a restarted session can show a sane
countdown before the network answers. The store only loads and saves
snapshots; live state is changed solely through the validator and
CountdownEstimator.install().

Stored record (raw, pre-normalization timestamps):
    { "serverEndTime": ..., "serverNow": ..., "clientNow": ..., "syncedAt": ... }

Last writer wins; there is exactly one writer per session.
"""

import json
import logging
import os
from dataclasses import asdict, dataclass
from typing import Any, Optional

from .config import MAX_CACHE_AGE
from .sync_protocol import normalize_timestamp

logger = logging.getLogger(__name__)

_FIELDS = {
    "serverEndTime": "server_end_time",
    "serverNow": "server_now",
    "clientNow": "client_now",
    "syncedAt": "synced_at",
}


@dataclass
class CachedSnapshot:
    server_end_time: Any
    server_now: Any
    client_now: Any
    synced_at: Any

    def to_dict(self) -> dict:
        values = asdict(self)
        return {key: values[attr] for key, attr in _FIELDS.items()}

    @classmethod
    def from_dict(cls, payload: Any) -> Optional['CachedSnapshot']:
        """Parse a stored record; None if it is not a dict or a field is missing."""
        if not isinstance(payload, dict):
            return None
        values = {}
        for key, attr in _FIELDS.items():
            value = payload.get(key)
            if not value:
                return None
            values[attr] = value
        return cls(**values)

    def age(self, now: float) -> float:
        return now - self.synced_at

    def is_fresh(self, now: float) -> bool:
        return self.age(now) < MAX_CACHE_AGE

    def projected_server_now(self, now: float) -> float:
        """Server time now, extrapolated from the cached reference point."""
        return normalize_timestamp(self.server_now) + (now - self.client_now)


class MemoryCache:
    """Process-local store, for tests and cache-less sessions."""

    def __init__(self, snapshot: Optional[CachedSnapshot] = None):
        self._data: Optional[dict] = snapshot.to_dict() if snapshot else None

    def load(self) -> Optional[CachedSnapshot]:
        return CachedSnapshot.from_dict(self._data)

    def save(self, snapshot: CachedSnapshot):
        self._data = snapshot.to_dict()

    def clear(self):
        self._data = None


class JsonFileCache:
    """Snapshot stored as a JSON file.

    Args:
        path: File location; parent directories are created on first save.
    """

    def __init__(self, path: str):
        self.path = path

    def load(self) -> Optional[CachedSnapshot]:
        try:
            with open(self.path, "r", encoding="utf-8") as handle:
                payload = json.load(handle)
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as e:
            logger.warning(f"Unreadable cache {self.path}: {e}")
            return None
        return CachedSnapshot.from_dict(payload)

    def save(self, snapshot: CachedSnapshot):
        try:
            os.makedirs(os.path.dirname(self.path) or ".", exist_ok=True)
            tmp_path = f"{self.path}.tmp"
            with open(tmp_path, "w", encoding="utf-8") as handle:
                json.dump(snapshot.to_dict(), handle)
            os.replace(tmp_path, self.path)
        except OSError as e:
            logger.error(f"Cache write failed: {e}")

    def clear(self):
        try:
            os.remove(self.path)
        except FileNotFoundError:
            pass
