"""Shared fixtures for countdown_sync tests."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from countdown_sync.cache import MemoryCache
from countdown_sync.transport import SyncTransport

from .helpers import FakeClock


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def transport():
    """Transport double; set ``fetch_sync.side_effect`` / ``return_value`` per test."""
    mock = MagicMock(spec=SyncTransport)
    mock.fetch_sync = AsyncMock()
    mock.close = AsyncMock()
    mock.abort.return_value = False
    return mock


@pytest.fixture
def cache():
    return MemoryCache()


@pytest.fixture
def sleep():
    return AsyncMock()
