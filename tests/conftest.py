"""
Shared pytest fixtures for SessionGate tests.

This module provides common fixtures including:
- A scripted mock protocol adapter (events pushed by the test)
- Credential store and phone validator mocks
- A session manager wired to a real broadcaster
- Redis mocks for the storage and mirror tests
"""

import asyncio
import os
import sys
from typing import List, Tuple
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sessiongate.modules.broadcast import EventBroadcaster, Observer
from sessiongate.modules.session import SessionConnectionManager
from sessiongate.modules.session.mock_adapter import MockProtocolAdapter
from sessiongate.modules.storage import CredentialState

TEST_RECONNECT_DELAY = 0.05


async def settle(delay: float = 0.01) -> None:
    """Let dispatch tasks process queued adapter events."""
    await asyncio.sleep(delay)


def drain(observer: Observer) -> List[Tuple[str, object]]:
    """Pop everything currently queued for an observer."""
    events = []
    while not observer.queue.empty():
        events.append(observer.queue.get_nowait())
    return events


@pytest.fixture
def adapter():
    """Mock adapter that only emits what the test pushes."""
    return MockProtocolAdapter(auto=False)


@pytest.fixture
def credential_store():
    """Credential store mock returning fresh, unregistered credentials."""
    store = AsyncMock()
    store.load = AsyncMock(return_value=CredentialState())
    store.save = AsyncMock()
    store.clear = AsyncMock()
    return store


@pytest.fixture
def validator():
    """Phone validator that accepts everything unless told otherwise."""
    validator = MagicMock()
    validator.is_valid = MagicMock(return_value=True)
    return validator


@pytest.fixture
def broadcaster():
    return EventBroadcaster(queue_size=100)


@pytest_asyncio.fixture
async def manager(adapter, credential_store, broadcaster, validator):
    """Session manager with a short reconnect delay."""
    manager = SessionConnectionManager(
        adapter=adapter,
        credential_store=credential_store,
        broadcaster=broadcaster,
        validator=validator,
        reconnect_delay=TEST_RECONNECT_DELAY,
    )
    yield manager
    await manager.shutdown()


@pytest.fixture
def observer(broadcaster, manager):
    """Observer joined before any connection attempt."""
    observer = broadcaster.join(manager.snapshot())
    drain(observer)
    return observer


@pytest.fixture
def mock_redis():
    """Create a mock Redis client for async operations."""
    redis = AsyncMock()
    redis.get = AsyncMock(return_value=None)
    redis.set = AsyncMock()
    redis.hgetall = AsyncMock(return_value={})
    redis.hset = AsyncMock()
    redis.hdel = AsyncMock()
    redis.delete = AsyncMock()
    redis.publish = AsyncMock()
    redis.lpush = AsyncMock()
    redis.ltrim = AsyncMock()
    redis.lrange = AsyncMock(return_value=[])
    return redis


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "integration: Integration tests requiring infrastructure"
    )
    config.addinivalue_line(
        "markers", "slow: Tests that take a long time to run"
    )
