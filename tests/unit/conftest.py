"""Shared doubles for unit tests.

Connections and entity stores are ``MagicMock`` objects whose coroutine
methods are ``AsyncMock``; nothing here touches a database or Redis.
"""

from __future__ import annotations

from collections.abc import Callable
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING
from unittest.mock import AsyncMock, MagicMock

import pytest

if TYPE_CHECKING:
    from collections.abc import AsyncIterator


def _make_store() -> MagicMock:
    store = MagicMock()
    store.find_many = AsyncMock(return_value=[])
    store.find_first = AsyncMock(return_value=None)
    store.count = AsyncMock(return_value=0)
    store.update = AsyncMock(return_value=1)
    return store


def _make_connection(endpoint: str) -> MagicMock:
    connection = MagicMock()
    connection.endpoint = endpoint
    connection.ainitialize = AsyncMock()
    connection.aclose = AsyncMock()
    connection.afetch = AsyncMock(return_value=[])
    connection.afetchrow = AsyncMock(return_value=None)
    connection.afetchval = AsyncMock(return_value=1)
    connection.aexecute = AsyncMock(return_value="UPDATE 1")
    connection.arun_transaction = AsyncMock()
    connection.ahealth_check = AsyncMock()

    store = _make_store()
    connection.store = store
    connection.entity = MagicMock(return_value=store)
    return connection


@pytest.fixture
def make_connection() -> Callable[[str], MagicMock]:
    """Factory for mock connections; ``connection.store`` is what ``entity()`` returns."""
    return _make_connection


@pytest.fixture
def connection() -> MagicMock:
    return _make_connection("primary:5432/app")


@pytest.fixture
def mock_redis() -> MagicMock:
    """Mock Redis client (what ``aget_client()`` yields).

    ``pipeline()`` returns ``redis.pipe``: a mock whose command methods queue
    nothing and whose ``execute`` is an ``AsyncMock``.
    """
    pipe = MagicMock()
    pipe.execute = AsyncMock(return_value=[])

    redis = MagicMock()
    redis.pipe = pipe
    redis.pipeline = MagicMock(return_value=pipe)
    redis.get = AsyncMock(return_value=None)
    redis.dbsize = AsyncMock(return_value=0)
    redis.zrange = AsyncMock(return_value=[])
    redis.ping = AsyncMock(return_value=True)
    return redis


@pytest.fixture
def mock_redis_client(mock_redis: MagicMock) -> MagicMock:
    """Mock BaseRedisClient with an async context manager, standalone mode."""
    client = MagicMock()
    client.is_cluster = False
    client.ainitialize = AsyncMock()
    client.aclose = AsyncMock()

    @asynccontextmanager
    async def mock_aget_client() -> AsyncIterator[MagicMock]:
        yield mock_redis

    client.aget_client = mock_aget_client
    return client
