"""Shared fixtures for integration tests.

Provides:
- postgres_container: Session-scoped PostgreSQL container
- redis_container: Session-scoped Redis container
- adapter: Function-scoped connected DatabaseAdapter with a fresh schema
- redis_client: Function-scoped Redis client on a flushed database
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import TYPE_CHECKING, Protocol, cast

import pytest
from pydantic import SecretStr

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Iterator

    from pgaccess import DatabaseAdapter
    from pgaccess.infrastructure.redis import BaseRedisClient


class ContainerProtocol(Protocol):
    """Protocol for the testcontainers interface used here."""

    def get_exposed_port(self, port: int) -> int: ...
    def get_container_host_ip(self) -> str: ...
    def start(self) -> ContainerProtocol: ...
    def stop(self) -> None: ...


def _check_docker_available() -> bool:
    """Check if Docker is available using docker client.

    Tries the environment first, then the standard Linux socket and the
    macOS Docker Desktop socket.
    """
    try:
        from docker import DockerClient, from_env  # type: ignore[import-untyped]
        from docker.errors import DockerException  # type: ignore[import-untyped]
    except ImportError:
        return False

    socket_locations = [
        None,
        "unix:///var/run/docker.sock",
        f"unix://{Path.home()}/.docker/run/docker.sock",
    ]

    for socket_url in socket_locations:
        try:
            client = from_env() if socket_url is None else DockerClient(base_url=socket_url)
            client.ping()
            return True
        except DockerException:
            continue

    return False


def _configure_docker_environment() -> None:
    """Set DOCKER_HOST for macOS Docker Desktop when it is not already set."""
    if os.environ.get("DOCKER_HOST"):
        return

    macos_socket = Path.home() / ".docker" / "run" / "docker.sock"
    if macos_socket.exists():
        os.environ["DOCKER_HOST"] = f"unix://{macos_socket}"


def _require_docker() -> None:
    _configure_docker_environment()

    if not _check_docker_available():
        pytest.skip(
            "Docker daemon not available. "
            "Install Docker Desktop (macOS) or Docker Engine (Linux) to run integration tests."
        )


@pytest.fixture(scope="session")
def postgres_container() -> Iterator[ContainerProtocol]:
    """Provide session-scoped PostgreSQL container.

    Skips:
        If Docker daemon or testcontainers is not available.
    """
    _require_docker()

    try:
        from testcontainers.postgres import PostgresContainer  # type: ignore[import-untyped]
    except ImportError as e:
        pytest.skip(f"testcontainers not installed: {e}")

    container = cast(
        ContainerProtocol,
        PostgresContainer("postgres:16-alpine", username="test_user", password="test_password", dbname="test_db"),
    )
    container.start()

    try:
        yield container
    finally:
        container.stop()


@pytest.fixture(scope="session")
def redis_container() -> Iterator[ContainerProtocol]:
    """Provide session-scoped Redis container.

    Skips:
        If Docker daemon or testcontainers is not available.
    """
    _require_docker()

    try:
        from testcontainers.redis import RedisContainer  # type: ignore[import-untyped]
    except ImportError as e:
        pytest.skip(f"testcontainers not installed: {e}")

    container = cast(ContainerProtocol, RedisContainer("redis:7-alpine"))
    container.start()

    try:
        yield container
    finally:
        container.stop()


@pytest.fixture
def database_url(postgres_container: ContainerProtocol) -> str:
    host = postgres_container.get_container_host_ip()
    port = postgres_container.get_exposed_port(5432)
    return f"postgresql://test_user:test_password@{host}:{port}/test_db"


@pytest.fixture
async def adapter(database_url: str) -> AsyncIterator[DatabaseAdapter]:
    """Provide a connected adapter over a freshly created ``users``/``posts`` schema.

    Soft delete is enabled; ``user`` includes ``posts`` and ``post`` includes
    its ``author``.
    """
    from pgaccess import DatabaseAdapter, load_config

    config = load_config(
        url=database_url,
        soft_delete=True,
        pool={"min": 1, "max": 4},
        entities={
            "user": {
                "table": "users",
                "relations": {"posts": {"entity": "post", "foreign_key": "user_id"}},
            },
            "post": {
                "table": "posts",
                "relations": {"author": {"entity": "user", "foreign_key": "id", "local_key": "user_id", "many": False}},
            },
        },
    )

    async with DatabaseAdapter(config) as db:
        await _initialize_test_schema(db)
        yield db


async def _initialize_test_schema(db: DatabaseAdapter) -> None:
    """Recreate the test tables and seed three users (one soft-deleted) and three posts."""
    await db.execute("DROP TABLE IF EXISTS posts")
    await db.execute("DROP TABLE IF EXISTS users")
    await db.execute(
        """
        CREATE TABLE users (
            id SERIAL PRIMARY KEY,
            name VARCHAR(255) NOT NULL,
            status VARCHAR(32) NOT NULL DEFAULT 'active',
            age INTEGER NOT NULL,
            deleted_at TIMESTAMPTZ
        )
        """
    )
    await db.execute(
        """
        CREATE TABLE posts (
            id SERIAL PRIMARY KEY,
            user_id INTEGER NOT NULL REFERENCES users(id),
            title VARCHAR(255) NOT NULL,
            deleted_at TIMESTAMPTZ
        )
        """
    )
    await db.execute(
        "INSERT INTO users (name, status, age, deleted_at) VALUES "
        "('ada', 'active', 36, NULL), ('grace', 'active', 45, NULL), ('linus', 'inactive', 28, now())"
    )
    await db.execute(
        "INSERT INTO posts (user_id, title) VALUES (1, 'engines'), (1, 'notes'), (2, 'compilers')"
    )


@pytest.fixture
async def redis_client(redis_container: ContainerProtocol) -> AsyncIterator[BaseRedisClient]:
    """Provide an initialized standalone Redis client on a flushed database."""
    from pgaccess.infrastructure.redis import RedisConfig, RedisStandaloneClient

    host = redis_container.get_container_host_ip()
    port = redis_container.get_exposed_port(6379)

    client = RedisStandaloneClient(RedisConfig(url=SecretStr(f"redis://{host}:{port}/0")))
    await client.ainitialize()

    async with client.aget_client() as redis:
        await redis.flushdb()  # type: ignore[misc]

    try:
        yield client
    finally:
        await client.aclose()
