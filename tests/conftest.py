"""Pytest configuration and fixtures."""

from collections.abc import AsyncGenerator
from datetime import datetime, timedelta, timezone
from typing import Any

import pytest
import pytest_asyncio
from redis.exceptions import ConnectionError as RedisConnectionError

from tiercache.cache.local import LocalStore
from tiercache.cache.orchestrator import Orchestrator
from tiercache.cache.remote import RemoteStore


class FakeClock:
    """Manually advanced clock for simulated expiry."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2025, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class FakeRedis:
    """
    In-memory stand-in for a redis.asyncio client.

    Set ``fail_with`` to an exception to make every command raise it, or
    additionally ``fail_times`` to fail only that many commands.
    """

    def __init__(self) -> None:
        self.data: dict[str, Any] = {}
        self.ttls: dict[str, int] = {}
        self.fail_with: Exception | None = None
        self.fail_times: int | None = None
        self.closed = False
        self.calls: list[str] = []

    def _maybe_fail(self, verb: str) -> None:
        self.calls.append(verb)
        if self.fail_with is None:
            return
        if self.fail_times is not None:
            if self.fail_times <= 0:
                return
            self.fail_times -= 1
        raise self.fail_with

    async def ping(self) -> bool:
        self._maybe_fail("PING")
        return True

    async def get(self, key: str) -> Any:
        self._maybe_fail("GET")
        return self.data.get(key)

    async def setex(self, key: str, ttl: int, value: str) -> bool:
        self._maybe_fail("SETEX")
        self.data[key] = value.encode("utf-8")
        self.ttls[key] = ttl
        return True

    async def delete(self, key: str) -> int:
        self._maybe_fail("DEL")
        return 1 if self.data.pop(key, None) is not None else 0

    async def dbsize(self) -> int:
        self._maybe_fail("DBSIZE")
        return len(self.data)

    async def flushdb(self) -> bool:
        self._maybe_fail("FLUSHDB")
        self.data.clear()
        return True

    async def aclose(self) -> None:
        self.closed = True


def connection_lost() -> Exception:
    return RedisConnectionError("Connection reset by peer")


@pytest.fixture
def clock() -> FakeClock:
    """Simulated clock starting at a fixed instant."""
    return FakeClock()


@pytest.fixture
def local_store(clock: FakeClock) -> LocalStore:
    """LocalStore driven by the simulated clock."""
    return LocalStore(clock=clock)


@pytest.fixture
def fake_redis() -> FakeRedis:
    """Healthy fake Redis client."""
    return FakeRedis()


@pytest.fixture
def remote_store(fake_redis: FakeRedis) -> RemoteStore:
    """RemoteStore wired to the fake client, with no backoff delay."""
    store = RemoteStore(
        url="redis://localhost:6379/0",
        prefix="test:",
        max_attempts=3,
        backoff_step=0,
    )
    store._client = fake_redis
    return store


@pytest_asyncio.fixture
async def connected_remote(remote_store: RemoteStore) -> AsyncGenerator[RemoteStore, None]:
    """RemoteStore in READY state."""
    await remote_store.connect()
    yield remote_store
    await remote_store.disconnect()


@pytest_asyncio.fixture
async def local_cache(clock: FakeClock) -> AsyncGenerator[Orchestrator, None]:
    """Local-only orchestrator on the simulated clock."""
    cache = Orchestrator(default_ttl=60, clock=clock)
    await cache.initialize()
    yield cache
    await cache.shutdown()


@pytest_asyncio.fixture
async def tiered_cache(
    clock: FakeClock,
    remote_store: RemoteStore,
) -> AsyncGenerator[Orchestrator, None]:
    """Orchestrator with a healthy remote tier."""
    cache = Orchestrator(default_ttl=60, clock=clock, remote=remote_store)
    await cache.initialize()
    yield cache
    await cache.shutdown()
