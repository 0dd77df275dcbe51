"""Tests for the Redis remote tier."""

import json
from unittest.mock import AsyncMock, patch

import pytest
from redis.exceptions import TimeoutError as RedisTimeoutError

from tiercache.cache.codec import DecodeError, JsonCodec
from tiercache.cache.remote import RemoteState, RemoteStore
from tiercache.errors import (
    FatalConnectionError,
    SerializationError,
    TransientRemoteError,
    ValidationError,
)

from conftest import FakeRedis, connection_lost


class TestJsonCodec:
    """Tests for the remote value codec."""

    def test_encode_envelope(self) -> None:
        """Test values are wrapped in a {"v", "t"} envelope."""
        payload = json.loads(JsonCodec().encode({"name": "test", "nested": {"a": 1}}))

        assert payload["v"] == {"name": "test", "nested": {"a": 1}}
        assert "t" in payload

    def test_decode_bytes(self) -> None:
        assert JsonCodec().decode(b'{"v": [1, 2], "t": "2025-01-01"}') == [1, 2]

    @pytest.mark.parametrize("value", [object(), {1, 2}, float("nan")])
    def test_encode_unserializable(self, value) -> None:
        with pytest.raises(SerializationError):
            JsonCodec().encode(value)

    @pytest.mark.parametrize("data", ["not json", b"\xff\xfe", "[1, 2]", '{"x": 1}'])
    def test_decode_invalid(self, data) -> None:
        with pytest.raises(DecodeError):
            JsonCodec().decode(data)


class TestRemoteStoreSetup:
    """Construction and connection state machine."""

    def test_name(self, remote_store: RemoteStore) -> None:
        assert remote_store.name == "remote"

    def test_initial_state(self) -> None:
        """Test a new store is disconnected."""
        store = RemoteStore()
        assert store.state is RemoteState.DISCONNECTED
        assert store.is_connected is False

    @pytest.mark.parametrize(
        "url",
        [
            "http://localhost:6379",
            "localhost:6379",
            "",
            "redis://localhost:notaport/0",
        ],
    )
    def test_invalid_url(self, url: str) -> None:
        with pytest.raises(ValidationError):
            RemoteStore(url=url)

    def test_get_key_prefix(self, remote_store: RemoteStore) -> None:
        assert remote_store._get_key("mykey") == "test:mykey"

    def test_backoff_is_linear_and_capped(self) -> None:
        store = RemoteStore()
        assert store.backoff_delay(1) == pytest.approx(0.1)
        assert store.backoff_delay(5) == pytest.approx(0.5)
        assert store.backoff_delay(30) == 3.0
        assert store.backoff_delay(100) == 3.0

    @pytest.mark.asyncio
    async def test_connect_success(self) -> None:
        """Test successful connection (mocked)."""
        fake = FakeRedis()
        store = RemoteStore(url="redis://cache:6379/1", socket_timeout=2.0)

        with patch("redis.asyncio.from_url", return_value=fake) as from_url:
            await store.connect()

        assert store.state is RemoteState.READY
        assert from_url.call_args.args[0] == "redis://cache:6379/1"
        assert from_url.call_args.kwargs["socket_timeout"] == 2.0
        assert fake.calls == ["PING"]

    @pytest.mark.asyncio
    async def test_connect_is_idempotent(self, connected_remote: RemoteStore) -> None:
        fake = connected_remote._client
        await connected_remote.connect()
        assert fake.calls == ["PING"]

    @pytest.mark.asyncio
    async def test_connect_retries_with_backoff(self) -> None:
        """Test transient handshake failures are retried with growing delays."""
        fake = FakeRedis()
        fake.fail_with = connection_lost()
        fake.fail_times = 2
        store = RemoteStore(max_attempts=5)
        sleep = AsyncMock()

        with patch("redis.asyncio.from_url", return_value=fake), patch(
            "tiercache.cache.remote.asyncio.sleep", sleep
        ):
            await store.connect()

        assert store.state is RemoteState.READY
        assert fake.calls == ["PING", "PING", "PING"]
        assert [c.args[0] for c in sleep.await_args_list] == pytest.approx([0.1, 0.2])

    @pytest.mark.asyncio
    async def test_connect_gives_up(self, remote_store: RemoteStore, fake_redis: FakeRedis) -> None:
        """Test exhausting attempts moves to FAILED and raises."""
        fake_redis.fail_with = connection_lost()

        with pytest.raises(FatalConnectionError) as exc_info:
            await remote_store.connect()

        assert exc_info.value.attempts == 3
        assert remote_store.state is RemoteState.FAILED
        assert fake_redis.calls == ["PING", "PING", "PING"]
        assert fake_redis.closed is True

    @pytest.mark.asyncio
    async def test_failed_is_terminal(self, remote_store: RemoteStore, fake_redis: FakeRedis) -> None:
        """Test connect after FAILED raises without retrying."""
        fake_redis.fail_with = connection_lost()
        with pytest.raises(FatalConnectionError):
            await remote_store.connect()
        fake_redis.fail_with = None

        with pytest.raises(FatalConnectionError):
            await remote_store.connect()
        assert len(fake_redis.calls) == 3

    @pytest.mark.asyncio
    async def test_disconnect_before_connect(self) -> None:
        """Test disconnect is safe when never connected."""
        store = RemoteStore()
        await store.disconnect()
        await store.disconnect()
        assert store.state is RemoteState.DISCONNECTED

    @pytest.mark.asyncio
    async def test_disconnect_closes_client(self, connected_remote: RemoteStore) -> None:
        fake = connected_remote._client
        await connected_remote.disconnect()
        await connected_remote.disconnect()

        assert fake.closed is True
        assert connected_remote.state is RemoteState.DISCONNECTED


class TestRemoteStoreOperations:
    """GET/SET/DEL/PING/SIZE/FLUSH against a fake Redis."""

    @pytest.mark.asyncio
    async def test_set_and_get(self, connected_remote: RemoteStore, fake_redis: FakeRedis) -> None:
        """Test values round-trip through SETEX with the prefixed key."""
        await connected_remote.set("mykey", {"a": [1, 2]}, 120)

        assert fake_redis.ttls["test:mykey"] == 120
        assert await connected_remote.get("mykey") == {"a": [1, 2]}
        stats = await connected_remote.snapshot_stats()
        assert stats["hits"] == 1
        assert stats["sets"] == 1

    @pytest.mark.asyncio
    async def test_fractional_ttl_rounds_up(
        self, connected_remote: RemoteStore, fake_redis: FakeRedis
    ) -> None:
        await connected_remote.set("mykey", "v", 0.2)
        assert fake_redis.ttls["test:mykey"] == 1

    @pytest.mark.asyncio
    async def test_get_miss(self, connected_remote: RemoteStore) -> None:
        assert await connected_remote.get("missing") is None
        assert (await connected_remote.snapshot_stats())["misses"] == 1

    @pytest.mark.asyncio
    async def test_get_malformed_payload_is_miss(
        self, connected_remote: RemoteStore, fake_redis: FakeRedis
    ) -> None:
        """Test a malformed stored payload is a miss, not an error."""
        fake_redis.data["test:bad"] = b"not json"

        assert await connected_remote.get("bad") is None
        stats = await connected_remote.snapshot_stats()
        assert stats["misses"] == 1
        assert stats["hits"] == 0

    @pytest.mark.asyncio
    async def test_get_stored_null_is_miss(self, connected_remote: RemoteStore) -> None:
        """Test a stored null counts as a miss, matching what callers see."""
        await connected_remote.set("nothing", None, 60)

        assert await connected_remote.get("nothing") is None
        stats = await connected_remote.snapshot_stats()
        assert stats["misses"] == 1
        assert stats["hits"] == 0

    @pytest.mark.asyncio
    async def test_set_unserializable(
        self, connected_remote: RemoteStore, fake_redis: FakeRedis
    ) -> None:
        """Test serialization failures propagate and nothing is sent."""
        with pytest.raises(SerializationError):
            await connected_remote.set("mykey", object(), 60)

        assert "SETEX" not in fake_redis.calls
        assert (await connected_remote.snapshot_stats())["sets"] == 0

    @pytest.mark.asyncio
    async def test_delete(self, connected_remote: RemoteStore) -> None:
        await connected_remote.set("mykey", "v", 60)

        assert await connected_remote.delete("mykey") is True
        assert await connected_remote.delete("mykey") is False

    @pytest.mark.asyncio
    async def test_snapshot_stats_counts_keys(self, connected_remote: RemoteStore) -> None:
        await connected_remote.set("k1", 1, 60)
        await connected_remote.set("k2", 2, 60)

        stats = await connected_remote.snapshot_stats()
        assert stats["entries"] == 2
        assert stats["connected"] is True
        assert stats["state"] == "ready"

    @pytest.mark.asyncio
    async def test_flush(self, connected_remote: RemoteStore, fake_redis: FakeRedis) -> None:
        await connected_remote.set("k1", 1, 60)
        await connected_remote.flush()
        assert fake_redis.data == {}

    @pytest.mark.asyncio
    async def test_is_healthy(self, connected_remote: RemoteStore, fake_redis: FakeRedis) -> None:
        """Test the liveness probe leaves counters and state alone."""
        assert await connected_remote.is_healthy() is True

        fake_redis.fail_with = connection_lost()
        assert await connected_remote.is_healthy() is False
        assert connected_remote.state is RemoteState.READY
        stats = connected_remote._stats
        assert (stats.hits, stats.misses, stats.sets) == (0, 0, 0)

    @pytest.mark.asyncio
    async def test_is_healthy_when_never_connected(self) -> None:
        assert await RemoteStore().is_healthy() is False

    @pytest.mark.asyncio
    async def test_operations_when_disconnected(self, remote_store: RemoteStore) -> None:
        """Test calls before connect raise TransientRemoteError."""
        with pytest.raises(TransientRemoteError):
            await remote_store.get("key")
        with pytest.raises(TransientRemoteError):
            await remote_store.set("key", "value", 60)
        with pytest.raises(TransientRemoteError):
            await remote_store.delete("key")


class TestRemoteStoreFailures:
    """Per-call failures and background reconnection."""

    @pytest.mark.asyncio
    async def test_timeout_is_transient(
        self, connected_remote: RemoteStore, fake_redis: FakeRedis
    ) -> None:
        """Test a command timeout raises but keeps the store READY."""
        fake_redis.fail_with = RedisTimeoutError("Timeout reading from socket")
        fake_redis.fail_times = 1

        with pytest.raises(TransientRemoteError):
            await connected_remote.get("key")

        assert connected_remote.state is RemoteState.READY
        assert await connected_remote.get("key") is None

    @pytest.mark.asyncio
    async def test_connection_lost_reconnects(
        self, connected_remote: RemoteStore, fake_redis: FakeRedis
    ) -> None:
        """Test READY -> RECONNECTING -> READY after a dropped connection."""
        fake_redis.fail_with = connection_lost()
        fake_redis.fail_times = 2  # the GET and the first reconnect PING

        with pytest.raises(TransientRemoteError):
            await connected_remote.get("key")
        assert connected_remote.state is RemoteState.RECONNECTING

        with pytest.raises(TransientRemoteError):
            await connected_remote.get("key")

        await connected_remote._reconnect_task
        assert connected_remote.state is RemoteState.READY
        assert await connected_remote.get("key") is None

    @pytest.mark.asyncio
    async def test_reconnect_exhausted(
        self, connected_remote: RemoteStore, fake_redis: FakeRedis
    ) -> None:
        """Test RECONNECTING -> FAILED when every retry fails."""
        fake_redis.fail_with = connection_lost()

        with pytest.raises(TransientRemoteError):
            await connected_remote.set("key", "value", 60)
        await connected_remote._reconnect_task

        assert connected_remote.state is RemoteState.FAILED
        with pytest.raises(FatalConnectionError):
            await connected_remote.connect()

    @pytest.mark.asyncio
    async def test_connect_waits_for_reconnect(
        self, connected_remote: RemoteStore, fake_redis: FakeRedis
    ) -> None:
        fake_redis.fail_with = connection_lost()
        fake_redis.fail_times = 1

        with pytest.raises(TransientRemoteError):
            await connected_remote.delete("key")
        await connected_remote.connect()

        assert connected_remote.state is RemoteState.READY
