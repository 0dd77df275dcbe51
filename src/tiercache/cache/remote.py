"""Redis-backed remote cache tier."""

import asyncio
import logging
import math
from enum import Enum
from typing import Any, Awaitable, Callable

import redis.asyncio as redis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError

from tiercache.cache.base import CacheBackend, TierStats, validate_ttl
from tiercache.cache.codec import DecodeError, JsonCodec
from tiercache.config import check_remote_url
from tiercache.errors import FatalConnectionError, TransientRemoteError, ValidationError

logger = logging.getLogger(__name__)


class RemoteState(str, Enum):
    """Connection lifecycle of a RemoteStore."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    READY = "ready"
    RECONNECTING = "reconnecting"
    FAILED = "failed"


class RemoteStore(CacheBackend):
    """
    Adapter over a shared Redis instance.

    Expiry is enforced server-side (SETEX). The adapter holds nothing but the
    client handle, its connection state and a stats accumulator.

    State machine:
        DISCONNECTED -> CONNECTING -> READY
        READY -> RECONNECTING -> READY      (transport failure, retry succeeded)
        RECONNECTING -> FAILED              (attempts exhausted, terminal)

    Attempt ``n`` that fails waits ``min(n * backoff_step, backoff_cap)``
    seconds before the next one.
    """

    def __init__(
        self,
        url: str = "redis://localhost:6379/0",
        prefix: str = "tiercache:",
        max_attempts: int = 10,
        backoff_step: float = 0.1,
        backoff_cap: float = 3.0,
        socket_timeout: float = 5.0,
        socket_connect_timeout: float = 5.0,
        codec: JsonCodec | None = None,
    ) -> None:
        """
        Initialize the remote store (does not connect).

        Args:
            url: Redis connection URL
            prefix: Key prefix for namespacing
            max_attempts: Connection attempts before giving up for good
            backoff_step: Linear backoff increment in seconds
            backoff_cap: Maximum backoff delay in seconds
            socket_timeout: Per-command socket timeout in seconds
            socket_connect_timeout: Connection timeout in seconds
            codec: Value encoder (defaults to JsonCodec)

        Raises:
            ValidationError: If the URL is not a well-formed Redis URL
        """
        try:
            check_remote_url(url)
        except ValueError as e:
            raise ValidationError(f"Invalid remote URL: {e}") from e
        if max_attempts < 1:
            raise ValidationError("max_attempts must be at least 1")

        self._url = url
        self._prefix = prefix
        self._max_attempts = max_attempts
        self._backoff_step = backoff_step
        self._backoff_cap = backoff_cap
        self._socket_timeout = socket_timeout
        self._socket_connect_timeout = socket_connect_timeout
        self._codec = codec or JsonCodec()
        self._client: Any = None
        self._state = RemoteState.DISCONNECTED
        self._reconnect_task: asyncio.Task | None = None
        self._stats = TierStats()

    @property
    def name(self) -> str:
        return "remote"

    @property
    def state(self) -> RemoteState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state is RemoteState.READY

    def _get_key(self, key: str) -> str:
        """Get prefixed key."""
        return f"{self._prefix}{key}"

    def backoff_delay(self, attempt: int) -> float:
        """Delay after failed attempt number ``attempt`` (1-based)."""
        return min(attempt * self._backoff_step, self._backoff_cap)

    async def connect(self) -> None:
        """
        Connect to Redis, retrying with capped linear backoff.

        Raises:
            FatalConnectionError: If every attempt failed (state becomes FAILED)
        """
        if self._state is RemoteState.READY:
            return
        if self._state is RemoteState.FAILED:
            raise FatalConnectionError(self._url, self._max_attempts)

        if self._state is RemoteState.RECONNECTING and self._reconnect_task:
            await asyncio.shield(self._reconnect_task)
            if self._state is RemoteState.FAILED:
                raise FatalConnectionError(self._url, self._max_attempts)
            return

        self._state = RemoteState.CONNECTING
        logger.info(f"Connecting to {self._url}...")
        await self._connect_with_retry()

    async def _connect_with_retry(self) -> None:
        for attempt in range(1, self._max_attempts + 1):
            try:
                if self._client is None:
                    self._client = redis.from_url(
                        self._url,
                        socket_timeout=self._socket_timeout,
                        socket_connect_timeout=self._socket_connect_timeout,
                        decode_responses=False,  # We handle encoding ourselves
                    )
                await self._client.ping()
            except (RedisError, OSError) as e:
                logger.warning(
                    f"Connection attempt {attempt}/{self._max_attempts} "
                    f"to {self._url} failed: {e}"
                )
                if attempt < self._max_attempts:
                    delay = self.backoff_delay(attempt)
                    logger.info(f"Reconnecting in {delay:.1f}s (attempt {attempt + 1})")
                    await asyncio.sleep(delay)
            else:
                self._state = RemoteState.READY
                logger.info(f"Connected to Redis at {self._url}")
                return

        self._state = RemoteState.FAILED
        await self._close_client()
        raise FatalConnectionError(self._url, self._max_attempts)

    def _start_reconnect(self) -> None:
        """Move READY -> RECONNECTING and retry in the background."""
        if self._state is not RemoteState.READY:
            return
        self._state = RemoteState.RECONNECTING
        logger.warning(f"Lost connection to {self._url}, reconnecting")
        self._reconnect_task = asyncio.create_task(self._reconnect())

    async def _reconnect(self) -> None:
        try:
            await self._connect_with_retry()
        except FatalConnectionError as e:
            logger.error(f"Max reconnection attempts reached: {e}")

    async def _call(
        self,
        verb: str,
        op: Callable[[], Awaitable[Any]],
        key: str | None = None,
    ) -> Any:
        """Run one Redis command, mapping failures to TransientRemoteError."""
        target = f" for {key}" if key is not None else ""
        if self._state is not RemoteState.READY:
            raise TransientRemoteError(
                f"Redis {verb}{target} skipped: remote is {self._state.value}"
            )
        try:
            return await op()
        except (RedisConnectionError, OSError) as e:
            self._start_reconnect()
            raise TransientRemoteError(f"Redis {verb} error{target}: {e}") from e
        except RedisError as e:
            raise TransientRemoteError(f"Redis {verb} error{target}: {e}") from e

    async def get(self, key: str) -> Any | None:
        """Get a value; a malformed payload or stored null counts as a miss."""
        data = await self._call("GET", lambda: self._client.get(self._get_key(key)), key)
        if data is None:
            self._stats.misses += 1
            logger.debug(f"MISS: {key}")
            return None

        try:
            value = self._codec.decode(data)
        except DecodeError as e:
            self._stats.misses += 1
            logger.warning(f"Discarding malformed payload for {key}: {e}")
            return None

        if value is None:
            # A stored null reads back as absent.
            self._stats.misses += 1
            logger.debug(f"MISS: {key} (null value)")
            return None

        self._stats.hits += 1
        logger.debug(f"HIT: {key}")
        return value

    async def set(self, key: str, value: Any, ttl_seconds: float) -> None:
        """
        Store a value with server-enforced expiry.

        Raises:
            SerializationError: If the value cannot be encoded
            TransientRemoteError: If the write failed
        """
        payload = self._codec.encode(value)
        ttl = max(1, math.ceil(validate_ttl(ttl_seconds)))

        await self._call(
            "SET", lambda: self._client.setex(self._get_key(key), ttl, payload), key
        )
        self._stats.sets += 1
        logger.debug(f"SET: {key} (TTL: {ttl}s)")

    async def delete(self, key: str) -> bool:
        """Delete a key; True when Redis removed it."""
        deleted = await self._call(
            "DEL", lambda: self._client.delete(self._get_key(key)), key
        )
        logger.debug(f"DELETE: {key} ({'success' if deleted else 'not found'})")
        return deleted > 0

    async def flush(self) -> None:
        """Remove every key in the current database (administrative)."""
        await self._call("FLUSH", lambda: self._client.flushdb())
        logger.info("Flushed remote database")

    async def is_healthy(self) -> bool:
        """Liveness probe. Does not touch counters or state."""
        if self._client is None or self._state is RemoteState.FAILED:
            return False
        try:
            await self._client.ping()
            return True
        except (RedisError, OSError):
            return False

    async def snapshot_stats(self) -> dict[str, Any]:
        """Counters plus the server-side key count."""
        entries = 0
        if self._state is RemoteState.READY:
            try:
                entries = await self._client.dbsize()
            except (RedisError, OSError) as e:
                logger.warning(f"Redis SIZE error: {e}")

        return {
            "type": self.name,
            "entries": entries,
            "hits": self._stats.hits,
            "misses": self._stats.misses,
            "sets": self._stats.sets,
            "connected": self.is_connected,
            "state": self._state.value,
        }

    async def disconnect(self) -> None:
        """Close the connection. Safe to call repeatedly or before connect."""
        if self._reconnect_task is not None:
            if not self._reconnect_task.done():
                self._reconnect_task.cancel()
                try:
                    await self._reconnect_task
                except asyncio.CancelledError:
                    pass
            self._reconnect_task = None

        had_client = self._client is not None
        await self._close_client()
        if self._state is not RemoteState.FAILED:
            self._state = RemoteState.DISCONNECTED
        if had_client:
            logger.info("Disconnected from Redis")

    async def _close_client(self) -> None:
        if self._client is None:
            return
        try:
            await self._client.aclose()
        except (RedisError, OSError) as e:
            logger.error(f"Error closing Redis connection: {e}")
        finally:
            self._client = None
