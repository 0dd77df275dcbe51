"""Two-tier cache orchestrator: remote first, local fallback."""

import asyncio
import inspect
import logging
from typing import TYPE_CHECKING, Any, Callable

from tiercache.cache.base import Clock, GlobalStats, validate_ttl
from tiercache.cache.local import LocalStore
from tiercache.cache.remote import RemoteState, RemoteStore
from tiercache.errors import FatalConnectionError, TransientRemoteError

if TYPE_CHECKING:
    from tiercache.sweeper import Sweeper

logger = logging.getLogger(__name__)


class Orchestrator:
    """
    Unified cache over a LocalStore and an optional RemoteStore.

    Reads consult the remote tier first (when it is READY) and fall back to
    the local tier; remote hits are hydrated into the local tier. Writes go
    to the local tier first and are replicated to the remote tier on a
    best-effort basis. Remote failures never reach callers of ``get``,
    ``set`` or ``delete``; only serialization errors and fetch-function
    errors do.

    Example:
        cache = Orchestrator(remote_url="redis://localhost:6379/0", default_ttl=600)
        await cache.initialize()
        await cache.set("user:1", {"name": "alice"})
        user = await cache.get("user:1")
    """

    def __init__(
        self,
        remote_url: str | None = None,
        default_ttl: float = 3600,
        single_flight: bool = True,
        local: LocalStore | None = None,
        remote: RemoteStore | None = None,
        clock: Clock | None = None,
        remote_options: dict[str, Any] | None = None,
    ) -> None:
        """
        Initialize the orchestrator (call ``initialize`` before use).

        Args:
            remote_url: Redis URL; None runs local-only
            default_ttl: TTL in seconds used when none is given, and for hydration
            single_flight: Share one in-flight fetch per key in ``get_or_fetch``
            local: Pre-built local tier (defaults to a new LocalStore)
            remote: Pre-built remote tier (overrides ``remote_url``)
            clock: Clock for the default LocalStore
            remote_options: Extra RemoteStore keyword arguments

        Raises:
            ValidationError: If default_ttl or remote_url is invalid
        """
        self._default_ttl = validate_ttl(default_ttl)
        self._local = local if local is not None else LocalStore(clock=clock)
        if remote is None and remote_url:
            remote = RemoteStore(remote_url, **(remote_options or {}))
        self._remote = remote
        self._single_flight = single_flight
        self._inflight: dict[str, asyncio.Future] = {}
        self._stats = GlobalStats()
        self._sweeper: "Sweeper | None" = None
        self._closed = False

        logger.info(
            f"Initialized (remote_enabled={self._remote is not None}, "
            f"default_ttl={self._default_ttl}s)"
        )

    @property
    def default_ttl(self) -> float:
        return self._default_ttl

    @property
    def local(self) -> LocalStore:
        return self._local

    @property
    def remote(self) -> RemoteStore | None:
        return self._remote

    @property
    def sweeper(self) -> "Sweeper | None":
        return self._sweeper

    @property
    def remote_active(self) -> bool:
        """True while a remote tier is attached and not permanently failed."""
        return self._remote is not None and self._remote.state is not RemoteState.FAILED

    @property
    def mode(self) -> str:
        return "remote+local" if self.remote_active else "local-only"

    def _check_remote(self) -> RemoteStore | None:
        """Return the usable remote tier, detaching it once it has FAILED."""
        if self._remote is not None and self._remote.state is RemoteState.FAILED:
            logger.error("Remote tier failed permanently, continuing local-only")
            self._remote = None
        return self._remote

    def attach_sweeper(self, sweeper: "Sweeper") -> None:
        """Hand a Sweeper's lifetime to this orchestrator."""
        self._sweeper = sweeper

    async def initialize(self) -> None:
        """
        Connect the remote tier, if any.

        A failed initial connection downgrades to local-only for the
        lifetime of this instance; it is logged, never raised.
        """
        if self._remote is None:
            logger.info("Local cache active (remote disabled)")
            return

        try:
            await self._remote.connect()
            logger.info("Remote cache active")
        except FatalConnectionError as e:
            logger.error(f"Remote initialization failed, using local cache: {e}")
            await self._remote.disconnect()
            self._remote = None

    async def get(self, key: str) -> Any | None:
        """
        Get a value: remote (if READY) then local.

        Returns:
            Cached value, or None if not found in either tier
        """
        self._stats.total_requests += 1

        remote = self._check_remote()
        if remote is not None and remote.state is RemoteState.READY:
            try:
                value = await remote.get(key)
            except TransientRemoteError as e:
                self._stats.remote_errors += 1
                logger.error(f"Remote GET failed, trying local: {e}")
            else:
                if value is not None:
                    self._stats.remote_hits += 1
                    await self._local.set(key, value, self._default_ttl)
                    return value
                self._stats.remote_misses += 1

        value = await self._local.get(key)
        if value is not None:
            self._stats.local_hits += 1
        else:
            self._stats.local_misses += 1
        return value

    async def set(self, key: str, value: Any, ttl: float | None = None) -> None:
        """
        Write to the local tier, then replicate to the remote tier.

        Raises:
            SerializationError: If the value cannot be encoded for the remote
                tier (the local write has already happened)
            ValidationError: If ttl is not a positive number
        """
        ttl = self._default_ttl if ttl is None else ttl
        await self._local.set(key, value, ttl)

        remote = self._check_remote()
        if remote is not None:
            try:
                await remote.set(key, value, ttl)
            except TransientRemoteError as e:
                logger.error(f"Remote SET failed: {e}")

    async def delete(self, key: str) -> bool:
        """
        Delete from both tiers.

        Returns:
            True if either tier removed the key
        """
        deleted = await self._local.delete(key)

        remote = self._check_remote()
        if remote is not None:
            try:
                deleted = await remote.delete(key) or deleted
            except TransientRemoteError as e:
                logger.error(f"Remote DELETE failed: {e}")

        return deleted

    async def get_or_fetch(
        self,
        key: str,
        fetch: Callable[[], Any],
        ttl: float | None = None,
    ) -> Any:
        """
        Cache-aside: return the cached value or fetch, store and return it.

        Args:
            key: Cache key
            fetch: Callable or coroutine function producing the value
            ttl: TTL for a fetched value (defaults to default_ttl)

        Returns:
            Cached or fetched value

        Raises:
            Whatever ``fetch`` raises, unchanged; nothing is cached then.
        """
        cached = await self.get(key)
        if cached is not None:
            return cached

        if not self._single_flight:
            return await self._fetch_and_store(key, fetch, ttl)

        task = self._inflight.get(key)
        if task is None:
            # Runs apart from any one caller so cancelling it does not
            # cancel the other callers waiting on the same key.
            task = asyncio.ensure_future(self._fetch_and_store(key, fetch, ttl))
            self._inflight[key] = task
            task.add_done_callback(lambda t: self._fetch_done(key, t))
        else:
            logger.debug(f"Joining in-flight fetch for {key}")
        return await asyncio.shield(task)

    def _fetch_done(self, key: str, task: asyncio.Future) -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]
        if not task.cancelled():
            # Retrieve so a fetch nobody awaits does not log "never retrieved".
            task.exception()

    async def _fetch_and_store(
        self,
        key: str,
        fetch: Callable[[], Any],
        ttl: float | None,
    ) -> Any:
        logger.info(f"Cache miss for {key}, fetching...")
        value = fetch()
        if inspect.isawaitable(value):
            value = await value
        await self.set(key, value, ttl)
        return value

    async def stats(self) -> dict[str, Any]:
        """Statistics from all tiers."""
        remote = self._check_remote()
        remote_stats = None
        if remote is not None:
            remote_stats = await remote.snapshot_stats()

        return {
            "mode": self.mode,
            "global": self._stats.as_dict(),
            "local": self._local.snapshot_stats(),
            "remote": remote_stats,
        }

    async def cleanup_expired(self) -> int:
        """Sweep expired entries from the local tier."""
        return await self._local.sweep()

    async def clear_local(self) -> int:
        """Drop every entry from the local tier only."""
        return await self._local.clear()

    async def shutdown(self) -> None:
        """Stop the sweeper, then release the remote connection. Idempotent."""
        if self._closed:
            return
        self._closed = True

        if self._sweeper is not None:
            self._sweeper.stop()
        if self._remote is not None:
            await self._remote.disconnect()
        logger.info("Shutdown complete")
