"""tiercache: two-tier (local + Redis) cache with failover."""

from tiercache.cache import (
    LocalStore,
    Orchestrator,
    RemoteState,
    RemoteStore,
    create_cache,
    shutdown_cache,
)
from tiercache.errors import (
    FatalConnectionError,
    SerializationError,
    TierCacheError,
    TransientRemoteError,
    ValidationError,
)
from tiercache.sweeper import Sweeper

__version__ = "1.0.0"

__all__ = [
    "FatalConnectionError",
    "LocalStore",
    "Orchestrator",
    "RemoteState",
    "RemoteStore",
    "SerializationError",
    "Sweeper",
    "TierCacheError",
    "TransientRemoteError",
    "ValidationError",
    "create_cache",
    "shutdown_cache",
]
