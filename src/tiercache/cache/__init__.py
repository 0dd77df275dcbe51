"""
Two-tier cache: in-process local store in front of an optional Redis tier.

The Orchestrator composes both tiers behind one async contract with
automatic failover to the local tier and aggregated statistics.
"""

from tiercache.cache.base import CacheBackend, CacheEntry
from tiercache.cache.codec import JsonCodec
from tiercache.cache.factory import create_cache, shutdown_cache
from tiercache.cache.local import LocalStore
from tiercache.cache.orchestrator import Orchestrator
from tiercache.cache.remote import RemoteState, RemoteStore

__all__ = [
    "CacheBackend",
    "CacheEntry",
    "JsonCodec",
    "LocalStore",
    "Orchestrator",
    "RemoteState",
    "RemoteStore",
    "create_cache",
    "shutdown_cache",
]
