"""Cache entry model and the contract shared by both tiers."""

from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta, timezone
from numbers import Real
from typing import Any, Callable

from tiercache.errors import ValidationError

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    """Default clock: timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


def validate_ttl(ttl_seconds: Any) -> float:
    """
    Check that a TTL is a positive number.

    Raises:
        ValidationError: If the TTL is not a positive int/float
    """
    if isinstance(ttl_seconds, bool) or not isinstance(ttl_seconds, Real):
        raise ValidationError(f"TTL must be a number, got {ttl_seconds!r}")
    if ttl_seconds <= 0:
        raise ValidationError(f"TTL must be greater than 0, got {ttl_seconds}")
    return float(ttl_seconds)


@dataclass
class CacheEntry:
    """
    A cached value with its lifetime.

    Attributes:
        value: Cached payload (native object for the local tier)
        created_at: When the entry was written
        expires_at: First instant at which the entry is no longer served
    """

    value: Any
    created_at: datetime
    expires_at: datetime

    @classmethod
    def create(cls, value: Any, ttl_seconds: float, now: datetime) -> "CacheEntry":
        """Build an entry expiring ``ttl_seconds`` after ``now``."""
        return cls(
            value=value,
            created_at=now,
            expires_at=now + timedelta(seconds=ttl_seconds),
        )

    def is_expired(self, now: datetime) -> bool:
        """An entry is live only while ``now < expires_at``."""
        return now >= self.expires_at

    def ttl_remaining(self, now: datetime) -> float:
        """Remaining lifetime in seconds (0 once expired)."""
        return max(0.0, (self.expires_at - now).total_seconds())


@dataclass
class TierStats:
    """Monotonic per-tier counters."""

    hits: int = 0
    misses: int = 0
    sets: int = 0
    evictions: int = 0

    def as_dict(self) -> dict[str, int]:
        return asdict(self)


@dataclass
class GlobalStats:
    """Orchestrator-level aggregate counters."""

    local_hits: int = 0
    local_misses: int = 0
    remote_hits: int = 0
    remote_misses: int = 0
    remote_errors: int = 0
    total_requests: int = 0

    def as_dict(self) -> dict[str, int]:
        return asdict(self)


class CacheBackend(ABC):
    """
    Contract implemented by each cache tier.

    ``get`` returns None for not-found; a stored None is therefore
    indistinguishable from a miss.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """
        Unique identifier for this tier.

        Returns:
            Tier name (e.g., 'local', 'remote')
        """
        ...

    @abstractmethod
    async def get(self, key: str) -> Any | None:
        """
        Get a value from the tier.

        Args:
            key: Cache key

        Returns:
            Cached value, or None if not found/expired
        """
        ...

    @abstractmethod
    async def set(self, key: str, value: Any, ttl_seconds: float) -> None:
        """
        Store a value, overwriting any existing entry.

        Args:
            key: Cache key
            value: Value to cache
            ttl_seconds: Time-to-live in seconds (> 0)
        """
        ...

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """
        Delete a value from the tier.

        Args:
            key: Cache key

        Returns:
            True if deleted, False if not found
        """
        ...
