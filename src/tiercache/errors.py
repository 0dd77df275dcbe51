"""
Exception hierarchy for tiercache.

Only SerializationError (and ValidationError for bad arguments) ever reaches
callers of the Orchestrator. The remote-tier errors are raised by
RemoteStore and absorbed by the Orchestrator's failover path.
"""


class TierCacheError(Exception):
    """Base exception for all tiercache errors."""


class ValidationError(TierCacheError, ValueError):
    """Raised when configuration or arguments are invalid (bad TTL, URL, schedule)."""


class SerializationError(TierCacheError, TypeError):
    """Raised when a value cannot be encoded for the remote tier."""


class RemoteError(TierCacheError):
    """Base class for remote-tier failures."""


class TransientRemoteError(RemoteError):
    """A single remote call failed; the remote tier stays enabled."""


class FatalConnectionError(RemoteError):
    """The remote tier is unreachable and will not be retried again."""

    def __init__(self, url: str, attempts: int) -> None:
        self.url = url
        self.attempts = attempts
        super().__init__(f"Could not connect to {url} after {attempts} attempts")
