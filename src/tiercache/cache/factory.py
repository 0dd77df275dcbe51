"""Build cache instances from configuration."""

import logging

from tiercache.cache.orchestrator import Orchestrator
from tiercache.config import Settings, get_settings
from tiercache.sweeper import Sweeper

logger = logging.getLogger(__name__)


async def create_cache(
    settings: Settings | None = None,
    remote_url: str | None = None,
    ttl_seconds: float | None = None,
) -> Orchestrator:
    """
    Create, initialize and (when applicable) start sweeping a cache.

    Every call returns an independent instance; the caller owns it and must
    call ``shutdown_cache`` (or ``Orchestrator.shutdown``) when done.

    Args:
        settings: Configuration (defaults to environment settings)
        remote_url: Override for the remote URL (enables the remote tier)
        ttl_seconds: Override for the default TTL

    Returns:
        Initialized Orchestrator

    Raises:
        ValidationError: If ttl_seconds or remote_url is invalid
    """
    settings = settings or get_settings()

    cache = Orchestrator(
        remote_url=remote_url if remote_url is not None else settings.active_remote_url,
        default_ttl=(
            ttl_seconds if ttl_seconds is not None else settings.default_ttl_seconds
        ),
        remote_options={
            "prefix": settings.remote_prefix,
            "max_attempts": settings.remote_max_attempts,
            "socket_timeout": settings.remote_timeout_seconds,
            "socket_connect_timeout": settings.remote_timeout_seconds,
        },
    )
    await cache.initialize()

    # Built after initialize so a failed remote leaves sweeping enabled.
    sweeper = Sweeper(
        cache,
        schedule=settings.sweeper_schedule,
        enabled=settings.sweeper_enabled,
        timezone=settings.sweeper_timezone,
    )
    cache.attach_sweeper(sweeper)
    sweeper.start()

    logger.info(f"Cache ready in {cache.mode} mode")
    return cache


async def shutdown_cache(cache: Orchestrator) -> None:
    """
    Shutdown a cache created by ``create_cache``.

    Stops its sweeper before releasing the remote connection.
    """
    await cache.shutdown()
