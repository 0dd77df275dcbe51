"""Main entry point: serve the cache API with uvicorn."""

import logging

import uvicorn

from tiercache.api.app import create_app
from tiercache.config import get_settings


def main() -> None:
    """Main entry point."""
    settings = get_settings()

    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper()),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    logger = logging.getLogger(__name__)
    logger.info(
        f"Remote enabled: {settings.remote_enabled} ({settings.redacted_remote_url}), "
        f"default TTL: {settings.default_ttl_seconds}s, "
        f"sweeper: {settings.sweeper_enabled} ({settings.sweeper_schedule})"
    )

    # uvicorn handles SIGINT/SIGTERM; the app lifespan shuts the cache down.
    uvicorn.run(
        create_app(settings),
        host=settings.api_host,
        port=settings.api_port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
