"""HTTP surface for the cache."""

from tiercache.api.app import create_app

__all__ = ["create_app"]
