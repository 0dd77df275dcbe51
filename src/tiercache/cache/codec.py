"""JSON encoding boundary between native values and the remote tier."""

import json
from datetime import datetime
from typing import Any

from tiercache.cache.base import utcnow
from tiercache.errors import SerializationError


class DecodeError(Exception):
    """Stored payload could not be decoded; treated as a miss by callers."""


class JsonCodec:
    """
    Encodes values into a JSON envelope ``{"v": value, "t": created_at}``.

    Only the remote tier goes through the codec; the local tier keeps the
    native objects, so encoding failures can only surface on remote writes.
    """

    def encode(self, value: Any, created_at: datetime | None = None) -> str:
        """
        Serialize a value to its JSON envelope.

        Raises:
            SerializationError: If the value is not JSON-serializable
        """
        stamp = (created_at or utcnow()).isoformat()
        try:
            return json.dumps({"v": value, "t": stamp}, allow_nan=False)
        except (TypeError, ValueError) as e:
            raise SerializationError(
                f"Value of type {type(value).__name__} is not JSON-serializable: {e}"
            ) from e

    def decode(self, data: str | bytes) -> Any:
        """
        Deserialize a JSON envelope back to its value.

        Raises:
            DecodeError: If the payload is not a valid envelope
        """
        if isinstance(data, bytes):
            try:
                data = data.decode("utf-8")
            except UnicodeDecodeError as e:
                raise DecodeError(str(e)) from e
        try:
            parsed = json.loads(data)
        except (json.JSONDecodeError, TypeError) as e:
            raise DecodeError(str(e)) from e
        if not isinstance(parsed, dict) or "v" not in parsed:
            raise DecodeError("payload is not a cache envelope")
        return parsed["v"]
