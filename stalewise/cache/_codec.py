"""
Payload codecs — values in and out of the durable store.
"""

from __future__ import annotations

import json
from typing import Any, Protocol

from pydantic import TypeAdapter

# ═══════════════════════════════════════════════════════════════════════════════
# Codec Protocol
# ═══════════════════════════════════════════════════════════════════════════════


class Codec(Protocol):
    """
    Serializes payloads to text.

    Both methods may raise; the service turns that into a SERIALIZATION error.
    """

    def encode(self, value: Any) -> str: ...

    def decode(self, text: str) -> Any: ...


# ═══════════════════════════════════════════════════════════════════════════════
# JSON
# ═══════════════════════════════════════════════════════════════════════════════


class JsonCodec:
    """Plain JSON. Values come back as dicts/lists/scalars."""

    def encode(self, value: Any) -> str:
        return json.dumps(value, separators=(",", ":"))

    def decode(self, text: str) -> Any:
        return json.loads(text)


# ═══════════════════════════════════════════════════════════════════════════════
# Pydantic — typed round trip
# ═══════════════════════════════════════════════════════════════════════════════


class PydanticCodec[T]:
    """
    Typed codec via pydantic TypeAdapter.

    Example:
        codec = PydanticCodec(list[LightEffectCategory])
    """

    def __init__(self, type_: type[T] | Any) -> None:
        self._adapter: TypeAdapter[T] = TypeAdapter(type_)

    def encode(self, value: T) -> str:
        return self._adapter.dump_json(value, by_alias=True).decode()

    def decode(self, text: str) -> T:
        return self._adapter.validate_json(text)


JSON = JsonCodec()


# ═══════════════════════════════════════════════════════════════════════════════
# Exports
# ═══════════════════════════════════════════════════════════════════════════════

__all__ = ("Codec", "JsonCodec", "PydanticCodec", "JSON")
