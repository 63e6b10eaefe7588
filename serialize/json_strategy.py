"""
Self-describing JSON serialization.

Values that JSON represents natively (None, bool, int, float, str, lists
and string-keyed dicts) are written as plain JSON. Everything else that
must survive a round trip with its Python type is wrapped in an object
carrying a ``@type`` tag:

    (1, 2)              -> {"@type": "tuple", "items": [1, 2]}
    {1, 2}              -> {"@type": "set", "items": [1, 2]}
    b"ab"               -> {"@type": "bytes", "base64": "YWI="}
    datetime(...)       -> {"@type": "datetime", "iso": "2024-01-15T10:30:00"}
    {1: "a"}            -> {"@type": "dict", "items": [[1, "a"]]}

Keeping integers untagged matters: a value written with ``put(key, 10)``
can then be incremented server-side by the Redis engine's counters.
"""

import base64
import json
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Callable, Dict

from errors.exceptions import SerializationError
from serialize.strategy import SerializeStrategy

TYPE_KEY = "@type"


def _encode(value: Any) -> Any:
    # bool is an int subclass; both are native JSON
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, list):
        return [_encode(item) for item in value]
    if isinstance(value, tuple):
        return {TYPE_KEY: "tuple", "items": [_encode(item) for item in value]}
    if isinstance(value, frozenset):
        return {TYPE_KEY: "frozenset", "items": [_encode(item) for item in value]}
    if isinstance(value, set):
        return {TYPE_KEY: "set", "items": [_encode(item) for item in value]}
    if isinstance(value, (bytes, bytearray)):
        return {TYPE_KEY: "bytes", "base64": base64.b64encode(bytes(value)).decode("ascii")}
    # datetime is a date subclass, check it first
    if isinstance(value, datetime):
        return {TYPE_KEY: "datetime", "iso": value.isoformat()}
    if isinstance(value, date):
        return {TYPE_KEY: "date", "iso": value.isoformat()}
    if isinstance(value, Decimal):
        return {TYPE_KEY: "decimal", "value": str(value)}
    if isinstance(value, dict):
        if all(isinstance(k, str) for k in value) and TYPE_KEY not in value:
            return {k: _encode(v) for k, v in value.items()}
        return {
            TYPE_KEY: "dict",
            "items": [[_encode(k), _encode(v)] for k, v in value.items()],
        }
    raise TypeError(f"Object of type {type(value).__name__} is not serializable")


_DECODERS: Dict[str, Callable[[dict], Any]] = {
    "tuple": lambda obj: tuple(_decode(item) for item in obj["items"]),
    "set": lambda obj: {_decode(item) for item in obj["items"]},
    "frozenset": lambda obj: frozenset(_decode(item) for item in obj["items"]),
    "bytes": lambda obj: base64.b64decode(obj["base64"]),
    "datetime": lambda obj: datetime.fromisoformat(obj["iso"]),
    "date": lambda obj: date.fromisoformat(obj["iso"]),
    "decimal": lambda obj: Decimal(obj["value"]),
    "dict": lambda obj: {
        _decode(k): _decode(v) for k, v in obj["items"]
    },
}


def _decode(value: Any) -> Any:
    if isinstance(value, list):
        return [_decode(item) for item in value]
    if isinstance(value, dict):
        type_name = value.get(TYPE_KEY)
        if type_name is None:
            return {k: _decode(v) for k, v in value.items()}
        decoder = _DECODERS.get(type_name)
        if decoder is None:
            raise ValueError(f"Unknown type tag {type_name!r}")
        return decoder(value)
    return value


class JsonSerializeStrategy(SerializeStrategy):
    """
    UTF-8 JSON codec that preserves Python container and scalar types.

    Example:
        strategy = JsonSerializeStrategy()
        data = strategy.serialize({"cart": (1, 2), "seen": {"a"}})
        assert strategy.deserialize(data) == {"cart": (1, 2), "seen": {"a"}}
    """

    def serialize(self, source: Any) -> bytes:
        try:
            return json.dumps(
                _encode(source),
                ensure_ascii=False,
                separators=(",", ":"),
            ).encode("utf-8")
        except (TypeError, ValueError) as e:
            raise SerializationError(
                f"Value cannot be serialized: {e}",
                details={"type": type(source).__name__},
            ) from e

    def deserialize(self, data: bytes) -> Any:
        try:
            if isinstance(data, (bytes, bytearray)):
                data = bytes(data).decode("utf-8")
            return _decode(json.loads(data))
        except (TypeError, ValueError, KeyError) as e:
            raise SerializationError(
                f"Bytes cannot be deserialized: {e}",
                details={"type": type(data).__name__},
            ) from e
