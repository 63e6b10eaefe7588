"""
LZ4 compression wrapper for serialization strategies.

Payloads at or above the threshold are compressed with LZ4 frames; small
payloads are stored as-is since compression would not pay for itself.
Every payload starts with a one-byte flag so both forms decode.
"""

from typing import Any

import lz4.frame

from errors.exceptions import SerializationError
from serialize.strategy import SerializeStrategy

COMPRESSION_THRESHOLD: int = 1024  # Compress if >= 1KB

FLAG_RAW: int = 0x00
FLAG_LZ4: int = 0x01


class CompressedSerializeStrategy(SerializeStrategy):
    """
    Wraps another strategy and compresses its output.

    Example:
        strategy = CompressedSerializeStrategy(JsonSerializeStrategy())
    """

    def __init__(self, inner: SerializeStrategy, threshold: int = COMPRESSION_THRESHOLD):
        self.inner = inner
        self.threshold = threshold

    def serialize(self, source: Any) -> bytes:
        payload = self.inner.serialize(source)
        if len(payload) < self.threshold:
            return bytes([FLAG_RAW]) + payload
        return bytes([FLAG_LZ4]) + lz4.frame.compress(payload)

    def deserialize(self, data: bytes) -> Any:
        if not data:
            raise SerializationError("Empty payload cannot be deserialized")

        flag, body = data[0], bytes(data[1:])
        if flag == FLAG_RAW:
            return self.inner.deserialize(body)
        if flag == FLAG_LZ4:
            try:
                body = lz4.frame.decompress(body)
            except RuntimeError as e:
                raise SerializationError(f"Corrupt LZ4 payload: {e}") from e
            return self.inner.deserialize(body)

        raise SerializationError(
            f"Unknown compression flag {flag:#04x}",
            details={"flag": flag},
        )
