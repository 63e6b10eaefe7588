"""
Serialization strategy abstraction.

A strategy turns an arbitrary value into bytes for the remote store and
back. Cache engines that need a wire value own one strategy instance.
"""

from abc import ABC, abstractmethod
from typing import Any


class SerializeStrategy(ABC):
    """
    Abstract base class for value codecs.

    Implementations must be stateless (or otherwise thread safe): a single
    instance is shared by every request using the engine.
    """

    @abstractmethod
    def serialize(self, source: Any) -> bytes:
        """
        Encode a value to bytes.

        Args:
            source: The value to encode.

        Returns:
            The encoded bytes.

        Raises:
            SerializationError: If the value cannot be encoded.
        """
        pass

    @abstractmethod
    def deserialize(self, data: bytes) -> Any:
        """
        Decode bytes produced by ``serialize`` back to a value.

        Args:
            data: The encoded bytes.

        Returns:
            The decoded value.

        Raises:
            SerializationError: If the bytes cannot be decoded.
        """
        pass
