"""
Pickle-based serialization.

The platform-native object codec: any picklable value round-trips,
including instances of application classes. Only use it when every
process writing to the store is trusted, since unpickling runs code.
"""

import pickle
from typing import Any

from errors.exceptions import SerializationError
from serialize.strategy import SerializeStrategy


class PickleSerializeStrategy(SerializeStrategy):
    """Codec using the highest available pickle protocol."""

    def __init__(self, protocol: int = pickle.HIGHEST_PROTOCOL):
        self.protocol = protocol

    def serialize(self, source: Any) -> bytes:
        try:
            return pickle.dumps(source, protocol=self.protocol)
        except (pickle.PicklingError, TypeError, AttributeError) as e:
            raise SerializationError(
                f"Value cannot be pickled: {e}",
                details={"type": type(source).__name__},
            ) from e

    def deserialize(self, data: bytes) -> Any:
        try:
            return pickle.loads(data)
        except Exception as e:
            # Unpickling can fail with almost any exception type
            raise SerializationError(
                f"Bytes cannot be unpickled: {e}",
            ) from e
