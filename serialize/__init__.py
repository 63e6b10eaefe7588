"""
Pluggable value codecs used by the cache engines.
"""

from serialize.compressed import CompressedSerializeStrategy
from serialize.json_strategy import JsonSerializeStrategy
from serialize.pickle_strategy import PickleSerializeStrategy
from serialize.strategy import SerializeStrategy

__all__ = [
    "CompressedSerializeStrategy",
    "JsonSerializeStrategy",
    "PickleSerializeStrategy",
    "SerializeStrategy",
]
