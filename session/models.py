"""
Cached session records.

A session is persisted as two independent cache entries: the header
(``<prefix><id>.hd``) holding its timestamps and newness flag, and the
attribute map (``<prefix><id>.attr``). Both are written as plain
dictionaries so any serialization strategy can carry them.
"""

from typing import Any, Dict, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from errors.exceptions import SerializationError

HEADER_KEY_SUFFIX = ".hd"
ATTRIBUTES_KEY_SUFFIX = ".attr"


def header_key(prefix: str, session_id: str) -> str:
    return f"{prefix}{session_id}{HEADER_KEY_SUFFIX}"


def attributes_key(prefix: str, session_id: str) -> str:
    return f"{prefix}{session_id}{ATTRIBUTES_KEY_SUFFIX}"


class SessionHeader(BaseModel):
    """
    Session metadata.

    Attributes:
        create_time: Creation time in epoch milliseconds
        last_access_time: Last access time in epoch milliseconds
        is_new: True until the session has been loaded by a later request
    """

    model_config = ConfigDict(validate_assignment=True)

    create_time: int = Field(..., ge=0)
    last_access_time: int = Field(..., ge=0)
    is_new: bool = True

    @classmethod
    def create(cls, now: int, is_new: bool = True) -> "SessionHeader":
        return cls(create_time=now, last_access_time=now, is_new=is_new)

    def to_cache(self) -> dict[str, Any]:
        return self.model_dump()

    @classmethod
    def from_cache(cls, raw: Any) -> Optional["SessionHeader"]:
        """
        Rebuild a header from its cached form.

        Returns:
            The header, or None if nothing was cached

        Raises:
            SerializationError: If the cached value is not a header
        """
        if raw is None:
            return None
        if isinstance(raw, cls):
            return raw.model_copy()
        try:
            return cls.model_validate(raw)
        except ValidationError as e:
            raise SerializationError(
                "Cached session header is malformed",
                details={"errors": e.error_count()},
            ) from e


class SessionAttributes(Dict[str, Any]):
    """Attribute bag of one session, keyed by attribute name."""

    def to_cache(self) -> dict[str, Any]:
        return dict(self)

    @classmethod
    def from_cache(cls, raw: Any) -> "SessionAttributes":
        if raw is None:
            return cls()
        if not isinstance(raw, Mapping):
            raise SerializationError(
                "Cached session attributes are malformed",
                details={"type": type(raw).__name__},
            )
        return cls(raw)
