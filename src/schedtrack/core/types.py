"""
Core type definitions for sched.

Two record kinds:
- Log: immutable, timestamped audit entry classified by a dotted type string
- Object: mutable graph node with dependency/subordinate/reference relations
"""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from schedtrack.core.errors import InvalidKey, InvalidValue


# ============================================
# Enums
# ============================================

class Sequence(str, Enum):
    """Independent ID sequences, one per entity kind."""
    LOGS = "logs"
    OBJS = "objs"


class Relation(str, Enum):
    """Relations an object keeps to other objects."""
    DEP = "dep"  # dependency
    SUB = "sub"  # subordinate
    REF = "ref"  # reference

    @property
    def field(self) -> str:
        """Name of the document field holding this relation's set."""
        return f"{self.value}s"


# ============================================
# Helpers
# ============================================

def validate_key(key: str) -> str:
    """Reject attribute keys that are not strings or contain the '.' path separator."""
    if not isinstance(key, str) or "." in key:
        raise InvalidKey(key)
    return key


def validate_value(field: str, value: Any, allow_int: bool = False) -> Any:
    """
    Reject values that would not read back as strings.

    Audit logs record object and log IDs as integers, so `allow_int` lets
    those through (booleans excluded).
    """
    if isinstance(value, str):
        return value
    if allow_int and isinstance(value, int) and not isinstance(value, bool):
        return value
    raise InvalidValue(field, value)


def attr_path(key: str) -> str:
    """Document path of an attribute key."""
    return f"attrs.{validate_key(key)}"


# ============================================
# Records
# ============================================

class Log(BaseModel):
    """An audit log entry. Read-only once persisted."""

    model_config = ConfigDict(frozen=True)

    id: int = Field(validation_alias=AliasChoices("id", "_id"))
    type: str
    time: datetime
    attrs: dict[str, str] = Field(default_factory=dict)

    @field_validator("attrs", mode="before")
    @classmethod
    def _stringify_values(cls, value: Any) -> Any:
        # Audit logs persist object IDs as integers
        if isinstance(value, dict):
            return {
                k: str(v) if isinstance(v, int) and not isinstance(v, bool) else v
                for k, v in value.items()
            }
        return value

    @classmethod
    def from_document(cls, document: dict[str, Any]) -> "Log":
        return cls.model_validate(document)


class Object(BaseModel):
    """A tracked object and its relations to other objects."""

    id: int = Field(validation_alias=AliasChoices("id", "_id"))
    name: str
    type: str
    desc: str | None = None
    deps: set[int] = Field(default_factory=set)
    subs: set[int] = Field(default_factory=set)
    refs: set[int] = Field(default_factory=set)
    attrs: dict[str, str] = Field(default_factory=dict)

    @classmethod
    def from_document(cls, document: dict[str, Any]) -> "Object":
        return cls.model_validate(document)

    def related(self, relation: Relation) -> set[int]:
        """Get the set of object IDs for a relation."""
        return getattr(self, relation.field)
