"""
Core module - Configuration, errors and record types.
"""

from schedtrack.core.config import settings, get_logger, setup_logging
from schedtrack.core.errors import (
    CorruptRecord,
    InvalidKey,
    InvalidLogID,
    InvalidObjID,
    InvalidValue,
    RecursiveDispatch,
    RegexError,
    SchedError,
    ScriptError,
    StoreUnavailable,
    UsageError,
)
from schedtrack.core.types import Log, Object, Relation, Sequence

__all__ = [
    "settings",
    "get_logger",
    "setup_logging",
    "CorruptRecord",
    "InvalidKey",
    "InvalidLogID",
    "InvalidObjID",
    "InvalidValue",
    "RecursiveDispatch",
    "RegexError",
    "SchedError",
    "ScriptError",
    "StoreUnavailable",
    "UsageError",
    "Log",
    "Object",
    "Relation",
    "Sequence",
]
