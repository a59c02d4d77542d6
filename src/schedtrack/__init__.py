"""
sched

Track mutable objects and an immutable audit log of every change made to
them, with handlers that run whenever a log of a matching type is written.
"""

__version__ = "0.1.0"

from schedtrack.core.config import settings
from schedtrack.core.errors import SchedError
from schedtrack.core.types import Log, Object, Relation, Sequence
from schedtrack.storage.facade import Storage

__all__ = [
    "settings",
    "SchedError",
    "Log",
    "Object",
    "Relation",
    "Sequence",
    "Storage",
]
