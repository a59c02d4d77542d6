"""
Storage Layer - Documents, IDs, Logs, Objects, Events.

The storage hierarchy:
1. DocumentStore → Persistence contract (SQLite file or in-memory)
2. IdAllocator → Per-kind monotonic IDs
3. LogStore / ObjectStore → Audit trail and graph entities
4. EventDispatcher → Handlers run on every new log
5. Storage → Locked facade over all of the above

All storage operations should go through the Storage facade.
"""

from schedtrack.storage.documents import (
    DocumentStore,
    MemoryDocumentStore,
    ReturnDocument,
    SqliteDocumentStore,
)
from schedtrack.storage.events import EventDispatcher, FunctionHandler, Handler, ScriptHandler
from schedtrack.storage.facade import Storage
from schedtrack.storage.ids import IdAllocator
from schedtrack.storage.logs import LogStore
from schedtrack.storage.objects import ObjectStore

__all__ = [
    "DocumentStore",
    "MemoryDocumentStore",
    "ReturnDocument",
    "SqliteDocumentStore",
    "EventDispatcher",
    "FunctionHandler",
    "Handler",
    "ScriptHandler",
    "Storage",
    "IdAllocator",
    "LogStore",
    "ObjectStore",
]
