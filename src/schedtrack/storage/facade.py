"""
Storage Facade - The single entry point to logs, objects and handlers.

All operations are serialized by one reentrant lock held for the whole call,
including event dispatch. Handlers may call back into the facade from inside
dispatch; those nested calls run under the same lock, and their nesting depth
is bounded by `max_dispatch_depth`. A call past the bound fails with
RecursiveDispatch before touching the store, which the dispatcher reports as
a handler failure, so a self-triggering handler chain stops at the bound and
the outermost call still returns normally.
"""

import threading
from contextlib import contextmanager
from typing import Callable, Generator

from schedtrack.core.config import Settings, get_logger, settings as default_settings
from schedtrack.core.errors import RecursiveDispatch
from schedtrack.core.types import Log, Object, Relation, Sequence
from schedtrack.storage.documents import DocumentStore, MemoryDocumentStore, SqliteDocumentStore
from schedtrack.storage.events import EventDispatcher, Handler
from schedtrack.storage.ids import IdAllocator
from schedtrack.storage.logs import LogStore
from schedtrack.storage.objects import ObjectStore

logger = get_logger("storage.facade")


class Storage:
    """Owns the ID allocator, log store, object store and dispatcher."""

    def __init__(self, store: DocumentStore, max_dispatch_depth: int = 8):
        if max_dispatch_depth < 1:
            raise ValueError("max_dispatch_depth must be at least 1")
        self.store = store
        self.max_dispatch_depth = max_dispatch_depth
        self.dispatcher = EventDispatcher()
        self.ids = IdAllocator(store.collection("ids"))
        self.logs = LogStore(store.collection("logs"), self.ids, self.dispatcher)
        self.objs = ObjectStore(store.collection("objs"), self.ids, self.logs)
        self._lock = threading.RLock()
        self._depth = 0

    @classmethod
    def from_settings(cls, config: Settings | None = None) -> "Storage":
        """Build a storage handle on the configured backend."""
        config = config or default_settings
        if config.backend == "memory":
            store: DocumentStore = MemoryDocumentStore()
        else:
            store = SqliteDocumentStore(config.db_path)
        logger.info(f"Opened {config.backend} storage")
        return cls(store, max_dispatch_depth=config.max_dispatch_depth)

    def close(self) -> None:
        self.store.close()

    @property
    def depth(self) -> int:
        """Nesting depth of the facade call in progress (0 when idle)."""
        return self._depth

    @contextmanager
    def serialized(self) -> Generator[None, None, None]:
        """Hold the storage lock so several calls run without interleaving."""
        with self._lock:
            if self._depth >= self.max_dispatch_depth:
                logger.warning(f"Refusing storage call nested {self._depth} deep")
                raise RecursiveDispatch(self.max_dispatch_depth)
            self._depth += 1
            try:
                yield
            finally:
                self._depth -= 1

    # ==========================================
    # Handlers
    # ==========================================

    def register(self, pattern: str, handler: Handler | Callable[[Log], object]) -> Handler:
        """Register a handler for log types matching a regex pattern."""
        with self.serialized():
            return self.dispatcher.register(pattern, handler)

    # ==========================================
    # Logs
    # ==========================================

    def create_log(self, type: str, attrs: dict[str, str] | None = None) -> int:
        with self.serialized():
            return self.logs.create(type, attrs)

    def log_set_attr(self, log_id: int, key: str, value: str) -> None:
        with self.serialized():
            self.logs.set_attr(log_id, key, value)

    def get_log(self, log_id: int) -> Log:
        with self.serialized():
            return self.logs.get(log_id)

    # ==========================================
    # Objects
    # ==========================================

    def create_obj(self, name: str, type: str) -> int:
        with self.serialized():
            return self.objs.create(name, type)

    def obj_set_desc(self, obj_id: int, desc: str) -> None:
        with self.serialized():
            self.objs.set_desc(obj_id, desc)

    def obj_add(self, obj_id: int, relation: Relation, target: int) -> None:
        with self.serialized():
            self.objs.add(obj_id, relation, target)

    def obj_del(self, obj_id: int, relation: Relation, target: int) -> None:
        with self.serialized():
            self.objs.remove(obj_id, relation, target)

    def obj_add_dep(self, obj_id: int, dep: int) -> None:
        self.obj_add(obj_id, Relation.DEP, dep)

    def obj_add_sub(self, obj_id: int, sub: int) -> None:
        self.obj_add(obj_id, Relation.SUB, sub)

    def obj_add_ref(self, obj_id: int, ref: int) -> None:
        self.obj_add(obj_id, Relation.REF, ref)

    def obj_del_dep(self, obj_id: int, dep: int) -> None:
        self.obj_del(obj_id, Relation.DEP, dep)

    def obj_del_sub(self, obj_id: int, sub: int) -> None:
        self.obj_del(obj_id, Relation.SUB, sub)

    def obj_del_ref(self, obj_id: int, ref: int) -> None:
        self.obj_del(obj_id, Relation.REF, ref)

    def obj_set_attr(self, obj_id: int, key: str, value: str) -> None:
        with self.serialized():
            self.objs.set_attr(obj_id, key, value)

    def obj_del_attr(self, obj_id: int, key: str) -> None:
        with self.serialized():
            self.objs.del_attr(obj_id, key)

    def get_obj(self, obj_id: int) -> Object:
        with self.serialized():
            return self.objs.get(obj_id)

    # ==========================================
    # Sequences
    # ==========================================

    def last_id(self, sequence: Sequence) -> int:
        """Last ID issued in a sequence (0 if none)."""
        with self.serialized():
            return self.ids.current(sequence)
