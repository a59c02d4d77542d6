"""
Log Store - Append-only audit trail.

Every log is written once and never removed. The only mutation is adding an
attribute that is not present yet (first write wins), and that mutation is
itself recorded as a `log.set_attr` log.

Persisted shape:
    {"_id": 12, "type": "obj.set_attr", "time": "2026-...", "attrs": {...}}
`attrs` is left out entirely when empty.
"""

from datetime import datetime, timezone
from typing import Any, Mapping

from pydantic import ValidationError

from schedtrack.core.config import get_logger
from schedtrack.core.errors import CorruptRecord, InvalidLogID
from schedtrack.core.types import Log, Sequence, attr_path, validate_key, validate_value
from schedtrack.storage.documents import DocumentCollection
from schedtrack.storage.events import EventDispatcher
from schedtrack.storage.ids import IdAllocator

logger = get_logger("storage.logs")


class LogStore:
    """Writes, reads and dispatches audit logs."""

    def __init__(
        self,
        collection: DocumentCollection,
        ids: IdAllocator,
        dispatcher: EventDispatcher,
    ):
        self.collection = collection
        self.ids = ids
        self.dispatcher = dispatcher

    def create_raw(self, type: str, attrs: Mapping[str, Any] | None = None) -> Log:
        """
        Persist a new log without dispatching it.

        This is the base case of audit logging: writing a log is never itself
        logged. Returns the log as read back from the store.
        """
        validate_value("type", type)
        attrs = dict(attrs or {})
        for key, value in attrs.items():
            validate_key(key)
            validate_value(key, value, allow_int=True)

        log_id = self.ids.next(Sequence.LOGS)
        document: dict[str, Any] = {
            "_id": log_id,
            "type": type,
            "time": datetime.now(timezone.utc).isoformat(),
        }
        if attrs:
            document["attrs"] = attrs
        self.collection.insert_one(document)
        logger.debug(f"Wrote log {log_id} ({type})")

        return self.get(log_id)

    def create(self, type: str, attrs: Mapping[str, Any] | None = None) -> int:
        """Persist a new log, run matching handlers, and return its ID."""
        log = self.create_raw(type, attrs)
        self.dispatcher.dispatch(log)
        return log.id

    def set_attr(self, log_id: int, key: str, value: str) -> None:
        """
        Add an attribute to a log unless it is already set.

        A repeated key is silently ignored, but the attempt is still recorded
        as a `log.set_attr` log.

        Raises:
            InvalidKey: if the key contains '.'
            InvalidValue: if the value is not a string
            InvalidLogID: if the log does not exist
        """
        path = attr_path(key)
        validate_value(key, value)
        self.get(log_id)

        self.collection.find_one_and_update(
            {"_id": log_id, path: {"$exists": False}},
            {"$set": {path: value}},
        )
        self.create("log.set_attr", {"id": log_id, "attr": path})

    def get(self, log_id: int) -> Log:
        """
        Get a log by ID.

        Raises:
            InvalidLogID: if no such log exists
            CorruptRecord: if the stored document is malformed
        """
        document = self.collection.find_one({"_id": log_id})
        if document is None:
            raise InvalidLogID(log_id)
        try:
            return Log.from_document(document)
        except ValidationError as e:
            raise CorruptRecord(self.collection.name, log_id, str(e)) from e
