"""
ID Allocator - Monotonic integer identifiers, one sequence per entity kind.

Counters live in the `ids` collection as `{"_id": "<sequence>_id", "id": n}`
and are advanced with the store's atomic increment, so an identifier is never
handed out twice even if several processes share the database.
"""

from schedtrack.core.config import get_logger
from schedtrack.core.errors import CorruptRecord
from schedtrack.core.types import Sequence
from schedtrack.storage.documents import DocumentCollection, ReturnDocument

logger = get_logger("storage.ids")


class IdAllocator:
    """Issues strictly increasing IDs starting at 1 for each sequence."""

    def __init__(self, collection: DocumentCollection):
        self.collection = collection

    @staticmethod
    def _counter_id(sequence: Sequence | str) -> str:
        name = sequence.value if isinstance(sequence, Sequence) else sequence
        return f"{name}_id"

    def next(self, sequence: Sequence | str) -> int:
        """Atomically advance the named sequence and return the new value."""
        counter_id = self._counter_id(sequence)
        doc = self.collection.find_one_and_update(
            {"_id": counter_id},
            {"$inc": {"id": 1}},
            upsert=True,
            return_document=ReturnDocument.AFTER,
        )
        value = doc.get("id") if doc else None
        if not isinstance(value, int) or isinstance(value, bool):
            raise CorruptRecord(self.collection.name, counter_id, "counter is not an integer")
        logger.debug(f"Allocated {counter_id} {value}")
        return value

    def current(self, sequence: Sequence | str) -> int:
        """Last value handed out for a sequence (0 if never used)."""
        counter_id = self._counter_id(sequence)
        doc = self.collection.find_one({"_id": counter_id})
        if doc is None:
            return 0
        value = doc.get("id")
        if not isinstance(value, int) or isinstance(value, bool):
            raise CorruptRecord(self.collection.name, counter_id, "counter is not an integer")
        return value
