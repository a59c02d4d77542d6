"""
Object Store - Mutable graph entities with an audit trail.

Each mutation updates the object document in one atomic store call, then
records what changed as a log of type `obj.<operation>`. Attempts are
recorded even when they change nothing (adding an existing relation, removing
an absent one), with one exception: deleting an attribute that was never set
leaves no log.
"""

from typing import Any

from pydantic import ValidationError

from schedtrack.core.config import get_logger
from schedtrack.core.errors import CorruptRecord, InvalidObjID, InvalidValue
from schedtrack.core.types import Object, Relation, Sequence, attr_path, validate_value
from schedtrack.storage.documents import DocumentCollection, get_path
from schedtrack.storage.ids import IdAllocator
from schedtrack.storage.logs import LogStore

logger = get_logger("storage.objects")


def _check_target(relation: Relation, target: int) -> None:
    if not isinstance(target, int) or isinstance(target, bool):
        raise InvalidValue(relation.value, target)


class ObjectStore:
    """Creates, mutates and reads objects."""

    def __init__(self, collection: DocumentCollection, ids: IdAllocator, logs: LogStore):
        self.collection = collection
        self.ids = ids
        self.logs = logs

    def _update(self, obj_id: int, update: dict[str, Any]) -> dict[str, Any]:
        """Apply an update and return the document as it was before."""
        before = self.collection.find_one_and_update({"_id": obj_id}, update)
        if before is None:
            raise InvalidObjID(obj_id)
        return before

    # ==========================================
    # Creation
    # ==========================================

    def create(self, name: str, type: str) -> int:
        """Create an object and return its ID."""
        validate_value("name", name)
        validate_value("type", type)
        obj_id = self.ids.next(Sequence.OBJS)
        self.collection.insert_one({"_id": obj_id, "name": name, "type": type})
        logger.debug(f"Created object {obj_id} '{name}' ({type})")
        self.logs.create("obj.create", {"id": obj_id})
        return obj_id

    # ==========================================
    # Description
    # ==========================================

    def set_desc(self, obj_id: int, desc: str) -> None:
        """Replace the description, logging the previous one if there was one."""
        validate_value("desc", desc)
        before = self._update(obj_id, {"$set": {"desc": desc}})
        attrs: dict[str, Any] = {"id": obj_id, "new": desc}
        if before.get("desc") is not None:
            attrs["old"] = before["desc"]
        self.logs.create("obj.set_desc", attrs)

    # ==========================================
    # Relations
    # ==========================================

    def add(self, obj_id: int, relation: Relation, target: int) -> None:
        """Add `target` to one of the object's relation sets."""
        _check_target(relation, target)
        self._update(obj_id, {"$addToSet": {relation.field: target}})
        self.logs.create(f"obj.add_{relation.value}", {"id": obj_id, relation.value: target})

    def remove(self, obj_id: int, relation: Relation, target: int) -> None:
        """Remove `target` from one of the object's relation sets if present."""
        _check_target(relation, target)
        self._update(obj_id, {"$pull": {relation.field: target}})
        self.logs.create(f"obj.del_{relation.value}", {"id": obj_id, relation.value: target})

    def add_dep(self, obj_id: int, dep: int) -> None:
        self.add(obj_id, Relation.DEP, dep)

    def add_sub(self, obj_id: int, sub: int) -> None:
        self.add(obj_id, Relation.SUB, sub)

    def add_ref(self, obj_id: int, ref: int) -> None:
        self.add(obj_id, Relation.REF, ref)

    def del_dep(self, obj_id: int, dep: int) -> None:
        self.remove(obj_id, Relation.DEP, dep)

    def del_sub(self, obj_id: int, sub: int) -> None:
        self.remove(obj_id, Relation.SUB, sub)

    def del_ref(self, obj_id: int, ref: int) -> None:
        self.remove(obj_id, Relation.REF, ref)

    # ==========================================
    # Attributes
    # ==========================================

    def set_attr(self, obj_id: int, key: str, value: str) -> None:
        """Set an attribute, overwriting any previous value."""
        path = attr_path(key)
        validate_value(key, value)
        before = self._update(obj_id, {"$set": {path: value}})
        attrs: dict[str, Any] = {"key": key, "id": obj_id, "new": value}
        old = get_path(before, path)
        if isinstance(old, str):
            attrs["old"] = old
        self.logs.create("obj.set_attr", attrs)

    def del_attr(self, obj_id: int, key: str) -> None:
        """Delete an attribute. Only logged when the attribute existed."""
        path = attr_path(key)
        before = self._update(obj_id, {"$unset": {path: ""}})
        old = get_path(before, path)
        if isinstance(old, str):
            self.logs.create("obj.del_attr", {"id": obj_id, "key": key, "old": old})

    # ==========================================
    # Lookup
    # ==========================================

    def get(self, obj_id: int) -> Object:
        """
        Get an object by ID.

        Raises:
            InvalidObjID: if no such object exists
            CorruptRecord: if the stored document is malformed
        """
        document = self.collection.find_one({"_id": obj_id})
        if document is None:
            raise InvalidObjID(obj_id)
        try:
            return Object.from_document(document)
        except ValidationError as e:
            raise CorruptRecord(self.collection.name, obj_id, str(e)) from e
