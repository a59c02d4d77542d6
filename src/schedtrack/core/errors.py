"""
Error types for sched.

Every failure a storage operation can produce is a subclass of SchedError,
so front ends can report it and keep running.
"""


class SchedError(Exception):
    """Base class for all sched errors."""


class RegexError(SchedError):
    """A handler pattern failed to compile."""

    def __init__(self, pattern: str, reason: str = ""):
        self.pattern = pattern
        self.reason = reason
        message = f"Invalid regex pattern: '{pattern}'"
        if reason:
            message += f" ({reason})"
        super().__init__(message)


class InvalidKey(SchedError):
    """An attribute key is not a string or contains the reserved '.' separator."""

    def __init__(self, key: str):
        self.key = key
        super().__init__(f"Invalid attribute key: '{key}'")


class InvalidValue(SchedError):
    """A field was given a value of a type it cannot store."""

    def __init__(self, field: str, value: object):
        self.field = field
        self.value = value
        super().__init__(f"Invalid value for '{field}': cannot store {type(value).__name__}")


class InvalidLogID(SchedError):
    def __init__(self, log_id: int):
        self.id = log_id
        super().__init__(f"Invalid log ID '{log_id}'")


class InvalidObjID(SchedError):
    def __init__(self, obj_id: int):
        self.id = obj_id
        super().__init__(f"Invalid object ID '{obj_id}'")


class StoreUnavailable(SchedError):
    """The document store could not be reached."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Document store unavailable: {reason}")


class CorruptRecord(SchedError):
    """A persisted document does not have the expected shape."""

    def __init__(self, collection: str, doc_id: object, reason: str = ""):
        self.collection = collection
        self.doc_id = doc_id
        self.reason = reason
        message = f"Corrupt record {doc_id!r} in '{collection}'"
        if reason:
            message += f": {reason}"
        super().__init__(message)


class RecursiveDispatch(SchedError):
    """Handlers called back into storage deeper than the configured limit."""

    def __init__(self, depth: int):
        self.depth = depth
        super().__init__(f"Event handlers nested storage calls past depth {depth}")


class ScriptError(SchedError):
    """A user init script failed to run."""

    def __init__(self, path: object, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Error running script {path}: {reason}")


class UsageError(SchedError):
    """A shell command usage spec could not be parsed."""

    def __init__(self, usage: str, reason: str):
        self.usage = usage
        self.reason = reason
        super().__init__(f"Invalid usage spec {usage!r}: {reason}")
