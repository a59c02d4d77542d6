"""
Script API - What user init scripts see as the `sched` global.

An init script is plain Python executed at startup with `sched` bound to a
ScriptAPI. A typical script registers handlers and shell commands:

    def on_done(log):
        if log.attrs.get("key") == "status":
            sched.new_log("task.status", {"obj": log.attrs["id"]})

    sched.register(r"^obj\\.set_attr$", on_done)

    def show(args):
        print(sched.get_obj(int(args.id)).get())

    sched.define_command("show", "<id> 'object to show'", show)
"""

import runpy
from pathlib import Path
from typing import Any, Callable

from schedtrack.core.config import get_logger
from schedtrack.core.errors import SchedError, ScriptError
from schedtrack.core.types import Log, Object, Relation
from schedtrack.interface.shell import CommandHandler, CommandShell
from schedtrack.storage.events import ScriptHandler
from schedtrack.storage.facade import Storage

logger = get_logger("interface.scripting")


class LogRef:
    """Reference to a log by ID."""

    def __init__(self, storage: Storage, log_id: int):
        self.storage = storage
        self.id = log_id

    def __repr__(self) -> str:
        return f"LogRef({self.id})"

    def __eq__(self, other: object) -> bool:
        return isinstance(other, LogRef) and other.id == self.id

    def __hash__(self) -> int:
        return hash(("log", self.id))

    def get(self) -> Log:
        return self.storage.get_log(self.id)

    def set_attr(self, key: str, value: str) -> None:
        self.storage.log_set_attr(self.id, key, value)


class ObjRef:
    """Reference to an object by ID."""

    def __init__(self, storage: Storage, obj_id: int):
        self.storage = storage
        self.id = obj_id

    def __repr__(self) -> str:
        return f"ObjRef({self.id})"

    def __eq__(self, other: object) -> bool:
        return isinstance(other, ObjRef) and other.id == self.id

    def __hash__(self) -> int:
        return hash(("obj", self.id))

    def get(self) -> Object:
        return self.storage.get_obj(self.id)

    def set_desc(self, desc: str) -> None:
        self.storage.obj_set_desc(self.id, desc)

    def add_dep(self, other: "ObjRef | int") -> None:
        self.storage.obj_add(self.id, Relation.DEP, _obj_id(other))

    def add_sub(self, other: "ObjRef | int") -> None:
        self.storage.obj_add(self.id, Relation.SUB, _obj_id(other))

    def add_ref(self, other: "ObjRef | int") -> None:
        self.storage.obj_add(self.id, Relation.REF, _obj_id(other))

    def del_dep(self, other: "ObjRef | int") -> None:
        self.storage.obj_del(self.id, Relation.DEP, _obj_id(other))

    def del_sub(self, other: "ObjRef | int") -> None:
        self.storage.obj_del(self.id, Relation.SUB, _obj_id(other))

    def del_ref(self, other: "ObjRef | int") -> None:
        self.storage.obj_del(self.id, Relation.REF, _obj_id(other))

    def set_attr(self, key: str, value: str) -> None:
        self.storage.obj_set_attr(self.id, key, value)

    def del_attr(self, key: str) -> None:
        self.storage.obj_del_attr(self.id, key)


def _obj_id(other: "ObjRef | int") -> int:
    return other.id if isinstance(other, ObjRef) else int(other)


class ScriptAPI:
    """Storage and shell operations exposed to init scripts."""

    Log = Log
    Object = Object
    Relation = Relation

    def __init__(self, storage: Storage, shell: CommandShell, script: Path | None = None):
        self.storage = storage
        self.shell = shell
        self.script = script

    # ==========================================
    # Registration
    # ==========================================

    def register(self, pattern: str, handler: Callable[[Log], Any]) -> None:
        """Run `handler(log)` for every new log whose type matches `pattern`."""
        self.storage.register(pattern, ScriptHandler(handler, self.script))

    def define_command(self, name: str, usage: str, handler: CommandHandler) -> None:
        """Add a command to the interactive shell."""
        self.shell.define_command(name, usage, handler)

    # ==========================================
    # Records
    # ==========================================

    def new_log(self, type: str, attrs: dict[str, str] | None = None) -> LogRef:
        return LogRef(self.storage, self.storage.create_log(type, attrs))

    def get_log(self, log_id: int) -> LogRef:
        return LogRef(self.storage, log_id)

    def new_obj(self, name: str, type: str, desc: str | None = None) -> ObjRef:
        """Create an object, optionally with a description, in one locked step."""
        with self.storage.serialized():
            obj_id = self.storage.create_obj(name, type)
            if desc is not None:
                self.storage.obj_set_desc(obj_id, desc)
        return ObjRef(self.storage, obj_id)

    def get_obj(self, obj_id: int) -> ObjRef:
        return ObjRef(self.storage, obj_id)


def run_script(path: Path, api: ScriptAPI) -> dict[str, Any]:
    """
    Execute a script with `sched` bound to the API.

    Returns the script's globals.

    Raises:
        ScriptError: if the script cannot be read or raises
    """
    api.script = path
    try:
        return runpy.run_path(str(path), init_globals={"sched": api}, run_name="__sched__")
    except SchedError as e:
        raise ScriptError(path, str(e)) from e
    except Exception as e:
        raise ScriptError(path, f"{type(e).__name__}: {e}") from e


def load_init_file(path: Path, api: ScriptAPI) -> bool:
    """Run the init file if it exists. Returns whether it ran."""
    if not path.is_file():
        logger.info(f"No init file at {path}")
        return False
    run_script(path, api)
    logger.info(f"Loaded init file {path}")
    return True
