"""
Pytest configuration and fixtures for sched tests.
"""

import os
import tempfile
from collections.abc import Generator
from pathlib import Path

import pytest

# Set test environment before importing app modules
os.environ["SCHED_DATA_DIR"] = tempfile.mkdtemp()
os.environ["SCHED_CONFIG_DIR"] = tempfile.mkdtemp()
os.environ["SCHED_BACKEND"] = "memory"
os.environ["SCHED_MAX_DISPATCH_DEPTH"] = "8"

from schedtrack.core.types import Log
from schedtrack.interface.shell import CommandShell
from schedtrack.interface.scripting import ScriptAPI
from schedtrack.storage.documents import MemoryDocumentStore, SqliteDocumentStore
from schedtrack.storage.facade import Storage


@pytest.fixture
def memory_store() -> MemoryDocumentStore:
    """A fresh in-memory document store."""
    return MemoryDocumentStore()


@pytest.fixture
def temp_db_path() -> Generator[Path, None, None]:
    """Path for a throwaway SQLite database."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir) / "sched.sqlite"


@pytest.fixture
def sqlite_store(temp_db_path) -> SqliteDocumentStore:
    return SqliteDocumentStore(temp_db_path)


@pytest.fixture
def storage(memory_store) -> Storage:
    """Storage facade on an in-memory store."""
    return Storage(memory_store, max_dispatch_depth=8)


@pytest.fixture
def sqlite_storage(sqlite_store) -> Storage:
    """Storage facade on a SQLite store."""
    return Storage(sqlite_store, max_dispatch_depth=8)


class Recorder:
    """Handler that remembers every log it was called with."""

    def __init__(self):
        self.logs: list[Log] = []

    def __call__(self, log: Log) -> None:
        self.logs.append(log)

    @property
    def types(self) -> list[str]:
        return [log.type for log in self.logs]


@pytest.fixture
def recorder() -> Recorder:
    return Recorder()


@pytest.fixture
def audit(storage) -> Recorder:
    """Recorder registered for every log written through `storage`."""
    rec = Recorder()
    storage.register(".*", rec)
    return rec


@pytest.fixture
def shell() -> CommandShell:
    from rich.console import Console

    return CommandShell(Console(record=True, width=120), prompt="> ")


@pytest.fixture
def api(storage, shell) -> ScriptAPI:
    return ScriptAPI(storage, shell)
