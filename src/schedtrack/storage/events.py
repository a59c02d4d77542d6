"""
Event Dispatcher - Run registered handlers when logs are written.

Handlers are registered against a regular expression that is searched for
in each new log's type string. Every matching handler runs, in registration
order, on the thread that created the log. A failing handler is reported
and skipped: the mutation that produced the log is already persisted.
"""

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from schedtrack.core.config import get_logger
from schedtrack.core.errors import RegexError
from schedtrack.core.types import Log

logger = get_logger("storage.events")


class Handler(ABC):
    """Something that reacts to a newly written log."""

    @abstractmethod
    def handle(self, log: Log) -> None:
        """Process a log. Raising marks the handler as failed."""

    def describe(self) -> str:
        return type(self).__name__


class FunctionHandler(Handler):
    """Handler backed by a plain Python callable."""

    def __init__(self, func: Callable[[Log], object]):
        self.func = func

    def handle(self, log: Log) -> None:
        self.func(log)

    def describe(self) -> str:
        return getattr(self.func, "__qualname__", repr(self.func))


class ScriptHandler(FunctionHandler):
    """Handler defined by a user init script."""

    def __init__(self, func: Callable[[Log], object], script: Path | str | None = None):
        super().__init__(func)
        self.script = script

    def describe(self) -> str:
        name = super().describe()
        return f"{name} ({self.script})" if self.script else name


@dataclass(frozen=True)
class Registration:
    pattern: str
    regex: re.Pattern
    handler: Handler


def as_handler(handler: Handler | Callable[[Log], object]) -> Handler:
    """Wrap plain callables so everything registered is a Handler."""
    if isinstance(handler, Handler):
        return handler
    if not callable(handler):
        raise TypeError(f"handler must be callable, got {type(handler).__name__}")
    return FunctionHandler(handler)


class EventDispatcher:
    """Ordered registry of (pattern, handler) pairs."""

    def __init__(self):
        self._registrations: list[Registration] = []

    def __len__(self) -> int:
        return len(self._registrations)

    @property
    def registrations(self) -> list[Registration]:
        return list(self._registrations)

    def register(self, pattern: str, handler: Handler | Callable[[Log], object]) -> Handler:
        """
        Register a handler for log types matching `pattern`.

        Existing registrations are kept; handlers sharing a pattern all fire.

        Raises:
            RegexError: if the pattern does not compile
        """
        try:
            regex = re.compile(pattern)
        except re.error as e:
            raise RegexError(pattern, str(e)) from e

        wrapped = as_handler(handler)
        self._registrations.append(Registration(pattern, regex, wrapped))
        logger.debug(f"Registered {wrapped.describe()} for pattern '{pattern}'")
        return wrapped

    def dispatch(self, log: Log) -> int:
        """
        Run every handler whose pattern matches the log's type.

        Returns the number of handlers that completed without raising.
        """
        succeeded = 0
        # Handlers may register more handlers; they apply from the next log on
        for registration in list(self._registrations):
            if not registration.regex.search(log.type):
                continue
            try:
                registration.handler.handle(log)
            except Exception:
                logger.exception(
                    f"Handler {registration.handler.describe()} for pattern "
                    f"'{registration.pattern}' failed on log {log.id} ({log.type})"
                )
            else:
                succeeded += 1
        return succeeded
