"""Tests for the event dispatcher."""

import logging
from datetime import datetime, timezone

import pytest

from schedtrack.core.errors import RegexError
from schedtrack.core.types import Log
from schedtrack.storage.events import (
    EventDispatcher,
    FunctionHandler,
    Handler,
    ScriptHandler,
)


def make_log(type: str, log_id: int = 1) -> Log:
    return Log(id=log_id, type=type, time=datetime.now(timezone.utc))


class TestRegister:
    """Tests for handler registration."""

    def test_invalid_pattern(self):
        dispatcher = EventDispatcher()

        with pytest.raises(RegexError) as exc_info:
            dispatcher.register("obj.(", lambda log: None)

        assert exc_info.value.pattern == "obj.("
        assert len(dispatcher) == 0

    def test_callables_are_wrapped(self):
        dispatcher = EventDispatcher()

        handler = dispatcher.register("x", lambda log: None)

        assert isinstance(handler, FunctionHandler)
        assert dispatcher.registrations[0].pattern == "x"

    def test_handler_instances_kept(self):
        class Counting(Handler):
            def __init__(self):
                self.count = 0

            def handle(self, log):
                self.count += 1

        dispatcher = EventDispatcher()
        counting = Counting()

        assert dispatcher.register("x", counting) is counting
        dispatcher.dispatch(make_log("x"))
        assert counting.count == 1

    def test_not_callable(self):
        with pytest.raises(TypeError):
            EventDispatcher().register("x", "not a handler")

    def test_script_handler_description(self):
        def on_log(log):
            pass

        handler = ScriptHandler(on_log, "/home/me/.config/sched/init.py")

        assert "on_log" in handler.describe()
        assert "init.py" in handler.describe()


class TestDispatch:
    """Tests for dispatching logs to handlers."""

    def test_pattern_matching(self, recorder):
        dispatcher = EventDispatcher()
        dispatcher.register("obj.*", recorder)

        dispatcher.dispatch(make_log("obj.create"))
        dispatcher.dispatch(make_log("log.set_attr"))
        dispatcher.dispatch(make_log("obj.set_attr"))

        assert recorder.types == ["obj.create", "obj.set_attr"]

    def test_patterns_search_anywhere(self, recorder):
        dispatcher = EventDispatcher()
        dispatcher.register("set_attr", recorder)

        dispatcher.dispatch(make_log("obj.set_attr"))
        dispatcher.dispatch(make_log("log.set_attr"))

        assert len(recorder.logs) == 2

    def test_anchored_pattern(self, recorder):
        dispatcher = EventDispatcher()
        dispatcher.register(r"^obj\.create$", recorder)

        dispatcher.dispatch(make_log("obj.create"))
        dispatcher.dispatch(make_log("obj.create.extra"))

        assert len(recorder.logs) == 1

    def test_registration_order(self):
        calls = []
        dispatcher = EventDispatcher()
        dispatcher.register("obj", lambda log: calls.append("first"))
        dispatcher.register(".*", lambda log: calls.append("second"))
        dispatcher.register("obj", lambda log: calls.append("third"))
        dispatcher.register("log", lambda log: calls.append("never"))

        assert dispatcher.dispatch(make_log("obj.create")) == 3
        assert calls == ["first", "second", "third"]

    def test_failing_handler_does_not_stop_others(self, recorder, caplog):
        def broken(log):
            raise RuntimeError("boom")

        dispatcher = EventDispatcher()
        dispatcher.register("obj", broken)
        dispatcher.register("obj", recorder)

        with caplog.at_level(logging.ERROR, logger="schedtrack.storage.events"):
            succeeded = dispatcher.dispatch(make_log("obj.create", log_id=7))

        assert succeeded == 1
        assert recorder.types == ["obj.create"]
        assert "boom" in caplog.text
        assert "log 7" in caplog.text

    def test_handler_registered_during_dispatch(self, recorder):
        dispatcher = EventDispatcher()
        dispatcher.register("obj", lambda log: dispatcher.register("obj", recorder))

        dispatcher.dispatch(make_log("obj.create", 1))
        assert recorder.logs == []

        dispatcher.dispatch(make_log("obj.create", 2))
        assert [log.id for log in recorder.logs] == [2]

    def test_no_handlers(self):
        assert EventDispatcher().dispatch(make_log("obj.create")) == 0
