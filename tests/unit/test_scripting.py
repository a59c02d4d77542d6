"""Tests for the script API and init files."""

import textwrap

import pytest

from schedtrack.core.errors import InvalidObjID, InvalidValue, RegexError, ScriptError
from schedtrack.interface.scripting import LogRef, ObjRef, load_init_file, run_script
from schedtrack.storage.events import ScriptHandler


def write_script(tmp_path, body: str):
    path = tmp_path / "init.py"
    path.write_text(textwrap.dedent(body))
    return path


class TestRecords:
    """Tests for the record helpers exposed to scripts."""

    def test_new_obj_with_desc(self, api, audit):
        ref = api.new_obj("report", "task", desc="quarterly")

        assert isinstance(ref, ObjRef)
        assert ref.get().desc == "quarterly"
        assert audit.types == ["obj.create", "obj.set_desc"]

    def test_new_obj_without_desc(self, api, audit):
        ref = api.new_obj("report", "task")

        assert ref.get().desc is None
        assert audit.types == ["obj.create"]

    def test_obj_ref_operations(self, api):
        a = api.new_obj("a", "task")
        b = api.new_obj("b", "task")

        a.add_dep(b)
        a.add_sub(b.id)
        a.add_ref(b)
        a.set_attr("status", "open")
        obj = a.get()
        assert (obj.deps, obj.subs, obj.refs) == ({b.id}, {b.id}, {b.id})
        assert obj.attrs == {"status": "open"}

        a.del_dep(b)
        a.del_sub(b)
        a.del_ref(b)
        a.del_attr("status")
        a.set_desc("done")
        obj = a.get()
        assert (obj.deps, obj.subs, obj.refs) == (set(), set(), set())
        assert obj.attrs == {}
        assert obj.desc == "done"

    def test_log_ref_operations(self, api):
        ref = api.new_log("note", {"a": "1"})

        assert isinstance(ref, LogRef)
        ref.set_attr("b", "2")
        assert ref.get().attrs == {"a": "1", "b": "2"}
        assert api.get_log(ref.id) == ref

    def test_obj_ref_rejects_non_string_attr(self, api):
        ref = api.new_obj("a", "task")

        with pytest.raises(InvalidValue):
            ref.set_attr("count", 5)

        assert ref.get().attrs == {}

    def test_refs_are_lazy(self, api):
        ref = api.get_obj(99)

        with pytest.raises(InvalidObjID):
            ref.get()


class TestScripts:
    """Tests for running init scripts."""

    def test_script_registers_handler_and_command(self, api, tmp_path):
        path = write_script(tmp_path, """
            seen = []

            def on_create(log):
                seen.append(log.attrs["id"])

            sched.register(r"^obj\\.create$", on_create)

            def show(args):
                seen.append("show " + args.id)

            sched.define_command("show", "<id>", show)
        """)

        namespace = run_script(path, api)
        api.new_obj("a", "task")
        api.shell.execute("show 1")

        assert namespace["seen"] == ["1", "show 1"]
        handler = api.storage.dispatcher.registrations[-1].handler
        assert isinstance(handler, ScriptHandler)
        assert handler.script == path

    def test_handler_can_mutate(self, api, tmp_path):
        path = write_script(tmp_path, """
            def close_subs(log):
                if log.attrs["key"] == "status" and log.attrs["new"] == "done":
                    obj = sched.get_obj(int(log.attrs["id"]))
                    for sub in obj.get().subs:
                        sched.get_obj(sub).set_attr("status", "done")

            sched.register(r"^obj\\.set_attr$", close_subs)
        """)
        run_script(path, api)
        parent = api.new_obj("parent", "task")
        child = api.new_obj("child", "task")
        parent.add_sub(child)

        parent.set_attr("status", "done")

        assert child.get().attrs == {"status": "done"}

    def test_failing_script(self, api, tmp_path):
        path = write_script(tmp_path, "raise RuntimeError('bad init')\n")

        with pytest.raises(ScriptError) as exc_info:
            run_script(path, api)

        assert exc_info.value.path == path
        assert "bad init" in str(exc_info.value)

    def test_sched_error_in_script(self, api, tmp_path):
        path = write_script(tmp_path, "sched.register('(', print)\n")

        with pytest.raises(ScriptError) as exc_info:
            run_script(path, api)

        assert isinstance(exc_info.value.__cause__, RegexError)

    def test_syntax_error(self, api, tmp_path):
        path = write_script(tmp_path, "def broken(:\n")

        with pytest.raises(ScriptError):
            run_script(path, api)

    def test_missing_init_file(self, api, tmp_path):
        assert load_init_file(tmp_path / "missing.py", api) is False

    def test_load_init_file(self, api, tmp_path):
        path = write_script(tmp_path, "sched.new_log('init.loaded')\n")

        assert load_init_file(path, api) is True
        assert api.get_log(1).get().type == "init.loaded"
