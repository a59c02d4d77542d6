"""
sched CLI - Command-line interface.

Commands:
- sched shell [INIT_FILE] → Run the init script, then the command shell
- sched log new TYPE [KEY=VALUE...] → Write a log
- sched log get ID → Show a log
- sched obj new NAME TYPE → Create an object
- sched obj get ID → Show an object
- sched obj link ID dep|sub|ref TARGET → Add a relation
- sched status → Show configuration and counters

Every command loads the init script first (unless --no-init), so handlers
registered there see the logs written by the command.
"""

import code
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from schedtrack.core.config import settings, setup_logging
from schedtrack.core.errors import SchedError
from schedtrack.core.types import Log, Object, Relation, Sequence
from schedtrack.interface.scripting import ScriptAPI, load_init_file
from schedtrack.interface.shell import CommandShell, history
from schedtrack.storage.facade import Storage

app = typer.Typer(
    name="sched",
    help="sched - Track objects and their audit logs",
    no_args_is_help=True,
)
log_app = typer.Typer(help="Read and write logs", no_args_is_help=True)
obj_app = typer.Typer(help="Read and write objects", no_args_is_help=True)
app.add_typer(log_app, name="log")
app.add_typer(obj_app, name="obj")

console = Console()


@dataclass
class CliState:
    """Per-invocation state shared by all commands."""
    init_file: Path | None = None
    load_init: bool = True
    _api: ScriptAPI | None = field(default=None, repr=False)

    def api(self, init_file: Path | None = None) -> ScriptAPI:
        """Open storage and run the init file once per invocation."""
        if self._api is None:
            settings.ensure_directories()
            storage = Storage.from_settings(settings)
            shell = CommandShell(console, prompt=settings.prompt)
            self._api = ScriptAPI(storage, shell)
            if self.load_init:
                load_init_file(init_file or self.init_file or settings.init_file, self._api)
        return self._api


def get_state(ctx: typer.Context) -> CliState:
    if not isinstance(ctx.obj, CliState):
        ctx.obj = CliState()
    return ctx.obj


def fail(error: Exception) -> typer.Exit:
    console.print(f"[red]Error: {escape(str(error))}[/red]")
    return typer.Exit(code=1)


def parse_pairs(pairs: list[str]) -> dict[str, str]:
    """Turn KEY=VALUE arguments into a dict."""
    attrs = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise typer.BadParameter(f"expected KEY=VALUE, got '{pair}'")
        attrs[key] = value
    return attrs


def render_log(log: Log) -> Panel:
    table = Table(show_header=False, box=None)
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    table.add_row("type", escape(log.type))
    table.add_row("time", log.time.isoformat())
    for key, value in sorted(log.attrs.items()):
        table.add_row(escape(f"attrs.{key}"), escape(value))
    return Panel(table, title=f"Log {log.id}")


def render_obj(obj: Object) -> Panel:
    table = Table(show_header=False, box=None)
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    table.add_row("name", escape(obj.name))
    table.add_row("type", escape(obj.type))
    table.add_row("desc", escape(obj.desc or "-"))
    for relation in Relation:
        members = sorted(obj.related(relation))
        table.add_row(relation.field, ", ".join(str(m) for m in members) or "-")
    for key, value in sorted(obj.attrs.items()):
        table.add_row(escape(f"attrs.{key}"), escape(value))
    return Panel(table, title=f"Object {obj.id}")


@app.callback()
def main(
    ctx: typer.Context,
    init_file: Optional[Path] = typer.Option(None, "--init-file", help="Script to run at startup"),
    no_init: bool = typer.Option(False, "--no-init", help="Skip the init script"),
    log_level: Optional[str] = typer.Option(None, help="Logging level"),
):
    """Track objects and their audit logs."""
    setup_logging(log_level)
    ctx.obj = CliState(init_file=init_file, load_init=not no_init)


@app.command()
def shell(
    ctx: typer.Context,
    init_file: Optional[Path] = typer.Argument(None, help="Script to run before the shell starts"),
):
    """Run the init script, then the interactive command shell."""
    state = get_state(ctx)
    try:
        api = state.api(init_file)
    except SchedError as e:
        raise fail(e)

    with history(settings.history_path):
        wants_repl = api.shell.run()

    if wants_repl:
        code.interact(
            banner="sched Python console; `sched` is the script API",
            local={"sched": api},
            exitmsg="",
        )


@app.command()
def status(ctx: typer.Context):
    """Show configuration and ID counters."""
    state = get_state(ctx)
    console.print("[bold]sched status[/bold]\n")
    console.print(f"Backend: {settings.backend}")
    if settings.backend == "sqlite":
        console.print(f"Database: {settings.db_path}")
        console.print(f"  Exists: {'✓' if settings.db_path.exists() else '✗'}")
    console.print(f"Init file: {state.init_file or settings.init_file}")

    try:
        api = state.api()
        console.print("\nCounters:")
        for sequence in Sequence:
            console.print(f"  {sequence.value}: {api.storage.last_id(sequence)}")
        console.print(f"\nHandlers: {len(api.storage.dispatcher)}")
        console.print(f"Shell commands: {len(api.shell.commands)}")
    except SchedError as e:
        raise fail(e)


# ==========================================
# Logs
# ==========================================

@log_app.command("new")
def log_new(
    ctx: typer.Context,
    type: str = typer.Argument(..., help="Log type, e.g. task.done"),
    attrs: Optional[List[str]] = typer.Argument(None, help="KEY=VALUE attributes"),
):
    """Write a new log."""
    pairs = parse_pairs(attrs or [])
    try:
        ref = get_state(ctx).api().new_log(type, pairs)
    except SchedError as e:
        raise fail(e)
    console.print(f"[green]✓ Log {ref.id}[/green]")


@log_app.command("get")
def log_get(ctx: typer.Context, log_id: int = typer.Argument(..., metavar="ID")):
    """Show a log."""
    try:
        log = get_state(ctx).api().get_log(log_id).get()
    except SchedError as e:
        raise fail(e)
    console.print(render_log(log))


@log_app.command("set-attr")
def log_set_attr(
    ctx: typer.Context,
    log_id: int = typer.Argument(..., metavar="ID"),
    key: str = typer.Argument(...),
    value: str = typer.Argument(...),
):
    """Add an attribute to a log (ignored if already set)."""
    try:
        get_state(ctx).api().get_log(log_id).set_attr(key, value)
    except SchedError as e:
        raise fail(e)
    console.print(f"[green]✓ Log {log_id}[/green]")


# ==========================================
# Objects
# ==========================================

@obj_app.command("new")
def obj_new(
    ctx: typer.Context,
    name: str = typer.Argument(...),
    type: str = typer.Argument(...),
    desc: Optional[str] = typer.Option(None, "--desc", "-d", help="Description"),
):
    """Create an object."""
    try:
        ref = get_state(ctx).api().new_obj(name, type, desc)
    except SchedError as e:
        raise fail(e)
    console.print(f"[green]✓ Object {ref.id}[/green]")


@obj_app.command("get")
def obj_get(ctx: typer.Context, obj_id: int = typer.Argument(..., metavar="ID")):
    """Show an object."""
    try:
        obj = get_state(ctx).api().get_obj(obj_id).get()
    except SchedError as e:
        raise fail(e)
    console.print(render_obj(obj))


@obj_app.command("set-desc")
def obj_set_desc(
    ctx: typer.Context,
    obj_id: int = typer.Argument(..., metavar="ID"),
    desc: str = typer.Argument(...),
):
    """Replace an object's description."""
    try:
        get_state(ctx).api().get_obj(obj_id).set_desc(desc)
    except SchedError as e:
        raise fail(e)
    console.print(f"[green]✓ Object {obj_id}[/green]")


@obj_app.command("link")
def obj_link(
    ctx: typer.Context,
    obj_id: int = typer.Argument(..., metavar="ID"),
    relation: Relation = typer.Argument(...),
    target: int = typer.Argument(...),
):
    """Add TARGET to an object's deps, subs or refs."""
    try:
        get_state(ctx).api().storage.obj_add(obj_id, relation, target)
    except SchedError as e:
        raise fail(e)
    console.print(f"[green]✓ Object {obj_id} {relation.value} {target}[/green]")


@obj_app.command("unlink")
def obj_unlink(
    ctx: typer.Context,
    obj_id: int = typer.Argument(..., metavar="ID"),
    relation: Relation = typer.Argument(...),
    target: int = typer.Argument(...),
):
    """Remove TARGET from an object's deps, subs or refs."""
    try:
        get_state(ctx).api().storage.obj_del(obj_id, relation, target)
    except SchedError as e:
        raise fail(e)
    console.print(f"[green]✓ Object {obj_id} no longer {relation.value} {target}[/green]")


@obj_app.command("set-attr")
def obj_set_attr(
    ctx: typer.Context,
    obj_id: int = typer.Argument(..., metavar="ID"),
    key: str = typer.Argument(...),
    value: str = typer.Argument(...),
):
    """Set an object attribute."""
    try:
        get_state(ctx).api().get_obj(obj_id).set_attr(key, value)
    except SchedError as e:
        raise fail(e)
    console.print(f"[green]✓ Object {obj_id}[/green]")


@obj_app.command("del-attr")
def obj_del_attr(
    ctx: typer.Context,
    obj_id: int = typer.Argument(..., metavar="ID"),
    key: str = typer.Argument(...),
):
    """Delete an object attribute."""
    try:
        get_state(ctx).api().get_obj(obj_id).del_attr(key)
    except SchedError as e:
        raise fail(e)
    console.print(f"[green]✓ Object {obj_id}[/green]")


if __name__ == "__main__":
    app()
