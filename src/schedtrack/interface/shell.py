"""
Command shell - Line-oriented front end with script-defined commands.

Scripts call `define_command(name, usage, handler)`; the shell reads lines,
splits them on whitespace, and routes the first word to the matching
command. The handler receives the parsed arguments as an argparse Namespace.

Usage specs have one argument per line:
    <name>          required positional
    [name]          optional positional
    <name>...       one or more values (`[name]...` for zero or more)
    -v --verbose    boolean flag
    --due <date>    option taking a value
Each line may end with a quoted help text:
    <id> 'object to show'
"""

import argparse
import re
import shlex
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Generator

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from schedtrack.core.config import get_logger
from schedtrack.core.errors import UsageError

logger = get_logger("interface.shell")

_VALUE = re.compile(r"^([<\[])([A-Za-z_][\w-]*)([>\]])(\.\.\.)?$")

CommandHandler = Callable[[argparse.Namespace], Any]


class ArgumentError(Exception):
    """Command line did not match a command's usage."""


class _Parser(argparse.ArgumentParser):
    """ArgumentParser that raises instead of exiting the process."""

    def error(self, message: str):
        raise ArgumentError(f"{self.prog}: {message}")

    def exit(self, status: int = 0, message: str | None = None):
        raise ArgumentError(message or "")


@dataclass
class ArgSpec:
    """One argument parsed from a usage line."""
    name: str | None = None
    flags: list[str] = field(default_factory=list)
    required: bool = True
    variadic: bool = False
    help: str | None = None

    @property
    def takes_value(self) -> bool:
        return self.name is not None

    def add_to(self, parser: argparse.ArgumentParser) -> None:
        if not self.flags:
            if self.variadic:
                nargs = "+" if self.required else "*"
            else:
                nargs = None if self.required else "?"
            parser.add_argument(
                self.name.replace("-", "_"), metavar=self.name, nargs=nargs, help=self.help
            )
        elif self.takes_value:
            parser.add_argument(
                *self.flags,
                metavar=self.name,
                nargs="+" if self.variadic else None,
                help=self.help,
            )
        else:
            parser.add_argument(*self.flags, action="store_true", help=self.help)


def parse_usage(usage: str) -> list[ArgSpec]:
    """Parse a usage spec into argument specs."""
    specs = []
    for line in usage.strip().splitlines():
        line = line.strip()
        if not line:
            continue
        try:
            tokens = shlex.split(line)
        except ValueError as e:
            raise UsageError(line, str(e)) from e

        spec = ArgSpec()
        help_parts = []
        for token in tokens:
            match = _VALUE.match(token)
            if token.startswith("-") and not help_parts:
                spec.flags.append(token)
            elif match and not help_parts:
                opening, name, closing, ellipsis = match.groups()
                if (opening, closing) not in (("<", ">"), ("[", "]")):
                    raise UsageError(line, f"mismatched brackets in '{token}'")
                if spec.name is not None:
                    raise UsageError(line, "more than one value per argument")
                spec.name = name
                spec.required = opening == "<"
                spec.variadic = ellipsis is not None
            else:
                help_parts.append(token)

        if spec.name is None and not spec.flags:
            raise UsageError(line, "no argument declared")
        spec.help = " ".join(help_parts) or None
        specs.append(spec)
    return specs


@dataclass
class Command:
    name: str
    usage: str
    handler: CommandHandler
    parser: argparse.ArgumentParser


class CommandShell:
    """Registry of shell commands plus the read-eval loop that runs them."""

    def __init__(self, console: Console | None = None, prompt: str = ">=> "):
        self.console = console or Console()
        self.prompt = prompt
        self.commands: dict[str, Command] = {}

    def define_command(self, name: str, usage: str, handler: CommandHandler) -> None:
        """Register (or replace) a command."""
        if not name or any(c.isspace() for c in name):
            raise UsageError(usage, f"invalid command name {name!r}")
        parser = _Parser(prog=name, add_help=False)
        for spec in parse_usage(usage):
            try:
                spec.add_to(parser)
            except (argparse.ArgumentError, ValueError) as e:
                raise UsageError(usage, str(e)) from e
        self.commands[name] = Command(name, usage, handler, parser)
        logger.debug(f"Defined command '{name}'")

    def print_help(self) -> None:
        table = Table(title="Commands")
        table.add_column("Command", style="cyan")
        table.add_column("Usage", style="dim")
        for command in self.commands.values():
            usage = command.parser.format_usage().strip().removeprefix("usage: ")
            table.add_row(escape(command.name), escape(usage))
        self.console.print(table)

    def execute(self, line: str) -> bool:
        """Run one command line. Returns True if the command ran successfully."""
        words = line.split()
        if not words:
            return False
        name, args = words[0], words[1:]

        if name == "help" and "help" not in self.commands:
            self.print_help()
            return True

        command = self.commands.get(name)
        if command is None:
            self.console.print(f"[red]Unknown command: {escape(name)}[/red] (try 'help')")
            return False

        try:
            namespace = command.parser.parse_args(args)
        except ArgumentError as e:
            self.console.print(f"[red]{escape(str(e))}[/red]")
            self.console.print(command.parser.format_usage().rstrip(), markup=False)
            return False

        try:
            command.handler(namespace)
        except Exception as e:
            logger.debug(f"Command '{name}' failed", exc_info=True)
            self.console.print(f"[red]Error running command '{escape(name)}': {escape(str(e))}[/red]")
            return False
        return True

    def run(self, read_line: Callable[[str], str] = input) -> bool:
        """
        Read and run lines until end of input.

        Returns True when the user asked for the interactive `repl`,
        False when input ran out.
        """
        while True:
            try:
                line = read_line(self.prompt)
            except EOFError:
                return False
            except KeyboardInterrupt:
                self.console.print()
                continue

            line = line.strip()
            if not line:
                continue
            if line == "repl":
                return True
            self.execute(line)


@contextmanager
def history(path: Path) -> Generator[None, None, None]:
    """Load readline history from `path` and save it back on exit."""
    try:
        import readline
    except ImportError:
        # No line editing on this platform; run without history
        yield
        return

    try:
        readline.read_history_file(path)
    except OSError:
        logger.debug(f"No shell history at {path}")
    try:
        yield
    finally:
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            readline.write_history_file(path)
        except OSError as e:
            logger.warning(f"Could not save shell history to {path}: {e}")
