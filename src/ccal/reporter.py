"""User-facing terminal output.

Two implementations of one :class:`Reporter` protocol, picked once at
startup by :func:`select_reporter`.  Structured diagnostics go through
``ccal.logger`` instead; reporters are for the person at the terminal.
"""

from __future__ import annotations

import os
import sys
from typing import Protocol, TextIO

from rich.console import Console
from rich.prompt import Confirm
from rich.rule import Rule

BANNER = r"""
  /$$$$$$   /$$$$$$   /$$$$$$  /$$
 /$$__  $$ /$$__  $$ /$$__  $$| $$
| $$  \__/| $$  \__/| $$  \ $$| $$
| $$      | $$      | $$$$$$$$| $$
| $$      | $$      | $$__  $$| $$
| $$    $$| $$    $$| $$  | $$| $$
|  $$$$$$/|  $$$$$$/| $$  | $$| $$$$$$$$
 \______/  \______/ |__/  |__/|________/
"""


class Reporter(Protocol):
    def banner(self, subtitle: str) -> None: ...
    def section(self, title: str) -> None: ...
    def step(self, message: str) -> None: ...
    def success(self, message: str) -> None: ...
    def info(self, message: str) -> None: ...
    def warning(self, message: str) -> None: ...
    def error(self, message: str) -> None: ...
    def progress(self, current: int, total: int, label: str) -> None: ...
    def divider(self) -> None: ...
    def confirm(self, prompt: str) -> bool: ...
    def ask(self, prompt: str) -> str: ...


class RichReporter:
    def __init__(self, console: Console | None = None, err_console: Console | None = None) -> None:
        self.console = console or Console()
        self.err_console = err_console or Console(stderr=True)

    def banner(self, subtitle: str) -> None:
        self.console.print(BANNER, style="bold cyan", highlight=False)
        self.console.print(f"🤖 {subtitle}\n")

    def section(self, title: str) -> None:
        self.console.print(Rule(f"[bold]{title}"))

    def step(self, message: str) -> None:
        self.console.print(f"[cyan]🔧[/] {message}")

    def success(self, message: str) -> None:
        self.console.print(f"[green]✅[/] {message}")

    def info(self, message: str) -> None:
        self.console.print(f"[blue]ℹ️ [/] {message}")

    def warning(self, message: str) -> None:
        self.console.print(f"[yellow]⚠️ [/] {message}")

    def error(self, message: str) -> None:
        self.err_console.print(f"[red]❌[/] {message}")

    def progress(self, current: int, total: int, label: str) -> None:
        width = 30
        filled = width * current // max(total, 1)
        bar = "█" * filled + "░" * (width - filled)
        end = "\n" if current >= total else ""
        self.console.print(
            f"\r[cyan]{bar}[/] {current}/{total} {label}", end=end, highlight=False
        )

    def divider(self) -> None:
        self.console.print(Rule(style="dim"))

    def confirm(self, prompt: str) -> bool:
        try:
            return Confirm.ask(f"[yellow]❓[/] {prompt}", console=self.console, default=False)
        except EOFError:
            return False

    def ask(self, prompt: str) -> str:
        """Raises EOFError when stdin is exhausted."""
        return self.console.input(f"[magenta]➤[/] {prompt}: ")


class PlainReporter:
    """ASCII-only output for pipes, dumb terminals and NO_COLOR."""

    def __init__(self, out: TextIO | None = None, err: TextIO | None = None) -> None:
        self.out = out or sys.stdout
        self.err = err or sys.stderr

    def _emit(self, text: str) -> None:
        print(text, file=self.out, flush=True)

    def banner(self, subtitle: str) -> None:
        self._emit(f"CCAL - {subtitle}")

    def section(self, title: str) -> None:
        self._emit(f"\n=== {title} ===")

    def step(self, message: str) -> None:
        self._emit(f"* {message}")

    def success(self, message: str) -> None:
        self._emit(f"+ {message}")

    def info(self, message: str) -> None:
        self._emit(f"i {message}")

    def warning(self, message: str) -> None:
        self._emit(f"! {message}")

    def error(self, message: str) -> None:
        print(f"x {message}", file=self.err, flush=True)

    def progress(self, current: int, total: int, label: str) -> None:
        self._emit(f"  [{current}/{total}] {label}")

    def divider(self) -> None:
        self._emit("---")

    def confirm(self, prompt: str) -> bool:
        self.out.write(f"? {prompt} [y/N] ")
        self.out.flush()
        reply = sys.stdin.readline().strip().lower()
        return reply in ("y", "yes")

    def ask(self, prompt: str) -> str:
        self.out.write(f"> {prompt}: ")
        self.out.flush()
        line = sys.stdin.readline()
        if not line:
            raise EOFError(prompt)
        return line.strip()


def wants_plain(stream: TextIO | None = None, *, force_plain: bool = False) -> bool:
    if force_plain:
        return True
    stream = stream or sys.stdout
    if os.environ.get("NO_COLOR"):
        return True
    if os.environ.get("TERM") == "dumb":
        return True
    try:
        return not stream.isatty()
    except (AttributeError, ValueError):
        return True


def select_reporter(*, force_plain: bool = False) -> Reporter:
    """Pick the reporter once, based on what the terminal can render."""
    if wants_plain(force_plain=force_plain):
        return PlainReporter()
    return RichReporter()
