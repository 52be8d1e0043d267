"""Per-invocation session context with deferred cleanup.

Cleanups are registered at the earliest point a cleanable resource could
exist and run once, in reverse order, on every exit path: normal return,
error, Ctrl+C, or SIGTERM.  ``commit()`` drops cleanups that should only
fire on failure (e.g. a half-created project directory).
"""

from __future__ import annotations

import contextlib
import signal
from collections.abc import Callable
from dataclasses import dataclass, field
from types import FrameType
from typing import Any

from ccal.logger import logger


def _terminate(signum: int, frame: FrameType | None) -> None:
    raise SystemExit(128 + signum)


@dataclass
class Session:
    command: str = "run"
    args: list[str] = field(default_factory=list)
    _stack: contextlib.ExitStack = field(default_factory=contextlib.ExitStack, repr=False)
    _on_failure: contextlib.ExitStack = field(default_factory=contextlib.ExitStack, repr=False)
    _closed: bool = field(default=False, repr=False)
    _prev_sigterm: Any = field(default=None, repr=False)

    def __enter__(self) -> Session:
        self._prev_sigterm = signal.signal(signal.SIGTERM, _terminate)
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        try:
            if exc_type is not None:
                self._on_failure.close()
            else:
                self._on_failure.pop_all()
            self.close()
        finally:
            if self._prev_sigterm is not None:
                signal.signal(signal.SIGTERM, self._prev_sigterm)

    def defer(self, fn: Callable[[], Any], *, on_failure_only: bool = False) -> None:
        """Register *fn* to run at session end.  Errors from *fn* are logged, never raised."""
        target = self._on_failure if on_failure_only else self._stack
        target.callback(self._guarded, fn)

    def commit(self) -> None:
        """Discard failure-only cleanups; the work they would undo succeeded."""
        self._on_failure.pop_all()

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._stack.close()

    @staticmethod
    def _guarded(fn: Callable[[], Any]) -> None:
        try:
            fn()
        except Exception as exc:
            logger.warning("Cleanup step failed", step=getattr(fn, "__name__", repr(fn)), err=str(exc))
