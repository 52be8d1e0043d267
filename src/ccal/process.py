"""Subprocess wrappers shared by the collaborator clients.

Each call returns a :class:`CommandResult` instead of raising on non-zero
exit, so callers branch on typed values rather than exceptions or free text.
A missing binary maps to exit 127 and a timeout to exit 124, mirroring what
a shell would report.
"""

from __future__ import annotations

import subprocess
from dataclasses import dataclass
from pathlib import Path

from ccal.logger import logger

EXIT_TIMEOUT = 124
EXIT_NOT_FOUND = 127


@dataclass(frozen=True)
class CommandResult:
    """Outcome of one external command."""

    output: str
    exit_code: int

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


def run_captured(
    argv: list[str],
    *,
    cwd: Path | None = None,
    timeout: float | None = 30,
) -> CommandResult:
    """Run *argv* with stdout/stderr captured (blocking)."""
    try:
        proc = subprocess.run(
            argv,
            cwd=str(cwd) if cwd else None,
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except FileNotFoundError:
        logger.debug("Command not found", cmd=argv[0])
        return CommandResult(output="", exit_code=EXIT_NOT_FOUND)
    except subprocess.TimeoutExpired:
        logger.warning("Command timed out", cmd=argv[0], timeout=timeout)
        return CommandResult(output="", exit_code=EXIT_TIMEOUT)
    return CommandResult(output=proc.stdout.strip(), exit_code=proc.returncode)


def run_streamed(
    argv: list[str],
    *,
    cwd: Path | None = None,
    timeout: float | None = None,
) -> CommandResult:
    """Run *argv* attached to the caller's terminal (output is not buffered).

    Used for long builds, log following and interactive prompts, where the
    user has to see or answer the command directly.
    """
    try:
        proc = subprocess.run(argv, cwd=str(cwd) if cwd else None, timeout=timeout)
    except FileNotFoundError:
        logger.debug("Command not found", cmd=argv[0])
        return CommandResult(output="", exit_code=EXIT_NOT_FOUND)
    except subprocess.TimeoutExpired:
        logger.warning("Command timed out", cmd=argv[0], timeout=timeout)
        return CommandResult(output="", exit_code=EXIT_TIMEOUT)
    return CommandResult(output="", exit_code=proc.returncode)
