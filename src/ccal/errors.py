"""Error taxonomy for orchestration failures.

Every error carries the process exit status the CLI should use and a single
human-readable message.  Only ``PermissionPendingError`` exits 0: the user
has to log in again before anything else can work, which is not a failure.
"""

from __future__ import annotations


class CcalError(Exception):
    """Base class for errors the dispatcher reports and exits on."""

    exit_code: int = 1


class MissingEnvironmentError(CcalError):
    """Required binaries or project files are missing."""

    def __init__(self, missing_files: list[str], missing_binaries: list[str]) -> None:
        self.missing_files = list(missing_files)
        self.missing_binaries = list(missing_binaries)
        parts = []
        if self.missing_files:
            parts.append(f"missing project files: {', '.join(self.missing_files)}")
        if self.missing_binaries:
            parts.append(f"missing commands: {', '.join(self.missing_binaries)}")
        super().__init__("; ".join(parts) or "environment incomplete")


class PermissionGrantError(CcalError):
    """The privileged group-add command failed."""


class PermissionPendingError(CcalError):
    """Group membership was granted but this process tree cannot see it yet."""

    exit_code = 0

    def __init__(self, group: str) -> None:
        self.group = group
        super().__init__(
            f"Added to the '{group}' group, but it is not active in this session. "
            "Log out and back in, then run the command again."
        )


class DaemonTimeoutError(CcalError):
    """The container engine daemon never became responsive."""


class BuildError(CcalError):
    """The image build exited non-zero."""


class StartError(CcalError):
    """The service failed to start."""


class ReadinessTimeoutError(CcalError):
    """The service started but never passed its liveness probe."""


class AuthError(CcalError):
    """Identity provider login or token retrieval failed."""


class UsageError(CcalError):
    """Unknown subcommand or bad arguments."""
