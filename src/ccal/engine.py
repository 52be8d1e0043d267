"""Container engine client — thin typed wrapper around ``docker compose``.

Every operation the orchestrator needs from the engine goes through
:class:`ComposeEngine`.  Components depend on the :class:`EngineClient`
protocol, so tests substitute a fake that records invocations.
"""

from __future__ import annotations

import subprocess
from pathlib import Path
from typing import Protocol, runtime_checkable

from ccal.logger import logger
from ccal.process import CommandResult, run_captured, run_streamed


@runtime_checkable
class DaemonClient(Protocol):
    """Liveness view of the engine daemon."""

    def is_ready(self) -> bool: ...
    def start_daemon(self) -> CommandResult: ...


@runtime_checkable
class EngineClient(DaemonClient, Protocol):
    """Operations on the single managed service."""

    service: str
    image: str

    def image_exists(self) -> bool: ...
    def build(self, *, no_cache: bool = False) -> CommandResult: ...
    def up(self) -> CommandResult: ...
    def down(self, *, volumes: bool = False, remove_orphans: bool = True) -> CommandResult: ...
    def exec(self, argv: list[str]) -> CommandResult: ...
    def exec_piped(self, argv: list[str], *, env: dict[str, str]) -> subprocess.Popen[bytes]: ...
    def logs(self, *, follow: bool = True) -> CommandResult: ...
    def remove_image(self) -> CommandResult: ...


class ComposeEngine:
    """:class:`EngineClient` backed by the ``docker`` CLI."""

    def __init__(
        self,
        *,
        service: str,
        image: str,
        project_dir: Path,
        compose_file: str = "docker-compose.yml",
        cli: str = "docker",
        start_command: list[str] | None = None,
    ) -> None:
        self.service = service
        self.image = image
        self.project_dir = project_dir
        self.compose_file = compose_file
        self.cli = cli
        self.start_command = start_command or ["sudo", "systemctl", "start", "docker"]

    def _compose(self, *args: str) -> list[str]:
        return [self.cli, "compose", "-f", self.compose_file, *args]

    # -- daemon ---------------------------------------------------------

    def is_ready(self) -> bool:
        return run_captured([self.cli, "info"], timeout=10).ok

    def start_daemon(self) -> CommandResult:
        logger.info("Starting container engine daemon", cmd=self.start_command)
        return run_streamed(self.start_command)

    # -- image ----------------------------------------------------------

    def image_exists(self) -> bool:
        return run_captured([self.cli, "image", "inspect", self.image]).ok

    def build(self, *, no_cache: bool = False) -> CommandResult:
        args = ["build", "--no-cache"] if no_cache else ["build"]
        return run_streamed(self._compose(*args), cwd=self.project_dir)

    def remove_image(self) -> CommandResult:
        return run_captured([self.cli, "image", "rm", self.image])

    # -- service --------------------------------------------------------

    def up(self) -> CommandResult:
        return run_captured(self._compose("up", "-d"), cwd=self.project_dir, timeout=300)

    def down(self, *, volumes: bool = False, remove_orphans: bool = True) -> CommandResult:
        args = ["down"]
        if volumes:
            args.append("-v")
        if remove_orphans:
            args.append("--remove-orphans")
        return run_captured(self._compose(*args), cwd=self.project_dir, timeout=120)

    def exec(self, argv: list[str]) -> CommandResult:
        """Run *argv* inside the service without a TTY and capture the result."""
        return run_captured(self._compose("exec", "-T", self.service, *argv), cwd=self.project_dir)

    def exec_piped(self, argv: list[str], *, env: dict[str, str]) -> subprocess.Popen[bytes]:
        """Spawn *argv* inside the service with stdin bound to a pipe.

        *env* names variables set inside the container only (``-e KEY=VALUE``);
        callers must never put secrets here since they end up in argv.
        """
        flags: list[str] = []
        for key, value in env.items():
            flags += ["-e", f"{key}={value}"]
        cmd = self._compose("exec", "-T", *flags, self.service, *argv)
        return subprocess.Popen(cmd, cwd=str(self.project_dir), stdin=subprocess.PIPE)

    def logs(self, *, follow: bool = True) -> CommandResult:
        args = ["logs", "-f", self.service] if follow else ["logs", self.service]
        return run_streamed(self._compose(*args), cwd=self.project_dir)
