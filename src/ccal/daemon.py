"""Container engine daemon readiness."""

from __future__ import annotations

import time
from collections.abc import Callable
from enum import Enum

from ccal.engine import DaemonClient
from ccal.errors import DaemonTimeoutError
from ccal.logger import logger
from ccal.process import CommandResult, run_captured


class DaemonState(Enum):
    UNREACHABLE = "unreachable"
    READY = "ready"


class ElevatedDaemonCheck:
    """:class:`DaemonClient` that probes through ``sudo -n <cli> info``.

    Before group membership is effective a plain ``docker info`` fails even
    against a healthy daemon, so setup checks liveness this way instead.
    ``-n`` keeps sudo from prompting; the credentials cached by the start
    command are enough.
    """

    def __init__(self, engine: DaemonClient, *, cli: str = "docker") -> None:
        self.engine = engine
        self.cli = cli

    def is_ready(self) -> bool:
        return run_captured(["sudo", "-n", self.cli, "info"], timeout=10).ok

    def start_daemon(self) -> CommandResult:
        return self.engine.start_daemon()


def probe_daemon(client: DaemonClient) -> DaemonState:
    return DaemonState.READY if client.is_ready() else DaemonState.UNREACHABLE


def wait_for_daemon(
    client: DaemonClient,
    *,
    attempts: int = 10,
    interval: float = 1.0,
    sleep: Callable[[float], None] = time.sleep,
) -> DaemonState:
    """Poll the daemon until it responds, raising DaemonTimeoutError when the budget runs out.

    An already-running daemon costs exactly one probe and no sleep.
    """
    for attempt in range(1, attempts + 1):
        if client.is_ready():
            logger.debug("Docker daemon is running", attempt=attempt)
            return DaemonState.READY
        if attempt < attempts:
            sleep(interval)
    raise DaemonTimeoutError(
        f"Container engine did not respond within {attempts} attempts "
        f"({attempts * interval:g}s) - start it with: sudo systemctl start docker"
    )


def ensure_daemon(
    client: DaemonClient,
    *,
    attempts: int = 10,
    interval: float = 1.0,
    sleep: Callable[[float], None] = time.sleep,
) -> bool:
    """Start the daemon once if it is down, then wait for it.

    Returns True if this call started the daemon.  A failed start is not
    retried; the wait that follows decides the outcome.
    """
    if probe_daemon(client) is DaemonState.READY:
        return False
    result = client.start_daemon()
    if not result.ok:
        logger.warning("Daemon start command failed", exit_code=result.exit_code)
    wait_for_daemon(client, attempts=attempts, interval=interval, sleep=sleep)
    return True
