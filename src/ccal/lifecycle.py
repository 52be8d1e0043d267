"""Container lifecycle — start, readiness, stop, clean, and rollback.

State machine for the single managed service::

    STOPPED --start--> STARTING --up ok--> AWAITING_READINESS --ready--> READY
                          |                        |
                       up failed               probe budget spent
                          v                        v
                      ROLLING_BACK -----------> STOPPED
    READY --stop/clean--> ROLLING_BACK --> STOPPED

Rollback is best-effort: its own failures are logged and swallowed so they
never mask the error that triggered it.
"""

from __future__ import annotations

from enum import Enum

from ccal.engine import EngineClient
from ccal.errors import ReadinessTimeoutError, StartError
from ccal.logger import logger
from ccal.readiness import OnProgress, ReadinessOutcome, ReadinessPoller
from ccal.session import Session


class ContainerState(Enum):
    STOPPED = "stopped"
    STARTING = "starting"
    AWAITING_READINESS = "awaiting_readiness"
    READY = "ready"
    ROLLING_BACK = "rolling_back"


_IN_FLIGHT = (ContainerState.STARTING, ContainerState.AWAITING_READINESS)


class LifecycleManager:
    def __init__(
        self,
        engine: EngineClient,
        poller: ReadinessPoller,
        *,
        probe: list[str],
        attempts: int = 15,
        interval: float = 2.0,
        session: Session | None = None,
    ) -> None:
        self.engine = engine
        self.poller = poller
        self.probe = probe
        self.attempts = attempts
        self.interval = interval
        self.session = session
        self.state = ContainerState.STOPPED
        self.readiness: ReadinessOutcome | None = None

    def _probe_once(self) -> bool:
        return self.engine.exec(self.probe).ok

    def start(self, on_progress: OnProgress | None = None) -> None:
        """Bring the service up and wait for it to pass its liveness probe.

        Raises StartError or ReadinessTimeoutError after rolling back.
        """
        if self.state in _IN_FLIGHT:
            raise RuntimeError(f"start() already in progress (state={self.state.value})")

        self.state = ContainerState.STARTING
        if self.session is not None:
            # Registered before ``up`` so an interrupt mid-start still tears down.
            self.session.defer(self._rollback_if_in_flight)

        logger.info("Starting service", service=self.engine.service)
        result = self.engine.up()
        if not result.ok:
            logger.error("Container start failed", exit_code=result.exit_code, output=result.output[-2000:])
            self.rollback()
            raise StartError(f"Container start failed (exit {result.exit_code})")

        self.state = ContainerState.AWAITING_READINESS
        self.readiness = self.poller.poll(
            self._probe_once,
            max_attempts=self.attempts,
            interval=self.interval,
            on_progress=on_progress,
        )
        if not self.readiness.ready:
            self.rollback()
            raise ReadinessTimeoutError(
                f"Container not ready after {self.readiness.attempts} attempts"
            )
        self.state = ContainerState.READY

    def rollback(self, *, volumes: bool = False) -> None:
        """Best-effort stop-and-remove; never raises."""
        self.state = ContainerState.ROLLING_BACK
        try:
            result = self.engine.down(volumes=volumes, remove_orphans=True)
            if not result.ok:
                logger.warning("Rollback: compose down failed", exit_code=result.exit_code)
        except Exception as exc:
            logger.warning("Rollback failed", err=str(exc))
        self.state = ContainerState.STOPPED

    def _rollback_if_in_flight(self) -> None:
        if self.state in _IN_FLIGHT:
            logger.info("Interrupted during start, rolling back", state=self.state.value)
            self.rollback()

    def stop(self) -> bool:
        """Tear the service down.  Returns whether ``down`` succeeded."""
        self.state = ContainerState.ROLLING_BACK
        result = self.engine.down(remove_orphans=False)
        self.state = ContainerState.STOPPED
        if not result.ok:
            logger.warning("compose down failed", exit_code=result.exit_code)
        return result.ok

    def clean(self, *, remove_image: bool = False) -> bool:
        """Remove containers, volumes and orphans; the shared image only on request.

        Unlike :meth:`rollback`, failures are reported: returns False when
        ``down -v`` or the image removal failed.
        """
        self.state = ContainerState.ROLLING_BACK
        result = self.engine.down(volumes=True, remove_orphans=True)
        self.state = ContainerState.STOPPED
        if not result.ok:
            logger.warning("compose down -v failed", exit_code=result.exit_code)
            return False
        if remove_image and self.engine.image_exists():
            removed = self.engine.remove_image()
            if not removed.ok:
                logger.warning("Image removal failed", image=self.engine.image, exit_code=removed.exit_code)
                return False
        return True
