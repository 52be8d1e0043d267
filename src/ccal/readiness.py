"""In-container readiness polling."""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass

from ccal.logger import logger

Probe = Callable[[], bool]
OnProgress = Callable[[int, int], None]


@dataclass(frozen=True)
class ReadinessOutcome:
    ready: bool
    attempts: int


class ReadinessPoller:
    """Run a probe until it passes or the attempt budget is spent.

    Timeout is reported, not raised: the lifecycle manager decides to roll
    back.  ``attempts`` on the last outcome is kept for inspection.
    """

    def __init__(self, *, sleep: Callable[[float], None] = time.sleep) -> None:
        self._sleep = sleep
        self.last: ReadinessOutcome | None = None

    def poll(
        self,
        probe: Probe,
        *,
        max_attempts: int = 15,
        interval: float = 2.0,
        on_progress: OnProgress | None = None,
    ) -> ReadinessOutcome:
        attempt = 0
        while attempt < max_attempts:
            attempt += 1
            if probe():
                self.last = ReadinessOutcome(ready=True, attempts=attempt)
                logger.info("Service ready", attempts=attempt)
                return self.last
            if attempt == max_attempts:
                break
            self._sleep(interval)
            if on_progress is not None:
                on_progress(attempt, max_attempts)

        self.last = ReadinessOutcome(ready=False, attempts=attempt)
        logger.warning("Service not ready", attempts=attempt)
        return self.last
