"""Prerequisite checks — read-only, run before any state-changing action."""

from __future__ import annotations

import os
import shutil
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path

from ccal.errors import CcalError, MissingEnvironmentError
from ccal.logger import logger


@dataclass(frozen=True)
class PrerequisiteReport:
    missing_files: list[str] = field(default_factory=list)
    missing_binaries: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.missing_files and not self.missing_binaries


def check_prerequisites(
    files: Iterable[str],
    binaries: Iterable[str],
    *,
    cwd: Path,
) -> PrerequisiteReport:
    """Collect every missing file and binary (nothing is raised here)."""
    missing_files = [f for f in files if not (cwd / f).is_file()]
    missing_binaries = [b for b in binaries if shutil.which(b) is None]
    return PrerequisiteReport(missing_files=missing_files, missing_binaries=missing_binaries)


def verify_prerequisites(
    files: Iterable[str],
    binaries: Iterable[str],
    *,
    cwd: Path,
) -> PrerequisiteReport:
    """Like :func:`check_prerequisites`, but raise listing everything missing at once."""
    report = check_prerequisites(files, binaries, cwd=cwd)
    if not report.ok:
        logger.info(
            "Prerequisites missing",
            files=report.missing_files,
            binaries=report.missing_binaries,
        )
        raise MissingEnvironmentError(report.missing_files, report.missing_binaries)
    return report


def refuse_root() -> None:
    """Abort when running as root; group membership is set up for the real user."""
    if os.geteuid() == 0:
        raise CcalError("Don't run as root - run as your normal user")
