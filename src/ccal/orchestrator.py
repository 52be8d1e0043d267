"""Orchestration actions — one method per CLI subcommand.

Ordering is fixed: prerequisites → daemon → image → start/readiness →
handoff.  Each step either completes or raises a :class:`CcalError`; the
session's cleanup stack rolls back whatever was created.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from pathlib import Path

from ccal.config import Settings
from ccal.daemon import ElevatedDaemonCheck, ensure_daemon, wait_for_daemon
from ccal.engine import EngineClient
from ccal.handoff import CredentialHandoff
from ccal.identity import IdentityClient
from ccal.images import ImageBuilder
from ccal.lifecycle import LifecycleManager
from ccal.logger import logger
from ccal.permissions import Membership, PermissionActivator
from ccal.prerequisites import refuse_root, verify_prerequisites
from ccal.project import (
    copy_templates,
    create_project,
    download_claude_md,
    init_git,
    prompt_project_name,
    remove_project,
)
from ccal.readiness import ReadinessPoller
from ccal.reporter import Reporter
from ccal.session import Session


class Orchestrator:
    def __init__(
        self,
        settings: Settings,
        *,
        engine: EngineClient,
        identity: IdentityClient,
        reporter: Reporter,
        session: Session,
        handoff: CredentialHandoff | None = None,
        activator: PermissionActivator | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.settings = settings
        self.engine = engine
        self.identity = identity
        self.reporter = reporter
        self.session = session
        self.sleep = sleep
        self.images = ImageBuilder(engine)
        self.poller = ReadinessPoller(sleep=sleep)
        self.lifecycle = LifecycleManager(
            engine,
            self.poller,
            probe=settings.readiness.probe,
            attempts=settings.readiness.attempts,
            interval=settings.readiness.interval,
            session=session,
        )
        self.handoff = handoff or CredentialHandoff.for_terminal(
            identity,
            engine,
            token_env=settings.auth.token_env,
            on_login=lambda: reporter.info("Please follow the authentication prompts..."),
        )
        self.activator = activator or PermissionActivator(settings.permissions.group)

    # ------------------------------------------------------------------
    # Shared steps
    # ------------------------------------------------------------------

    def preflight(self) -> None:
        self.reporter.step("Verifying project environment")
        verify_prerequisites(
            self.settings.required_files,
            ["docker", self.settings.auth.cli],
            cwd=self.settings.project_root,
        )
        self.reporter.success("Project files and commands found")
        wait_for_daemon(
            self.engine,
            attempts=self.settings.daemon.attempts,
            interval=self.settings.daemon.interval,
            sleep=self.sleep,
        )
        self.reporter.success("Docker daemon ready")

    def start_service(self) -> None:
        self.preflight()

        built = self.images.ensure(
            on_build=lambda: self.reporter.step("Building Docker image (this may take a few minutes)")
        )
        self.reporter.success("Docker image built successfully" if built else "Docker image already exists")

        self.reporter.step("Starting container")
        self.lifecycle.start(on_progress=self._report_readiness)
        self.reporter.success("Container is ready")

    def _report_readiness(self, attempt: int, total: int) -> None:
        self.reporter.progress(attempt, total, "Checking container...")

    def _verify_project_files(self) -> None:
        verify_prerequisites(self.settings.required_files, ["docker"], cwd=self.settings.project_root)

    # ------------------------------------------------------------------
    # Subcommands
    # ------------------------------------------------------------------

    def run(self, args: list[str]) -> int:
        self.start_service()
        return self._handoff([*self.settings.tools.run, *args])

    def shell(self, args: list[str]) -> int:
        self.start_service()
        return self._handoff([*self.settings.tools.shell, *args])

    def _handoff(self, command: list[str]) -> int:
        self.reporter.step("Launching CCAL")
        code = self.handoff.handoff(command, timeout=self.settings.auth.token_timeout)
        logger.info("Interactive session ended", exit_code=code)
        return code

    def stop(self) -> int:
        self._verify_project_files()
        self.reporter.step("Stopping CCAL container")
        if not self.lifecycle.stop():
            self.reporter.warning("docker compose down reported an error")
            return 1
        self.reporter.success("Container stopped")
        return 0

    def logs(self) -> int:
        self.reporter.info("Showing container logs (Ctrl+C to exit)")
        self.reporter.divider()
        try:
            self.engine.logs(follow=True)
        except KeyboardInterrupt:
            pass
        return 0

    def build(self) -> int:
        self.preflight()
        self.reporter.step("Rebuilding Docker image from scratch (this will take several minutes)")
        self.images.ensure(force_rebuild=True)
        self.reporter.success("Image rebuilt successfully")
        return 0

    def clean(self, *, remove_image: bool | None = None) -> int:
        self._verify_project_files()
        if remove_image is None:
            remove_image = self.settings.clean.remove_image
        what = "containers, volumes and the image" if remove_image else "containers and volumes"
        self.reporter.warning(f"This will remove all CCAL {what}")
        if not self.reporter.confirm("Are you sure? This cannot be undone!"):
            self.reporter.info("Cleanup cancelled")
            return 0
        self.reporter.step(f"Cleaning up {what}")
        if not self.lifecycle.clean(remove_image=remove_image):
            self.reporter.warning("Cleanup incomplete: docker reported an error (see log)")
            return 1
        self.reporter.success("Cleanup completed")
        return 0

    # ------------------------------------------------------------------
    # First-time setup
    # ------------------------------------------------------------------

    def setup(self) -> int:
        self.reporter.section("Checking prerequisites")
        refuse_root()
        verify_prerequisites([], ["docker", self.settings.auth.cli, "git"], cwd=self.settings.project_root)
        self.reporter.success("All prerequisites satisfied")

        self.reporter.section("Docker Configuration")
        self._setup_engine_access()
        self.reporter.success("Docker ready for container operations")

        self.reporter.section("GitHub Authentication")
        self.handoff.ensure_login()
        self.reporter.success("GitHub authenticated")

        self.reporter.section("Project Configuration")
        name = prompt_project_name(self.reporter)
        project_dir = create_project(self.settings.dev_dir, name, reporter=self.reporter)
        if project_dir is None:
            self.reporter.info("Setup cancelled by user")
            return 0
        self.session.defer(lambda: remove_project(project_dir), on_failure_only=True)
        self.reporter.success(f"Project created: {project_dir}")

        self.reporter.section("Installing Project Templates")
        for installed in copy_templates(project_dir):
            self.reporter.success(f"{installed} installed")
        self._fetch_claude_md(project_dir)

        self.reporter.section("Git Repository Setup")
        if init_git(project_dir):
            self.reporter.success("Initial commit created")
        else:
            self.reporter.info("Git repository ready (no commit created)")

        self.session.commit()
        self.reporter.success("Setup complete")
        self.reporter.info(f"Next step: cd {project_dir} && ccal")
        return 0

    def _fetch_claude_md(self, project_dir: Path) -> None:
        url = self.settings.project.claude_md_url
        if not url:
            return
        self.reporter.step("Downloading CLAUDE.md from GitHub")
        if download_claude_md(project_dir, url):
            self.reporter.success("CLAUDE.md downloaded successfully")
        else:
            self.reporter.warning("Failed to download CLAUDE.md - continuing without it")

    def _setup_engine_access(self) -> None:
        """Daemon up, then group membership effective.

        Without membership our own ``docker info`` fails even when the daemon
        is healthy, so liveness is checked through ``sudo`` until the
        activator has confirmed access.  A daemon that never comes up is a
        DaemonTimeoutError; only a live daemon with an unusable group is
        reported as PermissionPendingError.
        """
        daemon = self.settings.daemon
        if self.activator.current() is Membership.ACTIVE:
            client = self.engine
        else:
            client = ElevatedDaemonCheck(self.engine)
        if ensure_daemon(client, attempts=daemon.attempts, interval=daemon.interval, sleep=self.sleep):
            self.reporter.success("Docker daemon started")
        else:
            self.reporter.success("Docker daemon already running")

        if self.activator.current() is Membership.ACTIVE:
            return
        self.reporter.step(f"Adding user to the '{self.activator.group}' group")
        self.activator.activate()
        self.reporter.success("Docker group membership effective")
