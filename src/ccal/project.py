"""Project scaffolding for ``ccal setup``: directory, templates, git.

These are single-shot filesystem steps.  The caller registers the created
directory with the session so a failed or interrupted setup leaves nothing
behind.
"""

from __future__ import annotations

import re
import shutil
import urllib.request
from importlib import resources
from pathlib import Path
from typing import TYPE_CHECKING

from ccal.errors import CcalError, UsageError
from ccal.logger import logger
from ccal.process import run_captured

if TYPE_CHECKING:
    from ccal.reporter import Reporter

_NAME_RE = re.compile(r"^[A-Za-z0-9_-]+$")

# template resource name -> file name in the project
TEMPLATE_FILES = {
    "Dockerfile": "Dockerfile",
    "docker-compose.yml": "docker-compose.yml",
    "gitignore": ".gitignore",
}

CLAUDE_MD = "CLAUDE.md"

# files staged by the initial commit, when present
TRACKED_FILES = (*TEMPLATE_FILES.values(), CLAUDE_MD)


def is_valid_project_name(name: str) -> bool:
    return bool(_NAME_RE.match(name))


def prompt_project_name(reporter: Reporter) -> str:
    """Ask until a valid name is given.  Raises UsageError if stdin runs out first."""
    while True:
        try:
            name = reporter.ask("Project name (alphanumeric/dash/underscore)").strip()
        except EOFError:
            raise UsageError("No project name given (stdin closed)") from None
        if is_valid_project_name(name):
            return name
        if name:
            reporter.warning("Invalid characters in name. Use only: a-z A-Z 0-9 _ -")


def create_project(dev_dir: Path, name: str, *, reporter: Reporter) -> Path | None:
    """Create ``dev_dir/name``; returns None if the user declines to overwrite."""
    project_dir = dev_dir / name
    if project_dir.exists():
        reporter.warning(f"Directory already exists: {project_dir}")
        if not reporter.confirm("Overwrite existing directory?"):
            return None
        shutil.rmtree(project_dir)
    try:
        project_dir.mkdir(parents=True)
    except OSError as exc:
        raise CcalError(f"Cannot create {project_dir}: {exc}") from exc
    logger.info("Project directory created", path=str(project_dir))
    return project_dir


def remove_project(project_dir: Path) -> None:
    if project_dir.is_dir():
        shutil.rmtree(project_dir, ignore_errors=True)
        logger.info("Removed partial project", path=str(project_dir))


def copy_templates(project_dir: Path) -> list[str]:
    """Copy packaged templates, skipping files already present.  Returns installed names."""
    installed: list[str] = []
    templates = resources.files("ccal") / "templates"
    for resource, target_name in TEMPLATE_FILES.items():
        target = project_dir / target_name
        if target.exists():
            logger.debug("Template skipped, file exists", file=target_name)
            continue
        target.write_bytes((templates / resource).read_bytes())
        installed.append(target_name)
    return installed


def download_claude_md(project_dir: Path, url: str, *, timeout: float = 15.0) -> bool:
    """Fetch the shared CLAUDE.md into *project_dir*.

    Optional: returns False on any network or HTTP error instead of raising.
    An existing CLAUDE.md is left alone and counts as success.
    """
    target = project_dir / CLAUDE_MD
    if target.exists():
        return True
    try:
        with urllib.request.urlopen(url, timeout=timeout) as resp:
            body = resp.read()
    except (OSError, ValueError) as exc:
        logger.warning("CLAUDE.md download failed", url=url, err=str(exc))
        return False
    target.write_bytes(body)
    logger.info("CLAUDE.md downloaded", url=url, size=len(body))
    return True


def _git(project_dir: Path, *args: str):
    return run_captured(["git", *args], cwd=project_dir)


def init_git(project_dir: Path) -> bool:
    """``git init`` + add templates; commit only when an identity is configured.

    Returns True when an initial commit was created.
    """
    if (project_dir / ".git").is_dir():
        return False
    if not _git(project_dir, "init", "-q").ok:
        raise CcalError("git init failed")
    for name in TRACKED_FILES:
        if (project_dir / name).is_file():
            _git(project_dir, "add", name)

    name = _git(project_dir, "config", "user.name").output
    email = _git(project_dir, "config", "user.email").output
    if not (name and email):
        logger.info("Git identity not configured, skipping initial commit")
        return False
    if _git(project_dir, "diff", "--cached", "--quiet").ok:
        return False
    if not _git(project_dir, "commit", "-q", "-m", "Initial CCAL setup").ok:
        raise CcalError("git commit failed")
    return True
