"""Shared test fixtures for ccal."""

from __future__ import annotations

import io
import os
from pathlib import Path

import pytest

from ccal.process import CommandResult

# ---------------------------------------------------------------------------
# Shared helpers (plain functions, not fixtures; importable by test files)
# ---------------------------------------------------------------------------

# Cached property names that must be set via __dict__ (not model_construct).
_CACHED_PROPERTY_NAMES = frozenset({"project_root", "dev_dir", "required_files"})


def make_settings(**overrides):
    """Create a Settings object with defaults, bypassing ccal.toml and env vars.

    Usage::

        s = make_settings(project_root=tmp_path)
        s = make_settings(readiness=ReadinessConfig(attempts=3))
    """
    from ccal.config import (
        AuthConfig,
        CleanConfig,
        DaemonConfig,
        OutputConfig,
        PermissionsConfig,
        ProjectConfig,
        ReadinessConfig,
        ServiceConfig,
        Settings,
        ToolsConfig,
    )

    cached = {k: overrides.pop(k) for k in list(overrides) if k in _CACHED_PROPERTY_NAMES}

    defaults = {
        "service": ServiceConfig(),
        "daemon": DaemonConfig(),
        "readiness": ReadinessConfig(),
        "auth": AuthConfig(),
        "permissions": PermissionsConfig(),
        "tools": ToolsConfig(),
        "clean": CleanConfig(),
        "output": OutputConfig(),
        "project": ProjectConfig(),
    }
    defaults.update(overrides)
    s = Settings.model_construct(**defaults)

    for key, value in cached.items():
        s.__dict__[key] = value

    return s


OK = CommandResult(output="", exit_code=0)
FAIL = CommandResult(output="", exit_code=1)


class RecordingPipe(io.BytesIO):
    """stdin pipe that keeps its bytes after close and snapshots the env on first write."""

    def __init__(self) -> None:
        super().__init__()
        self.data = b""
        self.env_at_write: dict[str, str] | None = None
        self.closed_by_caller = False

    def write(self, b) -> int:
        if self.env_at_write is None:
            self.env_at_write = dict(os.environ)
        self.data += bytes(b)
        return len(b)

    def close(self) -> None:
        self.closed_by_caller = True
        super().close()


class FakeProcess:
    """Popen stand-in.  With ``running=True`` it stays alive until terminated."""

    def __init__(self, returncode: int = 0, *, running: bool = False) -> None:
        self.stdin = RecordingPipe()
        self.returncode = returncode
        self.running = running
        self.terminated = False

    def poll(self) -> int | None:
        return None if self.running else self.returncode

    def wait(self, timeout: float | None = None) -> int:
        return self.returncode

    def terminate(self) -> None:
        self.running = False
        self.terminated = True
        self.returncode = -15

    def kill(self) -> None:
        self.terminate()
        self.returncode = -9


class FakeEngine:
    """EngineClient that records invocations instead of running docker."""

    service = "claude-code"
    image = "claude-code:latest"

    def __init__(
        self,
        *,
        ready: bool | list[bool] = True,
        image_present: bool = True,
        build_ok: bool = True,
        up_ok: bool = True,
        down_ok: bool = True,
        probe: bool | list[bool] = True,
        exec_returncode: int = 0,
        exec_running: bool = False,
        remove_ok: bool = True,
    ) -> None:
        self.calls: list[tuple] = []
        self._ready = ready
        self.image_present = image_present
        self.build_ok = build_ok
        self.up_ok = up_ok
        self.down_ok = down_ok
        self._probe = probe
        self.exec_returncode = exec_returncode
        self.exec_running = exec_running
        self.remove_ok = remove_ok
        self.piped: list[dict] = []
        self.processes: list[FakeProcess] = []

    @staticmethod
    def _next(source, index: int) -> bool:
        if isinstance(source, list):
            return source[min(index, len(source) - 1)]
        return source

    def names(self) -> list[str]:
        return [c[0] for c in self.calls]

    def is_ready(self) -> bool:
        n = self.names().count("info")
        self.calls.append(("info",))
        return self._next(self._ready, n)

    def start_daemon(self) -> CommandResult:
        self.calls.append(("start_daemon",))
        return OK

    def image_exists(self) -> bool:
        self.calls.append(("image_inspect",))
        return self.image_present

    def build(self, *, no_cache: bool = False) -> CommandResult:
        self.calls.append(("build", no_cache))
        if self.build_ok:
            self.image_present = True
            return OK
        return FAIL

    def up(self) -> CommandResult:
        self.calls.append(("up",))
        return OK if self.up_ok else FAIL

    def down(self, *, volumes: bool = False, remove_orphans: bool = True) -> CommandResult:
        self.calls.append(("down", volumes))
        return OK if self.down_ok else FAIL

    def exec(self, argv: list[str]) -> CommandResult:
        n = self.names().count("exec")
        self.calls.append(("exec", tuple(argv)))
        return OK if self._next(self._probe, n) else FAIL

    def exec_piped(self, argv: list[str], *, env: dict[str, str]) -> FakeProcess:
        self.calls.append(("exec_piped", tuple(argv)))
        self.piped.append({"argv": list(argv), "env": dict(env), "environ": dict(os.environ)})
        proc = FakeProcess(self.exec_returncode, running=self.exec_running)
        self.processes.append(proc)
        return proc

    def logs(self, *, follow: bool = True) -> CommandResult:
        self.calls.append(("logs", follow))
        return OK

    def remove_image(self) -> CommandResult:
        self.calls.append(("remove_image",))
        return OK if self.remove_ok else FAIL


class FakeIdentity:
    def __init__(
        self,
        *,
        authenticated: bool = True,
        login_ok: bool = True,
        token: str | None = "gho_fake_token_123",
    ) -> None:
        self.authenticated = authenticated
        self.login_ok = login_ok
        self._token = token
        self.calls: list[str] = []

    def is_authenticated(self) -> bool:
        self.calls.append("status")
        return self.authenticated

    def login(self) -> bool:
        self.calls.append("login")
        if self.login_ok:
            self.authenticated = True
        return self.login_ok

    def token(self, *, timeout: float):
        from pydantic import SecretStr

        self.calls.append("token")
        return SecretStr(self._token) if self._token is not None else None


class FakeReporter:
    def __init__(self, *, confirm: bool = True, answers: list[str] | None = None) -> None:
        self.messages: list[tuple[str, str]] = []
        self._confirm = confirm
        self._answers = list(answers or [])

    def _record(self, kind: str, message: str) -> None:
        self.messages.append((kind, message))

    def banner(self, subtitle: str) -> None:
        self._record("banner", subtitle)

    def section(self, title: str) -> None:
        self._record("section", title)

    def step(self, message: str) -> None:
        self._record("step", message)

    def success(self, message: str) -> None:
        self._record("success", message)

    def info(self, message: str) -> None:
        self._record("info", message)

    def warning(self, message: str) -> None:
        self._record("warning", message)

    def error(self, message: str) -> None:
        self._record("error", message)

    def progress(self, current: int, total: int, label: str) -> None:
        self._record("progress", f"{current}/{total}")

    def divider(self) -> None:
        self._record("divider", "")

    def confirm(self, prompt: str) -> bool:
        self._record("confirm", prompt)
        return self._confirm

    def ask(self, prompt: str) -> str:
        self._record("ask", prompt)
        if not self._answers:
            raise EOFError(prompt)
        return self._answers.pop(0)

    def of(self, kind: str) -> list[str]:
        return [m for k, m in self.messages if k == kind]


def touch_project_files(root: Path) -> None:
    (root / "Dockerfile").write_text("FROM scratch\n")
    (root / "docker-compose.yml").write_text("services: {}\n")


# ---------------------------------------------------------------------------
# Autouse fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def reset_settings(monkeypatch, tmp_path):
    """Each test starts from a pure-default Settings singleton rooted at tmp_path.

    Ignores any local ccal.toml and CCAL_ env vars.
    """
    safe = make_settings(project_root=tmp_path, dev_dir=tmp_path / "dev")
    monkeypatch.setattr("ccal.config._settings", safe)


# ---------------------------------------------------------------------------
# Reusable fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def engine():
    return FakeEngine()


@pytest.fixture
def identity():
    return FakeIdentity()


@pytest.fixture
def reporter():
    return FakeReporter()
