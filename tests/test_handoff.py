"""Tests for credential handoff.

The token must reach the container only through the exec stdin pipe:
never argv, never the outer environment.
"""

from __future__ import annotations

import os
from unittest.mock import patch

import pytest
from conftest import FakeEngine, FakeIdentity

from ccal.errors import AuthError
from ccal.handoff import STDIN_MARKER, CredentialHandoff, build_shim

TOKEN = "gho_fake_token_123"


def _handoff(engine, identity, **kw) -> CredentialHandoff:
    return CredentialHandoff(identity, engine, stdin_fd=None, **kw)


class TestNoSecretLeak:
    def test_token_only_in_pipe(self):
        engine = FakeEngine()
        identity = FakeIdentity(token=TOKEN)

        _handoff(engine, identity).handoff(["claude", "--dangerously-skip-permissions"])

        [piped] = engine.piped
        assert all(TOKEN not in arg for arg in piped["argv"])
        assert all(TOKEN not in v for v in piped["env"].values())
        assert all(TOKEN not in v for v in piped["environ"].values())

        pipe = engine.processes[0].stdin
        assert pipe.env_at_write is not None
        assert all(TOKEN not in v for v in pipe.env_at_write.values())
        assert pipe.data == f"{TOKEN}\n".encode()
        assert TOKEN not in os.environ.values()

    def test_pipe_closed_after_handoff(self):
        engine = FakeEngine()
        _handoff(engine, FakeIdentity()).handoff(["bash"])
        assert engine.processes[0].stdin.closed_by_caller is True


class TestCommandShape:
    def test_shim_execs_inner_command(self):
        engine = FakeEngine()
        _handoff(engine, FakeIdentity()).handoff(["claude", "--resume"])

        argv = engine.piped[0]["argv"]
        assert argv[:2] == ["sh", "-c"]
        assert argv[2] == build_shim("GITHUB_TOKEN")
        assert argv[3:] == ["--", "claude", "--resume"]
        assert engine.piped[0]["env"] == {STDIN_MARKER: "1"}

    def test_shim_exports_configured_variable(self):
        shim = build_shim("GH_TOKEN")
        assert "read -r token" in shim
        assert 'export GH_TOKEN="$token"' in shim
        assert shim.rstrip().endswith('exec "$@"')

    def test_returns_inner_exit_code(self):
        engine = FakeEngine(exec_returncode=3)
        assert _handoff(engine, FakeIdentity()).handoff(["bash"]) == 3


class TestAuthentication:
    def test_authenticated_user_skips_login(self):
        identity = FakeIdentity(authenticated=True)
        _handoff(FakeEngine(), identity).handoff(["bash"])
        assert "login" not in identity.calls

    def test_login_runs_when_unauthenticated(self):
        identity = FakeIdentity(authenticated=False)
        notified: list[bool] = []
        _handoff(FakeEngine(), identity, on_login=lambda: notified.append(True)).handoff(["bash"])
        assert identity.calls[:2] == ["status", "login"]
        assert notified == [True]

    def test_login_failure_raises(self):
        engine = FakeEngine()
        identity = FakeIdentity(authenticated=False, login_ok=False)
        with pytest.raises(AuthError, match="authentication failed"):
            _handoff(engine, identity).handoff(["bash"])
        assert engine.piped == []

    def test_missing_token_raises(self):
        engine = FakeEngine()
        with pytest.raises(AuthError, match="token"):
            _handoff(engine, FakeIdentity(token=None)).handoff(["bash"])
        assert engine.piped == []

    def test_slow_token_exceeds_timeout(self):
        engine = FakeEngine()
        ticks = iter([0.0, 31.0])
        handoff = _handoff(engine, FakeIdentity(), clock=lambda: next(ticks))
        with pytest.raises(AuthError, match="Timed out"):
            handoff.handoff(["bash"], timeout=30.0)
        assert engine.piped == []


class TestPipe:
    def test_broken_pipe_raises_auth_error(self):
        engine = FakeEngine()
        original = engine.exec_piped

        def exec_piped(argv, *, env):
            proc = original(argv, env=env)

            def broken(_):
                raise BrokenPipeError

            proc.stdin.write = broken
            return proc

        engine.exec_piped = exec_piped
        with pytest.raises(AuthError, match="closed the credential pipe"):
            _handoff(engine, FakeIdentity()).handoff(["bash"])

    def test_forwards_stdin_after_token(self):
        class _SlowProcess:
            """Stays alive until its stdin is closed."""

            def __init__(self, pipe):
                self.stdin = pipe
                self.returncode = 0

            def poll(self):
                return 0 if self.stdin.closed_by_caller else None

            def wait(self):
                return 0

        engine = FakeEngine()
        original = engine.exec_piped

        def exec_piped(argv, *, env):
            return _SlowProcess(original(argv, env=env).stdin)

        engine.exec_piped = exec_piped

        read_fd, write_fd = os.pipe()
        os.write(write_fd, b"hello\n")
        os.close(write_fd)
        try:
            handoff = CredentialHandoff(FakeIdentity(token=TOKEN), engine, stdin_fd=read_fd)
            assert handoff.handoff(["bash"]) == 0
        finally:
            os.close(read_fd)

        # the proxy proc wrapped the first RecordingPipe
        pipe = engine.processes[0].stdin
        assert pipe.data == f"{TOKEN}\nhello\n".encode()


class TestChildCleanup:
    def test_interrupt_while_forwarding_terminates_child(self):
        engine = FakeEngine(exec_running=True)
        handoff = _handoff(engine, FakeIdentity())

        with (
            patch.object(CredentialHandoff, "_forward_stdin", side_effect=KeyboardInterrupt),
            pytest.raises(KeyboardInterrupt),
        ):
            handoff.handoff(["bash"])

        assert engine.processes[0].terminated is True

    def test_finished_child_is_not_terminated(self):
        engine = FakeEngine()
        _handoff(engine, FakeIdentity()).handoff(["bash"])
        assert engine.processes[0].terminated is False

    def test_exec_without_stdin_pipe_raises(self):
        engine = FakeEngine()
        original = engine.exec_piped

        def exec_piped(argv, *, env):
            proc = original(argv, env=env)
            proc.stdin = None
            return proc

        engine.exec_piped = exec_piped
        with pytest.raises(AuthError, match="without a stdin pipe"):
            _handoff(engine, FakeIdentity()).handoff(["bash"])
