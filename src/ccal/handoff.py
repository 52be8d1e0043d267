"""Credential handoff into the running service.

The token travels only over the ``docker compose exec`` stdin pipe.  A tiny
shell shim inside the container reads the first line, exports it for its
own process, and ``exec``s the requested tool, so the token is never:

- an argument of any host process (visible in ``ps``),
- a variable in the host environment (visible in ``/proc/<pid>/environ``),
- written to a file (``--env-file`` or similar).

After the token line the pipe carries the user's stdin, so the tool still
receives whatever the user types or pipes in.
"""

from __future__ import annotations

import contextlib
import os
import selectors
import subprocess
import sys
import time
from collections.abc import Callable
from typing import IO, Any

from pydantic import SecretStr

from ccal.engine import EngineClient
from ccal.errors import AuthError
from ccal.identity import IdentityClient
from ccal.logger import logger

# Marker so the in-container environment can tell it was launched this way.
STDIN_MARKER = "CCAL_TOKEN_STDIN"

# Grace period for the exec child after an interrupted handoff
_TERMINATE_TIMEOUT = 5.0


def build_shim(token_env: str) -> str:
    """In-container script: first stdin line → ``$token_env`` → exec "$@"."""
    return (
        "read -r token || exit 1\n"
        f'export {token_env}="$token"\n'
        "unset token\n"
        'exec "$@"\n'
    )


class CredentialHandoff:
    def __init__(
        self,
        identity: IdentityClient,
        engine: EngineClient,
        *,
        token_env: str = "GITHUB_TOKEN",
        stdin_fd: int | None = None,
        clock: Callable[[], float] = time.monotonic,
        on_login: Callable[[], None] | None = None,
    ) -> None:
        self.identity = identity
        self.engine = engine
        self.token_env = token_env
        self.stdin_fd = stdin_fd
        self._clock = clock
        self._on_login = on_login

    @classmethod
    def for_terminal(cls, identity: IdentityClient, engine: EngineClient, **kw: Any) -> CredentialHandoff:
        """Forward this process's real stdin after the token line."""
        try:
            fd = sys.stdin.fileno()
        except (AttributeError, OSError, ValueError):
            fd = None
        return cls(identity, engine, stdin_fd=fd, **kw)

    def ensure_login(self) -> None:
        """Interactive login if needed.  Not covered by the handoff timeout."""
        if self.identity.is_authenticated():
            return
        if self._on_login is not None:
            self._on_login()
        logger.info("GitHub authentication required")
        if not self.identity.login():
            raise AuthError("GitHub authentication failed")
        if not self.identity.is_authenticated():
            raise AuthError("GitHub authentication did not complete")

    def handoff(self, inner_command: list[str], *, timeout: float = 30.0) -> int:
        """Pipe a fresh token into the service and run *inner_command* there.

        Returns the inner command's exit status.
        """
        self.ensure_login()

        started = self._clock()
        token = self.identity.token(timeout=timeout)
        if token is None:
            raise AuthError("Failed to get GitHub token")
        if self._clock() - started > timeout:
            raise AuthError(f"Timed out after {timeout:g}s waiting for GitHub token")

        argv = ["sh", "-c", build_shim(self.token_env), "--", *inner_command]
        proc = self.engine.exec_piped(argv, env={STDIN_MARKER: "1"})
        try:
            try:
                self._write_token(proc, token)
            finally:
                del token
            self._forward_stdin(proc)
            return proc.wait()
        finally:
            _reap(proc)

    @staticmethod
    def _write_token(proc: subprocess.Popen[bytes], token: SecretStr) -> None:
        pipe = _stdin_of(proc)
        try:
            pipe.write(token.get_secret_value().encode() + b"\n")
            pipe.flush()
        except BrokenPipeError as exc:
            proc.wait()
            raise AuthError("Container closed the credential pipe before reading the token") from exc

    def _forward_stdin(self, proc: subprocess.Popen[bytes]) -> None:
        """Copy our stdin into the pipe until EOF or the child exits."""
        pipe = _stdin_of(proc)
        try:
            if self.stdin_fd is None:
                return
            with selectors.DefaultSelector() as sel:
                try:
                    sel.register(self.stdin_fd, selectors.EVENT_READ)
                except (ValueError, OSError, PermissionError):
                    # e.g. a regular file on stdin; nothing interactive to forward
                    logger.debug("stdin not selectable, closing pipe")
                    return
                while proc.poll() is None:
                    if not sel.select(timeout=0.2):
                        continue
                    chunk = os.read(self.stdin_fd, 4096)
                    if not chunk:
                        break
                    try:
                        pipe.write(chunk)
                        pipe.flush()
                    except BrokenPipeError:
                        break
        finally:
            with contextlib.suppress(BrokenPipeError, OSError):
                pipe.close()


def _stdin_of(proc: subprocess.Popen[bytes]) -> IO[bytes]:
    if proc.stdin is None:
        raise AuthError("Container exec was started without a stdin pipe")
    return proc.stdin


def _reap(proc: subprocess.Popen[bytes]) -> None:
    """Terminate the exec child if an error or interrupt left it running."""
    if proc.poll() is not None:
        return
    logger.info("Stopping interrupted exec session")
    proc.terminate()
    try:
        proc.wait(timeout=_TERMINATE_TIMEOUT)
    except subprocess.TimeoutExpired:
        proc.kill()
        proc.wait()
