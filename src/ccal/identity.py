"""Identity provider client — wraps the GitHub CLI (``gh``).

The token comes back as :class:`pydantic.SecretStr` so an accidental log
call or ``repr`` prints ``'**********'`` instead of the credential.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from pydantic import SecretStr

from ccal.logger import logger
from ccal.process import run_captured, run_streamed


@runtime_checkable
class IdentityClient(Protocol):
    def is_authenticated(self) -> bool: ...
    def login(self) -> bool: ...
    def token(self, *, timeout: float) -> SecretStr | None: ...


class GhIdentity:
    """:class:`IdentityClient` backed by ``gh auth``."""

    def __init__(self, cli: str = "gh") -> None:
        self.cli = cli

    def is_authenticated(self) -> bool:
        return run_captured([self.cli, "auth", "status"], timeout=15).ok

    def login(self) -> bool:
        # Interactive: inherits the terminal, no timeout.
        return run_streamed([self.cli, "auth", "login"]).ok

    def token(self, *, timeout: float) -> SecretStr | None:
        result = run_captured([self.cli, "auth", "token"], timeout=timeout)
        if not result.ok or not result.output:
            logger.debug("gh auth token failed", exit_code=result.exit_code)
            return None
        return SecretStr(result.output)
