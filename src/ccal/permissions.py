"""Container engine group membership.

A process resolves its supplementary groups once, at login.  Adding the user
to a group changes the system database but not the credentials of anything
already running, this process included.  So activation is two-phase: make
the privileged change, then verify it from a *fresh* child (``sg``) that
resolves groups again.  We never assume our own credentials changed.
"""

from __future__ import annotations

import getpass
import grp
import os
import pwd
import shlex
from collections.abc import Callable
from enum import Enum

from ccal.errors import PermissionGrantError, PermissionPendingError
from ccal.logger import logger
from ccal.process import CommandResult, run_captured, run_streamed


class Membership(Enum):
    ABSENT = "absent"
    GRANTED_PENDING_ACTIVATION = "granted_pending_activation"
    ACTIVE = "active"


def _group_gid(group: str) -> int | None:
    try:
        return grp.getgrnam(group).gr_gid
    except KeyError:
        return None


def _user_listed_in_group(user: str, group: str) -> bool:
    """Check the system group database (not this process's credentials)."""
    try:
        entry = grp.getgrnam(group)
    except KeyError:
        return False
    if user in entry.gr_mem:
        return True
    try:
        return pwd.getpwnam(user).pw_gid == entry.gr_gid
    except KeyError:
        return False


class PermissionActivator:
    """Ensure the current user can talk to the engine without sudo."""

    def __init__(
        self,
        group: str = "docker",
        *,
        user: str | None = None,
        engine_cli: str = "docker",
        run_privileged: Callable[[list[str]], CommandResult] = run_streamed,
        run_probe: Callable[[list[str]], CommandResult] = run_captured,
    ) -> None:
        self.group = group
        self.user = user or getpass.getuser()
        self.engine_cli = engine_cli
        self._run_privileged = run_privileged
        self._run_probe = run_probe

    def current(self) -> Membership:
        gid = _group_gid(self.group)
        if gid is not None and gid in os.getgroups():
            return Membership.ACTIVE
        if _user_listed_in_group(self.user, self.group):
            return Membership.GRANTED_PENDING_ACTIVATION
        return Membership.ABSENT

    def grant(self) -> None:
        cmd = ["sudo", "usermod", "-aG", self.group, self.user]
        logger.info("Adding user to group", user=self.user, group=self.group)
        result = self._run_privileged(cmd)
        if not result.ok:
            raise PermissionGrantError(
                f"Failed to add {self.user} to the '{self.group}' group "
                f"(exit {result.exit_code})"
            )

    def probe(self) -> bool:
        """Run a trivial engine command in a child that re-resolves group membership."""
        inner = shlex.join([self.engine_cli, "ps"])
        return self._run_probe(["sg", self.group, "-c", inner]).ok

    def activate(self) -> Membership:
        """Walk ABSENT → GRANTED_PENDING_ACTIVATION → ACTIVE.

        Raises PermissionPendingError when the grant is in place but not yet
        visible to new children of this session.
        """
        state = self.current()
        if state is Membership.ACTIVE:
            logger.debug("Group membership active", group=self.group)
            return state

        if state is Membership.ABSENT:
            self.grant()

        # GRANTED_PENDING_ACTIVATION from here on
        if self.probe():
            logger.info("Group membership effective via fresh session", group=self.group)
            return Membership.ACTIVE

        raise PermissionPendingError(self.group)
