"""Caller identity.

Every lifecycle operation receives the caller explicitly instead of asking
the OS on its own, so that the engine can be driven (and tested) on behalf of
any user.
"""

from __future__ import annotations

import os
import pwd
from dataclasses import dataclass


@dataclass(frozen=True)
class Caller:
    """The user invoking an operation.

    ``privileged`` callers (root) may act on any workspace and bypass
    filesystem policy.
    """

    name: str
    privileged: bool = False

    @classmethod
    def current(cls) -> Caller:
        """Identity of the invoking process (real uid, so setuid installs work)."""
        uid = os.getuid()
        return cls(name=pwd.getpwuid(uid).pw_name, privileged=uid == 0)

    def may_act_for(self, owner: str) -> bool:
        return self.privileged or self.name == owner

    def acts_as_owner(self, owner: str) -> bool:
        """True if an unprivileged owner is acting on their own workspace."""
        return not self.privileged and self.name == owner
