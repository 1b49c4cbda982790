"""Privilege elevation and file ownership policies.

Downloaded files and the root filesystem tree may need to belong to a
different user than the one running the tool (e.g. the Tiny Core ``tc``
user). Ownership handling is injected as a policy so single-user setups can
leave it out entirely.
"""

from __future__ import annotations

import logging
import os
import subprocess
from pathlib import Path
from typing import Protocol

logger = logging.getLogger(__name__)

SUDO = ["sudo", "-n"]


class PrivilegeError(Exception):
    """Raised when root privileges are required but cannot be obtained."""

    def __init__(self, message: str, code: str = "privilege_error") -> None:
        super().__init__(message)
        self.code = code


def is_root() -> bool:
    """Return True when running with effective UID 0."""
    return os.geteuid() == 0


def require_noninteractive_sudo() -> None:
    """Make sure privileged commands can run without user interaction.

    Raises:
        PrivilegeError: If not root and sudo needs a password or is missing.
    """
    if is_root():
        return
    try:
        result = subprocess.run(
            [*SUDO, "-v"],
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            check=False,
        )
    except OSError as e:
        raise PrivilegeError(
            "You must run this tool as root on this system (sudo not found).",
            code="sudo_missing",
        ) from e
    if result.returncode != 0:
        raise PrivilegeError(
            "You must run this tool as root on this system "
            "(sudo requires a password).",
            code="sudo_password_required",
        )


def elevate(cmd: list[str], use_sudo: bool) -> list[str]:
    """Prefix ``cmd`` with non-interactive sudo when needed.

    Args:
        cmd: Command to run.
        use_sudo: Whether sudo may be used at all.

    Returns:
        The command, prefixed with ``sudo -n`` if not root and allowed.
    """
    if use_sudo and not is_root():
        return [*SUDO, *cmd]
    return list(cmd)


class OwnershipPolicy(Protocol):
    """Assigns ownership to files written by the tool."""

    requires_privileges: bool

    def apply(self, path: Path, uid: int | None = None) -> None:
        """Give ``path`` to the configured owner, or to ``uid`` if given."""
        ...


class NoOpOwnership:
    """Leave files owned by whoever wrote them."""

    requires_privileges = False

    def apply(self, path: Path, uid: int | None = None) -> None:
        return None


class ChownOwnership:
    """Change ownership with os.chown, or ``sudo chown`` when not root."""

    requires_privileges = True

    def __init__(self, uid: int, gid: int, use_sudo: bool = True) -> None:
        self.uid = uid
        self.gid = gid
        self.use_sudo = use_sudo

    def apply(self, path: Path, uid: int | None = None) -> None:
        owner = self.uid if uid is None else uid
        if is_root() or not self.use_sudo:
            os.chown(path, owner, self.gid)
            return
        cmd = elevate(["chown", f"{owner}:{self.gid}", str(path)], self.use_sudo)
        result = subprocess.run(cmd, capture_output=True, text=True, check=False)
        if result.returncode != 0:
            raise PrivilegeError(
                f"Failed to change ownership of {path}: {result.stderr.strip()}",
                code="chown_failed",
            )


def ownership_from_settings(owner_uid: int | None, owner_gid: int, use_sudo: bool) -> OwnershipPolicy:
    """Build the ownership policy described by the settings."""
    if owner_uid is None:
        return NoOpOwnership()
    return ChownOwnership(owner_uid, owner_gid, use_sudo=use_sudo)


__all__ = [
    "ChownOwnership",
    "NoOpOwnership",
    "OwnershipPolicy",
    "PrivilegeError",
    "elevate",
    "is_root",
    "ownership_from_settings",
    "require_noninteractive_sudo",
]
