"""Shared type definitions for tinycore_remaster.

This module contains enums and dataclasses shared across subpackages
to avoid circular imports.
"""

from dataclasses import dataclass, field
from enum import Enum

MAINLINE_ARCH_PREFIXES = ("x86",)
ARM_ARCH_PREFIXES = ("armv", "aarch")


class InvalidArchitectureError(Exception):
    """Raised when the configured architecture has no known kernel flavor."""

    def __init__(self, arch: str, code: str = "invalid_architecture") -> None:
        super().__init__(f"Invalid architecture specified: {arch!r}")
        self.arch = arch
        self.code = code


class KernelFlavor(str, Enum):
    """Kernel build tag used in kernel-module extension names.

    The value is the tag that follows the version number, e.g.
    ``alsa-modules-5.15.10-tinycore.tcz`` or ``wireless-6.1.68-piCore-v8.tcz``.
    """

    MAINLINE = "tinycore"
    ARM = "piCore"

    @classmethod
    def for_arch(cls, arch: str) -> "KernelFlavor":
        """Return the kernel flavor used by a repository architecture.

        Args:
            arch: Architecture directory name (e.g. 'x86_64', 'armv7').

        Returns:
            The matching KernelFlavor.

        Raises:
            InvalidArchitectureError: If the architecture is unknown.
        """
        if arch.startswith(MAINLINE_ARCH_PREFIXES):
            return cls.MAINLINE
        if arch.startswith(ARM_ARCH_PREFIXES):
            return cls.ARM
        raise InvalidArchitectureError(arch)


class EntryStatus(str, Enum):
    """Outcome of processing one resolved dependency entry."""

    DOWNLOADED = "downloaded"
    ALREADY_PRESENT = "already-present"
    FAILED = "failed"


@dataclass
class FetchReport:
    """Summary of an extension fetch session."""

    requested: list[str] = field(default_factory=list)
    downloaded: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    failed: list[tuple[str, str]] = field(default_factory=list)
    first_error_at: str | None = None

    @property
    def ok(self) -> bool:
        """Return True when no error was logged."""
        return not self.failed

    def record(self, entry: str, status: EntryStatus, reason: str = "") -> None:
        """Record the outcome of one entry."""
        if status is EntryStatus.DOWNLOADED:
            self.downloaded.append(entry)
        elif status is EntryStatus.ALREADY_PRESENT:
            self.skipped.append(entry)
        else:
            self.failed.append((entry, reason))


__all__ = [
    "EntryStatus",
    "FetchReport",
    "InvalidArchitectureError",
    "KernelFlavor",
]
