"""Kernel version tags for kernel-module extensions.

Kernel-module extensions carry the kernel they were built for in their
name, e.g. ``alsa-modules-5.15.10-tinycore64.tcz``. Dependency files on a
running system use the generic ``-KERNEL.tcz`` placeholder instead, which
the fetcher expands into one entry per kernel build found in the
repository index.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from tinycore_remaster.types import KernelFlavor

logger = logging.getLogger(__name__)

KERNEL_PLACEHOLDER = "-KERNEL.tcz"

_TAG_PATTERN = r"-(?P<major>\d+)\.(?P<minor>\d+)\.(?P<patch>\d+)-{flavor}(?P<variant>\S*?)\.tcz$"

_PATTERNS: dict[KernelFlavor, re.Pattern[str]] = {
    flavor: re.compile(_TAG_PATTERN.format(flavor=re.escape(flavor.value)))
    for flavor in KernelFlavor
}


@dataclass(frozen=True, order=True)
class KernelVersionTag:
    """A kernel build tag such as ``-5.15.10-tinycore64.tcz``.

    Attributes:
        major: Kernel major version.
        minor: Kernel minor version.
        patch: Kernel patch level.
        flavor: Mainline (tinycore) or ARM fork (piCore).
        variant: Anything between the flavor tag and .tcz ('64', '-v7', '').
    """

    major: int
    minor: int
    patch: int
    flavor: KernelFlavor
    variant: str = ""

    @property
    def suffix(self) -> str:
        """Render the tag as the extension name suffix it was parsed from."""
        return (
            f"-{self.major}.{self.minor}.{self.patch}"
            f"-{self.flavor.value}{self.variant}.tcz"
        )

    @property
    def release(self) -> str:
        """Return the kernel release string, e.g. '5.15.10-tinycore64'."""
        return self.suffix[1 : -len(".tcz")]

    @classmethod
    def parse(cls, text: str, flavor: KernelFlavor) -> KernelVersionTag | None:
        """Parse the kernel tag at the end of an extension name.

        Args:
            text: Extension name or bare suffix.
            flavor: Flavor whose tag must be present.

        Returns:
            The parsed tag, or None if ``text`` carries no tag of that flavor.
        """
        match = _PATTERNS[flavor].search(text.strip())
        if match is None:
            return None
        return cls(
            major=int(match.group("major")),
            minor=int(match.group("minor")),
            patch=int(match.group("patch")),
            flavor=flavor,
            variant=match.group("variant"),
        )


def split_kernel_tag(
    name: str, flavor: KernelFlavor
) -> tuple[str, KernelVersionTag | None]:
    """Split an extension name into its base and kernel tag.

    Args:
        name: Extension name.
        flavor: Active kernel flavor.

    Returns:
        Tuple of (base name without the tag, tag or None). When there is no
        tag the base is the unchanged name.
    """
    match = _PATTERNS[flavor].search(name)
    if match is None:
        return name, None
    tag = KernelVersionTag.parse(name, flavor)
    return name[: match.start()], tag


def scan_kernel_versions(index_text: str, flavor: KernelFlavor) -> list[KernelVersionTag]:
    """Collect the kernel builds available in a repository index.

    Args:
        index_text: Content of info.lst, one extension per line.
        flavor: Kernel flavor of the repository architecture.

    Returns:
        Sorted list of distinct kernel version tags.
    """
    tags: set[KernelVersionTag] = set()
    for line in index_text.splitlines():
        tag = KernelVersionTag.parse(line, flavor)
        if tag is not None:
            tags.add(tag)
    versions = sorted(tags)
    logger.debug(
        "Found %d %s kernel version(s): %s",
        len(versions),
        flavor.value,
        ", ".join(v.release for v in versions),
    )
    return versions


__all__ = [
    "KERNEL_PLACEHOLDER",
    "KernelVersionTag",
    "scan_kernel_versions",
    "split_kernel_tag",
]
