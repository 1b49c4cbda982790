"""Dependency list resolution.

Turns a ``.tree`` file into the flat list of files that must be fetched.
Kernel-module entries are expanded so that every kernel build available in
the repository gets its module extension; the operating system then picks
the one matching the booted kernel.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from pathlib import Path

from tinycore_remaster.extensions.kernel import (
    KERNEL_PLACEHOLDER,
    KernelVersionTag,
    split_kernel_tag,
)
from tinycore_remaster.types import KernelFlavor

logger = logging.getLogger(__name__)


def normalize_entries(tree_text: str) -> list[str]:
    """Strip indentation and blank lines from a tree file.

    Args:
        tree_text: Raw .tree or .dep content.

    Returns:
        Sorted list of distinct entries.
    """
    return sorted({line.strip() for line in tree_text.splitlines() if line.strip()})


def to_placeholder(entry: str, flavor: KernelFlavor) -> str:
    """Replace a concrete kernel tag in ``entry`` with the placeholder.

    Args:
        entry: Extension name, possibly carrying a kernel tag.
        flavor: Active kernel flavor.

    Returns:
        ``<base>-KERNEL.tcz`` for kernel-module entries, else ``entry``.
    """
    base, tag = split_kernel_tag(entry, flavor)
    if tag is None:
        return entry
    return base + KERNEL_PLACEHOLDER


def expand_placeholder(
    entry: str, versions: Iterable[KernelVersionTag]
) -> list[str]:
    """Expand a ``-KERNEL.tcz`` entry into one entry per kernel version.

    Args:
        entry: Extension name ending in the placeholder.
        versions: Kernel builds available in the repository.

    Returns:
        One concrete extension name per version.
    """
    base = entry[: -len(KERNEL_PLACEHOLDER)]
    return [base + version.suffix for version in versions]


def build_dependency_list(
    tree_text: str,
    versions: Sequence[KernelVersionTag],
    flavor: KernelFlavor,
) -> list[str]:
    """Build the complete dependency list for one extension.

    Args:
        tree_text: Content of the extension's .tree file.
        versions: Kernel builds available in the repository.
        flavor: Active kernel flavor.

    Returns:
        Sorted list of distinct extension file names to fetch.
    """
    resolved: set[str] = set()
    for entry in normalize_entries(tree_text):
        entry = to_placeholder(entry, flavor)
        if entry.endswith(KERNEL_PLACEHOLDER):
            if not versions:
                logger.warning(
                    "No %s kernel versions known, dropping %s",
                    flavor.value,
                    entry,
                )
            resolved.update(expand_placeholder(entry, versions))
        else:
            resolved.add(entry)
    return sorted(resolved)


def write_dependency_list(path: Path, entries: Iterable[str]) -> None:
    """Write a resolved dependency list, one entry per line."""
    path.write_text("".join(f"{entry}\n" for entry in entries), encoding="utf-8")


__all__ = [
    "build_dependency_list",
    "expand_placeholder",
    "normalize_entries",
    "to_placeholder",
    "write_dependency_list",
]
