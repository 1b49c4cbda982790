"""Extension file naming.

Extensions are addressed purely by file name. Every extension ``foo.tcz``
has optional sidecars on the mirror: ``foo.tcz.tree`` (full dependency
tree), ``foo.tcz.dep`` (direct dependencies) and ``foo.tcz.md5.txt``.
"""

import re

TCZ_SUFFIX = ".tcz"
TREE_SUFFIX = ".tree"
DEP_SUFFIX = ".dep"
MD5_SUFFIX = ".md5.txt"

# Names are used both as URL path segments and as local file names.
EXTENSION_NAME_PATTERN = re.compile(r"^[A-Za-z0-9_+][A-Za-z0-9._+\-]*$")


class InvalidExtensionNameError(ValueError):
    """Raised when an extension name is unsafe to use as a file name."""

    def __init__(self, name: str, code: str = "invalid_extension_name") -> None:
        super().__init__(f"Invalid extension name: {name!r}")
        self.name = name
        self.code = code


def normalize_extension_name(name: str) -> str:
    """Return ``name`` with exactly one trailing ``.tcz``.

    Args:
        name: Extension name with or without the .tcz suffix.

    Returns:
        Normalized extension file name.
    """
    name = name.strip()
    if name.endswith(TCZ_SUFFIX):
        name = name[: -len(TCZ_SUFFIX)]
    return name + TCZ_SUFFIX


def validate_extension_name(name: str) -> str:
    """Validate and normalize a caller-supplied extension name.

    Names are treated as opaque identifiers but must not be able to escape
    the working directory or the repository path.

    Args:
        name: Extension name as given on the command line.

    Returns:
        Normalized extension file name.

    Raises:
        InvalidExtensionNameError: If the name is empty or contains path
            separators, '..', whitespace or shell-special characters.
    """
    stripped = name.strip()
    if stripped.endswith(TCZ_SUFFIX):
        stripped = stripped[: -len(TCZ_SUFFIX)]
    if (
        not stripped
        or ".." in stripped
        or not EXTENSION_NAME_PATTERN.match(stripped)
    ):
        raise InvalidExtensionNameError(name)
    return stripped + TCZ_SUFFIX


def tree_name(extension: str) -> str:
    """Return the dependency tree file name for an extension."""
    return extension + TREE_SUFFIX


def dep_name(extension: str) -> str:
    """Return the direct dependency file name for an extension."""
    return extension + DEP_SUFFIX


def md5_name(extension: str) -> str:
    """Return the checksum sidecar file name for an extension."""
    return extension + MD5_SUFFIX


__all__ = [
    "DEP_SUFFIX",
    "InvalidExtensionNameError",
    "MD5_SUFFIX",
    "TCZ_SUFFIX",
    "TREE_SUFFIX",
    "dep_name",
    "md5_name",
    "normalize_extension_name",
    "tree_name",
    "validate_extension_name",
]
