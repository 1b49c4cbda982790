"""External tool runner for ISO remastering.

This module handles:
- Checking that the required tools are installed
- Executing tools with subprocess, optionally through sudo
- Turning non-zero exits into ToolExecutionError
"""

from __future__ import annotations

import logging
import shlex
import shutil
import subprocess
from collections.abc import Iterable, Sequence
from pathlib import Path
from typing import IO

from tinycore_remaster.privileges import elevate, is_root

logger = logging.getLogger(__name__)

# Tool -> package that provides it, for error messages.
REQUIRED_TOOLS: dict[str, str] = {
    "7z": "p7zip",
    "cpio": "cpio",
    "unsquashfs": "squashfs-tools",
    "mkisofs": "cdrtools",
}
ISOHYBRID_TOOL = ("isohybrid", "syslinux")


class ToolExecutionError(Exception):
    """Raised when an external tool fails."""

    def __init__(
        self,
        message: str,
        exit_code: int | None = None,
        code: str = "tool_error",
    ) -> None:
        super().__init__(message)
        self.exit_code = exit_code
        self.code = code


class MissingToolError(Exception):
    """Raised when required external tools are not installed."""

    def __init__(self, missing: dict[str, str], code: str = "missing_tool") -> None:
        listing = ", ".join(f"{tool} ({pkg})" for tool, pkg in sorted(missing.items()))
        super().__init__(f"Required tools not found: {listing}")
        self.missing = missing
        self.code = code


def find_missing_tools(tools: Iterable[tuple[str, str]]) -> dict[str, str]:
    """Return the tools from ``tools`` that are not on PATH.

    Args:
        tools: (tool, providing package) pairs.

    Returns:
        Mapping of missing tool to providing package.
    """
    return {tool: pkg for tool, pkg in tools if shutil.which(tool) is None}


class ToolRunner:
    """Runs external tools, elevating privileged steps through sudo.

    Attributes:
        use_sudo: Whether privileged steps may be prefixed with ``sudo -n``.
        timeout: Per-command timeout in seconds (None = no timeout).
    """

    def __init__(self, use_sudo: bool = True, timeout: float | None = None) -> None:
        self.use_sudo = use_sudo
        self.timeout = timeout

    @property
    def elevates(self) -> bool:
        """Return True when privileged steps go through sudo."""
        return self.use_sudo and not is_root()

    def command(self, cmd: Sequence[str], privileged: bool = False) -> list[str]:
        """Return the argv that will actually be executed."""
        if privileged:
            return elevate(list(cmd), self.use_sudo)
        return list(cmd)

    def run(
        self,
        cmd: Sequence[str],
        cwd: Path | None = None,
        privileged: bool = False,
        stdin: IO[bytes] | None = None,
        stdout: IO[bytes] | None = None,
        input_bytes: bytes | None = None,
    ) -> bytes:
        """Execute a tool and wait for it.

        Args:
            cmd: Command and arguments.
            cwd: Working directory.
            privileged: Run through sudo when not root.
            stdin: File object to feed as standard input.
            stdout: File object receiving standard output. When None the
                output is captured and returned.
            input_bytes: Bytes to feed as standard input (exclusive with stdin).

        Returns:
            Captured standard output (empty when ``stdout`` was given).

        Raises:
            ToolExecutionError: If the tool cannot start, times out or exits
                non-zero.
        """
        argv = self.command(cmd, privileged=privileged)
        cmd_str = shlex.join(argv)
        logger.info("Executing: %s", cmd_str)
        if cwd is not None:
            logger.debug("Working directory: %s", cwd)

        try:
            result = subprocess.run(
                argv,
                cwd=cwd,
                stdin=stdin,
                input=input_bytes,
                stdout=stdout if stdout is not None else subprocess.PIPE,
                stderr=subprocess.PIPE,
                timeout=self.timeout,
                check=False,
            )
        except subprocess.TimeoutExpired as e:
            raise ToolExecutionError(
                f"{argv[0]} timed out after {self.timeout} seconds",
                exit_code=-1,
                code="tool_timeout",
            ) from e
        except OSError as e:
            raise ToolExecutionError(
                f"Failed to execute {cmd_str}: {e}",
                code="execution_error",
            ) from e

        if result.returncode != 0:
            stderr = (result.stderr or b"").decode(errors="replace").strip()
            logger.error("%s failed with exit code %d", argv[0], result.returncode)
            raise ToolExecutionError(
                f"{cmd_str} failed with exit code {result.returncode}: {stderr}",
                exit_code=result.returncode,
            )
        return result.stdout or b""


__all__ = [
    "ISOHYBRID_TOOL",
    "MissingToolError",
    "REQUIRED_TOOLS",
    "ToolExecutionError",
    "ToolRunner",
    "find_missing_tools",
]
