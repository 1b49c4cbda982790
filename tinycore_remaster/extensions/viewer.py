"""Page info.lst or Log.txt for the user.

A new terminal window running ``less`` is preferred so the calling shell is
released immediately; without a terminal emulator the file is paged in place.
"""

from __future__ import annotations

import logging
import shutil
import subprocess
from pathlib import Path

from rich.console import Console

logger = logging.getLogger(__name__)


def terminal_command(terminal: str, path: Path) -> list[str]:
    """Compose the command that pages ``path`` in a new terminal window."""
    return [terminal, "+tr", "+sb", "-T", path.name, "-e", "less", str(path)]


def view_file(path: Path, terminal: str = "xterm", console: Console | None = None) -> None:
    """Display a file in a pager.

    Args:
        path: File to display.
        terminal: Terminal emulator to open (xterm-compatible options).
        console: Console used for in-place paging when no terminal exists.

    Raises:
        FileNotFoundError: If ``path`` does not exist.
    """
    if not path.is_file():
        raise FileNotFoundError(f"{path.name} not found.")

    if shutil.which(terminal):
        cmd = terminal_command(terminal, path)
        logger.debug("Opening %s", cmd)
        subprocess.Popen(
            cmd,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            start_new_session=True,
        )
        return

    console = console or Console()
    with console.pager():
        console.print(path.read_text(encoding="utf-8", errors="replace"), markup=False)


__all__ = ["terminal_command", "view_file"]
