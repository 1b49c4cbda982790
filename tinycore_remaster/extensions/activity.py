"""Append-only activity log (Log.txt).

Each fetch session is written as a blank line, a timestamp, the repository
URL and a title, followed by one line per action. Error lines are prefixed
with ``  Error:  `` so they stand out when paging the file.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime
from pathlib import Path

logger = logging.getLogger(__name__)

LOG_FILENAME = "Log.txt"
ERROR_PREFIX = "  Error:  "
OK_MESSAGE = "OK"


def _default_clock() -> str:
    return datetime.now().astimezone().strftime("%a %b %d %H:%M:%S %Z %Y")


class ActivityLog:
    """Timestamped, append-only record of fetch sessions.

    Attributes:
        path: Location of the log file.
        session_started_at: Timestamp of the current session.
        first_error_at: Timestamp of the session in which the first error of
            this run was logged, or None.
    """

    def __init__(self, path: Path, clock: Callable[[], str] = _default_clock) -> None:
        self.path = path
        self._clock = clock
        self.session_started_at: str | None = None
        self.first_error_at: str | None = None

    def _write(self, line: str) -> None:
        with self.path.open("a", encoding="utf-8") as f:
            f.write(line + "\n")

    def start_session(self, url: str, title: str) -> str:
        """Write a session header and return its timestamp."""
        self.session_started_at = self._clock()
        self._write("")
        self._write(self.session_started_at)
        self._write(url)
        self._write(title)
        return self.session_started_at

    def info(self, message: str) -> None:
        """Record a successful action."""
        logger.debug(message)
        self._write(message)

    def error(self, message: str) -> None:
        """Record a failed action."""
        logger.warning(message)
        if self.first_error_at is None:
            self.first_error_at = self.session_started_at or self._clock()
        self._write(ERROR_PREFIX + message)

    @property
    def exit_message(self) -> str:
        """Return the summary shown to the user when the run completes."""
        if self.first_error_at is None:
            return OK_MESSAGE
        return f"One or more errors occurred. See {self.path.name} after timestamp:"


__all__ = ["ActivityLog", "ERROR_PREFIX", "LOG_FILENAME", "OK_MESSAGE"]
