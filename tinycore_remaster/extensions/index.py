"""Repository index (info.lst) cache.

info.lst lists every extension in the repository. It is needed to find
which kernel builds exist, and it can be paged by the user. The local copy
is reused until it is older than the configured maximum age or older than
the tool's own configuration.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Iterable
from pathlib import Path

import httpx

from tinycore_remaster.extensions.fetch import DownloadError, download_file

logger = logging.getLogger(__name__)

INDEX_FILENAME = "info.lst"


class IndexRefreshError(Exception):
    """Raised when a fresh copy of info.lst cannot be obtained."""

    def __init__(self, url: str, reason: str, code: str = "index_refresh_failed") -> None:
        super().__init__(f"Download failed for: {url} ({reason})")
        self.url = url
        self.code = code


def is_index_stale(
    index_path: Path,
    max_age: float,
    reference_paths: Iterable[Path] = (),
    now: float | None = None,
) -> bool:
    """Decide whether the cached index must be fetched again.

    Args:
        index_path: Local info.lst.
        max_age: Maximum age in seconds.
        reference_paths: Files (code, configuration) whose modification
            invalidates the cache.
        now: Current time as a Unix timestamp (defaults to time.time()).

    Returns:
        True if the cache is missing, at least ``max_age`` old, or older
        than any of the reference files.
    """
    if not index_path.is_file():
        return True

    if now is None:
        now = time.time()
    index_mtime = index_path.stat().st_mtime

    for ref in reference_paths:
        if ref.exists() and ref.stat().st_mtime >= index_mtime:
            logger.debug("%s is newer than %s", ref, index_path.name)
            return True

    return now - index_mtime >= max_age


def refresh_index(
    client: httpx.Client,
    repository_url: str,
    index_path: Path,
    max_age: float,
    reference_paths: Iterable[Path] = (),
    timeout: float = 600,
) -> bool:
    """Make sure a usable info.lst exists in the working directory.

    Args:
        client: HTTPX client instance.
        repository_url: Base URL of the tcz directory (with trailing slash).
        index_path: Local info.lst.
        max_age: Maximum cache age in seconds.
        reference_paths: Files whose modification invalidates the cache.
        timeout: Download timeout in seconds.

    Returns:
        True if a fresh copy was downloaded, False if the cache was reused.

    Raises:
        IndexRefreshError: If the download fails.
    """
    if not is_index_stale(index_path, max_age, reference_paths):
        logger.debug("Reusing cached %s", index_path)
        return False

    index_path.unlink(missing_ok=True)
    url = repository_url + INDEX_FILENAME
    logger.info("Refreshing %s from %s", index_path.name, url)
    try:
        download_file(client, url, index_path, timeout=timeout)
    except DownloadError as e:
        raise IndexRefreshError(url, str(e)) from e
    return True


__all__ = [
    "INDEX_FILENAME",
    "IndexRefreshError",
    "is_index_stale",
    "refresh_index",
]
