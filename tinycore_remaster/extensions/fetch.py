"""Extension repository fetch module.

This module handles:
- Downloading extensions and sidecar files from the mirror
- Probing for files without downloading them
- MD5 checksum parsing and verification
"""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass
from pathlib import Path

import httpx

logger = logging.getLogger(__name__)

# Timeout for probes and small text files (seconds)
REQUEST_TIMEOUT = 30

# Timeout for extension downloads (seconds)
DOWNLOAD_TIMEOUT = 600

# Chunk size for downloads (bytes)
DOWNLOAD_CHUNK_SIZE = 64 * 1024  # 64 KB

PARTIAL_SUFFIX = ".part"


class DownloadError(Exception):
    """Raised when a repository file cannot be downloaded."""

    def __init__(self, message: str, code: str = "download_error") -> None:
        """Initialize DownloadError.

        Args:
            message: Error description.
            code: Error code for structured error handling.
        """
        super().__init__(message)
        self.code = code


class VerificationError(Exception):
    """Raised when MD5 verification fails."""

    def __init__(self, message: str, code: str = "verification_error") -> None:
        """Initialize VerificationError.

        Args:
            message: Error description.
            code: Error code for structured error handling.
        """
        super().__init__(message)
        self.code = code


@dataclass
class DownloadResult:
    """Result of a file download."""

    path: Path
    md5: str
    size_bytes: int


def _wrap_http_error(url: str, error: httpx.HTTPError) -> DownloadError:
    if isinstance(error, httpx.HTTPStatusError):
        return DownloadError(
            f"HTTP error fetching {url}: "
            f"{error.response.status_code} {error.response.reason_phrase}",
            code="http_error",
        )
    if isinstance(error, httpx.TimeoutException):
        return DownloadError(f"Timeout fetching {url}", code="timeout")
    return DownloadError(f"Network error fetching {url}: {error}", code="network_error")


def download_file(
    client: httpx.Client,
    url: str,
    dest_path: Path,
    timeout: float = DOWNLOAD_TIMEOUT,
    chunk_size: int = DOWNLOAD_CHUNK_SIZE,
) -> DownloadResult:
    """Download a file, computing its MD5 on the fly.

    The body is streamed to ``<dest>.part`` and renamed once complete, so an
    interrupted download never looks like a finished one.

    Args:
        client: HTTPX client instance.
        url: URL to download from.
        dest_path: Destination path for the downloaded file.
        timeout: Download timeout in seconds.
        chunk_size: Size of chunks to download.

    Returns:
        DownloadResult with path, MD5 and size.

    Raises:
        DownloadError: If download fails.
    """
    logger.debug("Downloading %s to %s", url, dest_path)
    part_path = dest_path.with_name(dest_path.name + PARTIAL_SUFFIX)

    try:
        with client.stream("GET", url, timeout=timeout) as response:
            response.raise_for_status()

            total_bytes = 0
            md5 = hashlib.md5()

            dest_path.parent.mkdir(parents=True, exist_ok=True)

            with part_path.open("wb") as f:
                for chunk in response.iter_bytes(chunk_size):
                    f.write(chunk)
                    md5.update(chunk)
                    total_bytes += len(chunk)

        part_path.replace(dest_path)

    except httpx.HTTPError as e:
        part_path.unlink(missing_ok=True)
        raise _wrap_http_error(url, e) from e
    except OSError:
        part_path.unlink(missing_ok=True)
        raise

    logger.debug("Downloaded %s (%d bytes)", dest_path.name, total_bytes)
    return DownloadResult(path=dest_path, md5=md5.hexdigest(), size_bytes=total_bytes)


def fetch_text(
    client: httpx.Client,
    url: str,
    timeout: float = REQUEST_TIMEOUT,
) -> str:
    """Fetch a small text file.

    Args:
        client: HTTPX client instance.
        url: URL of the file.
        timeout: Request timeout in seconds.

    Returns:
        Response body as text.

    Raises:
        DownloadError: If fetch fails.
    """
    logger.debug("Fetching %s", url)
    try:
        response = client.get(url, timeout=timeout)
        response.raise_for_status()
        return response.text
    except httpx.HTTPError as e:
        raise _wrap_http_error(url, e) from e


def url_exists(
    client: httpx.Client,
    url: str,
    timeout: float = REQUEST_TIMEOUT,
) -> bool:
    """Check whether a file exists on the mirror without downloading it.

    Args:
        client: HTTPX client instance.
        url: URL to probe.
        timeout: Request timeout in seconds.

    Returns:
        True if the server answers the HEAD request with a success status.
    """
    try:
        response = client.head(url, timeout=timeout)
    except httpx.HTTPError as e:
        logger.debug("Probe failed for %s: %s", url, e)
        return False
    return response.is_success


def parse_md5_file(content: str) -> str | None:
    """Extract the digest from md5sum output.

    Args:
        content: Content of a .md5.txt file ('<digest>  <filename>').

    Returns:
        Lowercase hex digest, or None if the content holds no digest.
    """
    for line in content.splitlines():
        parts = line.split()
        if parts and len(parts[0]) == 32:
            try:
                int(parts[0], 16)
            except ValueError:
                continue
            return parts[0].lower()
    return None


def compute_file_md5(file_path: Path, chunk_size: int = DOWNLOAD_CHUNK_SIZE) -> str:
    """Compute MD5 checksum of a file.

    Args:
        file_path: Path to the file.
        chunk_size: Size of chunks to read.

    Returns:
        MD5 hex digest.
    """
    md5 = hashlib.md5()
    with file_path.open("rb") as f:
        while chunk := f.read(chunk_size):
            md5.update(chunk)
    return md5.hexdigest()


def verify_md5(file_path: Path, md5_path: Path) -> str:
    """Verify a file against its .md5.txt sidecar.

    Args:
        file_path: File to check.
        md5_path: Sidecar holding the expected digest.

    Returns:
        The verified digest.

    Raises:
        VerificationError: If the sidecar is unreadable, the file is missing,
            or the digests differ.
    """
    expected = parse_md5_file(md5_path.read_text(encoding="utf-8", errors="replace"))
    if expected is None:
        raise VerificationError(
            f"No checksum found in {md5_path.name}", code="malformed_checksum"
        )
    if not file_path.is_file():
        raise VerificationError(f"{file_path.name} is missing", code="missing_file")

    actual = compute_file_md5(file_path)
    if actual != expected:
        raise VerificationError(
            f"Checksum mismatch for {file_path.name}: "
            f"expected {expected}, got {actual}",
            code="checksum_mismatch",
        )
    return actual


__all__ = [
    "DOWNLOAD_TIMEOUT",
    "DownloadError",
    "DownloadResult",
    "REQUEST_TIMEOUT",
    "VerificationError",
    "compute_file_md5",
    "download_file",
    "fetch_text",
    "parse_md5_file",
    "url_exists",
    "verify_md5",
]
