"""Extension fetch service.

This module provides the high-level fetch workflow:
- open_session(): fatal environment checks and index refresh
- ExtensionFetcher.fetch(): download extensions with their dependencies
- ExtensionFetcher.close(): hand files to their owner, remove scratch files

Per-extension and per-file failures are written to Log.txt and processing
moves on. Only environment problems (architecture, privileges, index) raise.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Callable, Iterable
from pathlib import Path
from typing import TYPE_CHECKING

import httpx

from tinycore_remaster.config import settings_reference_paths
from tinycore_remaster.extensions.activity import LOG_FILENAME, ActivityLog
from tinycore_remaster.extensions.fetch import (
    DownloadError,
    VerificationError,
    download_file,
    fetch_text,
    url_exists,
    verify_md5,
)
from tinycore_remaster.extensions.index import INDEX_FILENAME, refresh_index
from tinycore_remaster.extensions.kernel import KernelVersionTag, scan_kernel_versions
from tinycore_remaster.extensions.naming import (
    InvalidExtensionNameError,
    dep_name,
    md5_name,
    tree_name,
    validate_extension_name,
)
from tinycore_remaster.extensions.resolver import (
    build_dependency_list,
    write_dependency_list,
)
from tinycore_remaster.privileges import (
    OwnershipPolicy,
    PrivilegeError,
    ownership_from_settings,
    require_noninteractive_sudo,
)
from tinycore_remaster.types import EntryStatus, FetchReport, KernelFlavor

if TYPE_CHECKING:
    from tinycore_remaster.config import Settings

logger = logging.getLogger(__name__)

VERSIONS_FILENAME = "Versions.list"
DEPENDENCY_LIST_FILENAME = "Dependency.list"


class ExtensionFetcher:
    """Downloads extensions and their dependency trees into a directory.

    Attributes:
        settings: Effective settings (repository, timeouts).
        client: HTTPX client used for every request.
        work_dir: Directory files are downloaded to.
        flavor: Kernel flavor of the configured architecture.
        ownership: Policy applied to every file written.
        activity: Log.txt writer.
        versions: Kernel builds available in the repository.
    """

    def __init__(
        self,
        settings: Settings,
        client: httpx.Client,
        work_dir: Path,
        ownership: OwnershipPolicy | None = None,
        activity: ActivityLog | None = None,
        on_progress: Callable[[str], None] | None = None,
    ) -> None:
        self.settings = settings
        self.client = client
        self.work_dir = work_dir
        self.flavor = KernelFlavor.for_arch(settings.arch)
        self.ownership = ownership or ownership_from_settings(
            settings.owner_uid, settings.owner_gid, settings.use_sudo
        )
        self.activity = activity or ActivityLog(work_dir / LOG_FILENAME)
        self.on_progress = on_progress
        self.versions: list[KernelVersionTag] = []

    @property
    def repository_url(self) -> str:
        return self.settings.repository_url

    @property
    def index_path(self) -> Path:
        return self.work_dir / INDEX_FILENAME

    @property
    def versions_path(self) -> Path:
        return self.work_dir / VERSIONS_FILENAME

    @property
    def dependency_list_path(self) -> Path:
        return self.work_dir / DEPENDENCY_LIST_FILENAME

    def _shared_files(self) -> list[Path]:
        return [
            p
            for p in (self.index_path, self.activity.path, self.dependency_list_path)
            if p.is_file()
        ]

    def _chown(self, path: Path) -> None:
        try:
            self.ownership.apply(path)
        except (PrivilegeError, OSError) as e:
            self.activity.error(f"Changing ownership of {path.name} failed: {e}")

    def prepare(self) -> None:
        """Run fatal environment checks and make shared files writable.

        Raises:
            PrivilegeError: If ownership changes need sudo and it is unusable.
        """
        self.work_dir.mkdir(parents=True, exist_ok=True)
        if self.ownership.requires_privileges:
            require_noninteractive_sudo()
            for path in self._shared_files():
                self.ownership.apply(path, uid=os.getuid())

    def refresh_index(self) -> bool:
        """Refresh info.lst if stale.

        Raises:
            IndexRefreshError: If the download fails.
        """
        return refresh_index(
            self.client,
            self.repository_url,
            self.index_path,
            max_age=self.settings.index_max_age,
            reference_paths=settings_reference_paths(),
            timeout=self.settings.download_timeout,
        )

    def load_versions(self) -> list[KernelVersionTag]:
        """Scan info.lst for kernel builds and write Versions.list."""
        text = self.index_path.read_text(encoding="utf-8", errors="replace")
        self.versions = scan_kernel_versions(text, self.flavor)
        self.versions_path.write_text(
            "".join(f"{v.suffix}\n" for v in self.versions), encoding="utf-8"
        )
        return self.versions

    def fetch_tree(self, extension: str) -> str | None:
        """Get the dependency tree of an extension.

        Extensions without dependencies have no .tree file on the mirror;
        for those a single-entry tree is synthesized if the extension itself
        exists.

        Returns:
            Tree text, or None if neither the tree nor the extension exists.
        """
        try:
            return fetch_text(
                self.client,
                self.repository_url + tree_name(extension),
                timeout=self.settings.request_timeout,
            )
        except DownloadError as e:
            logger.debug("No tree for %s: %s", extension, e)

        if url_exists(
            self.client,
            self.repository_url + extension,
            timeout=self.settings.request_timeout,
        ):
            return extension + "\n"
        return None

    def resolve(self, extension: str) -> list[str] | None:
        """Resolve an extension into its full dependency list.

        The list is also written to Dependency.list.

        Returns:
            Sorted, distinct file names, or None if the extension is unknown.
        """
        tree = self.fetch_tree(extension)
        if tree is None:
            return None
        entries = build_dependency_list(tree, self.versions, self.flavor)
        write_dependency_list(self.dependency_list_path, entries)
        return entries

    def fetch_entry(self, entry: str, report: FetchReport) -> None:
        """Download one extension with its sidecars and verify it."""
        if self.on_progress is not None:
            self.on_progress(entry)

        try:
            validate_extension_name(entry)
        except InvalidExtensionNameError:
            self.activity.error(f"{entry} is not a valid extension name.")
            report.record(entry, EntryStatus.FAILED, "invalid name")
            return

        target = self.work_dir / entry
        if target.exists():
            self.activity.info(f"{entry} already downloaded.")
            report.record(entry, EntryStatus.ALREADY_PRESENT)
            return

        try:
            download_file(
                self.client,
                self.repository_url + entry,
                target,
                timeout=self.settings.download_timeout,
            )
        except DownloadError as e:
            self.activity.error(f"{entry} download failed.")
            report.record(entry, EntryStatus.FAILED, str(e))
            return
        self.activity.info(f"{entry} downloaded.")
        report.record(entry, EntryStatus.DOWNLOADED)
        self._chown(target)

        dep_path = self.work_dir / dep_name(entry)
        try:
            download_file(
                self.client,
                self.repository_url + dep_path.name,
                dep_path,
                timeout=self.settings.request_timeout,
            )
        except DownloadError:
            logger.debug("%s has no .dep file", entry)
        else:
            self.activity.info(f"{dep_path.name} downloaded.")
            self._chown(dep_path)

        md5_path = self.work_dir / md5_name(entry)
        try:
            download_file(
                self.client,
                self.repository_url + md5_path.name,
                md5_path,
                timeout=self.settings.request_timeout,
            )
        except DownloadError as e:
            self.activity.error(f"{md5_path.name} download failed.")
            report.record(entry, EntryStatus.FAILED, str(e))
            return
        self.activity.info(f"{md5_path.name} downloaded.")
        self._chown(md5_path)

        try:
            verify_md5(target, md5_path)
        except VerificationError as e:
            self.activity.error(f"{entry} md5 checksum failed.")
            report.record(entry, EntryStatus.FAILED, str(e))

    def fetch(self, names: Iterable[str]) -> FetchReport:
        """Fetch extensions and all of their dependencies.

        Args:
            names: Extension names, with or without the .tcz suffix.

        Returns:
            FetchReport describing every entry processed.
        """
        report = FetchReport()
        for name in names:
            try:
                extension = validate_extension_name(name)
            except InvalidExtensionNameError:
                self.activity.start_session(self.repository_url, f"Processing {name}")
                self.activity.error(f"{name!r} is not a valid extension name.")
                report.record(name, EntryStatus.FAILED, "invalid name")
                continue

            report.requested.append(extension)
            entries = self.resolve(extension)
            if entries is None:
                self.activity.start_session(self.repository_url, f"Processing {extension}")
                self.activity.error(f"Processing {extension} failed.")
                report.record(extension, EntryStatus.FAILED, "not found")
                continue

            self.activity.start_session(self.repository_url, f"Processing {extension}")
            for entry in entries:
                self.fetch_entry(entry, report)

        report.first_error_at = self.activity.first_error_at
        return report

    def close(self) -> None:
        """Hand shared files to their owner and remove Versions.list."""
        for path in self._shared_files():
            self._chown(path)
        self.versions_path.unlink(missing_ok=True)


def open_session(
    settings: Settings,
    client: httpx.Client,
    work_dir: Path,
    on_progress: Callable[[str], None] | None = None,
) -> ExtensionFetcher:
    """Create a fetcher and run the fatal startup checks.

    Args:
        settings: Effective settings.
        client: HTTPX client instance.
        work_dir: Download directory.
        on_progress: Optional callback invoked once per entry.

    Returns:
        A fetcher with a fresh index.

    Raises:
        InvalidArchitectureError: If the architecture is unknown.
        PrivilegeError: If required privileges are unavailable.
        IndexRefreshError: If info.lst cannot be downloaded.
    """
    fetcher = ExtensionFetcher(settings, client, work_dir, on_progress=on_progress)
    fetcher.prepare()
    try:
        fetcher.refresh_index()
    except Exception:
        fetcher.close()
        raise
    return fetcher


def fetch_extensions(
    settings: Settings,
    names: Iterable[str],
    work_dir: Path,
    on_progress: Callable[[str], None] | None = None,
) -> FetchReport:
    """Fetch extensions into ``work_dir`` with a private HTTP client.

    Raises:
        InvalidArchitectureError: If the architecture is unknown.
        PrivilegeError: If required privileges are unavailable.
        IndexRefreshError: If info.lst cannot be downloaded.
    """
    with httpx.Client(follow_redirects=True) as client:
        fetcher = open_session(settings, client, work_dir, on_progress=on_progress)
        try:
            fetcher.load_versions()
            return fetcher.fetch(names)
        finally:
            fetcher.close()


__all__ = [
    "DEPENDENCY_LIST_FILENAME",
    "ExtensionFetcher",
    "VERSIONS_FILENAME",
    "fetch_extensions",
    "open_session",
]
