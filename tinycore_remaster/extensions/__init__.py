"""Extension fetcher.

This module handles:
- Refreshing the repository index (info.lst) and scanning kernel builds
- Resolving an extension's .tree into a flat dependency list
- Downloading extensions with their .dep and .md5.txt sidecars
- Keeping the Log.txt activity log
"""

from tinycore_remaster.extensions.activity import ActivityLog
from tinycore_remaster.extensions.fetch import (
    DownloadError,
    DownloadResult,
    VerificationError,
    download_file,
    verify_md5,
)
from tinycore_remaster.extensions.index import IndexRefreshError, is_index_stale
from tinycore_remaster.extensions.kernel import (
    KERNEL_PLACEHOLDER,
    KernelVersionTag,
    scan_kernel_versions,
)
from tinycore_remaster.extensions.naming import (
    InvalidExtensionNameError,
    normalize_extension_name,
    validate_extension_name,
)
from tinycore_remaster.extensions.resolver import build_dependency_list
from tinycore_remaster.extensions.service import (
    ExtensionFetcher,
    fetch_extensions,
    open_session,
)

__all__ = [
    # Activity log
    "ActivityLog",
    # Fetch module
    "DownloadError",
    "DownloadResult",
    "VerificationError",
    "download_file",
    "verify_md5",
    # Index and kernel versions
    "IndexRefreshError",
    "KERNEL_PLACEHOLDER",
    "KernelVersionTag",
    "is_index_stale",
    "scan_kernel_versions",
    # Naming and resolution
    "InvalidExtensionNameError",
    "build_dependency_list",
    "normalize_extension_name",
    "validate_extension_name",
    # Service module
    "ExtensionFetcher",
    "fetch_extensions",
    "open_session",
]
