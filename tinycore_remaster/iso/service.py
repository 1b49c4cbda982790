"""ISO remaster service.

This module provides the remaster pipeline:
- Extract the base ISO and its core.gz root filesystem
- Fetch extensions and unpack them over the root filesystem
- Install a login-time startup script
- Repack core.gz and author a new bootable (hybrid) ISO

The pipeline is strictly linear. Any tool failure raises and aborts the
build; there is no recovery.
"""

from __future__ import annotations

import functools
import gzip
import logging
import shutil
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from tinycore_remaster.extensions.naming import TCZ_SUFFIX
from tinycore_remaster.extensions.service import fetch_extensions
from tinycore_remaster.iso.runner import (
    ISOHYBRID_TOOL,
    REQUIRED_TOOLS,
    MissingToolError,
    ToolRunner,
    find_missing_tools,
)
from tinycore_remaster.types import FetchReport

if TYPE_CHECKING:
    from tinycore_remaster.config import Settings
    from tinycore_remaster.iso.models import BuildRecipe

logger = logging.getLogger(__name__)

ISO_TREE = "isoext"
CORE_TREE = "coreext"
EXTENSIONS_DIR = "extensions"
SQUASHFS_ROOT = "squashfs-root"
CORE_ARCHIVE = "core.gz"
CORE_CPIO = "core.cpio"
STARTUP_SCRIPT_PATH = Path("etc/profile.d/startup.sh")
GZIP_LEVEL = 9

FetchFunc = Callable[[Iterable[str], Path], FetchReport]


@dataclass
class RemasterResult:
    """Result of an ISO remaster.

    Attributes:
        output_iso: Path of the authored ISO.
        fetch_report: Outcome of the extension fetch.
        injected: Extension files unpacked into core.gz.
    """

    output_iso: Path
    fetch_report: FetchReport
    injected: list[str] = field(default_factory=list)


class ImageBuilder:
    """Remasters a Tiny Core ISO with additional extensions.

    Relative recipe paths are resolved against ``work_dir``, which also holds
    the intermediate trees.
    """

    def __init__(
        self,
        settings: Settings,
        recipe: BuildRecipe,
        work_dir: Path,
        runner: ToolRunner | None = None,
        fetch: FetchFunc | None = None,
        on_step: Callable[[str], None] | None = None,
    ) -> None:
        self.settings = settings
        self.recipe = recipe
        self.work_dir = work_dir
        self.runner = runner or ToolRunner(use_sudo=settings.use_sudo)
        self.fetch = fetch or functools.partial(fetch_extensions, settings)
        self.on_step = on_step

    def _resolve(self, path: Path) -> Path:
        return path if path.is_absolute() else self.work_dir / path

    @property
    def base_iso(self) -> Path:
        return self._resolve(self.recipe.base_iso)

    @property
    def output_iso(self) -> Path:
        return self._resolve(self.recipe.output_iso)

    @property
    def iso_tree(self) -> Path:
        return self.work_dir / ISO_TREE

    @property
    def core_tree(self) -> Path:
        return self.work_dir / CORE_TREE

    @property
    def extensions_dir(self) -> Path:
        return self.work_dir / EXTENSIONS_DIR

    @property
    def core_archive(self) -> Path:
        return self.work_dir / CORE_ARCHIVE

    def _step(self, description: str) -> None:
        logger.info(description)
        if self.on_step is not None:
            self.on_step(description)

    def check_tools(self) -> None:
        """Verify the external tools and input files exist.

        Raises:
            MissingToolError: If a required tool is not on PATH.
            FileNotFoundError: If the base ISO or startup script is missing.
        """
        tools = list(REQUIRED_TOOLS.items())
        if self.recipe.isohybrid:
            tools.append(ISOHYBRID_TOOL)
        missing = find_missing_tools(tools)
        if missing:
            raise MissingToolError(missing)

        if not self.base_iso.is_file():
            raise FileNotFoundError(f"Base ISO not found: {self.base_iso}")
        script = self.recipe.startup_script
        if script is not None and not self._resolve(script).is_file():
            raise FileNotFoundError(f"Startup script not found: {self._resolve(script)}")

    def extract_iso(self) -> None:
        """Extract the base ISO into the ISO tree."""
        self._step(f"Extracting {self.base_iso.name}")
        self.runner.run(
            ["7z", "x", str(self.base_iso), f"-o{self.iso_tree}", "-y"],
            cwd=self.work_dir,
        )

    def take_core_archive(self) -> None:
        """Move the root filesystem archive out of the ISO tree."""
        source = self.iso_tree / self.recipe.core_archive
        if not source.is_file():
            raise FileNotFoundError(f"{self.recipe.core_archive} not found in ISO")
        shutil.move(str(source), str(self.core_archive))

    def unpack_core(self) -> None:
        """Unpack core.gz into the core tree, preserving device nodes."""
        self._step(f"Unpacking {self.recipe.core_archive}")
        cpio_path = self.work_dir / CORE_CPIO
        with gzip.open(self.core_archive, "rb") as src, cpio_path.open("wb") as dst:
            shutil.copyfileobj(src, dst)

        self.core_tree.mkdir(parents=True, exist_ok=True)
        with cpio_path.open("rb") as archive:
            self.runner.run(
                ["cpio", "-i", "-H", "newc", "-d"],
                cwd=self.core_tree,
                privileged=True,
                stdin=archive,
            )
        cpio_path.unlink()
        self.core_archive.unlink()

    def fetch_extensions(self) -> FetchReport:
        """Download the recipe's extensions and their dependencies."""
        self._step(f"Fetching {len(self.recipe.extensions)} extension(s)")
        self.extensions_dir.mkdir(parents=True, exist_ok=True)
        report = self.fetch(self.recipe.extensions, self.extensions_dir)
        if not report.ok:
            logger.warning(
                "Some extensions failed to download, see %s",
                self.extensions_dir / "Log.txt",
            )
        return report

    def unpack_extensions(self) -> list[str]:
        """Unpack every fetched extension into a shared squashfs-root."""
        self._step("Unpacking extensions")
        squashfs_root = self.extensions_dir / SQUASHFS_ROOT
        unpacked: list[str] = []
        for tcz in sorted(self.extensions_dir.glob(f"*{TCZ_SUFFIX}")):
            self.runner.run(
                ["unsquashfs", "-f", "-d", str(squashfs_root), tcz.name],
                cwd=self.extensions_dir,
            )
            unpacked.append(tcz.name)
        return unpacked

    def overlay_extensions(self) -> None:
        """Copy the unpacked extension contents over the core tree."""
        squashfs_root = self.extensions_dir / SQUASHFS_ROOT
        if not squashfs_root.is_dir():
            logger.warning("No extension contents to inject")
            return

        self._step("Injecting extensions into core")
        if self.runner.elevates:
            self.runner.run(
                ["cp", "-r", f"{squashfs_root}/.", f"{self.core_tree}/"],
                privileged=True,
            )
        else:
            shutil.copytree(
                squashfs_root, self.core_tree, symlinks=True, dirs_exist_ok=True
            )

    def install_startup_script(self) -> None:
        """Install the login-time startup script into the core tree."""
        if self.recipe.startup_script is None:
            return
        source = self._resolve(self.recipe.startup_script)
        dest = self.core_tree / STARTUP_SCRIPT_PATH
        self._step(f"Installing {source.name} as /{STARTUP_SCRIPT_PATH}")
        if self.runner.elevates:
            self.runner.run(
                ["install", "-D", "-m", "0755", str(source), str(dest)],
                privileged=True,
            )
        else:
            dest.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(source, dest)
            dest.chmod(0o755)

    def repack_core(self) -> None:
        """Archive the core tree as newc cpio and gzip it."""
        self._step(f"Repacking {CORE_ARCHIVE}")
        file_list = self.runner.run(["find", "."], cwd=self.core_tree, privileged=True)
        cpio_path = self.work_dir / CORE_CPIO
        with cpio_path.open("wb") as archive:
            self.runner.run(
                ["cpio", "-o", "-H", "newc"],
                cwd=self.core_tree,
                privileged=True,
                input_bytes=file_list,
                stdout=archive,
            )
        with cpio_path.open("rb") as src, gzip.open(
            self.core_archive, "wb", compresslevel=GZIP_LEVEL
        ) as dst:
            shutil.copyfileobj(src, dst)
        cpio_path.unlink()

    def replace_core_archive(self) -> None:
        """Put the new core.gz into the ISO tree."""
        dest = self.iso_tree / self.recipe.core_archive
        dest.parent.mkdir(parents=True, exist_ok=True)
        dest.unlink(missing_ok=True)
        shutil.move(str(self.core_archive), str(dest))

    def author_iso(self) -> Path:
        """Author the bootable ISO from the ISO tree."""
        output = self.output_iso
        self._step(f"Authoring {output.name}")
        output.parent.mkdir(parents=True, exist_ok=True)
        self.runner.run(
            [
                "mkisofs",
                "-l",
                "-J",
                "-R",
                "-V",
                self.recipe.volume_label,
                "-no-emul-boot",
                "-boot-load-size",
                "4",
                "-boot-info-table",
                "-b",
                self.recipe.boot_image,
                "-c",
                self.recipe.boot_catalog,
                "-o",
                str(output),
                str(self.iso_tree),
            ],
            cwd=self.work_dir,
        )
        if self.recipe.isohybrid:
            self.runner.run(["isohybrid", "-o", "64", str(output)], cwd=self.work_dir)
        return output

    def cleanup(self) -> None:
        """Remove intermediate trees and downloads."""
        if self.recipe.keep_work_dirs:
            logger.info("Keeping work directories in %s", self.work_dir)
            return
        self._step("Cleaning up")
        for path in (self.extensions_dir, self.iso_tree):
            shutil.rmtree(path, ignore_errors=True)
        if self.core_tree.exists():
            if self.runner.elevates:
                self.runner.run(["rm", "-rf", str(self.core_tree)], privileged=True)
            else:
                shutil.rmtree(self.core_tree)

    def build(self) -> RemasterResult:
        """Run the full remaster pipeline.

        Returns:
            RemasterResult describing the produced ISO.

        Raises:
            MissingToolError: If required tools are missing.
            FileNotFoundError: If an input file is missing.
            ToolExecutionError: If any external tool fails.
        """
        self.check_tools()
        self.extract_iso()
        self.take_core_archive()
        self.unpack_core()
        report = self.fetch_extensions()
        injected = self.unpack_extensions()
        self.overlay_extensions()
        self.install_startup_script()
        self.repack_core()
        self.replace_core_archive()
        output = self.author_iso()
        self.cleanup()
        return RemasterResult(output_iso=output, fetch_report=report, injected=injected)


__all__ = ["ImageBuilder", "RemasterResult"]
