"""Tests for iso/service.py module.

External tools are replaced by a mocked ToolRunner that produces the files
the real tools would.
"""

import gzip
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from tinycore_remaster.config import Settings
from tinycore_remaster.iso.models import BuildRecipe
from tinycore_remaster.iso.runner import MissingToolError, ToolExecutionError, ToolRunner
from tinycore_remaster.iso.service import ImageBuilder
from tinycore_remaster.types import EntryStatus, FetchReport

CPIO_ARCHIVE = b"070701fake-newc-archive"


def fake_tool(cmd, cwd=None, privileged=False, stdin=None, stdout=None, input_bytes=None):
    """Emulate the side effects of the external tools."""
    tool = cmd[0]
    if tool == "7z":
        iso_tree = Path(cmd[3][2:])
        (iso_tree / "boot" / "isolinux").mkdir(parents=True)
        (iso_tree / "boot" / "isolinux" / "isolinux.bin").write_bytes(b"boot")
        (iso_tree / "boot" / "vmlinuz").write_bytes(b"kernel")
        with gzip.open(iso_tree / "boot" / "core.gz", "wb") as f:
            f.write(CPIO_ARCHIVE)
    elif tool == "cpio" and "-i" in cmd:
        assert stdin.read() == CPIO_ARCHIVE
        (Path(cwd) / "etc").mkdir()
        (Path(cwd) / "etc" / "motd").write_text("Tiny Core\n")
    elif tool == "cpio":
        stdout.write(b"repacked:" + input_bytes)
    elif tool == "find":
        return b".\n./etc\n./etc/motd\n"
    elif tool == "unsquashfs":
        root = Path(cmd[3])
        name = cmd[4].removesuffix(".tcz")
        (root / "usr" / "local" / "bin").mkdir(parents=True, exist_ok=True)
        (root / "usr" / "local" / "bin" / name).write_text(name)
    elif tool == "mkisofs":
        Path(cmd[cmd.index("-o") + 1]).write_bytes(b"iso")
    return b""


def fake_fetch(names, work_dir):
    """Write one file per requested extension."""
    report = FetchReport()
    for name in names:
        (work_dir / name).write_bytes(b"squashfs")
        report.requested.append(name)
        report.record(name, EntryStatus.DOWNLOADED)
    return report


@pytest.fixture
def runner() -> MagicMock:
    mock = MagicMock(spec=ToolRunner)
    mock.elevates = False
    mock.run.side_effect = fake_tool
    return mock


@pytest.fixture
def work_dir(tmp_path) -> Path:
    (tmp_path / "Core-current.iso").write_bytes(b"iso")
    (tmp_path / "startup.sh").write_text("#!/bin/sh\necho hello\n")
    return tmp_path


def make_builder(work_dir, runner, **recipe) -> ImageBuilder:
    return ImageBuilder(
        Settings(),
        BuildRecipe(extensions=["nano", "htop"], **recipe),
        work_dir,
        runner=runner,
        fetch=fake_fetch,
    )


def tools_run(runner) -> list[str]:
    return [c.args[0][0] for c in runner.run.call_args_list]


class TestCheckTools:
    """Tests for ImageBuilder.check_tools."""

    def test_all_present(self, work_dir, runner):
        with patch("tinycore_remaster.iso.service.find_missing_tools", return_value={}):
            make_builder(work_dir, runner).check_tools()

    def test_missing_tool(self, work_dir, runner):
        with patch(
            "tinycore_remaster.iso.service.find_missing_tools",
            return_value={"mkisofs": "cdrtools"},
        ), pytest.raises(MissingToolError, match="mkisofs"):
            make_builder(work_dir, runner).check_tools()

    def test_isohybrid_only_checked_when_enabled(self, work_dir, runner):
        with patch(
            "tinycore_remaster.iso.service.find_missing_tools", return_value={}
        ) as mock_find:
            make_builder(work_dir, runner, isohybrid=False).check_tools()
        assert "isohybrid" not in dict(mock_find.call_args.args[0])

    def test_missing_base_iso(self, work_dir, runner):
        (work_dir / "Core-current.iso").unlink()
        with patch("tinycore_remaster.iso.service.find_missing_tools", return_value={}):
            with pytest.raises(FileNotFoundError, match="Base ISO"):
                make_builder(work_dir, runner).check_tools()

    def test_missing_startup_script(self, work_dir, runner):
        (work_dir / "startup.sh").unlink()
        with patch("tinycore_remaster.iso.service.find_missing_tools", return_value={}):
            with pytest.raises(FileNotFoundError, match="Startup script"):
                make_builder(work_dir, runner).check_tools()


class TestSteps:
    """Tests for the individual pipeline steps."""

    def test_extract_and_unpack_core(self, work_dir, runner):
        builder = make_builder(work_dir, runner)
        builder.extract_iso()
        builder.take_core_archive()
        builder.unpack_core()

        assert not (builder.iso_tree / "boot" / "core.gz").exists()
        assert not builder.core_archive.exists()
        assert (builder.core_tree / "etc" / "motd").read_text() == "Tiny Core\n"
        cpio_call = runner.run.call_args_list[1]
        assert cpio_call.args[0] == ["cpio", "-i", "-H", "newc", "-d"]
        assert cpio_call.kwargs["privileged"] is True

    def test_core_archive_missing_from_iso(self, work_dir, runner):
        builder = make_builder(work_dir, runner, core_archive="boot/corepure64.gz")
        builder.extract_iso()
        with pytest.raises(FileNotFoundError, match="corepure64.gz"):
            builder.take_core_archive()

    def test_unpack_extensions_sorted(self, work_dir, runner):
        builder = make_builder(work_dir, runner)
        builder.fetch_extensions()
        injected = builder.unpack_extensions()

        assert injected == ["htop.tcz", "nano.tcz"]
        squashfs_root = builder.extensions_dir / "squashfs-root"
        assert (squashfs_root / "usr" / "local" / "bin" / "nano").exists()

    def test_overlay_without_sudo(self, work_dir, runner):
        builder = make_builder(work_dir, runner)
        builder.core_tree.mkdir()
        (builder.core_tree / "etc").mkdir()
        builder.fetch_extensions()
        builder.unpack_extensions()
        builder.overlay_extensions()

        assert (builder.core_tree / "usr" / "local" / "bin" / "htop").read_text() == "htop"
        assert (builder.core_tree / "etc").is_dir()

    def test_overlay_with_sudo(self, work_dir, runner):
        runner.elevates = True
        builder = make_builder(work_dir, runner)
        (builder.extensions_dir / "squashfs-root").mkdir(parents=True)
        builder.overlay_extensions()

        call = runner.run.call_args
        assert call.args[0][:2] == ["cp", "-r"]
        assert call.kwargs["privileged"] is True

    def test_overlay_nothing_to_inject(self, work_dir, runner):
        builder = make_builder(work_dir, runner)
        builder.overlay_extensions()
        runner.run.assert_not_called()

    def test_install_startup_script(self, work_dir, runner):
        builder = make_builder(work_dir, runner)
        builder.core_tree.mkdir()
        builder.install_startup_script()

        installed = builder.core_tree / "etc" / "profile.d" / "startup.sh"
        assert installed.read_text() == "#!/bin/sh\necho hello\n"
        assert installed.stat().st_mode & 0o777 == 0o755

    def test_install_startup_script_with_sudo(self, work_dir, runner):
        runner.elevates = True
        builder = make_builder(work_dir, runner)
        builder.install_startup_script()
        assert runner.run.call_args.args[0][:4] == ["install", "-D", "-m", "0755"]

    def test_no_startup_script(self, work_dir, runner):
        builder = make_builder(work_dir, runner, startup_script=None)
        builder.install_startup_script()
        assert not (builder.core_tree / "etc" / "profile.d").exists()

    def test_repack_core(self, work_dir, runner):
        builder = make_builder(work_dir, runner)
        builder.core_tree.mkdir()
        builder.repack_core()

        with gzip.open(builder.core_archive, "rb") as f:
            assert f.read() == b"repacked:.\n./etc\n./etc/motd\n"
        assert not (work_dir / "core.cpio").exists()
        assert tools_run(runner) == ["find", "cpio"]

    def test_author_iso(self, work_dir, runner):
        builder = make_builder(work_dir, runner, volume_label="remaster")
        builder.iso_tree.mkdir()
        output = builder.author_iso()

        assert output == work_dir / "remaster.iso"
        mkisofs = runner.run.call_args_list[0].args[0]
        assert mkisofs[mkisofs.index("-V") + 1] == "remaster"
        assert mkisofs[mkisofs.index("-b") + 1] == "boot/isolinux/isolinux.bin"
        assert mkisofs[-1] == str(builder.iso_tree)
        assert runner.run.call_args_list[1].args[0] == ["isohybrid", "-o", "64", str(output)]

    def test_author_iso_without_isohybrid(self, work_dir, runner):
        builder = make_builder(work_dir, runner, isohybrid=False)
        builder.author_iso()
        assert tools_run(runner) == ["mkisofs"]

    def test_tool_failure_propagates(self, work_dir, runner):
        runner.run.side_effect = ToolExecutionError("7z failed", exit_code=2)
        with pytest.raises(ToolExecutionError):
            make_builder(work_dir, runner).extract_iso()


class TestBuild:
    """Tests for the full ImageBuilder.build pipeline."""

    def test_full_build(self, work_dir, runner):
        steps: list[str] = []
        builder = make_builder(work_dir, runner)
        builder.on_step = steps.append

        with patch("tinycore_remaster.iso.service.find_missing_tools", return_value={}):
            result = builder.build()

        assert result.output_iso == work_dir / "remaster.iso"
        assert result.output_iso.read_bytes() == b"iso"
        assert result.injected == ["htop.tcz", "nano.tcz"]
        assert result.fetch_report.ok
        assert tools_run(runner) == [
            "7z",
            "cpio",
            "unsquashfs",
            "unsquashfs",
            "find",
            "cpio",
            "mkisofs",
            "isohybrid",
        ]
        assert not builder.iso_tree.exists()
        assert not builder.core_tree.exists()
        assert not builder.extensions_dir.exists()
        assert steps[0] == "Extracting Core-current.iso"
        assert steps[-1] == "Cleaning up"

    def test_keep_work_dirs(self, work_dir, runner):
        builder = make_builder(work_dir, runner, keep_work_dirs=True)
        with patch("tinycore_remaster.iso.service.find_missing_tools", return_value={}):
            builder.build()

        with gzip.open(builder.iso_tree / "boot" / "core.gz", "rb") as f:
            assert f.read().startswith(b"repacked:")
        startup = builder.core_tree / "etc" / "profile.d" / "startup.sh"
        assert startup.exists()
        assert (builder.core_tree / "usr" / "local" / "bin" / "nano").exists()

    def test_missing_tool_stops_build(self, work_dir, runner):
        with patch(
            "tinycore_remaster.iso.service.find_missing_tools",
            return_value={"7z": "p7zip"},
        ), pytest.raises(MissingToolError):
            make_builder(work_dir, runner).build()
        runner.run.assert_not_called()
