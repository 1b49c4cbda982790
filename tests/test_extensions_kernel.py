"""Tests for extensions/kernel.py module."""

from tinycore_remaster.extensions.kernel import (
    KernelVersionTag,
    scan_kernel_versions,
    split_kernel_tag,
)
from tinycore_remaster.types import KernelFlavor

INFO_LST = """\
alsa.tcz
alsa-modules-5.15.10-tinycore.tcz
alsa-modules-5.15.10-tinycore64.tcz
alsa-modules-6.1.2-tinycore.tcz
wireless-5.15.10-tinycore.tcz
wireless-6.1.68-piCore-v8.tcz
nano.tcz
"""


class TestKernelVersionTagParse:
    """Tests for KernelVersionTag.parse."""

    def test_parse_mainline(self):
        """Should parse a mainline kernel tag."""
        tag = KernelVersionTag.parse("alsa-modules-5.15.10-tinycore.tcz", KernelFlavor.MAINLINE)

        assert tag == KernelVersionTag(5, 15, 10, KernelFlavor.MAINLINE, "")
        assert tag.suffix == "-5.15.10-tinycore.tcz"
        assert tag.release == "5.15.10-tinycore"

    def test_parse_variant(self):
        """Should keep the variant after the flavor tag."""
        tag = KernelVersionTag.parse("alsa-modules-5.15.10-tinycore64.tcz", KernelFlavor.MAINLINE)

        assert tag is not None
        assert tag.variant == "64"
        assert tag.suffix == "-5.15.10-tinycore64.tcz"

    def test_parse_arm(self):
        """Should parse the piCore fork tag."""
        tag = KernelVersionTag.parse("wireless-6.1.68-piCore-v8.tcz", KernelFlavor.ARM)

        assert tag is not None
        assert (tag.major, tag.minor, tag.patch) == (6, 1, 68)
        assert tag.suffix == "-6.1.68-piCore-v8.tcz"

    def test_wrong_flavor(self):
        """Should not match a tag of the other flavor."""
        assert KernelVersionTag.parse("wireless-6.1.68-piCore-v8.tcz", KernelFlavor.MAINLINE) is None

    def test_plain_extension(self):
        """Should return None for extensions without a kernel tag."""
        assert KernelVersionTag.parse("nano.tcz", KernelFlavor.MAINLINE) is None

    def test_ordering_is_numeric(self):
        """Tags should sort by version number, not lexically."""
        low = KernelVersionTag(5, 9, 0, KernelFlavor.MAINLINE)
        high = KernelVersionTag(5, 15, 0, KernelFlavor.MAINLINE)
        assert sorted([high, low]) == [low, high]


class TestSplitKernelTag:
    """Tests for split_kernel_tag function."""

    def test_split(self):
        """Should return the base name and the tag."""
        base, tag = split_kernel_tag("alsa-modules-5.15.10-tinycore.tcz", KernelFlavor.MAINLINE)

        assert base == "alsa-modules"
        assert tag is not None

    def test_no_tag(self):
        """Should return the unchanged name without a tag."""
        assert split_kernel_tag("nano.tcz", KernelFlavor.MAINLINE) == ("nano.tcz", None)


class TestScanKernelVersions:
    """Tests for scan_kernel_versions function."""

    def test_scan_mainline(self):
        """Should collect distinct mainline tags in sorted order."""
        versions = scan_kernel_versions(INFO_LST, KernelFlavor.MAINLINE)

        assert [v.suffix for v in versions] == [
            "-5.15.10-tinycore.tcz",
            "-5.15.10-tinycore64.tcz",
            "-6.1.2-tinycore.tcz",
        ]

    def test_scan_arm(self):
        """Should only collect piCore tags for ARM."""
        versions = scan_kernel_versions(INFO_LST, KernelFlavor.ARM)

        assert [v.suffix for v in versions] == ["-6.1.68-piCore-v8.tcz"]

    def test_scan_empty(self):
        """Should return an empty list for an index without kernel modules."""
        assert scan_kernel_versions("nano.tcz\n", KernelFlavor.MAINLINE) == []
