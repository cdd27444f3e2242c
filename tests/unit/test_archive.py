"""Unit tests for safe_extract."""

import os
import sys
import zipfile

import pytest

from conftest import write_zip
from device_flasher.errors import ExtractError
from device_flasher.utils.archive import safe_extract


@pytest.mark.unit
class TestSafeExtract:
    """Test ZIP extraction into a destination directory."""

    def test_extracts_nested_entries(self, tmp_path):
        archive = write_zip(
            tmp_path / "bundle.zip",
            {"platform-tools/adb": b"adb", "platform-tools/lib64/libc++.so": b"lib"},
        )

        destination = safe_extract(archive, tmp_path / "out")

        assert destination == (tmp_path / "out").resolve()
        assert (destination / "platform-tools" / "adb").read_bytes() == b"adb"
        assert (destination / "platform-tools" / "lib64" / "libc++.so").exists()

    def test_parent_traversal_rejected_before_writing(self, tmp_path):
        archive = write_zip(
            tmp_path / "evil.zip",
            {"good.txt": "ok", "../evil.txt": "bad"},
        )

        with pytest.raises(ExtractError, match="outside"):
            safe_extract(archive, tmp_path / "out")

        assert not (tmp_path / "evil.txt").exists()
        assert not (tmp_path / "out" / "good.txt").exists()

    def test_absolute_path_rejected(self, tmp_path):
        archive = tmp_path / "abs.zip"
        with zipfile.ZipFile(archive, "w") as zf:
            zf.writestr(zipfile.ZipInfo("/etc/evil.conf"), "bad")

        with pytest.raises(ExtractError):
            safe_extract(archive, tmp_path / "out")

    def test_not_a_zip(self, tmp_path):
        archive = tmp_path / "broken.zip"
        archive.write_bytes(b"this is not a zip archive")

        with pytest.raises(ExtractError, match="Invalid ZIP"):
            safe_extract(archive, tmp_path / "out")

    def test_missing_archive(self, tmp_path):
        with pytest.raises(ExtractError) as exc_info:
            safe_extract(tmp_path / "missing.zip", tmp_path / "out")

        assert exc_info.value.code == "EXTRACT_FAILED"

    @pytest.mark.skipif(sys.platform == "win32", reason="POSIX permission bits")
    def test_restores_executable_bit(self, tmp_path):
        archive = tmp_path / "tools.zip"
        with zipfile.ZipFile(archive, "w") as zf:
            info = zipfile.ZipInfo("platform-tools/fastboot")
            info.external_attr = 0o755 << 16
            zf.writestr(info, b"\x7fELF")

        destination = safe_extract(archive, tmp_path / "out")

        assert os.access(destination / "platform-tools" / "fastboot", os.X_OK)
