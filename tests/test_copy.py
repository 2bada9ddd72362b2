"""Tests for copy_tree()."""

import logging
import os
import sys
from pathlib import Path
from unittest.mock import patch

import pytest

from appbundler import FileError, TreeFilter, copy_tree

needs_symlinks = pytest.mark.skipif(
    sys.platform == "win32", reason="symlinks need privileges on Windows"
)


@pytest.fixture
def source(tmp_path):
    """Create a small project tree."""
    root = tmp_path / "source"
    root.mkdir()
    (root / "main.go").write_text("package main\n")
    (root / "src").mkdir()
    (root / "src" / "app.php").write_bytes(b"<?php echo 1;\x00\xff")
    (root / ".git").mkdir()
    (root / ".git" / "config").write_text("[core]\n")
    (root / "dist").mkdir()
    (root / "dist" / "old.txt").write_text("old")
    (root / "vendor" / "lib" / "vendor").mkdir(parents=True)
    (root / "vendor" / "lib" / "other.txt").write_text("other")
    (root / "vendor" / "lib" / "vendor" / "sub.txt").write_text("sub")
    return root


@pytest.fixture
def dest(tmp_path):
    """Create an empty destination directory."""
    path = tmp_path / "dest"
    path.mkdir()
    return path


def relative_entries(root: Path) -> set[str]:
    return {p.relative_to(root).as_posix() for p in root.rglob("*")}


class TestCopyTree:
    """Tests for copying a filtered tree."""

    def test_copies_eligible_entries(self, source, dest):
        """Only entries passing the filter end up in the destination."""
        count = copy_tree(source, dest, TreeFilter(source, source / "dist"))

        expected = {
            "main.go",
            "src",
            "src/app.php",
            "vendor",
            "vendor/lib",
            "vendor/lib/other.txt",
        }
        assert relative_entries(dest) == expected
        assert count == len(expected)

    def test_file_content_identical(self, source, dest):
        """Files are copied byte for byte."""
        copy_tree(source, dest, TreeFilter(source, source / "dist"))
        for name in ("main.go", "src/app.php", "vendor/lib/other.txt"):
            assert (dest / name).read_bytes() == (source / name).read_bytes()

    def test_excluded_directories_are_pruned(self, source, dest):
        """Nothing beneath an excluded directory is offered to the filter."""
        seen = []

        def include(relative):
            seen.append(relative)
            return not relative.startswith(".") and relative != "dist"

        copy_tree(source, dest, include)

        assert ".git" in seen
        assert "dist" in seen
        assert not any(p.startswith(".git/") for p in seen)
        assert not any(p.startswith("dist/") for p in seen)

    def test_existing_destination_directories(self, source, dest):
        """Directories already present in the destination are reused."""
        (dest / "src").mkdir()
        copy_tree(source, dest, TreeFilter(source, source / "dist"))
        assert (dest / "src" / "app.php").exists()

    @pytest.mark.skipif(sys.platform == "win32", reason="POSIX permissions")
    def test_permissions_not_carried(self, source, dest):
        """Execute bits of source files are not copied."""
        script = source / "run.sh"
        script.write_text("#!/bin/sh\n")
        script.chmod(0o755)
        copy_tree(source, dest, TreeFilter(source, source / "dist"))
        assert not os.access(dest / "run.sh", os.X_OK)

    def test_logs_progress(self, source, dest, caplog):
        """One message per created directory and per copied file."""
        caplog.set_level(logging.INFO)
        copy_tree(source, dest, TreeFilter(source, source / "dist"))

        messages = [r.getMessage() for r in caplog.records]
        assert "Creating directory: /src" in messages
        assert "Copying file: /src/app.php" in messages
        assert "Copying file: /main.go" in messages
        assert sum(m.startswith("Creating directory") for m in messages) == 3
        assert sum(m.startswith("Copying file") for m in messages) == 3

    def test_copy_failure_raises_file_error(self, source, dest):
        """Copy errors surface as FileError."""
        with patch("appbundler.shutil.copyfile", side_effect=OSError("boom")):
            with pytest.raises(FileError, match="boom"):
                copy_tree(source, dest, TreeFilter(source, source / "dist"))

    def test_missing_source_raises_file_error(self, tmp_path, dest):
        """Walking a missing source tree is an error, not an empty copy."""
        with pytest.raises(FileError):
            copy_tree(tmp_path / "missing", dest, lambda relative: True)


@needs_symlinks
class TestCopyTreeSymlinks:
    """Tests for symlink handling."""

    def test_follows_symlinked_vendor_package(self, tmp_path, dest):
        """A symlinked package is copied, its own vendor tree is not."""
        package = tmp_path / "package"
        (package / "vendor" / "dep").mkdir(parents=True)
        (package / "src.php").write_text("package")
        (package / "vendor" / "dep" / "dep.php").write_text("dep")

        source = tmp_path / "project"
        (source / "vendor").mkdir(parents=True)
        os.symlink(package, source / "vendor" / "package")

        copy_tree(source, dest, TreeFilter(source, source / "dist"))

        assert (dest / "vendor" / "package" / "src.php").read_text() == "package"
        assert not (dest / "vendor" / "package" / "vendor").exists()

    def test_symlinked_file_copied_as_file(self, source, dest):
        """A symlink to a file is copied as a regular file."""
        os.symlink(source / "main.go", source / "link.go")
        copy_tree(source, dest, TreeFilter(source, source / "dist"))

        assert not (dest / "link.go").is_symlink()
        assert (dest / "link.go").read_text() == "package main\n"

    def test_dangling_symlink_skipped(self, source, dest):
        """A symlink pointing nowhere is skipped."""
        os.symlink(source / "missing", source / "broken")
        copy_tree(source, dest, TreeFilter(source, source / "dist"))
        assert not (dest / "broken").exists()

    def test_symlink_cycle_pruned(self, source, dest):
        """A link back to an ancestor is not expanded."""
        os.symlink(source / "src", source / "src" / "loop")
        copy_tree(source, dest, TreeFilter(source, source / "dist"))

        assert (dest / "src" / "app.php").exists()
        assert not (dest / "src" / "loop").exists()
