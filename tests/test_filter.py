"""Tests for the tree inclusion rules."""

import os
import sys
from pathlib import Path

import pytest

from appbundler import TreeFilter, should_include


class TestShouldInclude:
    """Tests for should_include()."""

    @pytest.mark.parametrize(
        "path",
        ["dist", "dist/macos", "dist/macos/Play.app/Contents/Info.plist"],
    )
    def test_output_directory_excluded(self, path):
        """The output directory and everything under it is excluded."""
        assert not should_include(path, "dist")

    def test_output_prefix_matches_whole_segments(self):
        """A sibling sharing a name prefix with the output is kept."""
        assert should_include("distribution/readme.txt", "dist")
        assert should_include("dist-tools", "dist")

    def test_nested_output_directory(self):
        """A nested output directory only excludes its own subtree."""
        assert not should_include("build/out/file.txt", "build/out")
        assert should_include("build/other.txt", "build/out")

    def test_output_outside_project(self):
        """No output exclusion applies when the output is elsewhere."""
        assert should_include("dist/file.txt", None)

    def test_output_equal_to_project_root(self):
        """An output directory at the project root excludes everything."""
        assert not should_include("main.go", ".")
        assert not should_include("src/app.php", "")

    @pytest.mark.parametrize(
        "path",
        [".git", ".git/config", "src/.cache/file", "src/.env", "a/b/.hidden"],
    )
    def test_hidden_paths_excluded(self, path):
        """Any segment starting with a dot excludes the path."""
        assert not should_include(path, "dist")

    def test_dot_inside_name_is_not_hidden(self):
        """Dots after the first character do not hide a path."""
        assert should_include("src/app.config.php", "dist")

    def test_single_vendor_included(self):
        """A path with one vendor segment is kept."""
        assert should_include("vendor/lib/other.txt", "dist")
        assert should_include("vendor", "dist")

    def test_nested_vendor_excluded(self):
        """A path with vendor twice is excluded."""
        assert not should_include("vendor/lib/vendor", "dist")
        assert not should_include("vendor/lib/vendor/sub.txt", "dist")

    def test_vendor_counted_as_segment(self):
        """Only whole 'vendor' segments count."""
        assert should_include("vendor/vendored-lib/file.txt", "dist")
        assert should_include("vendor/lib/my_vendor/file.txt", "dist")

    def test_regular_paths_included(self):
        """Plain project files are kept."""
        assert should_include("main.go", "dist")
        assert should_include("src/Command/Bundle.php", "dist")


class TestTreeFilter:
    """Tests for the TreeFilter predicate."""

    def test_output_inside_project(self, tmp_path):
        """The output directory is expressed relative to the project."""
        tree_filter = TreeFilter(tmp_path, tmp_path / "dist")
        assert tree_filter.output_relative == "dist"
        assert not tree_filter("dist/macos")
        assert tree_filter("main.go")

    def test_output_outside_project(self, tmp_path):
        """An output directory outside the project has no relative form."""
        project = tmp_path / "project"
        project.mkdir()
        tree_filter = TreeFilter(project, tmp_path / "out")
        assert tree_filter.output_relative is None
        assert tree_filter("dist/file.txt")
        assert not tree_filter(".git/config")

    def test_accepts_strings(self, tmp_path):
        """Paths may be passed as strings."""
        tree_filter = TreeFilter(str(tmp_path), str(tmp_path / "build" / "out"))
        assert tree_filter.output_relative == Path("build/out").as_posix()
        assert not tree_filter("build/out/x")

    @pytest.mark.skipif(sys.platform == "win32", reason="symlinks")
    def test_symlinked_output_directory(self, tmp_path):
        """A dist symlink pointing outside the project is still excluded."""
        project = tmp_path / "project"
        project.mkdir()
        scratch = tmp_path / "scratch"
        scratch.mkdir()
        os.symlink(scratch, project / "dist")

        tree_filter = TreeFilter(project, project / "dist")

        assert tree_filter.output_relative == "dist"
        assert not tree_filter("dist/windows/Old/big.bin")

    @pytest.mark.skipif(sys.platform == "win32", reason="symlinks")
    def test_output_reached_through_symlinked_root(self, tmp_path):
        """A resolved output path still matches a symlinked project root."""
        project = tmp_path / "project"
        (project / "dist").mkdir(parents=True)
        os.symlink(project, tmp_path / "alias")

        tree_filter = TreeFilter(tmp_path / "alias", project / "dist")

        assert tree_filter.output_relative == "dist"
