#!/usr/bin/env python3
"""appbundler - self-contained application bundles from a project tree.

This module assembles a portable, platform-native application bundle from
a project's source tree:

1. macOS: a ``.app`` directory with an executable launcher, an Info.plist
   manifest, the runtime binary and a copy of the project in Resources
2. Windows: a portable folder with a ``.bat`` launcher, an AppInfo.ini
   manifest, the runtime binary and a copy of the project

Hidden files, the output directory itself and vendor trees nested inside
other vendor trees are never copied into the bundle.

Usage (CLI):
    # Bundle the project in the current directory for the host platform
    appbundler

    # Bundle for macOS into a custom output directory
    appbundler --os macos -o /tmp/dist --project-name "Play Demo"

Usage (API):
    from appbundler import BundleCommand, make_bundle

    bundle_path = make_bundle("/path/to/project", os_name="macos")
"""

import argparse
import datetime
import logging
import os
import re
import shutil
import stat
import sys
from pathlib import Path
from typing import Callable, NamedTuple, Protocol
from xml.sax.saxutils import escape

from dotenv import find_dotenv, load_dotenv

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

# ----------------------------------------------------------------------------
# Constants

__version__ = "0.1.0"

# Type aliases
Pathlike = Path | str
ConfirmFunc = Callable[[str], bool]

# Supported platforms
MACOS = "macos"
WINDOWS = "windows"

# Default output directory name (relative to the project root)
DEFAULT_OUTPUT_DIRNAME = "dist"

# Default bundle identifier prefix
DEFAULT_BUNDLE_ID = "com.visu"

# Default bundle extension (macOS)
DEFAULT_BUNDLE_EXT = ".app"

# Default minimum macOS version
DEFAULT_MIN_SYSTEM_VERSION = "10.9"

# Icon file names expected in the bundle resources
MACOS_ICON_FILE = "icon.icns"
WINDOWS_ICON_FILE = "icon.ico"

# Bundle package type identifier (APPL = Application, ???? = creator code)
PKG_INFO_CONTENT = "APPL????"

# Runtime binary locations relative to the project root
DEFAULT_MACOS_RUNTIME = "bin/php"
DEFAULT_WINDOWS_RUNTIME = "bin/php.exe"

# Entry resource the launcher hands to the runtime
DEFAULT_ENTRY = "bin/play"

# Characters not allowed in paths interpolated into launcher scripts
LAUNCHER_UNSAFE_CHARS = re.compile(r'["$`%\\\r\n]')

# Directory name whose repetition marks a nested dependency tree
VENDOR_DIRNAME = "vendor"

# Suffix of the staging directory a bundle is built in
STAGING_SUFFIX = ".partial"

# Environment variable names
ENV_OUTPUT = "APPBUNDLER_OUTPUT"
ENV_OS = "APPBUNDLER_OS"

# Configuration files searched in the project root (later files win)
CONFIG_FILENAMES = ["appbundler.toml", ".appbundler.toml"]

OVERWRITE_QUESTION = (
    "The application already exists, do you want to overwrite it?"
)

# Execute bits for owner, group and other
EXECUTE_BITS = stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH

INFO_PLIST_TMPL = """\
<?xml version="1.0" encoding="UTF-8"?>
<!DOCTYPE plist PUBLIC "-//Apple//DTD PLIST 1.0//EN" "http://www.apple.com/DTDs/PropertyList-1.0.dtd">
<plist version="1.0">
<dict>
    <key>CFBundleExecutable</key>
    <string>{executable}</string>
    <key>CFBundleIconFile</key>
    <string>{icon_file}</string>
    <key>CFBundleIdentifier</key>
    <string>{bundle_identifier}</string>
    <key>CFBundleName</key>
    <string>{bundle_name}</string>
    <key>CFBundlePackageType</key>
    <string>APPL</string>
    <key>CFBundleShortVersionString</key>
    <string>{bundle_version}</string>
    <key>CFBundleVersion</key>
    <string>{bundle_version}</string>
    <key>LSMinimumSystemVersion</key>
    <string>{min_system_version}</string>
    <key>NSHighResolutionCapable</key>
    <true/>
</dict>
</plist>
"""

MACOS_LAUNCHER_TMPL = """\
#!/bin/sh
DIR="$(cd "$(dirname "$0")" && pwd)"
exec "$DIR/{runtime}" "$DIR/../Resources/{entry}" "$@"
"""

WINDOWS_LAUNCHER_TMPL = """\
@echo off
"%~dp0runtime\\{runtime}" "%~dp0app\\{entry}" %*
exit /b %ERRORLEVEL%
"""

APP_INFO_TMPL = """\
[Application]
Name={bundle_name}
Version={bundle_version}
Identifier={bundle_identifier}
Executable={executable}
Icon={icon_file}
"""

# ----------------------------------------------------------------------------
# Error handling


class BundlerError(Exception):
    """Base exception class for appbundler errors."""


class ConfigurationError(BundlerError):
    """Exception raised when a required parameter cannot be resolved."""


class FileError(BundlerError):
    """Exception raised when a file operation fails."""


class UnsupportedPlatformError(BundlerError):
    """Exception raised when no bundle variant matches the platform."""


# ----------------------------------------------------------------------------
# Configuration file support


class Config:
    """Read-only view over nested configuration tables.

    Keys are dotted paths into the nested tables, so ``project.bundler.name``
    looks up ``data["project"]["bundler"]["name"]``.
    """

    def __init__(self, data: dict[str, object] | None = None):
        self.data = data or {}

    def get(self, key: str, default: object = None) -> object:
        """Get a value by dotted key, or default if any segment is missing."""
        node: object = self.data
        for part in key.split("."):
            if not isinstance(node, dict) or part not in node:
                return default
            node = node[part]
        return node


def _read_toml(path: Path) -> dict[str, object]:
    """Parse a TOML file, raising ConfigurationError when malformed."""
    try:
        with open(path, "rb") as f:
            return tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigurationError(f"Invalid TOML in {path}: {e}") from e
    except OSError as e:
        raise FileError(f"Cannot read configuration {path}: {e}") from e


def _merge(base: dict[str, object], other: dict[str, object]) -> None:
    """Recursively merge other into base, other wins."""
    for key, value in other.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            _merge(base[key], value)  # type: ignore[arg-type]
        elif isinstance(value, dict):
            base[key] = {}
            _merge(base[key], value)  # type: ignore[arg-type]
        else:
            base[key] = value


def load_config(project_root: Pathlike) -> Config:
    """Load the project configuration.

    Sources are merged in the following order, later ones win:
    1. pyproject.toml: [project] name/version and [tool.appbundler]
    2. appbundler.toml in the project root
    3. .appbundler.toml in the project root

    Args:
        project_root: The root directory of the project to bundle

    Returns:
        Config over the merged tables (empty if no file was found)

    Example appbundler.toml:
        [project]
        name = "Play Demo"
        version = "1.2.0"

        [project.bundler]
        name = "PlayDemo"
        runtime = "bin/php"
        entry = "bin/play"
    """
    root = Path(project_root)
    data: dict[str, object] = {}

    pyproject = root / "pyproject.toml"
    if pyproject.is_file():
        doc = _read_toml(pyproject)
        project = doc.get("project", {})
        tool = doc.get("tool", {})
        section: dict[str, object] = {}
        if isinstance(project, dict):
            for key in ("name", "version"):
                if key in project:
                    section[key] = project[key]
        if isinstance(tool, dict) and isinstance(tool.get("appbundler"), dict):
            section["bundler"] = tool["appbundler"]
        _merge(data, {"project": section})

    for filename in CONFIG_FILENAMES:
        path = root / filename
        if path.is_file():
            _merge(data, _read_toml(path))

    return Config(data)


# ----------------------------------------------------------------------------
# Logging configuration

# Level for the final result of a run, between INFO and WARNING
SUCCESS = 25
logging.addLevelName(SUCCESS, "SUCCESS")


class CustomFormatter(logging.Formatter):
    """Custom logging formatting class with color support."""

    class color:
        """Text colors for terminal output."""

        white = "\x1b[97;20m"
        grey = "\x1b[38;20m"
        green = "\x1b[32;20m"
        bold_green = "\x1b[32;1m"
        yellow = "\x1b[33;20m"
        red = "\x1b[31;20m"
        bold_red = "\x1b[31;1m"
        reset = "\x1b[0m"

    cfmt = (
        f"{color.white}%(delta)s{color.reset} - "
        f"{{}}%(levelname)s{color.reset} - "
        f"{color.white}%(name)s.%(funcName)s{color.reset} - "
        f"{color.grey}%(message)s{color.reset}"
    )

    FORMATS = {
        logging.DEBUG: cfmt.format(color.grey),
        logging.INFO: cfmt.format(color.green),
        SUCCESS: cfmt.format(color.bold_green),
        logging.WARNING: cfmt.format(color.yellow),
        logging.ERROR: cfmt.format(color.red),
        logging.CRITICAL: cfmt.format(color.bold_red),
    }

    def __init__(self, use_color: bool = True):
        super().__init__()
        self.use_color = use_color
        self.fmt = (
            "%(delta)s - %(levelname)s - %(name)s.%(funcName)s - %(message)s"
        )

    def format(self, record: logging.LogRecord) -> str:
        """Format the log record with color if enabled."""
        if not self.use_color:
            log_fmt = self.fmt
        else:
            log_fmt = self.FORMATS.get(record.levelno, self.fmt)
        duration = datetime.datetime.fromtimestamp(
            record.relativeCreated / 1000, datetime.timezone.utc
        )
        record.delta = duration.strftime("%H:%M:%S")
        formatter = logging.Formatter(log_fmt)
        return formatter.format(record)


def setup_logging(debug: bool = False, use_color: bool = True) -> None:
    """Configure logging for the application.

    Args:
        debug: Whether to enable debug logging
        use_color: Whether to use colored output
    """
    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(CustomFormatter(use_color))
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        handlers=[stream_handler],
    )


# ----------------------------------------------------------------------------
# Confirmation prompt


def ask_confirmation(question: str) -> bool:
    """Ask a yes/no question on the terminal.

    Re-asks until the answer is recognized. End of input counts as no.
    """
    while True:
        try:
            answer = input(f"{question} [y/N]: ").strip().lower()
        except EOFError:
            return False
        if answer in ("y", "yes"):
            return True
        if answer in ("", "n", "no"):
            return False


def always_confirm(question: str) -> bool:
    """Confirmation callable used with --yes."""
    return True


# ----------------------------------------------------------------------------
# Project identity and output paths


class ProjectIdentity(NamedTuple):
    """Name and version of the application being bundled."""

    name: str
    version: str


class BundleTarget(NamedTuple):
    """Where a bundle for a given platform ends up."""

    output_root: Path
    bundle_path: Path
    platform: str


def resolve_project_parameter(
    field: str, explicit_value: str | None, config: Config
) -> str:
    """Resolve a project parameter with fallback to the configuration.

    The explicit value wins when non-empty. Otherwise the configuration is
    queried for ``project.bundler.<field>`` and then ``project.<field>``.

    Raises:
        ConfigurationError: If no non-empty value is found
    """
    if explicit_value:
        return explicit_value

    for key in (f"project.bundler.{field}", f"project.{field}"):
        value = config.get(key)
        if value:
            return str(value)

    raise ConfigurationError(
        f"Failed to determine the {field} of the application."
    )


def resolve_identity(
    config: Config, name: str | None = None, version: str | None = None
) -> ProjectIdentity:
    """Resolve the project name and version."""
    return ProjectIdentity(
        name=resolve_project_parameter("name", name, config),
        version=resolve_project_parameter("version", version, config),
    )


def resolve_output_directory(
    project_root: Pathlike, explicit_path: Pathlike | None = None
) -> Path:
    """Return the output directory, creating it if needed.

    Args:
        project_root: The root directory of the project
        explicit_path: Output directory; defaults to <project_root>/dist

    Raises:
        ConfigurationError: If the parent of the output directory is missing
        FileError: If the directory cannot be created
    """
    if explicit_path:
        output_dir = Path(os.path.abspath(Path(explicit_path).expanduser()))
    else:
        output_dir = Path(project_root).resolve() / DEFAULT_OUTPUT_DIRNAME

    if not output_dir.parent.is_dir():
        raise ConfigurationError(
            f"The output root directory does not exist: {output_dir.parent}"
        )

    if not output_dir.is_dir():
        try:
            output_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise FileError(
                f"Failed to create the output directory: {output_dir}: {e}"
            ) from e

    return output_dir


def bundle_target(
    output_root: Pathlike, platform: str, name: str
) -> BundleTarget:
    """Derive the bundle path for a platform and application name."""
    output_root = Path(output_root)
    if platform == MACOS:
        bundle_path = output_root / MACOS / (name + DEFAULT_BUNDLE_EXT)
    elif platform == WINDOWS:
        bundle_path = output_root / WINDOWS / name
    else:
        raise UnsupportedPlatformError(
            f"Unsupported operating system: {platform}"
        )
    return BundleTarget(output_root, bundle_path, platform)


def entry_script_name(name: str) -> str:
    """Return the application name stripped to [A-Za-z0-9].

    Raises:
        ConfigurationError: If nothing is left after stripping
    """
    script = re.sub(r"[^a-zA-Z0-9]", "", name)
    if not script:
        raise ConfigurationError(
            f"Cannot derive an entry script name from '{name}'"
        )
    return script


def check_launcher_path(value: str, what: str) -> str:
    """Reject paths that would break out of the quoted launcher strings.

    Raises:
        ConfigurationError: If value is empty or holds shell/batch
            metacharacters
    """
    if not value or LAUNCHER_UNSAFE_CHARS.search(value):
        raise ConfigurationError(
            f"Invalid {what} path for the launcher: {value!r}"
        )
    return value


def bundle_identifier(name: str, prefix: str = DEFAULT_BUNDLE_ID) -> str:
    """Return the bundle identifier for an application name.

    The name is interpolated as-is: spaces, dots and case are kept.
    """
    return f"{prefix}.{name}"


# ----------------------------------------------------------------------------
# Tree filtering


def should_include(
    relative_path: str, output_relative: str | None = None
) -> bool:
    """Decide whether a project path belongs in the bundle.

    Args:
        relative_path: Path relative to the project root, '/' separated
        output_relative: The output directory relative to the project root,
            or None when it lies outside the project

    Returns:
        False for the output directory and anything under it, for any path
        with a hidden segment and for paths with more than one 'vendor'
        segment. True otherwise.
    """
    parts = [p for p in relative_path.split("/") if p not in ("", ".")]

    # an output directory equal to the project root excludes everything
    if output_relative is not None:
        output_parts = [
            p for p in output_relative.split("/") if p not in ("", ".")
        ]
        if parts[: len(output_parts)] == output_parts:
            return False

    if any(part.startswith(".") for part in parts):
        return False

    # a symlinked vendored package may carry its own vendor tree
    if parts.count(VENDOR_DIRNAME) > 1:
        return False

    return True


def _relative_inside(path: Path, root: Path) -> str | None:
    """Return path relative to root, or None if it lies outside root."""
    try:
        return path.relative_to(root).as_posix()
    except ValueError:
        return None


class TreeFilter:
    """Inclusion predicate parameterized with a run's output directory.

    The output directory is matched as given first, so a symlinked
    ``<project>/dist`` is still excluded even when it resolves elsewhere.
    The resolved paths are only compared when that fails.
    """

    def __init__(self, project_root: Pathlike, output_dir: Pathlike):
        self.project_root = Path(os.path.abspath(project_root))
        self.output_dir = Path(os.path.abspath(output_dir))
        self.output_relative = _relative_inside(
            self.output_dir, self.project_root
        )
        if self.output_relative is None:
            self.output_relative = _relative_inside(
                self.output_dir.resolve(), self.project_root.resolve()
            )

    def __call__(self, relative_path: str) -> bool:
        return should_include(relative_path, self.output_relative)


# ----------------------------------------------------------------------------
# Removal and copying


def _raise_walk_error(error: OSError) -> None:
    raise error


def remove_tree(path: Pathlike, log: logging.Logger | None = None) -> None:
    """Remove a file, symlink or directory tree, children first.

    Symlinked directories inside the tree are unlinked, never followed.

    Raises:
        FileError: If any removal fails; earlier removals are not undone
    """
    path = Path(path)
    log = log or logging.getLogger("remove_tree")
    try:
        if path.is_symlink() or not path.is_dir():
            path.unlink()
            return

        for dirpath, dirnames, filenames in os.walk(
            path, topdown=False, onerror=_raise_walk_error
        ):
            for filename in filenames:
                os.unlink(os.path.join(dirpath, filename))
            for dirname in dirnames:
                subdir = os.path.join(dirpath, dirname)
                if os.path.islink(subdir):
                    os.unlink(subdir)
                else:
                    os.rmdir(subdir)
        path.rmdir()
    except OSError as e:
        raise FileError(f"Failed to remove {path}: {e}") from e
    log.debug("Removed %s", path)


def replace_if_exists(
    bundle_path: Pathlike,
    confirm: ConfirmFunc,
    log: logging.Logger | None = None,
) -> bool:
    """Remove an existing bundle after asking for confirmation.

    Args:
        bundle_path: Path of the bundle about to be built
        confirm: Blocking yes/no question callable

    Returns:
        True if building may proceed, False if the user declined, in which
        case nothing was touched
    """
    bundle_path = Path(bundle_path)
    log = log or logging.getLogger("replace_if_exists")
    if not (bundle_path.exists() or bundle_path.is_symlink()):
        return True

    if not confirm(OVERWRITE_QUESTION):
        return False

    log.info("Removing existing application %s", bundle_path)
    remove_tree(bundle_path, log)
    return True


def copy_tree(
    source_root: Pathlike,
    destination_root: Pathlike,
    include: Callable[[str], bool],
    log: logging.Logger | None = None,
) -> int:
    """Copy the included part of source_root into destination_root.

    Walks top-down following symlinks. A directory the filter rejects is
    pruned, so nothing beneath it is visited. A symlinked directory that
    resolves to one of its own ancestors is pruned as well.

    Args:
        source_root: Root of the tree to copy
        destination_root: Existing directory receiving the copy
        include: Predicate on '/' separated paths relative to source_root

    Returns:
        Number of directories created plus files copied

    Raises:
        FileError: If walking, creating a directory or copying fails
    """
    source_root = Path(source_root)
    destination_root = Path(destination_root)
    log = log or logging.getLogger("copy_tree")
    count = 0
    ancestors = {str(source_root): (os.path.realpath(source_root),)}

    try:
        for dirpath, dirnames, filenames in os.walk(
            source_root, followlinks=True, onerror=_raise_walk_error
        ):
            lineage = ancestors.pop(dirpath)
            relative_dir = Path(os.path.relpath(dirpath, source_root))

            kept = []
            for dirname in sorted(dirnames):
                relative = (relative_dir / dirname).as_posix()
                if not include(relative):
                    continue
                full = os.path.join(dirpath, dirname)
                real = os.path.realpath(full)
                if real in lineage:
                    log.debug("Skipping symlink cycle: /%s", relative)
                    continue
                ancestors[full] = lineage + (real,)
                log.info("Creating directory: /%s", relative)
                (destination_root / relative).mkdir(exist_ok=True)
                count += 1
                kept.append(dirname)
            dirnames[:] = kept

            for filename in sorted(filenames):
                relative = (relative_dir / filename).as_posix()
                if not include(relative):
                    continue
                full = os.path.join(dirpath, filename)
                if not os.path.isfile(full):
                    log.debug("Skipping dangling file: /%s", relative)
                    continue
                log.info("Copying file: /%s", relative)
                shutil.copyfile(full, destination_root / relative)
                count += 1
    except OSError as e:
        raise FileError(
            f"Failed to copy {source_root} to {destination_root}: {e}"
        ) from e

    return count


def make_executable(path: Pathlike) -> None:
    """Add owner, group and other execute bits to path."""
    try:
        oldmode = os.stat(path).st_mode
        os.chmod(path, oldmode | EXECUTE_BITS)
    except OSError as e:
        raise FileError(f"Failed to make {path} executable: {e}") from e


def _write_text(path: Path, content: str, newline: str | None = None) -> None:
    try:
        with open(path, "w", encoding="utf-8", newline=newline) as fopen:
            fopen.write(content)
    except OSError as e:
        raise FileError(f"Failed to write {path}: {e}") from e


def _copy_file(src: Path, dst: Path) -> None:
    try:
        shutil.copyfile(src, dst)
    except OSError as e:
        raise FileError(f"Failed to copy {src} to {dst}: {e}") from e


# ----------------------------------------------------------------------------
# Staged bundle builds


def staging_path(bundle_path: Pathlike) -> Path:
    """Return the hidden sibling directory a bundle is built in."""
    bundle_path = Path(bundle_path)
    return bundle_path.with_name(f".{bundle_path.name}{STAGING_SUFFIX}")


def build_staged(
    bundle_path: Path,
    build: Callable[[Path], None],
    log: logging.Logger,
) -> Path:
    """Build a bundle in a staging directory and move it into place.

    The staging directory is removed if build raises, so the final path
    never holds a half-built bundle.

    Raises:
        FileError: If the staging directory cannot be created or moved
    """
    staging = staging_path(bundle_path)
    if staging.exists() or staging.is_symlink():
        log.info("Removing stale staging directory %s", staging)
        remove_tree(staging, log)

    try:
        staging.mkdir(parents=True)
    except OSError as e:
        raise FileError(
            f"Failed to create the application directory: {staging}: {e}"
        ) from e

    try:
        build(staging)
        try:
            os.replace(staging, bundle_path)
        except OSError as e:
            raise FileError(
                f"Failed to move {staging} to {bundle_path}: {e}"
            ) from e
    except BaseException:
        log.debug("Build failed, removing %s", staging)
        if staging.exists():
            remove_tree(staging, log)
        raise

    return bundle_path


# ----------------------------------------------------------------------------
# Platform assemblers


class Assembler(Protocol):
    """Contract shared by the platform bundle variants."""

    def assemble(
        self, identity: ProjectIdentity, output_dir: Path
    ) -> Path | None:
        """Build the bundle, returning its path or None if aborted."""
        ...


class MacOSAssembler:
    """Creates a macOS application bundle.

    Layout::

        <output>/macos/<name>.app/Contents/
            Info.plist
            PkgInfo
            MacOS/<entry script>
            MacOS/<runtime binary>
            Resources/<project tree>

    Args:
        project_root: Root of the project to bundle
        confirm: Yes/no callable asked before overwriting a bundle
        runtime: Runtime binary path relative to project_root
        entry: Entry resource handed to the runtime by the launcher
        base_id: Bundle identifier prefix
        min_system_version: Minimum macOS version
    """

    def __init__(
        self,
        project_root: Pathlike,
        confirm: ConfirmFunc = ask_confirmation,
        runtime: str = DEFAULT_MACOS_RUNTIME,
        entry: str = DEFAULT_ENTRY,
        base_id: str = DEFAULT_BUNDLE_ID,
        min_system_version: str = DEFAULT_MIN_SYSTEM_VERSION,
    ):
        self.project_root = Path(project_root).resolve()
        self.confirm = confirm
        self.runtime = self.project_root / runtime
        self.entry = check_launcher_path(entry, "entry")
        check_launcher_path(self.runtime.name, "runtime")
        self.base_id = base_id
        self.min_system_version = min_system_version
        self.log = logging.getLogger(self.__class__.__name__)

    def render_info_plist(
        self, identity: ProjectIdentity, executable: str
    ) -> str:
        """Render the Info.plist content."""
        return INFO_PLIST_TMPL.format(
            executable=escape(executable),
            icon_file=MACOS_ICON_FILE,
            bundle_identifier=escape(
                bundle_identifier(identity.name, self.base_id)
            ),
            bundle_name=escape(identity.name),
            bundle_version=escape(identity.version),
            min_system_version=escape(self.min_system_version),
        )

    def render_launcher(self) -> str:
        """Render the shell launcher content."""
        return MACOS_LAUNCHER_TMPL.format(
            runtime=self.runtime.name, entry=self.entry
        )

    def assemble(
        self, identity: ProjectIdentity, output_dir: Path
    ) -> Path | None:
        """Create the complete bundle.

        Returns:
            Path to the created bundle, or None if the user declined to
            overwrite an existing one
        """
        target = bundle_target(output_dir, MACOS, identity.name)
        application_path = target.bundle_path
        executable = entry_script_name(identity.name)

        if not self.runtime.is_file():
            raise FileError(f"Runtime binary does not exist: {self.runtime}")

        if not replace_if_exists(application_path, self.confirm, self.log):
            self.log.info("Aborting...")
            return None

        include = TreeFilter(self.project_root, target.output_root)

        def build(root: Path) -> None:
            contents = root / "Contents"
            resources = contents / "Resources"
            macos = contents / "MacOS"
            info_plist = contents / "Info.plist"
            launcher = macos / executable
            runtime = macos / self.runtime.name

            try:
                for folder in (contents, resources, macos):
                    folder.mkdir()
                for placeholder in (info_plist, contents / "PkgInfo", launcher):
                    placeholder.touch()
            except OSError as e:
                raise FileError(
                    f"Failed to create bundle skeleton: {e}"
                ) from e

            _write_text(contents / "PkgInfo", PKG_INFO_CONTENT)
            copy_tree(self.project_root, resources, include, self.log)

            _write_text(launcher, self.render_launcher())
            _copy_file(self.runtime, runtime)
            make_executable(launcher)
            make_executable(runtime)

            _write_text(
                info_plist, self.render_info_plist(identity, executable)
            )

        self.log.info("Creating application at %s", application_path)
        build_staged(application_path, build, self.log)
        self.log.log(
            SUCCESS,
            "Successfully created the application bundle: %s",
            application_path,
        )
        return application_path


class WindowsAssembler:
    """Creates a portable Windows application folder.

    Layout::

        <output>/windows/<name>/
            <entry script>.bat
            AppInfo.ini
            runtime/<runtime binary>
            app/<project tree>
    """

    def __init__(
        self,
        project_root: Pathlike,
        confirm: ConfirmFunc = ask_confirmation,
        runtime: str = DEFAULT_WINDOWS_RUNTIME,
        entry: str = DEFAULT_ENTRY,
        base_id: str = DEFAULT_BUNDLE_ID,
    ):
        self.project_root = Path(project_root).resolve()
        self.confirm = confirm
        self.runtime = self.project_root / runtime
        self.entry = check_launcher_path(entry, "entry")
        check_launcher_path(self.runtime.name, "runtime")
        self.base_id = base_id
        self.log = logging.getLogger(self.__class__.__name__)

    def render_app_info(
        self, identity: ProjectIdentity, executable: str
    ) -> str:
        """Render the AppInfo.ini content."""
        return APP_INFO_TMPL.format(
            bundle_name=identity.name,
            bundle_version=identity.version,
            bundle_identifier=bundle_identifier(identity.name, self.base_id),
            executable=executable,
            icon_file=WINDOWS_ICON_FILE,
        )

    def render_launcher(self) -> str:
        """Render the batch launcher content."""
        return WINDOWS_LAUNCHER_TMPL.format(
            runtime=self.runtime.name, entry=self.entry.replace("/", "\\")
        )

    def assemble(
        self, identity: ProjectIdentity, output_dir: Path
    ) -> Path | None:
        """Create the complete portable folder, None if aborted."""
        target = bundle_target(output_dir, WINDOWS, identity.name)
        application_path = target.bundle_path
        executable = entry_script_name(identity.name) + ".bat"

        if not self.runtime.is_file():
            raise FileError(f"Runtime binary does not exist: {self.runtime}")

        if not replace_if_exists(application_path, self.confirm, self.log):
            self.log.info("Aborting...")
            return None

        include = TreeFilter(self.project_root, target.output_root)

        def build(root: Path) -> None:
            app = root / "app"
            runtime_dir = root / "runtime"
            launcher = root / executable
            runtime = runtime_dir / self.runtime.name

            try:
                app.mkdir()
                runtime_dir.mkdir()
            except OSError as e:
                raise FileError(f"Failed to create bundle skeleton: {e}") from e

            copy_tree(self.project_root, app, include, self.log)

            _write_text(launcher, self.render_launcher(), newline="\r\n")
            _copy_file(self.runtime, runtime)
            make_executable(launcher)
            make_executable(runtime)

            _write_text(
                root / "AppInfo.ini",
                self.render_app_info(identity, executable),
                newline="\r\n",
            )

        self.log.info("Creating application at %s", application_path)
        build_staged(application_path, build, self.log)
        self.log.log(
            SUCCESS,
            "Successfully created the application bundle: %s",
            application_path,
        )
        return application_path


ASSEMBLERS: dict[str, type] = {
    MACOS: MacOSAssembler,
    WINDOWS: WindowsAssembler,
}


# ----------------------------------------------------------------------------
# Platform dispatch


def detect_platform(system: str | None = None) -> str | None:
    """Map a sys.platform value to a bundle platform, None if unknown."""
    system = (system if system is not None else sys.platform).lower()
    return {"darwin": MACOS, "win32": WINDOWS}.get(system)


def resolve_platform(explicit: str | None = None) -> str:
    """Return the explicit platform, or the detected host platform.

    Raises:
        UnsupportedPlatformError: If the result matches no bundle variant
    """
    platform = explicit.lower() if explicit else detect_platform()
    if platform not in ASSEMBLERS:
        raise UnsupportedPlatformError(
            f"Unsupported operating system: {explicit or sys.platform}"
        )
    return platform


# ----------------------------------------------------------------------------
# Bundle command


class BundleCommand:
    """Creates a self contained and portable application bundle.

    Args:
        project_root: Root directory of the project to bundle
        config: Configuration store; loaded from project_root if None
        confirm: Yes/no callable asked before overwriting a bundle
        output: Output directory (default: <project_root>/dist)
        os_name: Target platform, 'macos' or 'windows' (default: host)
        project_name: Overrides project.bundler.name / project.name
        project_version: Overrides project.bundler.version / project.version

    Example:
        command = BundleCommand("/path/to/project", os_name="macos")
        command.execute()
    """

    def __init__(
        self,
        project_root: Pathlike,
        config: Config | None = None,
        confirm: ConfirmFunc = ask_confirmation,
        output: Pathlike | None = None,
        os_name: str | None = None,
        project_name: str | None = None,
        project_version: str | None = None,
    ):
        self.project_root = Path(project_root).resolve()
        self.config = config if config is not None else load_config(
            self.project_root
        )
        self.confirm = confirm
        self.output = output
        self.os_name = os_name
        self.project_name = project_name
        self.project_version = project_version
        self.log = logging.getLogger(self.__class__.__name__)

    def create_assembler(self, platform: str) -> Assembler:
        """Build the assembler for a platform from the configuration."""
        kwargs: dict[str, object] = {"confirm": self.confirm}
        for key in ("runtime", "entry"):
            value = self.config.get(f"project.bundler.{key}")
            if value:
                kwargs[key] = str(value)
        return ASSEMBLERS[platform](self.project_root, **kwargs)

    def execute(self) -> Path | None:
        """Run the bundling.

        Returns:
            Path to the created bundle, or None if the user declined to
            overwrite an existing bundle
        """
        self.log.info("Bundling application...")
        platform = resolve_platform(self.os_name)
        identity = resolve_identity(
            self.config, self.project_name, self.project_version
        )
        output_dir = resolve_output_directory(self.project_root, self.output)
        self.log.debug(
            "Bundling %s %s for %s into %s",
            identity.name,
            identity.version,
            platform,
            output_dir,
        )
        return self.create_assembler(platform).assemble(identity, output_dir)


# ----------------------------------------------------------------------------
# Functional API


def make_bundle(
    project_root: Pathlike,
    output: Pathlike | None = None,
    os_name: str | None = None,
    project_name: str | None = None,
    project_version: str | None = None,
    confirm: ConfirmFunc = ask_confirmation,
) -> Path | None:
    """Create an application bundle for a project.

    This is a convenience function that creates a BundleCommand instance
    and calls execute() on it.

    Returns:
        Path to the created bundle, or None if overwriting was declined

    Example:
        bundle_path = make_bundle("/path/to/project", os_name="macos")
    """
    command = BundleCommand(
        project_root,
        confirm=confirm,
        output=output,
        os_name=os_name,
        project_name=project_name,
        project_version=project_version,
    )
    return command.execute()


# ----------------------------------------------------------------------------
# Command-line interface


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        prog="appbundler",
        description="Creates a self contained and portable application bundle.",
        epilog=(
            "Examples:\n"
            "  appbundler\n"
            "  appbundler --os macos -o /tmp/dist\n"
            "  appbundler --project-name 'Play Demo' --project-version 1.2.0\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "-o",
        "--output",
        default=os.environ.get(ENV_OUTPUT),
        metavar="DIR",
        help=(
            "the directory where the bundle will be created "
            f"(default: <project-root>/dist, or ${ENV_OUTPUT})"
        ),
    )
    parser.add_argument(
        "--os",
        "--operating-system",
        dest="os",
        default=os.environ.get(ENV_OS),
        type=str.lower,
        choices=sorted(ASSEMBLERS),
        help=f"the operating system to bundle for (default: host, or ${ENV_OS})",
    )
    parser.add_argument(
        "--project-name",
        metavar="NAME",
        help="the name of the application (default: project.bundler.name)",
    )
    parser.add_argument(
        "--project-version",
        metavar="VERSION",
        help="the version of the application (default: project.bundler.version)",
    )
    parser.add_argument(
        "-r",
        "--project-root",
        default=".",
        metavar="DIR",
        help="the project to bundle (default: current directory)",
    )
    parser.add_argument(
        "-y",
        "--yes",
        action="store_true",
        help="overwrite an existing bundle without asking",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="enable verbose/debug logging",
    )
    parser.add_argument(
        "--no-color",
        action="store_true",
        help="disable colored output",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    return parser


def main(argv: list[str] | None = None) -> None:
    """Command line interface for appbundler."""
    try:
        load_dotenv(find_dotenv(usecwd=True))
        args = build_parser().parse_args(argv)
        setup_logging(args.verbose, not args.no_color)

        project_root = Path(args.project_root)
        if not project_root.is_dir():
            raise ConfigurationError(
                f"Project root does not exist: {project_root}"
            )

        command = BundleCommand(
            project_root,
            confirm=always_confirm if args.yes else ask_confirmation,
            output=args.output,
            os_name=args.os,
            project_name=args.project_name,
            project_version=args.project_version,
        )
        command.execute()

    except BundlerError as e:
        logging.error(str(e))
        sys.exit(1)
    except KeyboardInterrupt:
        logging.info("Interrupted by user")
        sys.exit(130)
    except Exception as e:
        logging.error("Unexpected error: %s", e)
        sys.exit(1)


if __name__ == "__main__":
    main()
