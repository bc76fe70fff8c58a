"""
Build configuration and defaults for pharout.

`BuildConfig` accumulates the inputs of a build through a fluent interface:

    config = (
        BuildConfig()
        .for_project_at("/path/to/project")
        .with_executable("bin/tool")
        .with_source_path("src")
        .with_composer_packages(["symfony/console", "symfony/finder"])
        .with_internal_message("(c) Example Ltd.")
    )
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Optional, Union

from .errors import ConfigError
from .utils import normalize_path

# Name pattern used when a source path is added without one
DEFAULT_SOURCE_PATTERN = "*.php"

# Directory holding Composer packages, relative to the project root
VENDOR_DIR = "vendor"

# Directories skipped inside Composer packages
PACKAGE_EXCLUDE_DIRS: tuple[str, ...] = ("Tests",)

# Version control metadata directories, never packaged
VCS_DIRECTORIES: tuple[str, ...] = (
    ".svn",
    "_svn",
    "CVS",
    "_darcs",
    ".arch-params",
    ".monotone",
    ".bzr",
    ".git",
    ".hg",
)

# Composer autoloader files, always packaged
AUTOLOADER_FILES: tuple[str, ...] = (
    "vendor/autoload.php",
    "vendor/composer/autoload_namespaces.php",
    "vendor/composer/autoload_psr4.php",
    "vendor/composer/autoload_classmap.php",
    "vendor/composer/autoload_real.php",
    "vendor/composer/ClassLoader.php",
)

# Composer autoloader files, packaged only when present
OPTIONAL_AUTOLOADER_FILES: tuple[str, ...] = ("vendor/composer/include_paths.php",)

# License file appended after the archive is finalized
LICENSE_FILE = "LICENSE"

PathLike = Union[str, Path]


@dataclass(frozen=True)
class SourceGroup:
    """A project directory to package.

    Attributes:
        path: Directory relative to the project root.
        pattern: File name glob (e.g., `*.php`).
    """

    path: str
    pattern: str = DEFAULT_SOURCE_PATTERN


@dataclass
class BuildConfig:
    """Inputs of a phar build.

    Attributes:
        project_root: Project directory, always ending in a single `/`.
        entry_file: Executable script relative to the project root.
        source_groups: Source directories in packaging order.
        packages: Composer package names (`vendor/package`) in packaging order.
        message: Text embedded as a comment in the stub.
    """

    project_root: Optional[str] = None
    entry_file: Optional[str] = None
    source_groups: list[SourceGroup] = field(default_factory=list)
    packages: list[str] = field(default_factory=list)
    message: str = ""

    @property
    def root_path(self) -> Path:
        """Project root as a `Path`.

        Raises:
            ConfigError: If the project root is not set.
        """
        if not self.project_root:
            raise ConfigError("Please set your project path")
        return Path(self.project_root)

    def for_project_at(self, project_root: PathLike) -> BuildConfig:
        """Set the project path; all other paths are relative to it."""
        root = normalize_path(str(project_root)).rstrip("/")
        self.project_root = root + "/"
        return self

    def with_executable(self, entry_file: PathLike) -> BuildConfig:
        """Set the relative path of the project's executable."""
        entry = normalize_path(str(entry_file))
        while entry.startswith("./"):
            entry = entry[2:]
        self.entry_file = entry
        return self

    def with_internal_message(self, message: Optional[str]) -> BuildConfig:
        """Set a message included as a comment at the start of the phar, such as a copyright notice."""
        self.message = message or ""
        return self

    def with_composer_packages(self, packages: Iterable[str]) -> BuildConfig:
        """Add Composer packages of the form `myvendor/mypackage`.

        Packages must be installed in their default location under `vendor/`.
        """
        self.packages.extend(packages)
        return self

    def with_composer_package(self, package: str) -> BuildConfig:
        """Add a single Composer package."""
        self.packages.append(package)
        return self

    def with_source_paths(
        self, paths: Iterable[PathLike], pattern: str = DEFAULT_SOURCE_PATTERN
    ) -> BuildConfig:
        """Add source paths relative to the project path."""
        for path in paths:
            self.with_source_path(path, pattern)
        return self

    def with_source_path(
        self, path: PathLike, pattern: str = DEFAULT_SOURCE_PATTERN
    ) -> BuildConfig:
        """Add a single source path."""
        self.source_groups.append(SourceGroup(normalize_path(str(path)), pattern))
        return self

    def validate(self, output_path: Optional[PathLike]) -> None:
        """Check that a build with this configuration can start.

        Args:
            output_path: Archive file to write.

        Raises:
            ConfigError: If the output path, project root or entry file is missing.
        """
        if not output_path or not str(output_path):
            raise ConfigError("Please define output phar file")

        if not self.project_root or not self.entry_file:
            raise ConfigError("Please set your executable and project path")

    def resolve_output(self, output_path: PathLike) -> Path:
        """Resolve an output path; relative paths are taken from the project root."""
        output = Path(output_path)
        if output.is_absolute():
            return output
        return self.root_path / output


@dataclass
class BuildStats:
    """Statistics collected while assembling an archive.

    Attributes:
        files_added: Number of entries added (replaced entries count again).
        files_stripped: Number of entries passed through the source stripper.
        bytes_read: Total size of the files read from disk.
        bytes_stored: Total size of the entry contents written.
        archive_bytes: Size of the finished archive file.
        processing_time_seconds: Wall time of the build.
    """

    files_added: int = 0
    files_stripped: int = 0
    bytes_read: int = 0
    bytes_stored: int = 0
    archive_bytes: int = 0
    processing_time_seconds: float = 0.0

    @property
    def bytes_saved(self) -> int:
        """Bytes removed by stripping."""
        return max(self.bytes_read - self.bytes_stored, 0)
