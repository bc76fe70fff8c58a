"""
Phar assembly for pharout.

Builds an executable phar from a `BuildConfig`. Sources are added in a fixed
order (source groups, Composer packages, Composer autoloader, executable) so that
later entries win when archive paths collide, then the stub is set, the archive is
written and an optional LICENSE is appended.
"""

from __future__ import annotations

import re
import time
import traceback
from pathlib import Path
from typing import Optional, Union

from rich.console import Console

from .config import (
    AUTOLOADER_FILES,
    LICENSE_FILE,
    OPTIONAL_AUTOLOADER_FILES,
    PACKAGE_EXCLUDE_DIRS,
    VENDOR_DIR,
    BuildConfig,
    BuildStats,
)
from .phar import PharArchive, SignatureAlgorithm
from .scanner import find_files
from .stripper import strip_whitespace
from .stub import build_stub
from .utils import decode_source, encode_source, relative_archive_path

default_console = Console()

# A leading "#!/usr/bin/env php" style line, trailing whitespace included
SHEBANG_LINE = re.compile(rb"\A#![^\r\n]*php[^\r\n]*(?:\r\n|\r|\n)?")


def strip_shebang(content: bytes) -> bytes:
    """Remove a single leading PHP shebang line."""
    return SHEBANG_LINE.sub(b"", content, count=1)


class PharCompiler:
    """
    Compiles a project into a single phar file.

    Designed for Composer projects: dependencies are taken from `vendor/` and the
    Composer autoloader is packaged alongside them.
    """

    def __init__(self, config: BuildConfig, console: Optional[Console] = None):
        """
        Initialize the compiler.

        Args:
            config: Build configuration
            console: Console for progress output (defaults to stdout)
        """
        self.config = config
        self.console = console if console is not None else default_console
        self.stats = BuildStats()
        self._root: Optional[Path] = None

    def compile(self, output_path: Union[str, Path, None]) -> BuildStats:
        """
        Compile the project into a phar file.

        Args:
            output_path: Full path of the file to create

        Returns:
            Statistics of the build

        Raises:
            ConfigError: If the output path, project root or executable is missing.
                Nothing is written or deleted in that case.
            OSError: If a file cannot be read or the archive cannot be written.
        """
        self.config.validate(output_path)
        phar_file = Path(output_path)
        self._root = self.config.root_path.resolve()
        self.stats = BuildStats()
        start_time = time.time()

        # Remove previous phar, if it exists
        phar_file.unlink(missing_ok=True)
        phar_file.parent.mkdir(parents=True, exist_ok=True)

        with PharArchive(phar_file, alias=phar_file.name) as phar:
            phar.set_signature_algorithm(SignatureAlgorithm.SHA1)
            phar.start_buffering()

            for group in self.config.source_groups:
                for file_path in find_files(self._root / group.path, pattern=group.pattern):
                    self._add_file(phar, file_path)

            for package in self.config.packages:
                package_dir = self._root / VENDOR_DIR / package
                for file_path in find_files(
                    package_dir, pattern="*.php", exclude_dirs=PACKAGE_EXCLUDE_DIRS
                ):
                    self._add_file(phar, file_path)

            for loader_file in self._loader_files():
                self._add_file(phar, self._root / loader_file)

            # Add the executable and make it the entry point of the stub
            self._add_bin_file(phar, self.config.entry_file)
            phar.set_stub(
                build_stub(phar_file.name, self.config.entry_file, self.config.message)
            )

            phar.stop_buffering()

            license_path = self._root / LICENSE_FILE
            if license_path.is_file():
                self._add_file(phar, license_path, strip=False)

        self.stats.archive_bytes = phar_file.stat().st_size
        self.stats.processing_time_seconds = time.time() - start_time
        return self.stats

    def _loader_files(self) -> list[str]:
        loader_files = list(AUTOLOADER_FILES)
        for optional_file in OPTIONAL_AUTOLOADER_FILES:
            if (self._root / optional_file).exists():
                loader_files.append(optional_file)
        return loader_files

    def _add_file(self, phar: PharArchive, file_path: Path, strip: bool = True) -> None:
        path = relative_archive_path(file_path, self._root)
        self._report(path)

        raw = file_path.read_bytes()
        if strip:
            text, encoding = decode_source(raw)
            content = encode_source(strip_whitespace(text), encoding)
            self.stats.files_stripped += 1
        elif file_path.name == LICENSE_FILE:
            content = b"\n" + raw + b"\n"
        else:
            content = raw

        self._store(phar, path, content, raw, file_path)

    def _add_bin_file(self, phar: PharArchive, bin_file: str) -> None:
        file_path = self._root / bin_file
        self._report(bin_file)

        raw = file_path.read_bytes()
        self._store(phar, bin_file, strip_shebang(raw), raw, file_path)

    def _store(
        self, phar: PharArchive, path: str, content: bytes, raw: bytes, file_path: Path
    ) -> None:
        phar.add_from_string(path, content, mtime=int(file_path.stat().st_mtime))
        self.stats.files_added += 1
        self.stats.bytes_read += len(raw)
        self.stats.bytes_stored += len(content)

    def _report(self, path: str) -> None:
        self.console.print(f"Adding {path}...", markup=False, highlight=False, soft_wrap=True)


def assemble(
    config: BuildConfig,
    output_path: Union[str, Path, None],
    console: Optional[Console] = None,
) -> BuildStats:
    """
    Assemble a phar archive from a build configuration.

    Args:
        config: Build configuration
        output_path: Full path of the file to create
        console: Console for progress output

    Returns:
        Statistics of the build
    """
    return PharCompiler(config, console=console).compile(output_path)


def format_failure(exc: BaseException) -> str:
    """Describe an exception with its type, message and the location it was raised at."""
    message = f"Failed to compile phar: [{type(exc).__name__}] {exc}"
    frames = traceback.extract_tb(exc.__traceback__)
    if frames:
        message += f" at {frames[-1].filename}:{frames[-1].lineno}"
    return message


def write_phar(
    config: BuildConfig,
    output_path: Union[str, Path, None],
    console: Optional[Console] = None,
) -> BuildStats:
    """
    Compile a phar the way a build script wants it.

    A relative output path is taken from the project root. Any failure is printed
    and ends the process with exit code 1.

    Args:
        config: Build configuration
        output_path: Archive file to create
        console: Console for progress and error output

    Returns:
        Statistics of the build
    """
    out = console if console is not None else default_console
    try:
        if output_path:
            output_path = config.resolve_output(output_path)
        return assemble(config, output_path, console=out)
    except Exception as e:
        out.print(format_failure(e), markup=False, highlight=False, soft_wrap=True)
        raise SystemExit(1) from e
