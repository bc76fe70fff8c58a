"""
File finder for pharout.

Lists the files of a source directory that match a name pattern, skipping version
control metadata, dot files and excluded directories. Results are sorted by
relative path so that archives are built in the same order on every system.
"""

from __future__ import annotations

import fnmatch
import os
from pathlib import Path
from typing import Generator, Iterable, Optional

import pathspec

from .config import VCS_DIRECTORIES


class FileFinder:
    """
    Finds files below a root directory.

    Excluded directory names match at any depth, e.g. `Tests` skips both
    `Tests/` and `src/Foo/Tests/`.
    """

    def __init__(
        self,
        root_path: Path,
        pattern: str = "*",
        exclude_dirs: Optional[Iterable[str]] = None,
        ignore_vcs: bool = True,
        ignore_dot_files: bool = True,
    ):
        """
        Initialize the finder.

        Args:
            root_path: Directory to search
            pattern: Glob matched against file names (case-sensitive)
            exclude_dirs: Directory names to skip
            ignore_vcs: Whether to skip version control metadata
            ignore_dot_files: Whether to skip files and directories starting with "."
        """
        self.root_path = Path(root_path)
        self.pattern = pattern
        self.exclude_dirs = set(exclude_dirs or ())
        self.ignore_vcs = ignore_vcs
        self.ignore_dot_files = ignore_dot_files

        excluded = set(self.exclude_dirs)
        if ignore_vcs:
            excluded.update(VCS_DIRECTORIES)
        self._exclude_spec = pathspec.GitIgnoreSpec.from_lines(
            [f"{name}/" for name in sorted(excluded)]
        )
        self._vcs_names = set(VCS_DIRECTORIES) if ignore_vcs else set()

    def _is_excluded_dir(self, rel_path: str) -> bool:
        """Check a directory's root-relative path against the excluded names."""
        return self._exclude_spec.match_file(rel_path + "/")

    def _is_ignored_name(self, name: str) -> bool:
        if self.ignore_dot_files and name.startswith("."):
            return True
        # VCS bookkeeping can also be plain files (e.g. a .git file in a worktree)
        return name in self._vcs_names

    def find(self) -> list[Path]:
        """
        Find all matching files.

        Returns:
            Matching file paths, sorted by their root-relative POSIX path

        Raises:
            FileNotFoundError: If the root directory does not exist
        """
        if not self.root_path.is_dir():
            raise FileNotFoundError(f"The directory does not exist: {self.root_path}")

        files = [
            path for path in self._walk_files()
            if fnmatch.fnmatchcase(path.name, self.pattern)
        ]
        return sorted(files, key=lambda p: p.relative_to(self.root_path).as_posix())

    def _walk_files(self) -> Generator[Path, None, None]:
        """
        Walk the root directory and yield file paths.

        Symlinked directories are not followed.
        """
        dirs_to_process = [self.root_path]

        while dirs_to_process:
            current_dir = dirs_to_process.pop()

            with os.scandir(current_dir) as entries:
                for entry in entries:
                    if self._is_ignored_name(entry.name):
                        continue

                    entry_path = Path(entry.path)

                    if entry.is_dir(follow_symlinks=False):
                        rel_path = entry_path.relative_to(self.root_path).as_posix()
                        if not self._is_excluded_dir(rel_path):
                            dirs_to_process.append(entry_path)
                    elif entry.is_file():
                        yield entry_path


def find_files(
    root_path: Path,
    pattern: str = "*",
    exclude_dirs: Optional[Iterable[str]] = None,
    ignore_vcs: bool = True,
    ignore_dot_files: bool = True,
) -> list[Path]:
    """
    Convenience function to list matching files below a directory.

    Returns:
        Sorted list of matching file paths
    """
    finder = FileFinder(
        root_path=root_path,
        pattern=pattern,
        exclude_dirs=exclude_dirs,
        ignore_vcs=ignore_vcs,
        ignore_dot_files=ignore_dot_files,
    )
    return finder.find()
