"""Path validation and expansion.

:class:`PathGuard` is the security boundary of the add/get engines: it only
accepts real files strictly inside the repository root, comparing fully
resolved paths on both sides so that symlinks cannot be used to escape the
repository. :func:`expand_paths` and :func:`expand_tracked` turn user
patterns into concrete paths, applying `.datavcsignore` rules to globs.
"""

import fnmatch
import glob
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Union

from datavcs.constants import CONTROL_DIR, IGNORE_FILE, SKIPPED_DIRS
from datavcs.errors import (
    DataVCSError,
    ErrorKind,
    InvalidPatternError,
    NoFilesMatchedError,
)
from datavcs.storage.metadata import MetadataFormat, data_path_for, is_sidecar

logger = logging.getLogger(__name__)

GLOB_CHARS = ("*", "?", "[")


@dataclass(frozen=True)
class GuardedPath:
    """A candidate path that passed :meth:`PathGuard.check`.

    Attributes:
        path: Absolute, lexically normalized path (symlinks not followed);
            the sidecar lives next to this path
        resolved: Fully resolved target, used for hashing and copying
        relative: POSIX path relative to the repository root
    """

    path: Path
    resolved: Path
    relative: str


class PathGuard:
    """Validates that candidate paths are regular files inside the repository."""

    def __init__(
        self, root: Union[str, Path], excluded_dirs: Sequence[Union[str, Path]] = ()
    ) -> None:
        self.root = Path(os.path.abspath(root))
        self.excluded_dirs = [Path(os.path.abspath(d)) for d in excluded_dirs]

    def absolute(self, candidate: Union[str, Path]) -> Path:
        """Absolute, lexically normalized form of ``candidate``."""
        candidate = Path(candidate)
        if not candidate.is_absolute():
            candidate = self.root / candidate
        return Path(os.path.abspath(candidate))

    def relative(self, candidate: Union[str, Path]) -> str:
        """POSIX path of ``candidate`` relative to the root.

        Raises:
            DataVCSError: (FileOutsideRepo) If no relative path exists
        """
        path = self.absolute(candidate)
        try:
            rel = path.relative_to(self.root)
        except ValueError as e:
            raise DataVCSError(
                f"File is outside repository: {path}",
                kind=ErrorKind.FILE_OUTSIDE_REPO,
                path=path,
            ) from e
        return rel.as_posix()

    def resolved_root(self) -> Path:
        try:
            return self.root.resolve(strict=True)
        except (OSError, RuntimeError) as e:
            raise DataVCSError(
                f"Cannot resolve repository root {self.root}: {e}",
                kind=ErrorKind.PATH_ERROR,
                path=self.root,
            ) from e

    def check(self, candidate: Union[str, Path]) -> GuardedPath:
        """Validate a candidate file path.

        Raises:
            DataVCSError: FileOutsideRepo, BrokenSymlink, FileNotFound,
                IsDirectory, PathError or PathTraversal
        """
        path = self.absolute(candidate)
        relative = self.relative(path)

        if path.is_symlink() and not path.exists():
            raise DataVCSError(
                f"Broken symlink: {path}", kind=ErrorKind.BROKEN_SYMLINK, path=path
            )
        if not path.exists():
            raise DataVCSError(
                f"File not found: {path}", kind=ErrorKind.FILE_NOT_FOUND, path=path
            )
        if path.is_dir():
            raise DataVCSError(
                f"Path is a directory: {path}",
                kind=ErrorKind.IS_DIRECTORY,
                hint="use a glob pattern such as 'dir/*' to add its files",
                path=path,
            )

        try:
            resolved = path.resolve(strict=True)
        except (OSError, RuntimeError) as e:
            kind = ErrorKind.BROKEN_SYMLINK if path.is_symlink() else ErrorKind.PATH_ERROR
            raise DataVCSError(f"Cannot resolve {path}: {e}", kind=kind, path=path) from e

        root = self.resolved_root()
        if not resolved.is_relative_to(root):
            logger.warning("Rejected %s: resolves to %s outside %s", path, resolved, root)
            raise DataVCSError(
                f"Path escapes the repository: {path} -> {resolved}",
                kind=ErrorKind.PATH_TRAVERSAL,
                path=path,
            )
        if resolved.is_relative_to(root / CONTROL_DIR):
            raise DataVCSError(
                f"Refusing to track a file inside {CONTROL_DIR}/: {path}",
                kind=ErrorKind.PATH_ERROR,
                path=path,
            )
        for directory in self.excluded_dirs:
            if path.is_relative_to(directory) or resolved.is_relative_to(directory.resolve()):
                raise DataVCSError(
                    f"Refusing to track a file inside the storage directory {directory}: {path}",
                    kind=ErrorKind.PATH_ERROR,
                    path=path,
                )
        if not resolved.is_file():
            raise DataVCSError(
                f"Not a regular file: {path}", kind=ErrorKind.PATH_ERROR, path=path
            )
        return GuardedPath(path=path, resolved=resolved, relative=relative)

    def check_destination(self, candidate: Union[str, Path]) -> GuardedPath:
        """Validate a path a file will be written to (it may not exist yet).

        The deepest existing ancestor is resolved and must stay inside the
        root, so a symlinked directory cannot redirect the write elsewhere.

        Raises:
            DataVCSError: FileOutsideRepo, IsDirectory or PathTraversal
        """
        path = self.absolute(candidate)
        relative = self.relative(path)
        if path.is_dir():
            raise DataVCSError(
                f"Path is a directory: {path}", kind=ErrorKind.IS_DIRECTORY, path=path
            )

        anchor = path.parent
        while not anchor.exists() and anchor != anchor.parent:
            anchor = anchor.parent
        try:
            resolved_parent = anchor.resolve(strict=True)
        except (OSError, RuntimeError) as e:
            raise DataVCSError(
                f"Cannot resolve {anchor}: {e}", kind=ErrorKind.PATH_ERROR, path=path
            ) from e
        if not resolved_parent.is_relative_to(self.resolved_root()):
            raise DataVCSError(
                f"Path escapes the repository: {path} -> {resolved_parent}",
                kind=ErrorKind.PATH_TRAVERSAL,
                path=path,
            )
        if path.is_symlink():
            try:
                target = path.resolve(strict=False)
            except (OSError, RuntimeError) as e:
                raise DataVCSError(
                    f"Cannot resolve {path}: {e}", kind=ErrorKind.PATH_ERROR, path=path
                ) from e
            if not target.is_relative_to(self.resolved_root()):
                raise DataVCSError(
                    f"Path escapes the repository: {path} -> {target}",
                    kind=ErrorKind.PATH_TRAVERSAL,
                    path=path,
                )
        return GuardedPath(path=path, resolved=path, relative=relative)


class IgnoreRules:
    """Patterns from `.datavcsignore`.

    One pattern per line, ``#`` starts a comment. A trailing ``/`` matches a
    directory prefix; other patterns are matched with fnmatch against both the
    relative path and the file name.
    """

    def __init__(self, patterns: Optional[Iterable[str]] = None) -> None:
        self.patterns = list(patterns or [])

    @classmethod
    def load(cls, root: Union[str, Path]) -> "IgnoreRules":
        ignore_file = Path(root) / IGNORE_FILE
        if not ignore_file.exists():
            return cls()
        try:
            content = ignore_file.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            logger.warning("Could not read %s: %s", ignore_file, e)
            return cls()
        patterns = []
        for line in content.splitlines():
            line = line.strip()
            if line and not line.startswith("#"):
                patterns.append(line)
        return cls(patterns)

    def is_ignored(self, relative_path: Union[str, Path]) -> bool:
        path_str = Path(relative_path).as_posix()
        name = Path(relative_path).name
        parts = Path(relative_path).parts
        for pattern in self.patterns:
            if pattern.endswith("/"):
                directory = pattern.rstrip("/")
                if path_str.startswith(directory + "/") or directory in parts[:-1]:
                    return True
            elif fnmatch.fnmatch(path_str, pattern) or fnmatch.fnmatch(name, pattern):
                return True
        return False


def is_glob(pattern: str) -> bool:
    return any(c in pattern for c in GLOB_CHARS)


def validate_pattern(pattern: str) -> None:
    """Reject malformed glob patterns (unterminated character classes).

    Raises:
        InvalidPatternError: If the pattern is malformed
    """
    if "\x00" in pattern:
        raise InvalidPatternError(
            f"Invalid glob pattern: {pattern!r}", hint="check glob syntax"
        )
    i = 0
    while i < len(pattern):
        if pattern[i] == "[":
            # a ']' right after '[' or '[!' is a literal member of the class
            start = i + 1
            if start < len(pattern) and pattern[start] == "!":
                start += 1
            close = pattern.find("]", start + 1)
            if close == -1:
                raise InvalidPatternError(
                    f"Invalid glob pattern: {pattern}", hint="check glob syntax"
                )
            i = close
        i += 1


def _is_skipped(relative: Path) -> bool:
    return any(part in SKIPPED_DIRS for part in relative.parts)


def _is_excluded(path: Path, excluded_dirs: Sequence[Path]) -> bool:
    absolute = Path(os.path.abspath(path))
    return any(absolute.is_relative_to(directory) for directory in excluded_dirs)


def _glob(root: Path, pattern: str) -> List[Path]:
    validate_pattern(pattern)
    full_pattern = pattern if os.path.isabs(pattern) else str(root / pattern)
    try:
        return [Path(p) for p in sorted(glob.glob(full_pattern, recursive=True))]
    except (ValueError, OSError) as e:
        raise InvalidPatternError(
            f"Invalid glob pattern: {pattern}: {e}", hint="check glob syntax"
        ) from e


def _relative_or_none(root: Path, path: Path) -> Optional[Path]:
    try:
        return Path(os.path.abspath(path)).relative_to(root)
    except ValueError:
        return None


def expand_paths(
    root: Union[str, Path],
    patterns: Sequence[Union[str, Path]],
    ignore_rules: Optional[IgnoreRules] = None,
    excluded_dirs: Sequence[Union[str, Path]] = (),
) -> List[Path]:
    """Expand add inputs into concrete file paths.

    Glob patterns are expanded relative to the root to existing files,
    skipping ignored files, sidecars, control directories and anything under
    ``excluded_dirs`` (the storage directory). Explicit paths pass through
    unchanged so that their errors surface per file.

    Raises:
        InvalidPatternError: If a pattern is malformed
        NoFilesMatchedError: If nothing matched across all inputs
    """
    root = Path(os.path.abspath(root))
    ignore_rules = ignore_rules or IgnoreRules()
    excluded = [Path(os.path.abspath(d)) for d in excluded_dirs]
    files: List[Path] = []

    for pattern in patterns:
        pattern_str = str(pattern)
        if not is_glob(pattern_str):
            full_path = Path(pattern_str)
            if not full_path.is_absolute():
                full_path = root / full_path
            if full_path not in files:
                files.append(full_path)
            continue

        for match in _glob(root, pattern_str):
            if not match.is_file() or is_sidecar(match) or _is_excluded(match, excluded):
                continue
            relative = _relative_or_none(root, match)
            if relative is not None:
                if _is_skipped(relative):
                    continue
                if ignore_rules.is_ignored(relative):
                    logger.debug("Ignoring %s (%s)", relative, IGNORE_FILE)
                    continue
            if match not in files:
                files.append(match)

    if not files:
        raise NoFilesMatchedError(
            f"No files matched: {', '.join(str(p) for p in patterns)}"
        )
    return files


def expand_tracked(
    root: Union[str, Path],
    patterns: Sequence[Union[str, Path]],
    excluded_dirs: Sequence[Union[str, Path]] = (),
) -> List[Path]:
    """Expand get/status inputs into data paths.

    Glob patterns are matched against sidecars (in every format) and mapped
    back to their data files, so files that are absent from the working tree
    can still be selected. Explicit paths pass through unchanged.

    Raises:
        InvalidPatternError: If a pattern is malformed
        NoFilesMatchedError: If nothing matched across all inputs
    """
    root = Path(os.path.abspath(root))
    excluded = [Path(os.path.abspath(d)) for d in excluded_dirs]
    files: List[Path] = []

    for pattern in patterns:
        pattern_str = str(pattern)
        if not is_glob(pattern_str):
            full_path = Path(pattern_str)
            if not full_path.is_absolute():
                full_path = root / full_path
            if full_path not in files:
                files.append(full_path)
            continue

        for fmt in MetadataFormat:
            for match in _glob(root, pattern_str + fmt.suffix):
                data_path = data_path_for(match)
                if data_path is None or not match.is_file() or _is_excluded(match, excluded):
                    continue
                relative = _relative_or_none(root, match)
                if relative is not None and _is_skipped(relative):
                    continue
                if data_path not in files:
                    files.append(data_path)

    if not files:
        raise NoFilesMatchedError(
            f"No tracked files matched: {', '.join(str(p) for p in patterns)}"
        )
    return files


def find_tracked(
    root: Union[str, Path], excluded_dirs: Sequence[Union[str, Path]] = ()
) -> List[Path]:
    """Every data path that has a sidecar under ``root``, sorted."""
    root = Path(os.path.abspath(root))
    excluded = {Path(os.path.abspath(d)) for d in excluded_dirs}
    found = set()
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = [
            d
            for d in dirnames
            if d not in SKIPPED_DIRS and Path(dirpath) / d not in excluded
        ]
        for filename in filenames:
            if is_sidecar(filename):
                data_path = data_path_for(Path(dirpath) / filename)
                if data_path is not None:
                    found.add(data_path)
    return sorted(found)
