"""Filesystem traversal utilities for scanning a library root."""

import logging
import os
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass
from pathlib import Path

from folio.database.models import ParsedFilename

logger = logging.getLogger(__name__)

DirectoryErrorHandler = Callable[[Path, OSError], None]


class ScanRootError(Exception):
    """Raised when the scan root does not exist or cannot be listed."""


@dataclass
class FileInfo:
    path: Path
    parsed_filename: ParsedFilename
    size: int
    modified_at: int
    stat_result: os.stat_result


def parse_filename(filename: str) -> ParsedFilename:
    if not filename:
        return ParsedFilename(full=filename, base=filename, extension=None)

    dot_index = filename.rfind(".")

    if dot_index <= 0 or dot_index == len(filename) - 1:
        return ParsedFilename(full=filename, base=filename.rstrip("."), extension=None)

    extension = filename[dot_index + 1 :].lower()
    base = filename[:dot_index]

    return ParsedFilename(full=filename, base=base, extension=extension)


def normalize_extensions(extensions: Iterable[str]) -> frozenset[str]:
    """Lower-case extensions without the leading dot, so ".EPUB" and "epub" match."""
    return frozenset(ext.lower().lstrip(".") for ext in extensions if ext.strip("."))


def mtime_ms(stat_result: os.stat_result) -> int:
    return stat_result.st_mtime_ns // 1_000_000


def walk_files(
    root: Path,
    extensions: Iterable[str],
    on_directory_error: DirectoryErrorHandler | None = None,
) -> Iterator[FileInfo]:
    """Yield allowlisted regular files under root in sorted, depth-first order.

    Traversal uses an explicit stack so directory depth is bounded only by
    memory. Symlinks are never followed. A root that is missing or cannot be
    listed raises ScanRootError; unreadable subdirectories are reported to
    on_directory_error and skipped.
    """
    allowed = normalize_extensions(extensions)

    if not root.is_dir():
        raise ScanRootError(f"Scan root is not a directory: {root}")
    try:
        root_entries = _list_directory(root)
    except OSError as e:
        raise ScanRootError(f"Cannot list scan root {root}: {e}") from e

    stack: list[tuple[Path, list[os.DirEntry]]] = [(root, root_entries)]

    while stack:
        directory, entries = stack.pop()
        subdirs: list[Path] = []

        for entry in entries:
            try:
                if entry.is_symlink():
                    continue
                if entry.is_dir(follow_symlinks=False):
                    subdirs.append(Path(entry.path))
                    continue
                file_info = _process_entry(entry, allowed)
            except OSError as e:
                logger.warning("Error reading entry %s: %s", entry.path, e)
                continue
            if file_info:
                yield file_info

        pending: list[tuple[Path, list[os.DirEntry]]] = []
        for subdir in subdirs:
            try:
                pending.append((subdir, _list_directory(subdir)))
            except OSError as e:
                logger.warning("Cannot list directory %s: %s", subdir, e)
                if on_directory_error:
                    on_directory_error(subdir, e)

        stack.extend(reversed(pending))


def _list_directory(directory: Path) -> list[os.DirEntry]:
    with os.scandir(directory) as entries:
        return sorted(entries, key=lambda e: e.name)


def _process_entry(entry: os.DirEntry, allowed: frozenset[str]) -> FileInfo | None:
    if not entry.is_file(follow_symlinks=False):
        return None

    parsed = parse_filename(entry.name)
    if parsed.extension is None or parsed.extension not in allowed:
        return None

    try:
        stat_result = entry.stat(follow_symlinks=False)
    except FileNotFoundError:
        logger.warning("File disappeared during scan: %s", entry.path)
        return None

    return FileInfo(
        path=Path(entry.path),
        parsed_filename=parsed,
        size=stat_result.st_size,
        modified_at=mtime_ms(stat_result),
        stat_result=stat_result,
    )
