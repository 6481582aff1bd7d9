"""Scanner module for library traversal and reconciliation."""

from .filesystem import ScanRootError, parse_filename, walk_files
from .hashing import sha256_file
from .scanner import Scanner, ScanStats

__all__ = [
    "Scanner",
    "ScanStats",
    "ScanRootError",
    "parse_filename",
    "walk_files",
    "sha256_file",
]
