"""Metadata extraction from e-book files."""

from folio.extractor.extractor import extract_metadata
from folio.extractor.isbn import (
    extract_isbn_candidates,
    is_valid_isbn10,
    is_valid_isbn13,
    isbn10_to_isbn13,
    normalize_isbn,
)
from folio.extractor.metadata import ExtractedCover, ExtractedIdentifier, ExtractedMetadata

__all__ = [
    "extract_metadata",
    "extract_isbn_candidates",
    "normalize_isbn",
    "is_valid_isbn10",
    "is_valid_isbn13",
    "isbn10_to_isbn13",
    "ExtractedMetadata",
    "ExtractedIdentifier",
    "ExtractedCover",
]
