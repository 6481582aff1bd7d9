"""Filename heuristics for MOBI/AZW files, which carry no parsed metadata here."""

import re
from pathlib import Path

from folio.database.models import IdentifierSource
from folio.extractor.isbn import extract_isbn_candidates
from folio.extractor.metadata import ExtractedMetadata, isbn_identifiers

FILENAME_ISBN_CONFIDENCE = 0.35


def title_from_filename(path: Path) -> str | None:
    cleaned = re.sub(r"[_.]+", " ", path.stem)
    cleaned = re.sub(r"\s+", " ", cleaned).strip()
    return cleaned or None


def extract_mobi_metadata(path: Path) -> ExtractedMetadata:
    title = title_from_filename(path)
    if title is None:
        return ExtractedMetadata()
    isbns = extract_isbn_candidates(title)
    return ExtractedMetadata(
        title=title,
        identifiers=isbn_identifiers(isbns, FILENAME_ISBN_CONFIDENCE, IdentifierSource.HEURISTIC),
    )
