"""PDF metadata via PyMuPDF."""

import re
from pathlib import Path

import fitz

from folio.database.models import IdentifierSource
from folio.extractor.isbn import extract_isbn_candidates
from folio.extractor.metadata import ExtractedMetadata, clean_text, isbn_identifiers

MAX_TEXT_PAGES = 10
CHARS_PER_PAGE = 5000
MINED_ISBN_CONFIDENCE = 0.6

# PDF dates look like "D:20200131120000+01'00'".
_PDF_DATE_RE = re.compile(r"^(?:D:)?(\d{4})")


def extract_pdf_metadata(path: Path, max_pages: int = MAX_TEXT_PAGES) -> ExtractedMetadata:
    doc = fitz.open(str(path))
    try:
        info = doc.metadata or {}
        text = "" if doc.needs_pass else _leading_text(doc, max_pages)
    finally:
        doc.close()

    author = clean_text(info.get("author"))

    candidates = extract_isbn_candidates(info.get("keywords") or "")
    for isbn in extract_isbn_candidates(text):
        if isbn not in candidates:
            candidates.append(isbn)

    return ExtractedMetadata(
        title=clean_text(info.get("title")),
        authors=[author] if author else [],
        published_year=pdf_date_year(info.get("creationDate")),
        description=clean_text(info.get("subject")),
        identifiers=isbn_identifiers(candidates, MINED_ISBN_CONFIDENCE, IdentifierSource.HEURISTIC),
    )


def _leading_text(doc: fitz.Document, max_pages: int) -> str:
    limit = max_pages * CHARS_PER_PAGE
    parts: list[str] = []
    total = 0
    for page_num in range(min(max_pages, len(doc))):
        if total >= limit:
            break
        text = doc[page_num].get_text()
        parts.append(text)
        total += len(text)
    return "\n".join(parts)[:limit]


def pdf_date_year(value: str | None) -> int | None:
    if not value:
        return None
    match = _PDF_DATE_RE.match(value.strip())
    return int(match.group(1)) if match else None
