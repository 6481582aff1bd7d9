"""EPUB metadata via ebooklib."""

import warnings
from pathlib import Path

import ebooklib
from ebooklib import epub

from folio.database.models import IdentifierSource, IdentifierType
from folio.extractor.isbn import extract_isbn_candidates, normalize_isbn
from folio.extractor.metadata import (
    ExtractedCover,
    ExtractedIdentifier,
    ExtractedMetadata,
    clean_text,
    isbn_identifiers,
    parse_year,
)

warnings.filterwarnings("ignore", category=UserWarning, module="ebooklib.epub")
warnings.filterwarnings("ignore", category=FutureWarning, module="ebooklib.epub")

EMBEDDED_ISBN_CONFIDENCE = 0.8
EMBEDDED_OTHER_CONFIDENCE = 0.4
MINED_ISBN_CONFIDENCE = 0.6


def extract_epub_metadata(path: Path) -> ExtractedMetadata:
    book = epub.read_epub(str(path), options={"ignore_ncx": True})

    identifiers = _identifiers(_values(book, "identifier"))

    return ExtractedMetadata(
        title=_first(book, "title"),
        authors=_values(book, "creator"),
        language=_first(book, "language"),
        published_year=parse_year(_first(book, "date")),
        description=_first(book, "description"),
        identifiers=identifiers,
        cover=_cover(book),
    )


def _values(book: epub.EpubBook, name: str) -> list[str]:
    values = []
    for entry in book.get_metadata("DC", name):
        value = entry[0] if isinstance(entry, tuple) else entry
        if isinstance(value, str) and (cleaned := clean_text(value)):
            values.append(cleaned)
    return values


def _first(book: epub.EpubBook, name: str) -> str | None:
    values = _values(book, name)
    return values[0] if values else None


def _identifiers(values: list[str]) -> list[ExtractedIdentifier]:
    identifiers: list[ExtractedIdentifier] = []

    for value in values:
        normalized = normalize_isbn(value)
        if normalized:
            identifiers.extend(
                isbn_identifiers(
                    [normalized], EMBEDDED_ISBN_CONFIDENCE, IdentifierSource.EMBEDDED, identifiers
                )
            )
            continue
        identifiers.append(
            ExtractedIdentifier(
                IdentifierType.OTHER, value, EMBEDDED_OTHER_CONFIDENCE, IdentifierSource.EMBEDDED
            )
        )

    mined = extract_isbn_candidates(" ".join(values))
    identifiers.extend(
        isbn_identifiers(mined, MINED_ISBN_CONFIDENCE, IdentifierSource.HEURISTIC, identifiers)
    )
    return identifiers


def _cover(book: epub.EpubBook) -> ExtractedCover | None:
    for item in book.get_items_of_type(ebooklib.ITEM_COVER):
        return ExtractedCover(data=item.get_content(), mime_type=item.media_type)

    for _, attrs in book.get_metadata("OPF", "cover"):
        cover_id = attrs.get("content") if attrs else None
        item = book.get_item_with_id(cover_id) if cover_id else None
        if item is not None:
            return ExtractedCover(data=item.get_content(), mime_type=item.media_type)

    return None
