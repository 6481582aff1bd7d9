"""Format dispatch for metadata extraction."""

import logging
from collections.abc import Callable
from pathlib import Path

from folio.extractor.epub import extract_epub_metadata
from folio.extractor.metadata import ExtractedMetadata
from folio.extractor.mobi import extract_mobi_metadata
from folio.extractor.pdf import extract_pdf_metadata

logger = logging.getLogger(__name__)

Reader = Callable[[Path], ExtractedMetadata]

READERS: dict[str, Reader] = {
    "epub": extract_epub_metadata,
    "pdf": extract_pdf_metadata,
    "mobi": extract_mobi_metadata,
    "azw": extract_mobi_metadata,
    "azw3": extract_mobi_metadata,
}


def extract_metadata(path: Path) -> ExtractedMetadata:
    """Read embedded metadata from an e-book file.

    Unsupported formats and unreadable or malformed files yield an empty
    ExtractedMetadata; this function does not raise.
    """
    reader = READERS.get(path.suffix.lower().lstrip("."))
    if reader is None:
        logger.debug("No metadata reader for %s", path)
        return ExtractedMetadata()

    try:
        return reader(path)
    except Exception as e:
        logger.warning("Failed to extract metadata from %s: %s", path, e)
        return ExtractedMetadata()
