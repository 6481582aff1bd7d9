"""ISBN candidate mining and checksum validation."""

import re

from folio.database.models import IdentifierType

ISBN_CANDIDATE_RE = re.compile(r"\b(?:97[89][\s-]?)?\d{1,5}[\s-]?\d{1,7}[\s-]?\d{1,7}[\s-]?[\dX]\b")

_NON_ISBN_CHARS_RE = re.compile(r"[^0-9X]", re.IGNORECASE)


def normalize_isbn(value: str) -> str | None:
    """Strip separators and return the ISBN if it validates, else None."""
    cleaned = _NON_ISBN_CHARS_RE.sub("", value).upper()
    if len(cleaned) == 10 and is_valid_isbn10(cleaned):
        return cleaned
    if len(cleaned) == 13 and is_valid_isbn13(cleaned):
        return cleaned
    return None


def is_valid_isbn10(value: str) -> bool:
    if len(value) != 10 or not value[:9].isdigit():
        return False
    check = value[9]
    if check == "X":
        check_value = 10
    elif check.isdigit():
        check_value = int(check)
    else:
        return False
    total = sum(int(digit) * (10 - i) for i, digit in enumerate(value[:9]))
    return (total + check_value) % 11 == 0


def is_valid_isbn13(value: str) -> bool:
    if len(value) != 13 or not value.isdigit():
        return False
    total = sum(int(digit) * (1 if i % 2 == 0 else 3) for i, digit in enumerate(value[:12]))
    return (10 - total % 10) % 10 == int(value[12])


def isbn_type(value: str) -> IdentifierType:
    return IdentifierType.ISBN10 if len(value) == 10 else IdentifierType.ISBN13


def extract_isbn_candidates(text: str) -> list[str]:
    """Valid, normalized ISBNs found in free text, first occurrence order."""
    found: list[str] = []
    for match in ISBN_CANDIDATE_RE.finditer(text):
        normalized = normalize_isbn(match.group(0))
        if normalized and normalized not in found:
            found.append(normalized)
    return found


def isbn10_to_isbn13(value: str) -> str | None:
    normalized = normalize_isbn(value)
    if normalized is None:
        return None
    if len(normalized) == 13:
        return normalized
    body = "978" + normalized[:9]
    total = sum(int(digit) * (1 if i % 2 == 0 else 3) for i, digit in enumerate(body))
    return body + str((10 - total % 10) % 10)
