"""Target path rendering from a naming template."""

import re
from pathlib import PurePath

DEFAULT_TEMPLATE = "{Author}/{Title} ({Year}) [{ISBN13}].{ext}"

UNKNOWN_AUTHOR = "Unknown Author"
UNTITLED = "Untitled"
UNKNOWN = "Unknown"

TOKENS = ("{Author}", "{Title}", "{Year}", "{ISBN13}", "{ext}")

_UNSAFE_CHARS_RE = re.compile(r'[\\/:*?"<>|]')
_WHITESPACE_RE = re.compile(r"\s+")


def sanitize_component(value: str, default: str) -> str:
    """Make a token value safe to embed in a single path component.

    Path separators and other characters rejected by common filesystems are
    replaced with "-", and runs of whitespace collapse to one space.

    Args:
        value: Raw token value.
        default: Value used when nothing usable remains.

    Returns:
        Sanitized value.
    """
    cleaned = _WHITESPACE_RE.sub(" ", _UNSAFE_CHARS_RE.sub("-", value)).strip()
    if not cleaned or set(cleaned) == {"."}:
        return default
    return cleaned


def render_template(
    template: str,
    author: str | None,
    title: str | None,
    year: int | None,
    isbn13: str | None,
    extension: str,
) -> str:
    """Render a relative target path.

    Args:
        template: Template using {Author}, {Title}, {Year}, {ISBN13} and {ext}.
        author: First author, or None.
        title: Item title, or None.
        year: Publication year, or None.
        isbn13: ISBN-13, or None.
        extension: File extension, with or without the leading dot.

    Returns:
        Relative path with "/" separators.
    """
    values = {
        "{Author}": sanitize_component(author or "", UNKNOWN_AUTHOR),
        "{Title}": sanitize_component(title or "", UNTITLED),
        "{Year}": str(year) if year else UNKNOWN,
        "{ISBN13}": sanitize_component(isbn13 or "", UNKNOWN),
        "{ext}": sanitize_component(extension.lstrip("."), ""),
    }
    rendered = template
    for token, value in values.items():
        rendered = rendered.replace(token, value)
    return rendered


def with_collision_suffix(path: PurePath, index: int) -> PurePath:
    """``dir/Name.epub`` -> ``dir/Name [index].epub``."""
    return path.with_name(f"{path.stem} [{index}]{path.suffix}")
