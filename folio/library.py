"""Library listing for display."""

from dataclasses import dataclass, field

from folio.database import Database


@dataclass
class LibraryListing:
    id: str
    title: str | None
    published_year: int | None
    author_names: list[str] = field(default_factory=list)
    file_count: int = 0
    formats: list[str] = field(default_factory=list)


def list_library_items(db: Database) -> list[LibraryListing]:
    """Items with their authors, file count and distinct formats.

    Rows from the join are folded client-side, keeping first-seen order for
    authors and formats.
    """
    rows = db.conn.execute(
        """
        SELECT i.id, i.title, i.published_year, a.name AS author_name,
               ia.ord AS author_ord, f.id AS file_id, f.extension
        FROM items i
        LEFT JOIN item_authors ia ON ia.item_id = i.id AND ia.role = 'author'
        LEFT JOIN authors a ON a.id = ia.author_id
        LEFT JOIN files f ON f.item_id = i.id
        ORDER BY COALESCE(i.title, ''), i.created_at, i.id, ia.ord, f.extension
        """
    ).fetchall()

    listings: dict[str, LibraryListing] = {}
    file_ids: dict[str, set[str]] = {}
    for row in rows:
        listing = listings.get(row["id"])
        if listing is None:
            listing = LibraryListing(
                id=row["id"],
                title=row["title"],
                published_year=row["published_year"],
            )
            listings[row["id"]] = listing
            file_ids[row["id"]] = set()

        if row["author_name"] and row["author_name"] not in listing.author_names:
            listing.author_names.append(row["author_name"])
        if row["extension"] and row["extension"] not in listing.formats:
            listing.formats.append(row["extension"])
        if row["file_id"]:
            file_ids[row["id"]].add(row["file_id"])

    for item_id, listing in listings.items():
        listing.file_count = len(file_ids[item_id])
    return list(listings.values())

