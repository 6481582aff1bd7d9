"""Bridges between the catalog and the organizer."""

from pathlib import Path

from folio.database import Database, FileStatus, IdentifierType, LibraryRepository
from folio.extractor.isbn import isbn10_to_isbn13
from folio.organizer.executor import LogEntry
from folio.organizer.planner import OrganizeInput


def build_organize_inputs(db: Database) -> list[OrganizeInput]:
    """One OrganizeInput per active file, carrying its item's metadata."""
    repo = LibraryRepository(db)
    authors_by_item = repo.author_names_by_item()
    items = {item.id: item for item in repo.list_items()}
    isbn_cache: dict[str, str | None] = {}

    inputs = []
    for record in repo.list_files(FileStatus.ACTIVE):
        item = items.get(record.item_id) if record.item_id else None
        if item and item.id not in isbn_cache:
            isbn_cache[item.id] = _best_isbn13(repo, item.id)
        inputs.append(
            OrganizeInput(
                file_id=record.id,
                source_path=Path(record.path),
                extension=record.extension,
                title=item.title if item else None,
                authors=authors_by_item.get(item.id, []) if item else [],
                published_year=item.published_year if item else None,
                isbn13=isbn_cache.get(item.id) if item else None,
            )
        )
    return inputs


def _best_isbn13(repo: LibraryRepository, item_id: str) -> str | None:
    identifiers = repo.get_identifiers(item_id)
    for ident in identifiers:
        if ident.type is IdentifierType.ISBN13:
            return ident.value
    for ident in identifiers:
        if ident.type is IdentifierType.ISBN10:
            return isbn10_to_isbn13(ident.value)
    return None


def record_moves(db: Database, entries: list[LogEntry], reverse: bool = False) -> int:
    """Point moved FileRecords at their new paths, or back at the old ones."""
    repo = LibraryRepository(db)
    updated = 0
    with db.transaction():
        for entry in entries:
            if entry.action != "move" or not entry.file_id:
                continue
            path = entry.from_path if reverse else entry.to_path
            repo.update_file(entry.file_id, path=str(path), filename=path.name)
            updated += 1
    return updated
