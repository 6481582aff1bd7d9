"""CLI interface for folio."""

import logging
import signal
import sys
from datetime import datetime
from pathlib import Path

import click

from folio.config import Config
from folio.database import Database, LibraryRepository, ScanStatus
from folio.enrichment import EnrichmentEngine, default_providers
from folio.library import list_library_items
from folio.organizer import (
    CollisionError,
    LogFormatError,
    OrganizationMode,
    apply_plan,
    build_organize_inputs,
    plan_organization,
    read_log,
    record_moves,
    rollback,
)
from folio.progress import CancellationToken, ProgressReporter, format_duration
from folio.scanner import Scanner

database_option = click.option(
    "--database",
    type=click.Path(path_type=Path),
    envvar="FOLIO_DATABASE",
    help="Path to database file",
)


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx: click.Context, verbose: bool) -> None:
    ctx.ensure_object(dict)
    ctx.obj["config"] = Config()
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _db_path(ctx: click.Context, database: Path | None) -> Path:
    config: Config = ctx.obj["config"]
    return database or config.database_path


def _require_db(db_path: Path) -> None:
    if not db_path.exists():
        click.echo("Error: No database found. Run 'folio scan' first.", err=True)
        sys.exit(1)


@cli.command()
@click.argument("root", type=click.Path(path_type=Path))
@click.option("--ext", "extensions", multiple=True, help="Extension to include (repeatable)")
@click.option("--workers", type=int, default=None, help="Parallel hashing threads")
@click.option("--progress-interval", type=int, default=100, help="Print status every N files")
@database_option
@click.pass_context
def scan(
    ctx: click.Context,
    root: Path,
    extensions: tuple[str, ...],
    workers: int | None,
    progress_interval: int,
    database: Path | None,
) -> None:
    """Scan ROOT and reconcile it with the catalog."""
    config: Config = ctx.obj["config"]
    if workers is not None:
        config.scanner.hash_workers = workers

    token = CancellationToken()
    previous_handler = signal.signal(signal.SIGINT, lambda *_: token.cancel())
    reporter = ProgressReporter(interval=progress_interval)
    try:
        with Database(_db_path(ctx, database)) as db:
            scanner = Scanner(db, config.scanner)
            stats = scanner.scan(root, extensions or None, cancel=token, progress=reporter)
    finally:
        signal.signal(signal.SIGINT, previous_handler)

    if stats.status is ScanStatus.FAILED:
        for message in stats.errors:
            click.echo(f"Error: {message}", err=True)
        sys.exit(1)

    click.echo(
        f"Scan {stats.status.value}. added={stats.added} updated={stats.updated} "
        f"moved={stats.moved} unchanged={stats.unchanged} missing={stats.missing} "
        f"({format_duration(stats.elapsed_seconds)})"
    )
    if stats.errors:
        click.echo(f"{len(stats.errors)} file(s) could not be read; see 'folio status'.")
    if stats.status is ScanStatus.CANCELLED:
        sys.exit(130)


@cli.command("list")
@database_option
@click.pass_context
def list_items(ctx: click.Context, database: Path | None) -> None:
    """List library items."""
    db_path = _db_path(ctx, database)
    _require_db(db_path)

    with Database(db_path) as db:
        items = list_library_items(db)

    if not items:
        click.echo("No items found.")
        return

    for item in items:
        title = item.title or "Untitled"
        authors = ", ".join(item.author_names) if item.author_names else "Unknown"
        formats = ", ".join(item.formats)
        click.echo(f"{item.id}  {title} - {authors} ({formats})")


@cli.command()
@click.option("--item", "item_id", required=True, help="Item id to enrich")
@click.option("--isbn", help="Look up by ISBN")
@click.option("--title", help="Look up by title")
@click.option("--author", help="Author to match together with --title")
@click.option("--apply/--no-apply", default=True, help="Write the best candidate to the item")
@database_option
@click.pass_context
def enrich(
    ctx: click.Context,
    item_id: str,
    isbn: str | None,
    title: str | None,
    author: str | None,
    apply: bool,
    database: Path | None,
) -> None:
    """Fetch metadata for an item from the online providers."""
    config: Config = ctx.obj["config"]
    db_path = _db_path(ctx, database)
    _require_db(db_path)

    if isbn and title:
        click.echo("Error: Use either --isbn or --title, not both.", err=True)
        sys.exit(1)

    with Database(db_path) as db:
        if LibraryRepository(db).get_item(item_id) is None:
            click.echo(f"Error: Item not found: {item_id}", err=True)
            sys.exit(1)

        engine = EnrichmentEngine(db, default_providers(config.enrichment), config.enrichment)
        candidate = engine.enrich(item_id, isbn=isbn, title=title, author=author)

        if candidate is None:
            click.echo("No enrichment candidates returned.")
            return

        if not apply:
            click.echo(f"Best candidate: {candidate.title} ({candidate.source})")
            return

        source, confidence = engine.apply_candidate(item_id, candidate)

    click.echo(f"Applied enrichment from {source} with {confidence * 100:.0f}% confidence.")


@cli.command()
@click.option(
    "--mode",
    type=click.Choice([m.value for m in OrganizationMode]),
    default=OrganizationMode.COPY.value,
    help="reference leaves files in place; copy or move places them under the library root",
)
@click.option(
    "--library-root",
    type=click.Path(file_okay=False, path_type=Path),
    required=True,
    help="Root directory of the organized library",
)
@click.option("--template", default=None, help="Naming template")
@click.option("--dry-run", is_flag=True, help="Show the plan without changing any files")
@database_option
@click.pass_context
def organize(
    ctx: click.Context,
    mode: str,
    library_root: Path,
    template: str | None,
    dry_run: bool,
    database: Path | None,
) -> None:
    """Copy or move active files into a template-named library."""
    config: Config = ctx.obj["config"]
    db_path = _db_path(ctx, database)
    _require_db(db_path)
    organization_mode = OrganizationMode(mode)

    with Database(db_path) as db:
        inputs = build_organize_inputs(db)
        try:
            plan = plan_organization(
                inputs,
                organization_mode,
                library_root,
                template or config.organizer.template,
                max_attempts=config.organizer.max_collision_attempts,
            )
        except (CollisionError, ValueError) as e:
            click.echo(f"Error: {e}", err=True)
            sys.exit(1)

        if dry_run or organization_mode is OrganizationMode.REFERENCE:
            for entry in plan.entries:
                click.echo(f"{entry.action.value:<5} {entry.source_path} -> {entry.target_path}")
            click.echo(f"{len(plan.pending)} of {len(plan.entries)} files would change.")
            return

        result = apply_plan(plan, progress=ProgressReporter(interval=100))
        if organization_mode is OrganizationMode.MOVE:
            record_moves(db, result.applied)

    click.echo(f"Organized {len(result.applied)} files. Log: {result.log_path}")
    if not result.completed:
        click.echo(f"Error: {result.error}", err=True)
        click.echo(f"Undo with: folio rollback {result.log_path}", err=True)
        sys.exit(1)


@cli.command("rollback")
@click.argument("log_path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@database_option
@click.pass_context
def rollback_cmd(ctx: click.Context, log_path: Path, database: Path | None) -> None:
    """Undo an organize run recorded in LOG_PATH."""
    try:
        read_log(log_path)
        result = rollback(log_path)
    except LogFormatError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    db_path = _db_path(ctx, database)
    if db_path.exists():
        with Database(db_path) as db:
            record_moves(db, result.restored, reverse=True)

    click.echo(f"Restored {len(result.restored)} entries.")
    for message in result.skipped:
        click.echo(f"  skipped: {message}")
    for message in result.errors:
        click.echo(f"  error: {message}", err=True)
    if result.errors:
        sys.exit(1)


@cli.command()
@database_option
@click.pass_context
def status(ctx: click.Context, database: Path | None) -> None:
    """Show recent scan sessions and catalog totals."""
    db_path = _db_path(ctx, database)

    if not db_path.exists():
        click.echo("No database found. Run 'folio scan' first.")
        return

    with Database(db_path) as db:
        totals = db.conn.execute(
            """
            SELECT
                (SELECT COUNT(*) FROM items) AS items,
                (SELECT COUNT(*) FROM files WHERE status = 'active') AS active,
                (SELECT COUNT(*) FROM files WHERE status = 'missing') AS missing,
                (SELECT COUNT(*) FROM issues WHERE resolved_at IS NULL) AS issues
            """
        ).fetchone()
        rows = db.conn.execute(
            """
            SELECT s.root_path, s.status, s.stage, s.started_at, s.error_message,
                   (SELECT COUNT(*) FROM scan_entries e WHERE e.session_id = s.id) AS entries
            FROM scan_sessions s
            ORDER BY s.started_at DESC
            LIMIT 10
            """
        ).fetchall()

    click.echo(
        f"Items: {totals['items']:,}  Files: {totals['active']:,} active, "
        f"{totals['missing']:,} missing  Open issues: {totals['issues']:,}"
    )

    if not rows:
        click.echo("No scan sessions found.")
        return

    click.echo("\nScan Sessions:")
    click.echo("-" * 80)
    click.echo("Root".ljust(40) + "Status".ljust(12) + "Entries".rjust(10) + "  Started")
    click.echo("-" * 80)
    for row in rows:
        root = _truncate(row["root_path"], 39)
        started = _format_relative_time(row["started_at"])
        click.echo(f"{root:<40}{row['status']:<12}{row['entries']:>10,}  {started}")
        if row["error_message"]:
            click.echo(f"    {row['stage']}: {row['error_message']}")


def _format_relative_time(timestamp_ms: int | None) -> str:
    if not timestamp_ms:
        return "unknown"

    delta = datetime.now() - datetime.fromtimestamp(timestamp_ms / 1000)

    if delta.days > 1:
        return f"{delta.days} days ago"
    if delta.days == 1:
        return "yesterday"
    if delta.seconds > 3600:
        return f"{delta.seconds // 3600}h ago"
    if delta.seconds > 60:
        return f"{delta.seconds // 60}m ago"
    return "just now"


def _truncate(text: str, max_len: int) -> str:
    if len(text) <= max_len:
        return text
    return "..." + text[-(max_len - 3) :]


def main() -> None:
    """Entry point for the CLI."""
    cli(standalone_mode=True)  # pylint: disable=no-value-for-parameter


if __name__ == "__main__":
    main()
