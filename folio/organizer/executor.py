"""Applies organization plans with a transaction log, and rolls them back."""

import json
import logging
import os
import shutil
import tempfile
from dataclasses import dataclass, field
from pathlib import Path

from folio.database.repository import now_ms
from folio.organizer.planner import OrganizePlan, PlanAction
from folio.progress import (
    CancellationToken,
    ProgressCallback,
    ProgressEvent,
    ProgressStatus,
    is_cancelled,
)

logger = logging.getLogger(__name__)

LOG_DIR_NAME = ".folio"


class LogFormatError(Exception):
    """Raised when an organizer log cannot be read or has an unexpected shape."""


@dataclass
class LogEntry:
    action: str
    from_path: Path
    to_path: Path
    timestamp: int
    file_id: str | None = None

    def to_json(self) -> dict:
        data = {
            "action": self.action,
            "from": str(self.from_path),
            "to": str(self.to_path),
            "timestamp": self.timestamp,
        }
        if self.file_id:
            data["fileId"] = self.file_id
        return data


@dataclass
class ApplyResult:
    log_path: Path | None
    applied: list[LogEntry] = field(default_factory=list)
    completed: bool = True
    error: str | None = None


@dataclass
class RollbackResult:
    restored: list[LogEntry] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)


def apply_plan(
    plan: OrganizePlan,
    cancel: CancellationToken | None = None,
    progress: ProgressCallback | None = None,
) -> ApplyResult:
    """Execute the plan's copy and move entries in order.

    The first failing entry stops the run. The log of everything executed up
    to that point is still written, so the partial run can be rolled back.
    """
    applied: list[LogEntry] = []
    pending = plan.pending
    error: str | None = None

    for index, entry in enumerate(pending):
        if is_cancelled(cancel):
            error = "cancelled"
            break
        try:
            _execute(entry.action, entry.source_path, entry.target_path)
        except OSError as e:
            error = f"{entry.action.value} {entry.source_path} -> {entry.target_path}: {e}"
            logger.error("Organize failed: %s", error)
            if progress:
                progress(ProgressEvent(index + 1, len(pending), error, ProgressStatus.ERROR))
            break

        applied.append(
            LogEntry(
                action=entry.action.value,
                from_path=entry.source_path,
                to_path=entry.target_path,
                timestamp=now_ms(),
                file_id=entry.file_id,
            )
        )
        if progress:
            progress(ProgressEvent(index + 1, len(pending), str(entry.target_path)))

    log_path = write_log(plan.library_root, applied)
    completed = error is None
    if completed and progress:
        progress(
            ProgressEvent(len(applied), len(pending), "Organize complete", ProgressStatus.DONE)
        )
    logger.info("Applied %d/%d entries, log at %s", len(applied), len(pending), log_path)
    return ApplyResult(log_path=log_path, applied=applied, completed=completed, error=error)


def _execute(action: PlanAction, source: Path, target: Path) -> None:
    if os.path.lexists(target):
        raise FileExistsError(f"Target already exists: {target}")
    target.parent.mkdir(parents=True, exist_ok=True)
    if action is PlanAction.COPY:
        shutil.copy2(source, target)
    elif action is PlanAction.MOVE:
        shutil.move(source, target)


def write_log(library_root: Path, entries: list[LogEntry]) -> Path:
    """Write the log atomically as ``<root>/.folio/organizer-log-<ms>.json``."""
    log_dir = Path(library_root) / LOG_DIR_NAME
    log_dir.mkdir(parents=True, exist_ok=True)

    stamp = now_ms()
    log_path = log_dir / f"organizer-log-{stamp}.json"
    suffix = 1
    while log_path.exists():
        log_path = log_dir / f"organizer-log-{stamp}-{suffix}.json"
        suffix += 1

    fd, tmp_name = tempfile.mkstemp(dir=log_dir, prefix=".organizer-log-", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump([e.to_json() for e in entries], f, indent=2)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_name, log_path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise
    return log_path


def read_log(log_path: Path) -> list[LogEntry]:
    try:
        data = json.loads(Path(log_path).read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        raise LogFormatError(f"Cannot read organizer log {log_path}: {e}") from e

    if not isinstance(data, list):
        raise LogFormatError(f"Organizer log {log_path} is not a list")

    entries = []
    for raw in data:
        if (
            not isinstance(raw, dict)
            or raw.get("action") not in ("copy", "move")
            or not isinstance(raw.get("from"), str)
            or not isinstance(raw.get("to"), str)
        ):
            raise LogFormatError(f"Malformed entry in {log_path}: {raw!r}")
        entries.append(
            LogEntry(
                action=raw["action"],
                from_path=Path(raw["from"]),
                to_path=Path(raw["to"]),
                timestamp=int(raw.get("timestamp") or 0),
                file_id=raw.get("fileId"),
            )
        )
    return entries


def rollback(log_path: Path) -> RollbackResult:
    """Undo a logged run in reverse order, continuing past individual failures.

    Copies are undone by deleting the copy. Moves are undone by moving the file
    back, unless it is no longer at the target or the original location is
    occupied again.
    """
    result = RollbackResult()

    for entry in reversed(read_log(log_path)):
        try:
            if entry.action == "copy":
                if not os.path.lexists(entry.to_path):
                    result.skipped.append(f"copy target already gone: {entry.to_path}")
                    continue
                entry.to_path.unlink()
            else:
                if not os.path.lexists(entry.to_path):
                    result.skipped.append(f"move target gone: {entry.to_path}")
                    continue
                if os.path.lexists(entry.from_path):
                    result.skipped.append(f"original location occupied: {entry.from_path}")
                    continue
                entry.from_path.parent.mkdir(parents=True, exist_ok=True)
                shutil.move(entry.to_path, entry.from_path)
        except OSError as e:
            logger.warning("Rollback of %s %s failed: %s", entry.action, entry.to_path, e)
            result.errors.append(f"{entry.action} {entry.to_path}: {e}")
            continue
        result.restored.append(entry)

    logger.info(
        "Rolled back %d entries (%d skipped, %d errors)",
        len(result.restored),
        len(result.skipped),
        len(result.errors),
    )
    return result
