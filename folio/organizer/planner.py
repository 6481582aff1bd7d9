"""Organization planning: where each file should live in the library."""

import logging
import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from folio.organizer.template import DEFAULT_TEMPLATE, render_template, with_collision_suffix

logger = logging.getLogger(__name__)

MAX_COLLISION_ATTEMPTS = 1000


class CollisionError(Exception):
    """Raised when no free ``Name [N]`` variant exists within the attempt bound."""


class OrganizationMode(Enum):
    REFERENCE = "reference"
    COPY = "copy"
    MOVE = "move"


class PlanAction(Enum):
    COPY = "copy"
    MOVE = "move"
    SKIP = "skip"


@dataclass
class OrganizeInput:
    """Metadata needed to place one file."""

    file_id: str
    source_path: Path
    extension: str
    title: str | None = None
    authors: list[str] = field(default_factory=list)
    published_year: int | None = None
    isbn13: str | None = None


@dataclass
class OrganizePlanEntry:
    file_id: str
    source_path: Path
    target_path: Path
    action: PlanAction


@dataclass
class OrganizePlan:
    mode: OrganizationMode
    library_root: Path
    template: str
    entries: list[OrganizePlanEntry] = field(default_factory=list)

    @property
    def pending(self) -> list[OrganizePlanEntry]:
        return [e for e in self.entries if e.action is not PlanAction.SKIP]


def plan_organization(
    inputs: list[OrganizeInput],
    mode: OrganizationMode,
    library_root: Path,
    template: str = DEFAULT_TEMPLATE,
    max_attempts: int = MAX_COLLISION_ATTEMPTS,
) -> OrganizePlan:
    """Compute target paths without touching the filesystem.

    In reference mode every file stays where it is. Otherwise each file gets
    the rendered template path under library_root; a path that already exists
    on disk or was claimed by an earlier entry of this plan gets the first free
    ``Name [N]`` variant.

    Args:
        inputs: Files to place, in the order they should be planned.
        mode: Reference, copy or move.
        library_root: Root directory of the organized library.
        template: Naming template.
        max_attempts: Upper bound on collision suffixes tried per file.

    Returns:
        The plan.

    Raises:
        CollisionError: If every suffix up to max_attempts is taken.
        ValueError: If the template renders a path outside library_root.
    """
    library_root = Path(os.path.abspath(library_root))
    plan = OrganizePlan(mode=mode, library_root=library_root, template=template)
    action = PlanAction.COPY if mode is OrganizationMode.COPY else PlanAction.MOVE
    claimed: set[Path] = set()

    for item in inputs:
        source = Path(os.path.abspath(item.source_path))

        if mode is OrganizationMode.REFERENCE:
            plan.entries.append(OrganizePlanEntry(item.file_id, source, source, PlanAction.SKIP))
            continue

        relative = render_template(
            template,
            author=item.authors[0] if item.authors else None,
            title=item.title,
            year=item.published_year,
            isbn13=item.isbn13,
            extension=item.extension,
        )
        target = _within_root(library_root, relative)

        if target == source:
            # Already in place.
            claimed.add(target)
            plan.entries.append(OrganizePlanEntry(item.file_id, source, target, PlanAction.SKIP))
            continue

        target = _resolve_collision(target, claimed, max_attempts)
        claimed.add(target)
        plan.entries.append(OrganizePlanEntry(item.file_id, source, target, action))

    logger.info(
        "Planned %d entries (%d to %s) under %s",
        len(plan.entries),
        len(plan.pending),
        mode.value,
        library_root,
    )
    return plan


def _within_root(library_root: Path, relative: str) -> Path:
    target = Path(os.path.normpath(library_root / relative))
    if target != library_root and library_root not in target.parents:
        raise ValueError(f"Template renders a path outside the library root: {relative}")
    return target


def _resolve_collision(target: Path, claimed: set[Path], max_attempts: int) -> Path:
    def taken(path: Path) -> bool:
        return path in claimed or os.path.lexists(path)

    if not taken(target):
        return target
    for index in range(1, max_attempts + 1):
        candidate = Path(with_collision_suffix(target, index))
        if not taken(candidate):
            return candidate
    raise CollisionError(f"No free name for {target} after {max_attempts} attempts")
