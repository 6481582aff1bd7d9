"""File organization: planning, transactional apply and rollback."""

from folio.organizer.catalog import build_organize_inputs, record_moves
from folio.organizer.executor import (
    ApplyResult,
    LogEntry,
    LogFormatError,
    RollbackResult,
    apply_plan,
    read_log,
    rollback,
)
from folio.organizer.planner import (
    CollisionError,
    OrganizationMode,
    OrganizeInput,
    OrganizePlan,
    OrganizePlanEntry,
    PlanAction,
    plan_organization,
)
from folio.organizer.template import DEFAULT_TEMPLATE, render_template

__all__ = [
    "plan_organization",
    "build_organize_inputs",
    "record_moves",
    "apply_plan",
    "rollback",
    "read_log",
    "render_template",
    "DEFAULT_TEMPLATE",
    "OrganizationMode",
    "OrganizeInput",
    "OrganizePlan",
    "OrganizePlanEntry",
    "PlanAction",
    "ApplyResult",
    "RollbackResult",
    "LogEntry",
    "CollisionError",
    "LogFormatError",
]
