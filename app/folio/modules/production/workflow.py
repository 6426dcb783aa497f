"""
Production status tables and the Kanban stage rules.

All lookups are plain dicts/tuples so they can be exercised without a database.
"""
from __future__ import annotations

from datetime import date, datetime

PROJECT_STATUSES = ("draft", "in-progress", "completed", "cancelled")

STATUS_TRANSITIONS: dict[str, set[str]] = {
    "draft": {"in-progress", "cancelled"},
    "in-progress": {"completed", "cancelled"},
    "completed": set(),
    "cancelled": set(),
}

STATUS_LABELS = {
    "draft": "Draft",
    "in-progress": "In Progress",
    "completed": "Completed",
    "cancelled": "Cancelled",
    "pending": "Pending",
}

WORKFLOW_STAGES = ("manuscript_received", "editing", "design", "proof", "print_ready", "complete")

STAGE_LABELS = {
    "manuscript_received": "Manuscript Received",
    "editing": "Editing",
    "design": "Design",
    "proof": "Proof",
    "print_ready": "Print Ready",
    "complete": "Complete",
}

TASK_TYPES = ("editing", "design", "proofing", "printing", "other")
TASK_TYPE_LABELS = {t: t.capitalize() for t in TASK_TYPES}

TASK_STATUSES = ("pending", "in-progress", "completed", "cancelled")

TASK_STATUS_TRANSITIONS: dict[str, set[str]] = {
    "pending": {"in-progress", "cancelled"},
    "in-progress": {"completed", "cancelled"},
    "completed": set(),
    "cancelled": set(),
}

PROOF_APPROVAL_STATUSES = ("pending", "approved", "corrections_requested")

SKIP_STAGE_MESSAGE = "Cannot skip stages. Move one stage at a time."


def is_valid_status_transition(current: str, new: str) -> bool:
    return new in STATUS_TRANSITIONS.get(current, set())


def is_valid_task_status_transition(current: str, new: str) -> bool:
    return new in TASK_STATUS_TRANSITIONS.get(current, set())


def can_transition_to(current: str, new: str) -> tuple[bool, list[str]]:
    """Check a project status change. Returns (ok, errors)."""
    if current not in STATUS_TRANSITIONS:
        return False, [f"Current status '{current}' is invalid"]
    if new not in STATUS_TRANSITIONS:
        return False, [f"Invalid status: {new}"]
    if not is_valid_status_transition(current, new):
        return False, [f"Cannot transition from {STATUS_LABELS[current]} to {STATUS_LABELS[new]}"]
    return True, []


def stage_index(stage: str) -> int:
    return WORKFLOW_STAGES.index(stage)


def is_valid_stage_transition(current: str, new: str) -> bool:
    """Stages move one column at a time, forwards or backwards."""
    if current not in WORKFLOW_STAGES or new not in WORKFLOW_STAGES:
        return False
    return abs(stage_index(new) - stage_index(current)) == 1


def is_project_overdue(target: date | None, stage: str, *, today: date | None = None) -> bool:
    if target is None or stage == "complete":
        return False
    return target < (today or date.today())


def days_in_stage(stage_entered_at: datetime | None, *, now: datetime | None = None) -> int:
    if stage_entered_at is None:
        return 0
    delta = (now or datetime.utcnow()) - stage_entered_at
    return max(delta.days, 0)


def stage_history_entry(old: str, new: str, user_id: int | None, at: datetime) -> dict:
    return {"from": old, "to": new, "timestamp": at.isoformat(), "user_id": user_id}
