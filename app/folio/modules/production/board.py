"""Read-only production views: Kanban board, calendar and the author portal."""
from __future__ import annotations

from datetime import date
from typing import TYPE_CHECKING

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from app.folio.errors import NotFound
from app.folio.modules.contacts.models import Contact
from app.folio.modules.titles.models import Title
from app.folio.utils import iso, parse_date

from .models import ProductionProject
from .workflow import (
    STAGE_LABELS,
    STATUS_LABELS,
    WORKFLOW_STAGES,
    days_in_stage,
    is_project_overdue,
)

if TYPE_CHECKING:
    from app.folio.models import User


def _live_projects(s: Session, tenant_id: int):
    return (
        s.query(ProductionProject)
        .join(Title, Title.id == ProductionProject.title_id)
        .filter(ProductionProject.tenant_id == tenant_id, ProductionProject.deleted_at.is_(None))
    )


def board_card(p: ProductionProject, *, today: date | None = None) -> dict:
    tasks = p.live_tasks
    return {
        "id": p.id,
        "title_id": p.title_id,
        "title_name": p.title.name if p.title else "Unknown Title",
        "isbn13": p.title.isbn13 if p.title else None,
        "target_publication_date": iso(p.target_publication_date),
        "status": p.status,
        "workflow_stage": p.workflow_stage,
        "stage_entered_at": iso(p.stage_entered_at),
        "days_in_stage": days_in_stage(p.stage_entered_at),
        "task_stats": {
            "total": len(tasks),
            "completed": sum(1 for t in tasks if t.status == "completed"),
        },
        "is_overdue": is_project_overdue(p.target_publication_date, p.workflow_stage, today=today),
    }


def get_board(
    s: Session,
    tenant_id: int,
    *,
    date_from=None,
    date_to=None,
    search: str | None = None,
    today: date | None = None,
) -> dict:
    """
    Projects grouped by workflow stage. Every stage key is present even when
    empty. Date filters apply to the target publication date; search matches
    title name or ISBN.
    """
    start = parse_date(date_from)
    end = parse_date(date_to)

    q = _live_projects(s, tenant_id)
    if start:
        q = q.filter(ProductionProject.target_publication_date >= start)
    if end:
        q = q.filter(ProductionProject.target_publication_date <= end)
    term = (search or "").strip()
    if term:
        like = f"%{term.lower()}%"
        q = q.filter(or_(func.lower(Title.name).like(like), Title.isbn13.like(f"%{term.replace('-', '')}%")))

    stages: dict[str, list[dict]] = {stage: [] for stage in WORKFLOW_STAGES}
    for p in q.order_by(ProductionProject.stage_entered_at.asc(), ProductionProject.id.asc()).all():
        stages.setdefault(p.workflow_stage, []).append(board_card(p, today=today))

    return {
        "stages": stages,
        "stage_order": list(WORKFLOW_STAGES),
        "stage_labels": dict(STAGE_LABELS),
    }


def get_calendar_events(
    s: Session,
    tenant_id: int,
    *,
    date_from=None,
    date_to=None,
    today: date | None = None,
) -> list[dict]:
    """Publication dates and task due dates, sorted by date."""
    start = parse_date(date_from)
    end = parse_date(date_to)
    today = today or date.today()

    def in_range(d: date) -> bool:
        return (start is None or d >= start) and (end is None or d <= end)

    events: list[dict] = []
    for p in _live_projects(s, tenant_id).all():
        title_name = p.title.name if p.title else "Unknown Title"
        if p.target_publication_date and in_range(p.target_publication_date):
            events.append(
                {
                    "id": f"project-{p.id}",
                    "type": "publication_date",
                    "date": iso(p.target_publication_date),
                    "title": title_name,
                    "project_id": p.id,
                    "task_id": None,
                    "workflow_stage": p.workflow_stage,
                    "is_overdue": (
                        p.target_publication_date < today
                        and p.workflow_stage != "complete"
                        and p.status not in ("completed", "cancelled")
                    ),
                }
            )
        for t in p.live_tasks:
            if t.due_date is None or not in_range(t.due_date):
                continue
            events.append(
                {
                    "id": f"task-{t.id}",
                    "type": "task_due_date",
                    "date": iso(t.due_date),
                    "title": f"{t.name} ({title_name})",
                    "project_id": p.id,
                    "task_id": t.id,
                    "status": t.status,
                    "is_overdue": t.due_date < today and t.status not in ("completed", "cancelled"),
                }
            )
    events.sort(key=lambda e: (e["date"], e["id"]))
    return events


def get_author_production_status(s: Session, tenant_id: int, contact_id: int, *, today: date | None = None) -> list[dict]:
    """Portal view: the author's projects, soonest target date first, undated last."""
    projects = (
        _live_projects(s, tenant_id)
        .filter(Title.author_contact_id == contact_id)
        .all()
    )
    projects.sort(key=lambda p: (p.target_publication_date is None, p.target_publication_date or date.max, p.id))

    rows = []
    for p in projects:
        rows.append(
            {
                "project_id": p.id,
                "title_name": p.title.name if p.title else "Unknown Title",
                "isbn13": p.title.isbn13 if p.title else None,
                "status": p.status,
                "status_label": STATUS_LABELS.get(p.status, p.status),
                "workflow_stage": p.workflow_stage,
                "workflow_stage_label": STAGE_LABELS.get(p.workflow_stage, p.workflow_stage),
                "target_publication_date": iso(p.target_publication_date),
                "stage_entered_at": iso(p.stage_entered_at),
                "workflow_stage_history": list(p.workflow_stage_history or []),
                "is_overdue": is_project_overdue(p.target_publication_date, p.workflow_stage, today=today),
            }
        )
    return rows


def portal_production_status(s: Session, user: User) -> list[dict]:
    """Author portal: resolve the contact linked to the signed-in account."""
    contact = (
        s.query(Contact)
        .filter(Contact.tenant_id == user.tenant_id, Contact.portal_user_id == user.id)
        .one_or_none()
    )
    if not contact or not contact.has_role("author"):
        raise NotFound("No author profile is linked to this account")
    return get_author_production_status(s, user.tenant_id, contact.id)
