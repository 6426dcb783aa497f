"""
Production tasks and vendor assignment.

Assigning a vendor sends them a notification. Mail failures never undo the
task change; they are reported back as `email_warning`.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy.orm import Session

from app.folio.audit import field_changes, record_event
from app.folio.errors import NotFound, ValidationError
from app.folio.mailer import send_email
from app.folio.modules.contacts.models import Contact
from app.folio.rbac import ensure_permission
from app.folio.utils import clean_str, parse_date

from .models import ProductionProject, ProductionTask
from .service import NO_MANAGE_PERMISSION, get_project
from .workflow import STATUS_LABELS, TASK_STATUSES, TASK_TYPES, is_valid_task_status_transition

if TYPE_CHECKING:
    from app.folio.models import User

NAME_MAX = 255
DESCRIPTION_MAX = 5000
NOTES_MAX = 2000
NO_VENDOR = "No vendor assigned"


@dataclass
class TaskResult:
    task: ProductionTask
    email_sent: bool = False
    email_warning: str | None = None


def get_task(s: Session, tenant_id: int, task_id: int) -> ProductionTask:
    task = (
        s.query(ProductionTask)
        .join(ProductionProject, ProductionProject.id == ProductionTask.project_id)
        .filter(
            ProductionTask.id == task_id,
            ProductionTask.tenant_id == tenant_id,
            ProductionTask.deleted_at.is_(None),
            ProductionProject.deleted_at.is_(None),
        )
        .one_or_none()
    )
    if not task:
        raise NotFound("Task not found")
    return task


def validate_task_payload(payload: dict, *, partial: bool = False) -> list[str]:
    errors = [
        f"{field} must be a string"
        for field in ("name", "description", "task_type", "notes")
        if payload.get(field) is not None and not isinstance(payload.get(field), str)
    ]
    if errors:
        return errors
    if not partial or "name" in payload:
        name = (payload.get("name") or "").strip()
        if not name:
            errors.append("Name is required")
        elif len(name) > NAME_MAX:
            errors.append("Name too long")
    if not partial or "task_type" in payload:
        task_type = payload.get("task_type") or "other"
        if task_type not in TASK_TYPES:
            errors.append(f"Invalid task type. Must be one of: {', '.join(TASK_TYPES)}")
    if len(payload.get("description") or "") > DESCRIPTION_MAX:
        errors.append("Description too long")
    if len(payload.get("notes") or "") > NOTES_MAX:
        errors.append("Notes too long")
    return errors


def _resolve_vendor(s: Session, tenant_id: int, vendor_id) -> Contact | None:
    if vendor_id in (None, ""):
        return None
    try:
        vid = int(vendor_id)
    except (TypeError, ValueError) as e:
        raise ValidationError("Invalid vendor ID") from e
    vendor = (
        s.query(Contact)
        .filter(Contact.id == vid, Contact.tenant_id == tenant_id, Contact.status == "active")
        .one_or_none()
    )
    if not vendor or not vendor.has_role("vendor"):
        raise ValidationError("Invalid vendor ID")
    return vendor


def notify_vendor_assignment(task: ProductionTask, project: ProductionProject, vendor: Contact | None) -> tuple[bool, str | None]:
    if vendor is None:
        return False, NO_VENDOR
    title_name = project.title.name if project.title else "Unknown Title"
    lines = [
        f"Hello {vendor.full_name},",
        "",
        f"You have been assigned a production task for \"{title_name}\".",
        "",
        f"Task: {task.name}",
        f"Type: {task.task_type}",
    ]
    if task.due_date:
        lines.append(f"Due: {task.due_date.isoformat()}")
    if task.description:
        lines += ["", task.description]
    sent, detail = send_email(vendor.email or "", f"New production task: {task.name}", "\n".join(lines))
    return (True, None) if sent else (False, detail)


def create_task(s: Session, project_id: int, payload: dict, user: User) -> TaskResult:
    errors = validate_task_payload(payload)
    if errors:
        raise ValidationError(errors)
    due = parse_date(payload.get("due_date"))

    ensure_permission(user, "production.manage", NO_MANAGE_PERMISSION)
    project = get_project(s, user.tenant_id, project_id)
    vendor = _resolve_vendor(s, user.tenant_id, payload.get("vendor_id"))

    now = datetime.utcnow()
    task = ProductionTask(
        tenant_id=user.tenant_id,
        project_id=project.id,
        name=payload["name"].strip(),
        description=clean_str(payload.get("description")),
        task_type=payload.get("task_type") or "other",
        status="pending",
        vendor_id=vendor.id if vendor else None,
        due_date=due,
        notes=clean_str(payload.get("notes")),
        created_at=now,
        updated_at=now,
        created_by_user_id=user.id,
        updated_by_user_id=user.id,
    )
    project.tasks.append(task)
    s.flush()

    record_event(
        s,
        actor=user,
        action="production.task.create",
        entity_type="ProductionTask",
        entity_id=str(task.id),
        metadata={"project_id": project.id, "name": task.name, "task_type": task.task_type, "vendor_id": task.vendor_id},
    )

    s.flush()
    email_sent, warning = notify_vendor_assignment(task, project, vendor)
    return TaskResult(task, email_sent, warning)


def update_task(s: Session, task_id: int, payload: dict, user: User) -> TaskResult:
    """Partial update. A changed vendor gets the assignment email."""
    errors = validate_task_payload(payload, partial=True)
    if errors:
        raise ValidationError(errors)

    ensure_permission(user, "production.manage", NO_MANAGE_PERMISSION)
    task = get_task(s, user.tenant_id, task_id)

    fields = ("name", "description", "task_type", "vendor_id", "due_date", "notes")
    before = {f: getattr(task, f) for f in fields}

    if "name" in payload:
        task.name = payload["name"].strip()
    if "description" in payload:
        task.description = clean_str(payload.get("description"))
    if "task_type" in payload:
        task.task_type = payload.get("task_type") or "other"
    if "due_date" in payload:
        task.due_date = parse_date(payload.get("due_date"))
    if "notes" in payload:
        task.notes = clean_str(payload.get("notes"))
    vendor = task.vendor
    if "vendor_id" in payload:
        vendor = _resolve_vendor(s, user.tenant_id, payload.get("vendor_id"))
        task.vendor_id = vendor.id if vendor else None
        task.vendor = vendor

    task.updated_at = datetime.utcnow()
    task.updated_by_user_id = user.id

    changes = field_changes(before, {f: getattr(task, f) for f in fields})
    if changes:
        record_event(
            s,
            actor=user,
            action="production.task.update",
            entity_type="ProductionTask",
            entity_id=str(task.id),
            metadata={"project_id": task.project_id, "changes": changes},
        )

    if "vendor_id" in changes:
        s.flush()
        email_sent, warning = notify_vendor_assignment(task, task.project, vendor)
        return TaskResult(task, email_sent, warning)
    return TaskResult(task)


def update_task_status(s: Session, task_id: int, new_status: str, user: User) -> ProductionTask:
    if new_status not in TASK_STATUSES:
        raise ValidationError(f"Invalid status: {new_status}")
    ensure_permission(user, "production.manage", NO_MANAGE_PERMISSION)
    task = get_task(s, user.tenant_id, task_id)

    if not is_valid_task_status_transition(task.status, new_status):
        raise ValidationError(
            f"Cannot transition from {STATUS_LABELS.get(task.status, task.status)} to {STATUS_LABELS[new_status]}"
        )

    old = task.status
    task.status = new_status
    task.updated_at = datetime.utcnow()
    task.updated_by_user_id = user.id

    record_event(
        s,
        actor=user,
        action="production.task.status_change",
        entity_type="ProductionTask",
        entity_id=str(task.id),
        metadata={"project_id": task.project_id, "from": old, "to": new_status},
    )
    return task


def delete_task(s: Session, task_id: int, user: User) -> ProductionTask:
    ensure_permission(user, "production.manage", NO_MANAGE_PERMISSION)
    task = get_task(s, user.tenant_id, task_id)
    task.deleted_at = datetime.utcnow()
    task.updated_by_user_id = user.id

    record_event(
        s,
        actor=user,
        action="production.task.delete",
        entity_type="ProductionTask",
        entity_id=str(task.id),
        metadata={"project_id": task.project_id, "name": task.name},
    )
    return task
