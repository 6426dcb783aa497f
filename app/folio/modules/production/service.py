"""
Production projects: creation, manuscript handling, status and Kanban stage moves.

Tasks live in `tasks.py`, proofs in `proofs.py`, read-only board/calendar
views in `board.py`.
"""
from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING

from sqlalchemy.orm import Session
from werkzeug.utils import secure_filename

from app.folio.audit import field_changes, record_event
from app.folio.errors import ConflictError, NotFound, ValidationError
from app.folio.modules.titles.service import get_title
from app.folio.rbac import ensure_permission
from app.folio.storage import Storage, StorageError, Upload
from app.folio.utils import clean_str, iso, parse_date

from .models import ProductionProject
from .workflow import (
    SKIP_STAGE_MESSAGE,
    WORKFLOW_STAGES,
    can_transition_to,
    is_valid_stage_transition,
    stage_history_entry,
)

if TYPE_CHECKING:
    from app.folio.models import User

logger = logging.getLogger(__name__)

NO_MANAGE_PERMISSION = "You don't have permission to manage production"
PROJECT_NOT_FOUND = "Production project not found"
DUPLICATE_PROJECT = "A production project already exists for this title"

NOTES_MAX = 5000
MANUSCRIPT_EXTENSIONS = {".pdf", ".doc", ".docx"}
MANUSCRIPT_MAX_BYTES = 50 * 1024 * 1024


def get_project(s: Session, tenant_id: int, project_id: int) -> ProductionProject:
    project = (
        s.query(ProductionProject)
        .filter(
            ProductionProject.id == project_id,
            ProductionProject.tenant_id == tenant_id,
            ProductionProject.deleted_at.is_(None),
        )
        .one_or_none()
    )
    if not project:
        raise NotFound(PROJECT_NOT_FOUND)
    return project


def list_projects(s: Session, tenant_id: int, *, status: str | None = None) -> list[ProductionProject]:
    q = s.query(ProductionProject).filter(
        ProductionProject.tenant_id == tenant_id,
        ProductionProject.deleted_at.is_(None),
    )
    if status:
        q = q.filter(ProductionProject.status == status)
    return q.order_by(ProductionProject.created_at.desc(), ProductionProject.id.desc()).all()


def _clean_notes(value) -> str | None:
    notes = clean_str(value)
    if notes and len(notes) > NOTES_MAX:
        raise ValidationError("Notes are too long")
    return notes


def validate_manuscript(upload: Upload) -> None:
    if not upload.data:
        raise ValidationError("Manuscript file is empty")
    if upload.extension not in MANUSCRIPT_EXTENSIONS:
        raise ValidationError("Manuscript must be a PDF, DOC, or DOCX file")
    if upload.size > MANUSCRIPT_MAX_BYTES:
        raise ValidationError("Manuscript must be 50MB or smaller")


def manuscript_storage_key(tenant_id: int, project_id: int, filename: str, *, at: datetime) -> str:
    safe = secure_filename(filename) or "manuscript"
    return f"production/{tenant_id}/{project_id}/manuscript/{at.strftime('%Y%m%d%H%M%S')}-{safe}"


def _store_manuscript(storage: Storage, project: ProductionProject, upload: Upload, now: datetime) -> None:
    key = manuscript_storage_key(project.tenant_id, project.id, upload.filename, at=now)
    storage.put_bytes(key, upload.data, content_type=upload.content_type)
    project.manuscript_file_key = key
    project.manuscript_file_name = upload.filename
    project.manuscript_file_size = upload.size
    project.manuscript_uploaded_at = now


def create_project(
    s: Session,
    *,
    title_id: int,
    user: User,
    storage: Storage | None = None,
    target_publication_date=None,
    notes=None,
    manuscript: Upload | None = None,
) -> ProductionProject:
    """
    Open a production project for a title. The manuscript is optional; if its
    upload fails the project is still created and the failure is logged.
    """
    target = parse_date(target_publication_date)
    clean_notes = _clean_notes(notes)
    if manuscript is not None:
        validate_manuscript(manuscript)

    ensure_permission(user, "production.manage", NO_MANAGE_PERMISSION)

    title = get_title(s, user.tenant_id, title_id)
    existing = (
        s.query(ProductionProject.id)
        .filter(
            ProductionProject.tenant_id == user.tenant_id,
            ProductionProject.title_id == title.id,
            ProductionProject.deleted_at.is_(None),
        )
        .first()
    )
    if existing:
        raise ConflictError(DUPLICATE_PROJECT)

    now = datetime.utcnow()
    project = ProductionProject(
        tenant_id=user.tenant_id,
        title_id=title.id,
        target_publication_date=target,
        status="draft",
        workflow_stage="manuscript_received",
        stage_entered_at=now,
        workflow_stage_history=[],
        notes=clean_notes,
        created_at=now,
        updated_at=now,
        created_by_user_id=user.id,
        updated_by_user_id=user.id,
    )
    s.add(project)
    s.flush()

    if manuscript is not None and storage is not None:
        try:
            _store_manuscript(storage, project, manuscript, now)
        except StorageError as e:
            logger.warning("Manuscript upload failed for project %s: %s", project.id, e)

    record_event(
        s,
        actor=user,
        action="production.project.create",
        entity_type="ProductionProject",
        entity_id=str(project.id),
        metadata={
            "title_id": title.id,
            "target_publication_date": iso(target),
            "manuscript": project.manuscript_file_name,
        },
    )
    return project


def update_project(
    s: Session,
    project_id: int,
    payload: dict,
    user: User,
    *,
    storage: Storage | None = None,
    manuscript: Upload | None = None,
) -> ProductionProject:
    """Partial update of target date and notes; a new manuscript replaces the stored one."""
    values: dict = {}
    if "target_publication_date" in payload:
        values["target_publication_date"] = parse_date(payload.get("target_publication_date"))
    if "notes" in payload:
        values["notes"] = _clean_notes(payload.get("notes"))
    if manuscript is not None:
        validate_manuscript(manuscript)

    ensure_permission(user, "production.manage", NO_MANAGE_PERMISSION)
    project = get_project(s, user.tenant_id, project_id)

    before = {"target_publication_date": project.target_publication_date, "notes": project.notes}
    for field, value in values.items():
        setattr(project, field, value)

    now = datetime.utcnow()
    replaced_key = None
    if manuscript is not None and storage is not None:
        replaced_key = project.manuscript_file_key
        _store_manuscript(storage, project, manuscript, now)
        if replaced_key and replaced_key != project.manuscript_file_key:
            try:
                storage.delete(replaced_key)
            except StorageError as e:
                logger.warning("Could not delete old manuscript %s: %s", replaced_key, e)

    project.updated_at = now
    project.updated_by_user_id = user.id

    changes = field_changes(before, {"target_publication_date": project.target_publication_date, "notes": project.notes})
    if "notes" in changes:
        changes["notes"] = {"from": "...", "to": "..."}
    if changes or manuscript is not None:
        record_event(
            s,
            actor=user,
            action="production.project.update",
            entity_type="ProductionProject",
            entity_id=str(project.id),
            metadata={"changes": changes, "manuscript_replaced": bool(replaced_key), "manuscript": project.manuscript_file_name},
        )
    return project


def update_project_status(s: Session, project_id: int, new_status: str, user: User) -> ProductionProject:
    ensure_permission(user, "production.manage", NO_MANAGE_PERMISSION)
    project = get_project(s, user.tenant_id, project_id)

    ok, errors = can_transition_to(project.status, new_status)
    if not ok:
        raise ValidationError(errors)

    old = project.status
    project.status = new_status
    project.updated_at = datetime.utcnow()
    project.updated_by_user_id = user.id

    record_event(
        s,
        actor=user,
        action="production.project.status_change",
        entity_type="ProductionProject",
        entity_id=str(project.id),
        metadata={"from": old, "to": new_status},
    )
    return project


def move_to_stage(project: ProductionProject, new_stage: str, user: User, *, at: datetime | None = None) -> str:
    """Set the stage and append the history entry. Returns the previous stage."""
    now = at or datetime.utcnow()
    old = project.workflow_stage
    # reassign so the JSON column is flagged dirty
    project.workflow_stage_history = list(project.workflow_stage_history or []) + [
        stage_history_entry(old, new_stage, user.id, now)
    ]
    project.workflow_stage = new_stage
    project.stage_entered_at = now
    project.updated_at = now
    project.updated_by_user_id = user.id
    return old


def update_workflow_stage(s: Session, project_id: int, new_stage: str, user: User) -> ProductionProject:
    if new_stage not in WORKFLOW_STAGES:
        raise ValidationError(f"Invalid workflow stage: {new_stage}")
    ensure_permission(user, "production.manage", NO_MANAGE_PERMISSION)
    project = get_project(s, user.tenant_id, project_id)

    if new_stage == project.workflow_stage:
        return project
    if not is_valid_stage_transition(project.workflow_stage, new_stage):
        raise ValidationError(SKIP_STAGE_MESSAGE)

    old = move_to_stage(project, new_stage, user)
    record_event(
        s,
        actor=user,
        action="production.project.stage_move",
        entity_type="ProductionProject",
        entity_id=str(project.id),
        metadata={"from": old, "to": new_stage},
    )
    return project


def delete_project(s: Session, project_id: int, user: User) -> ProductionProject:
    ensure_permission(user, "production.delete", "Only admins can delete projects")
    project = get_project(s, user.tenant_id, project_id)

    now = datetime.utcnow()
    project.deleted_at = now
    project.deleted_by_user_id = user.id
    project.updated_at = now

    record_event(
        s,
        actor=user,
        action="production.project.delete",
        entity_type="ProductionProject",
        entity_id=str(project.id),
        metadata={"title_id": project.title_id},
    )
    return project


def manuscript_download(s: Session, tenant_id: int, project_id: int) -> tuple[str, str, str]:
    """(storage key, file name, mimetype) for the project's manuscript."""
    project = get_project(s, tenant_id, project_id)
    if not project.manuscript_file_key:
        raise NotFound("No manuscript uploaded for this project")
    name = project.manuscript_file_name or "manuscript"
    mimetype = {
        ".pdf": "application/pdf",
        ".doc": "application/msword",
        ".docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    }.get(Path(name).suffix.lower(), "application/octet-stream")
    return project.manuscript_file_key, name, mimetype
