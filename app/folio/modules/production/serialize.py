from __future__ import annotations

from app.folio.utils import iso

from .models import ProductionProject, ProductionTask, ProofFile
from .workflow import STAGE_LABELS, STATUS_LABELS, TASK_TYPE_LABELS, days_in_stage, is_project_overdue


def task_to_dict(t: ProductionTask) -> dict:
    return {
        "id": t.id,
        "project_id": t.project_id,
        "name": t.name,
        "description": t.description,
        "task_type": t.task_type,
        "task_type_label": TASK_TYPE_LABELS.get(t.task_type, t.task_type),
        "status": t.status,
        "status_label": STATUS_LABELS.get(t.status, t.status),
        "vendor_id": t.vendor_id,
        "vendor_name": t.vendor.full_name if t.vendor else None,
        "due_date": iso(t.due_date),
        "notes": t.notes,
        "created_at": iso(t.created_at),
        "updated_at": iso(t.updated_at),
    }


def proof_to_dict(p: ProofFile) -> dict:
    return {
        "id": p.id,
        "project_id": p.project_id,
        "version": p.version,
        "file_name": p.file_name,
        "file_size": p.file_size,
        "mime_type": p.mime_type,
        "sha256": p.sha256,
        "page_count": p.page_count,
        "notes": p.notes,
        "uploaded_at": iso(p.uploaded_at),
        "uploaded_by_user_id": p.uploaded_by_user_id,
        "approval_status": p.approval_status,
        "approval_notes": p.approval_notes,
        "approved_at": iso(p.approved_at),
        "approved_by_user_id": p.approved_by_user_id,
    }


def project_to_dict(p: ProductionProject, *, include_children: bool = True) -> dict:
    data = {
        "id": p.id,
        "title_id": p.title_id,
        "title_name": p.title.name if p.title else "Unknown Title",
        "isbn13": p.title.isbn13 if p.title else None,
        "target_publication_date": iso(p.target_publication_date),
        "status": p.status,
        "status_label": STATUS_LABELS.get(p.status, p.status),
        "workflow_stage": p.workflow_stage,
        "workflow_stage_label": STAGE_LABELS.get(p.workflow_stage, p.workflow_stage),
        "stage_entered_at": iso(p.stage_entered_at),
        "days_in_stage": days_in_stage(p.stage_entered_at),
        "is_overdue": is_project_overdue(p.target_publication_date, p.workflow_stage),
        "workflow_stage_history": list(p.workflow_stage_history or []),
        "manuscript": (
            {
                "file_name": p.manuscript_file_name,
                "file_size": p.manuscript_file_size,
                "uploaded_at": iso(p.manuscript_uploaded_at),
            }
            if p.manuscript_file_key
            else None
        ),
        "notes": p.notes,
        "created_at": iso(p.created_at),
        "updated_at": iso(p.updated_at),
    }
    if include_children:
        data["tasks"] = [task_to_dict(t) for t in p.live_tasks]
        data["proofs"] = [proof_to_dict(pf) for pf in p.live_proofs]
    return data
