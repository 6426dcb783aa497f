"""
Proof versions for a production project.

Versions are never reused: the next version is one past the highest ever
uploaded for the project, soft-deleted proofs included. Approval actions
are only taken while the project sits in the proof stage; approving moves it
on to print-ready.
"""
from __future__ import annotations

import io
import logging
from datetime import datetime
from typing import TYPE_CHECKING

from PyPDF2 import PdfReader
from PyPDF2.errors import PdfReadError
from sqlalchemy import func
from sqlalchemy.orm import Session
from werkzeug.utils import secure_filename

from app.folio.audit import record_event
from app.folio.errors import NotFound, ValidationError
from app.folio.mailer import send_email
from app.folio.rbac import ensure_permission
from app.folio.storage import Storage, Upload, file_digest
from app.folio.utils import clean_str

from .models import ProductionProject, ProofFile
from .service import NO_MANAGE_PERMISSION, get_project, move_to_stage

if TYPE_CHECKING:
    from app.folio.models import User

logger = logging.getLogger(__name__)

PROOF_MAX_BYTES = 100 * 1024 * 1024
NOTES_MAX = 2000
CORRECTION_NOTES_MIN = 10

ALREADY_APPROVED = "This proof has already been approved"
CORRECTIONS_PENDING = "Corrections already requested - upload a new proof version"
NOT_IN_PROOF_STAGE = "Project must be in proof stage to take approval actions"


def get_proof(s: Session, tenant_id: int, proof_id: int) -> ProofFile:
    proof = (
        s.query(ProofFile)
        .join(ProductionProject, ProductionProject.id == ProofFile.project_id)
        .filter(
            ProofFile.id == proof_id,
            ProofFile.tenant_id == tenant_id,
            ProofFile.deleted_at.is_(None),
            ProductionProject.deleted_at.is_(None),
        )
        .one_or_none()
    )
    if not proof:
        raise NotFound("Proof not found")
    return proof


def is_pdf_upload(upload: Upload) -> bool:
    return (upload.content_type or "").lower() == "application/pdf" or upload.extension == ".pdf"


def validate_proof_upload(upload: Upload) -> None:
    if not upload.data:
        raise ValidationError("Proof file is empty")
    if not is_pdf_upload(upload):
        raise ValidationError("Proofs must be PDF files")
    if upload.size > PROOF_MAX_BYTES:
        raise ValidationError("Proof file must be 100MB or smaller")


def proof_storage_key(tenant_id: int, project_id: int, version: int, filename: str, *, at: datetime) -> str:
    stem = secure_filename(filename) or "proof"
    if stem.lower().endswith(".pdf"):
        stem = stem[:-4]
    return f"production/{tenant_id}/{project_id}/proofs/v{version}-{at.strftime('%Y%m%d%H%M%S')}-{stem}.pdf"


def next_proof_version(s: Session, project_id: int) -> int:
    current = s.query(func.max(ProofFile.version)).filter(ProofFile.project_id == project_id).scalar()
    return (current or 0) + 1


def count_pdf_pages(data: bytes) -> int | None:
    try:
        return len(PdfReader(io.BytesIO(data)).pages)
    except (PdfReadError, ValueError, KeyError, TypeError, OSError) as e:
        logger.warning("Could not read page count from proof PDF: %s", e)
        return None


def upload_proof(
    s: Session,
    project_id: int,
    upload: Upload,
    user: User,
    *,
    storage: Storage,
    notes=None,
) -> ProofFile:
    validate_proof_upload(upload)
    clean_notes = clean_str(notes)
    if clean_notes and len(clean_notes) > NOTES_MAX:
        raise ValidationError("Notes too long")

    ensure_permission(user, "production.manage", NO_MANAGE_PERMISSION)
    project = get_project(s, user.tenant_id, project_id)

    now = datetime.utcnow()
    version = next_proof_version(s, project.id)
    key = proof_storage_key(project.tenant_id, project.id, version, upload.filename, at=now)
    storage.put_bytes(key, upload.data, content_type="application/pdf")

    proof = ProofFile(
        tenant_id=project.tenant_id,
        project_id=project.id,
        version=version,
        file_key=key,
        file_name=upload.filename or f"proof-v{version}.pdf",
        file_size=upload.size,
        mime_type="application/pdf",
        sha256=file_digest(upload.data),
        page_count=count_pdf_pages(upload.data),
        notes=clean_notes,
        uploaded_at=now,
        uploaded_by_user_id=user.id,
        approval_status="pending",
    )
    project.proofs.append(proof)
    s.flush()

    record_event(
        s,
        actor=user,
        action="production.proof.upload",
        entity_type="ProofFile",
        entity_id=str(proof.id),
        metadata={"project_id": project.id, "version": version, "file_name": proof.file_name, "sha256": proof.sha256},
    )
    return proof


def update_proof_notes(s: Session, proof_id: int, notes, user: User) -> ProofFile:
    clean_notes = clean_str(notes)
    if clean_notes and len(clean_notes) > NOTES_MAX:
        raise ValidationError("Notes too long")
    ensure_permission(user, "production.manage", NO_MANAGE_PERMISSION)
    proof = get_proof(s, user.tenant_id, proof_id)
    proof.notes = clean_notes

    record_event(
        s,
        actor=user,
        action="production.proof.update_notes",
        entity_type="ProofFile",
        entity_id=str(proof.id),
        metadata={"project_id": proof.project_id, "version": proof.version},
    )
    return proof


def delete_proof(s: Session, proof_id: int, user: User) -> ProofFile:
    ensure_permission(user, "production.manage", NO_MANAGE_PERMISSION)
    proof = get_proof(s, user.tenant_id, proof_id)
    proof.deleted_at = datetime.utcnow()
    proof.deleted_by_user_id = user.id

    record_event(
        s,
        actor=user,
        action="production.proof.delete",
        entity_type="ProofFile",
        entity_id=str(proof.id),
        metadata={"project_id": proof.project_id, "version": proof.version},
    )
    return proof


def _ensure_pending(proof: ProofFile) -> None:
    if proof.project.workflow_stage != "proof":
        raise ValidationError(NOT_IN_PROOF_STAGE)
    if proof.approval_status == "approved":
        raise ValidationError(ALREADY_APPROVED)
    if proof.approval_status == "corrections_requested":
        raise ValidationError(CORRECTIONS_PENDING)


def approve_proof(s: Session, proof_id: int, user: User, *, notes=None) -> ProofFile:
    ensure_permission(user, "production.manage", NO_MANAGE_PERMISSION)
    proof = get_proof(s, user.tenant_id, proof_id)
    _ensure_pending(proof)

    now = datetime.utcnow()
    proof.approval_status = "approved"
    proof.approval_notes = clean_str(notes)
    proof.approved_at = now
    proof.approved_by_user_id = user.id

    project = proof.project
    old_stage = move_to_stage(project, "print_ready", user, at=now)

    record_event(
        s,
        actor=user,
        action="production.proof.approve",
        entity_type="ProofFile",
        entity_id=str(proof.id),
        metadata={"project_id": project.id, "version": proof.version, "stage_from": old_stage, "stage_to": "print_ready"},
    )
    return proof


def _proofing_vendor(project: ProductionProject):
    for task in project.live_tasks:
        if task.task_type == "proofing" and task.vendor is not None:
            return task.vendor
    return None


def request_proof_corrections(s: Session, proof_id: int, notes, user: User) -> tuple[ProofFile, bool, str | None]:
    """
    Mark a pending proof as needing corrections and notify the proofing vendor.
    Returns (proof, email_sent, email_warning).
    """
    text = (notes or "").strip() if isinstance(notes, str) else ""
    if len(text) < CORRECTION_NOTES_MIN:
        raise ValidationError("Correction notes must be at least 10 characters")
    if len(text) > NOTES_MAX:
        raise ValidationError("Notes too long")

    ensure_permission(user, "production.manage", NO_MANAGE_PERMISSION)
    proof = get_proof(s, user.tenant_id, proof_id)
    _ensure_pending(proof)

    proof.approval_status = "corrections_requested"
    proof.approval_notes = text

    record_event(
        s,
        actor=user,
        action="production.proof.request_corrections",
        entity_type="ProofFile",
        entity_id=str(proof.id),
        metadata={"project_id": proof.project_id, "version": proof.version},
    )
    s.flush()

    project = proof.project
    vendor = _proofing_vendor(project)
    if vendor is None:
        return proof, False, "No proofing vendor assigned"
    title_name = project.title.name if project.title else "Unknown Title"
    body = "\n".join(
        [
            f"Hello {vendor.full_name},",
            "",
            f"Corrections have been requested for proof version {proof.version} of \"{title_name}\".",
            "",
            text,
            "",
            "Please upload a revised proof when ready.",
        ]
    )
    sent, detail = send_email(vendor.email or "", f"Corrections requested: {title_name} (v{proof.version})", body)
    return proof, sent, None if sent else detail


def proof_download(s: Session, tenant_id: int, proof_id: int) -> tuple[str, str, str]:
    """(storage key, file name, mimetype) for a proof."""
    proof = get_proof(s, tenant_id, proof_id)
    return proof.file_key, proof.file_name, proof.mime_type
