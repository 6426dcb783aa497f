"""
Production routes (JSON): projects, Kanban board, calendar, tasks and proofs.
"""
from __future__ import annotations

from flask import Blueprint, current_app, request, send_file, url_for

from app.folio.api import error_response, ok, run_action, run_query
from app.folio.audit import record_event
from app.folio.db import db_session
from app.folio.errors import FolioError, ValidationError
from app.folio.rbac import require_login, require_permission
from app.folio.storage import StorageError, storage_from_config
from app.folio.utils import as_text, current_user, parse_optional_int, request_payload, request_upload

from .board import get_author_production_status, get_board, get_calendar_events, portal_production_status
from .proofs import (
    approve_proof,
    delete_proof,
    proof_download,
    request_proof_corrections,
    update_proof_notes,
    upload_proof,
)
from .serialize import project_to_dict, proof_to_dict, task_to_dict
from .service import (
    DUPLICATE_PROJECT,
    create_project,
    delete_project,
    get_project,
    list_projects,
    manuscript_download,
    update_project,
    update_project_status,
    update_workflow_stage,
)
from .tasks import create_task, delete_task, update_task, update_task_status

bp = Blueprint("production", __name__)


def _storage():
    return storage_from_config(current_app.config)


def _task_result(result):
    return task_to_dict(result.task), {"email_sent": result.email_sent, "email_warning": result.email_warning}


# ---------- Projects ----------
@bp.get("/projects")
@require_permission("production.view")
def projects_list():
    u = current_user()
    status = (request.args.get("status") or "").strip() or None
    return run_query(lambda s: [project_to_dict(p, include_children=False) for p in list_projects(s, u.tenant_id, status=status)])


@bp.get("/projects/<int:project_id>")
@require_permission("production.view")
def project_detail(project_id: int):
    u = current_user()
    return run_query(lambda s: project_to_dict(get_project(s, u.tenant_id, project_id)))


@bp.post("/projects")
@require_permission("production.view")
def project_create():
    u = current_user()
    payload = request_payload()
    manuscript = request_upload("manuscript")

    def action(s):
        title_id = parse_optional_int(payload.get("title_id"), message="Invalid title ID")
        if title_id is None:
            raise ValidationError("Title is required")
        project = create_project(
            s,
            title_id=title_id,
            user=u,
            storage=_storage(),
            target_publication_date=payload.get("target_publication_date"),
            notes=payload.get("notes"),
            manuscript=manuscript,
        )
        return project_to_dict(project)

    return run_action("create project", action, status=201, integrity_message=DUPLICATE_PROJECT)


@bp.patch("/projects/<int:project_id>")
@require_permission("production.view")
def project_update(project_id: int):
    u = current_user()
    payload = request_payload()
    manuscript = request_upload("manuscript")
    return run_action(
        "update project",
        lambda s: project_to_dict(
            update_project(s, project_id, payload, u, storage=_storage() if manuscript else None, manuscript=manuscript)
        ),
    )


@bp.post("/projects/<int:project_id>/status")
@require_permission("production.view")
def project_status(project_id: int):
    u = current_user()
    new_status = request_payload().get("status")
    return run_action(
        "update project status",
        lambda s: project_to_dict(update_project_status(s, project_id, as_text(new_status, "status"), u), include_children=False),
    )


@bp.post("/projects/<int:project_id>/stage")
@require_permission("production.view")
def project_stage(project_id: int):
    u = current_user()
    new_stage = request_payload().get("stage")
    return run_action(
        "update workflow stage",
        lambda s: project_to_dict(update_workflow_stage(s, project_id, as_text(new_stage, "stage"), u), include_children=False),
    )


@bp.delete("/projects/<int:project_id>")
@require_permission("production.view")
def project_delete(project_id: int):
    u = current_user()
    return run_action("delete project", lambda s: {"id": delete_project(s, project_id, u).id})


# ---------- Board / calendar / portal ----------
@bp.get("/board")
@require_permission("production.view")
def board():
    u = current_user()
    return run_query(
        lambda s: get_board(
            s,
            u.tenant_id,
            date_from=request.args.get("date_from"),
            date_to=request.args.get("date_to"),
            search=request.args.get("search"),
        )
    )


@bp.get("/calendar")
@require_permission("production.view")
def calendar():
    u = current_user()
    return run_query(
        lambda s: get_calendar_events(
            s,
            u.tenant_id,
            date_from=request.args.get("date_from"),
            date_to=request.args.get("date_to"),
        )
    )


@bp.get("/authors/<int:contact_id>")
@require_permission("production.view")
def author_status(contact_id: int):
    u = current_user()
    return run_query(lambda s: get_author_production_status(s, u.tenant_id, contact_id))


@bp.get("/portal")
@require_login
def portal_status():
    u = current_user()
    return run_query(lambda s: portal_production_status(s, u))


# ---------- Tasks ----------
@bp.post("/projects/<int:project_id>/tasks")
@require_permission("production.view")
def task_create(project_id: int):
    u = current_user()
    payload = request_payload()
    return run_action("create task", lambda s: _task_result(create_task(s, project_id, payload, u)), status=201)


@bp.patch("/tasks/<int:task_id>")
@require_permission("production.view")
def task_update(task_id: int):
    u = current_user()
    payload = request_payload()
    return run_action("update task", lambda s: _task_result(update_task(s, task_id, payload, u)))


@bp.post("/tasks/<int:task_id>/status")
@require_permission("production.view")
def task_status(task_id: int):
    u = current_user()
    new_status = request_payload().get("status")
    return run_action("update task status", lambda s: task_to_dict(update_task_status(s, task_id, as_text(new_status, "status"), u)))


@bp.delete("/tasks/<int:task_id>")
@require_permission("production.view")
def task_delete(task_id: int):
    u = current_user()
    return run_action("delete task", lambda s: {"id": delete_task(s, task_id, u).id})


# ---------- Proofs ----------
@bp.post("/projects/<int:project_id>/proofs")
@require_permission("production.view")
def proof_upload(project_id: int):
    u = current_user()
    upload = request_upload("file")
    if upload is None:
        return error_response("No file provided", 400)
    notes = request.form.get("notes")
    return run_action(
        "upload proof",
        lambda s: proof_to_dict(upload_proof(s, project_id, upload, u, storage=_storage(), notes=notes)),
        status=201,
    )


@bp.patch("/proofs/<int:proof_id>")
@require_permission("production.view")
def proof_notes(proof_id: int):
    u = current_user()
    notes = request_payload().get("notes")
    return run_action("update proof", lambda s: proof_to_dict(update_proof_notes(s, proof_id, notes, u)))


@bp.delete("/proofs/<int:proof_id>")
@require_permission("production.view")
def proof_delete(proof_id: int):
    u = current_user()
    return run_action("delete proof", lambda s: {"id": delete_proof(s, proof_id, u).id})


@bp.post("/proofs/<int:proof_id>/approve")
@require_permission("production.view")
def proof_approve(proof_id: int):
    u = current_user()
    notes = request_payload().get("notes")
    return run_action("approve proof", lambda s: proof_to_dict(approve_proof(s, proof_id, u, notes=notes)))


@bp.post("/proofs/<int:proof_id>/corrections")
@require_permission("production.view")
def proof_corrections(proof_id: int):
    u = current_user()
    notes = request_payload().get("notes")

    def action(s):
        proof, sent, warning = request_proof_corrections(s, proof_id, notes, u)
        return proof_to_dict(proof), {"email_sent": sent, "email_warning": warning}

    return run_action("request corrections", action)


# ---------- Downloads ----------
def _download_url(kind: str, key: str, name: str, object_id: int):
    try:
        url = _storage().presigned_url(key, expires_in=int(current_app.config.get("PRESIGNED_URL_EXPIRES") or 3600), download_name=name)
    except StorageError as e:
        current_app.logger.error("Signing %s download failed: %s", kind, e)
        return error_response("Failed to generate download URL. Please try again.", 500)
    if not url:
        endpoint = "production.proof_file" if kind == "proof" else "production.manuscript_file"
        arg = "proof_id" if kind == "proof" else "project_id"
        url = url_for(endpoint, **{arg: object_id})
    return ok({"url": url, "file_name": name})


def _stream(key: str, name: str, mimetype: str, *, action: str, entity_type: str, entity_id: int):
    s = db_session()
    u = current_user()
    try:
        fobj = _storage().open(key)
    except StorageError as e:
        current_app.logger.warning("Download failed for %s: %s", key, e)
        return error_response("File not found", 404)
    record_event(s, actor=u, action=action, entity_type=entity_type, entity_id=str(entity_id), metadata={"file_name": name})
    s.commit()
    return send_file(fobj, mimetype=mimetype, as_attachment=True, download_name=name, max_age=0)


@bp.get("/proofs/<int:proof_id>/download-url")
@require_permission("production.view")
def proof_download_url(proof_id: int):
    u = current_user()
    try:
        key, name, _ = proof_download(db_session(), u.tenant_id, proof_id)
    except FolioError as e:
        return error_response(e.message, e.status_code)
    return _download_url("proof", key, name, proof_id)


@bp.get("/proofs/<int:proof_id>/file")
@require_permission("production.view")
def proof_file(proof_id: int):
    u = current_user()
    try:
        key, name, mimetype = proof_download(db_session(), u.tenant_id, proof_id)
    except FolioError as e:
        return error_response(e.message, e.status_code)
    return _stream(key, name, mimetype, action="production.proof.download", entity_type="ProofFile", entity_id=proof_id)


@bp.get("/projects/<int:project_id>/manuscript/download-url")
@require_permission("production.view")
def manuscript_download_url(project_id: int):
    u = current_user()
    try:
        key, name, _ = manuscript_download(db_session(), u.tenant_id, project_id)
    except FolioError as e:
        return error_response(e.message, e.status_code)
    return _download_url("manuscript", key, name, project_id)


@bp.get("/projects/<int:project_id>/manuscript")
@require_permission("production.view")
def manuscript_file(project_id: int):
    u = current_user()
    try:
        key, name, mimetype = manuscript_download(db_session(), u.tenant_id, project_id)
    except FolioError as e:
        return error_response(e.message, e.status_code)
    return _stream(
        key, name, mimetype, action="production.manuscript.download", entity_type="ProductionProject", entity_id=project_id
    )
