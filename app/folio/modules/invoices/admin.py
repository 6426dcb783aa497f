"""
Invoice routes (JSON, plus the PDF download).
"""
from __future__ import annotations

import io

from flask import Blueprint, current_app, request, send_file
from sqlalchemy.exc import SQLAlchemyError

from app.folio.api import error_response, run_action, run_query
from app.folio.db import db_session
from app.folio.errors import FolioError
from app.folio.rbac import ensure_permission, require_permission
from app.folio.storage import StorageError, storage_from_config
from app.folio.utils import current_user, parse_optional_int, request_payload

from .pdf import invoice_pdf_filename
from .service import (
    DUPLICATE_NUMBER,
    create_invoice,
    generate_invoice_pdf,
    get_invoice,
    invoice_to_dict,
    list_invoices,
    mark_overdue_invoices,
    payment_to_dict,
    record_payment,
    resend_invoice,
    send_invoice,
    update_invoice,
    void_invoice,
)

bp = Blueprint("invoices", __name__)


def _storage():
    return storage_from_config(current_app.config)


def _company_name(u) -> str:
    return u.tenant.name if u.tenant else ""


@bp.get("/")
@require_permission("invoices.view")
def invoices_list():
    u = current_user()

    def query(s):
        customer_id = parse_optional_int(request.args.get("customer_id"), message="Invalid customer ID")
        return [
            invoice_to_dict(inv)
            for inv in list_invoices(
                s,
                u.tenant_id,
                status=(request.args.get("status") or "").strip() or None,
                customer_id=customer_id,
                date_from=request.args.get("date_from"),
                date_to=request.args.get("date_to"),
            )
        ]

    return run_query(query)


@bp.get("/<int:invoice_id>")
@require_permission("invoices.view")
def invoice_detail(invoice_id: int):
    u = current_user()
    return run_query(lambda s: invoice_to_dict(get_invoice(s, u.tenant_id, invoice_id), detail=True))


@bp.post("/")
@require_permission("invoices.view")
def invoice_create():
    u = current_user()
    payload = request_payload()
    return run_action(
        "create invoice",
        lambda s: invoice_to_dict(create_invoice(s, payload, u), detail=True),
        status=201,
        integrity_message=DUPLICATE_NUMBER,
    )


@bp.put("/<int:invoice_id>")
@require_permission("invoices.view")
def invoice_update(invoice_id: int):
    u = current_user()
    payload = request_payload()
    return run_action("update invoice", lambda s: invoice_to_dict(update_invoice(s, invoice_id, payload, u), detail=True))


@bp.post("/<int:invoice_id>/void")
@require_permission("invoices.view")
def invoice_void(invoice_id: int):
    u = current_user()
    reason = request_payload().get("reason")
    return run_action("void invoice", lambda s: invoice_to_dict(void_invoice(s, invoice_id, u, reason=reason)))


@bp.post("/<int:invoice_id>/payments")
@require_permission("invoices.view")
def invoice_payment(invoice_id: int):
    u = current_user()
    payload = request_payload()

    def action(s):
        payment = record_payment(s, invoice_id, payload, u)
        return payment_to_dict(payment), {"invoice": invoice_to_dict(payment.invoice)}

    return run_action("record payment", action, status=201)


@bp.post("/<int:invoice_id>/send")
@require_permission("invoices.view")
def invoice_send(invoice_id: int):
    u = current_user()

    def action(s):
        invoice, message_id = send_invoice(s, invoice_id, u, storage=_storage(), company_name=_company_name(u))
        return invoice_to_dict(invoice), {"message_id": message_id}

    return run_action("send invoice", action)


@bp.post("/<int:invoice_id>/resend")
@require_permission("invoices.view")
def invoice_resend(invoice_id: int):
    u = current_user()

    def action(s):
        invoice, message_id = resend_invoice(s, invoice_id, u, storage=_storage(), company_name=_company_name(u))
        return invoice_to_dict(invoice), {"message_id": message_id}

    return run_action("resend invoice", action)


@bp.get("/<int:invoice_id>/pdf")
@require_permission("invoices.view")
def invoice_pdf(invoice_id: int):
    s = db_session()
    u = current_user()
    try:
        invoice, data = generate_invoice_pdf(s, invoice_id, u, storage=_storage(), company_name=_company_name(u))
        s.commit()
    except FolioError as e:
        s.rollback()
        return error_response(e.message, e.status_code)
    except (StorageError, SQLAlchemyError):
        s.rollback()
        current_app.logger.exception("Invoice PDF generation failed for %s", invoice_id)
        return error_response("Failed to generate PDF. Please try again.", 500)
    return send_file(
        io.BytesIO(data),
        mimetype="application/pdf",
        as_attachment=True,
        download_name=invoice_pdf_filename(invoice),
        max_age=0,
    )


@bp.post("/mark-overdue")
@require_permission("invoices.view")
def invoices_mark_overdue():
    u = current_user()

    def action(s):
        ensure_permission(u, "invoices.manage", "You do not have permission to update invoices")
        marked = mark_overdue_invoices(s, tenant_id=u.tenant_id, user=u)
        return [invoice_to_dict(inv) for inv in marked]

    return run_action("mark overdue invoices", action)
