"""
Contacts routes (JSON).
"""
from __future__ import annotations

from flask import Blueprint, request

from app.folio.api import run_action, run_query
from app.folio.rbac import require_permission, user_has_permission
from app.folio.utils import as_text, current_user, request_payload

from .service import (
    DUPLICATE_EMAIL,
    DUPLICATE_ROLE,
    assign_contact_role,
    clear_contact_tax_info,
    contact_to_dict,
    create_contact,
    deactivate_contact,
    get_contact,
    list_contacts,
    list_vendor_options,
    reactivate_contact,
    remove_contact_role,
    reveal_contact_tin,
    role_to_dict,
    update_contact,
    update_contact_role_data,
    update_contact_tax_info,
    update_contact_tax_info_partial,
)

bp = Blueprint("contacts", __name__)


def _truthy(value: str | None) -> bool:
    return (value or "").strip().lower() in ("1", "true", "yes", "on")


def _contact_payload(u, contact) -> dict:
    return contact_to_dict(contact, include_tax=user_has_permission(u, "contacts.tax"))


@bp.get("/")
@require_permission("contacts.view")
def contacts_list():
    u = current_user()
    return run_query(
        lambda s: [
            contact_to_dict(c)
            for c in list_contacts(
                s,
                u.tenant_id,
                include_inactive=_truthy(request.args.get("include_inactive")),
                role=(request.args.get("role") or "").strip() or None,
                search=request.args.get("search"),
            )
        ]
    )


@bp.get("/vendors")
@require_permission("contacts.view")
def vendor_options():
    u = current_user()
    return run_query(lambda s: list_vendor_options(s, u.tenant_id))


@bp.get("/<int:contact_id>")
@require_permission("contacts.view")
def contact_detail(contact_id: int):
    u = current_user()
    return run_query(lambda s: _contact_payload(u, get_contact(s, u.tenant_id, contact_id)))


@bp.post("/")
@require_permission("contacts.view")
def contact_create():
    u = current_user()
    payload = request_payload()
    roles = payload.pop("roles", None) or []
    return run_action(
        "create contact",
        lambda s: _contact_payload(u, create_contact(s, payload, u, roles=roles)),
        status=201,
        integrity_message=DUPLICATE_EMAIL,
    )


@bp.patch("/<int:contact_id>")
@require_permission("contacts.view")
def contact_update(contact_id: int):
    u = current_user()
    payload = request_payload()
    return run_action(
        "update contact",
        lambda s: _contact_payload(u, update_contact(s, contact_id, payload, u)),
        integrity_message=DUPLICATE_EMAIL,
    )


@bp.post("/<int:contact_id>/deactivate")
@require_permission("contacts.view")
def contact_deactivate(contact_id: int):
    u = current_user()
    return run_action("deactivate contact", lambda s: _contact_payload(u, deactivate_contact(s, contact_id, u)))


@bp.post("/<int:contact_id>/reactivate")
@require_permission("contacts.view")
def contact_reactivate(contact_id: int):
    u = current_user()
    return run_action("reactivate contact", lambda s: _contact_payload(u, reactivate_contact(s, contact_id, u)))


@bp.post("/<int:contact_id>/roles")
@require_permission("contacts.view")
def contact_role_assign(contact_id: int):
    u = current_user()
    payload = request_payload()
    return run_action(
        "assign role",
        lambda s: role_to_dict(
            assign_contact_role(
                s,
                contact_id,
                as_text(payload.get("role"), "role"),
                u,
                role_specific_data=payload.get("role_specific_data"),
            )
        ),
        status=201,
        integrity_message=DUPLICATE_ROLE,
    )


@bp.put("/<int:contact_id>/roles/<role>")
@require_permission("contacts.view")
def contact_role_update(contact_id: int, role: str):
    u = current_user()
    payload = request_payload()
    return run_action(
        "update role data",
        lambda s: role_to_dict(update_contact_role_data(s, contact_id, role, payload.get("role_specific_data"), u)),
    )


@bp.delete("/<int:contact_id>/roles/<role>")
@require_permission("contacts.view")
def contact_role_remove(contact_id: int, role: str):
    u = current_user()
    return run_action("remove role", lambda s: _contact_payload(u, remove_contact_role(s, contact_id, role, u)))


@bp.put("/<int:contact_id>/tax")
@require_permission("contacts.view")
def contact_tax_update(contact_id: int):
    u = current_user()
    payload = request_payload()
    return run_action(
        "update tax information",
        lambda s: _contact_payload(u, update_contact_tax_info(s, contact_id, payload, u)),
    )


@bp.patch("/<int:contact_id>/tax")
@require_permission("contacts.view")
def contact_tax_update_partial(contact_id: int):
    u = current_user()
    payload = request_payload()
    return run_action(
        "update tax information",
        lambda s: _contact_payload(u, update_contact_tax_info_partial(s, contact_id, payload, u)),
    )


@bp.delete("/<int:contact_id>/tax")
@require_permission("contacts.view")
def contact_tax_clear(contact_id: int):
    u = current_user()
    return run_action("clear tax information", lambda s: _contact_payload(u, clear_contact_tax_info(s, contact_id, u)))


@bp.post("/<int:contact_id>/tax/reveal")
@require_permission("contacts.view")
def contact_tax_reveal(contact_id: int):
    u = current_user()
    return run_action("reveal tax information", lambda s: {"tin": reveal_contact_tin(s, contact_id, u)})
