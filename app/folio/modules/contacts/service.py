"""
Contacts service layer.
Contact CRUD, polymorphic role assignment, and encrypted tax information.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from app.folio.audit import field_changes, record_event
from app.folio.errors import ConflictError, NotFound, ValidationError
from app.folio.rbac import ensure_permission, user_has_permission
from app.folio.utils import clean_str, iso

from .models import Contact, ContactRole
from .tax import decrypt_tin, encrypt_tin, extract_last_four, mask_tin
from .validation import (
    CONTACT_ROLES,
    CONTACT_TEXT_FIELDS,
    W9_DATE_REQUIRED,
    clean_tax_info,
    validate_contact_payload,
    validate_role_data,
)

if TYPE_CHECKING:
    from app.folio.models import User

logger = logging.getLogger(__name__)

NO_MANAGE_PERMISSION = "You don't have permission to manage contacts"
DUPLICATE_EMAIL = "A contact with this email already exists"
DUPLICATE_ROLE = "This role is already assigned to the contact"
CONTACT_NOT_FOUND = "Contact not found"

# Scalar columns settable from a create/update payload
EDITABLE_FIELDS = tuple(CONTACT_TEXT_FIELDS) + ("status",)


def get_contact(s: Session, tenant_id: int, contact_id: int) -> Contact:
    contact = (
        s.query(Contact)
        .filter(Contact.id == contact_id, Contact.tenant_id == tenant_id)
        .one_or_none()
    )
    if not contact:
        raise NotFound(CONTACT_NOT_FOUND)
    return contact


def list_contacts(
    s: Session,
    tenant_id: int,
    *,
    include_inactive: bool = False,
    role: str | None = None,
    search: str | None = None,
) -> list[Contact]:
    q = s.query(Contact).filter(Contact.tenant_id == tenant_id)
    if not include_inactive:
        q = q.filter(Contact.status == "active")
    if role:
        if role not in CONTACT_ROLES:
            raise ValidationError(f"Invalid role. Must be one of: {', '.join(CONTACT_ROLES)}")
        q = q.filter(Contact.roles.any(ContactRole.role == role))
    term = (search or "").strip()
    if term:
        like = f"%{term.lower()}%"
        q = q.filter(
            or_(
                func.lower(Contact.first_name).like(like),
                func.lower(Contact.last_name).like(like),
                func.lower(Contact.email).like(like),
            )
        )
    return q.order_by(Contact.last_name.asc(), Contact.first_name.asc(), Contact.id.asc()).all()


def list_vendor_options(s: Session, tenant_id: int) -> list[dict]:
    """Active vendors for task assignment pickers."""
    vendors = list_contacts(s, tenant_id, role="vendor")
    options = []
    for c in vendors:
        data = (c.role("vendor").role_specific_data or {}) if c.role("vendor") else {}
        options.append(
            {
                "id": c.id,
                "name": c.full_name,
                "email": c.email,
                "vendor_code": data.get("vendor_code"),
                "lead_time_days": data.get("lead_time_days"),
            }
        )
    return options


def _email_taken(s: Session, tenant_id: int, email: str, *, exclude_id: int | None = None) -> bool:
    q = s.query(Contact.id).filter(Contact.tenant_id == tenant_id, func.lower(Contact.email) == email.lower())
    if exclude_id is not None:
        q = q.filter(Contact.id != exclude_id)
    return q.first() is not None


def _normalised_fields(payload: dict) -> dict:
    values = {}
    for field in EDITABLE_FIELDS:
        if field in payload:
            values[field] = clean_str(payload.get(field))
    if values.get("email"):
        values["email"] = values["email"].lower()
    return values


def _snapshot(contact: Contact) -> dict:
    snap = {field: getattr(contact, field) for field in EDITABLE_FIELDS}
    snap["payment_info_method"] = (contact.payment_info or {}).get("method")
    return snap


def create_contact(s: Session, payload: dict, user: User, *, roles: list[dict] | None = None) -> Contact:
    """
    Create a contact and (optionally) its roles in one go.
    A requested customer role is skipped, not rejected, when the user may not assign customers.
    """
    errors = validate_contact_payload(payload)
    for entry in roles or []:
        errors.extend(validate_role_data(entry.get("role"), entry.get("role_specific_data")))
    if errors:
        raise ValidationError(errors)

    ensure_permission(user, "contacts.manage", NO_MANAGE_PERMISSION)

    values = _normalised_fields(payload)
    if values.get("email") and _email_taken(s, user.tenant_id, values["email"]):
        raise ConflictError(DUPLICATE_EMAIL)

    now = datetime.utcnow()
    contact = Contact(
        tenant_id=user.tenant_id,
        payment_info=payload.get("payment_info") or None,
        created_at=now,
        updated_at=now,
        created_by_user_id=user.id,
        **values,
    )
    contact.status = contact.status or "active"
    contact.country = contact.country or "USA"
    s.add(contact)
    s.flush()

    assigned: list[str] = []
    skipped: list[str] = []
    for entry in roles or []:
        role = entry["role"]
        if role in assigned:
            continue
        if role == "customer" and not user_has_permission(user, "contacts.assign_customer"):
            skipped.append(role)
            continue
        contact.roles.append(
            ContactRole(
                role=role,
                role_specific_data=entry.get("role_specific_data") or None,
                assigned_at=now,
                assigned_by_user_id=user.id,
            )
        )
        assigned.append(role)
    s.flush()

    if skipped:
        logger.info("Contact %s created without roles %s (missing permission)", contact.id, skipped)

    record_event(
        s,
        actor=user,
        action="contacts.contact.create",
        entity_type="Contact",
        entity_id=str(contact.id),
        metadata={"after": _snapshot(contact), "roles": assigned, "skipped_roles": skipped},
    )
    return contact


def update_contact(s: Session, contact_id: int, payload: dict, user: User) -> Contact:
    errors = validate_contact_payload(payload, partial=True)
    if errors:
        raise ValidationError(errors)

    ensure_permission(user, "contacts.manage", NO_MANAGE_PERMISSION)
    contact = get_contact(s, user.tenant_id, contact_id)

    values = _normalised_fields(payload)
    if "status" in values and not values["status"]:
        values.pop("status")
    if values.get("email") and _email_taken(s, user.tenant_id, values["email"], exclude_id=contact.id):
        raise ConflictError(DUPLICATE_EMAIL)

    before = _snapshot(contact)
    for field, value in values.items():
        setattr(contact, field, value)
    if "payment_info" in payload:
        contact.payment_info = payload.get("payment_info") or None
    contact.updated_at = datetime.utcnow()

    changes = field_changes(before, _snapshot(contact))
    if changes:
        if "notes" in changes:
            changes["notes"] = {"from": "...", "to": "..."}  # don't log full text
        record_event(
            s,
            actor=user,
            action="contacts.contact.update",
            entity_type="Contact",
            entity_id=str(contact.id),
            metadata={"changes": changes},
        )
    return contact


def _set_status(s: Session, contact_id: int, status: str, user: User, verb: str) -> Contact:
    ensure_permission(user, "contacts.deactivate", f"You don't have permission to {verb} contacts")
    contact = get_contact(s, user.tenant_id, contact_id)
    old = contact.status
    contact.status = status
    contact.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=user,
        action=f"contacts.contact.{verb}",
        entity_type="Contact",
        entity_id=str(contact.id),
        metadata={"from": old, "to": status},
    )
    return contact


def deactivate_contact(s: Session, contact_id: int, user: User) -> Contact:
    return _set_status(s, contact_id, "inactive", user, "deactivate")


def reactivate_contact(s: Session, contact_id: int, user: User) -> Contact:
    return _set_status(s, contact_id, "active", user, "reactivate")


def _ensure_role_permission(user: User, role: str, message: str) -> None:
    ensure_permission(user, "contacts.manage", message)
    if role == "customer":
        ensure_permission(user, "contacts.assign_customer", message)


def assign_contact_role(
    s: Session,
    contact_id: int,
    role: str,
    user: User,
    *,
    role_specific_data: dict | None = None,
) -> ContactRole:
    errors = validate_role_data(role, role_specific_data)
    if errors:
        raise ValidationError(errors)
    _ensure_role_permission(user, role, "You don't have permission to assign this role")

    contact = get_contact(s, user.tenant_id, contact_id)
    if contact.has_role(role):
        raise ConflictError(DUPLICATE_ROLE)

    assignment = ContactRole(
        role=role,
        role_specific_data=role_specific_data or None,
        assigned_by_user_id=user.id,
    )
    contact.roles.append(assignment)
    contact.updated_at = datetime.utcnow()
    s.flush()

    record_event(
        s,
        actor=user,
        action="contacts.role.assign",
        entity_type="Contact",
        entity_id=str(contact.id),
        metadata={"role": role},
    )
    return assignment


def remove_contact_role(s: Session, contact_id: int, role: str, user: User) -> Contact:
    if role not in CONTACT_ROLES:
        raise ValidationError(f"Invalid role. Must be one of: {', '.join(CONTACT_ROLES)}")
    _ensure_role_permission(user, role, "You don't have permission to remove roles")

    contact = get_contact(s, user.tenant_id, contact_id)
    assignment = contact.role(role)
    if assignment is None:
        return contact
    contact.roles.remove(assignment)
    contact.updated_at = datetime.utcnow()

    record_event(
        s,
        actor=user,
        action="contacts.role.remove",
        entity_type="Contact",
        entity_id=str(contact.id),
        metadata={"role": role},
    )
    return contact


def update_contact_role_data(
    s: Session,
    contact_id: int,
    role: str,
    role_specific_data: dict | None,
    user: User,
) -> ContactRole:
    errors = validate_role_data(role, role_specific_data)
    if errors:
        raise ValidationError(errors)
    _ensure_role_permission(user, role, "You don't have permission to update role data")

    contact = get_contact(s, user.tenant_id, contact_id)
    assignment = contact.role(role)
    if assignment is None:
        raise NotFound("Role not assigned to this contact")

    before = assignment.role_specific_data or {}
    assignment.role_specific_data = role_specific_data or None
    contact.updated_at = datetime.utcnow()

    record_event(
        s,
        actor=user,
        action="contacts.role.update_data",
        entity_type="Contact",
        entity_id=str(contact.id),
        metadata={"role": role, "changes": field_changes(before, role_specific_data or {})},
    )
    return assignment


# ---------------------------------------------------------------------------
# Tax information
# ---------------------------------------------------------------------------


def _tax_audit(contact: Contact) -> dict:
    # Never includes the TIN itself.
    return {
        "tin_type": contact.tin_type,
        "tin_last_four": contact.tin_last_four,
        "is_us_based": contact.is_us_based,
        "w9_received": contact.w9_received,
        "w9_received_date": iso(contact.w9_received_date),
    }


def update_contact_tax_info(s: Session, contact_id: int, payload: dict, user: User) -> Contact:
    ensure_permission(user, "contacts.tax", "You don't have permission to update tax information")
    values = clean_tax_info(payload)
    contact = get_contact(s, user.tenant_id, contact_id)

    contact.tin_encrypted = encrypt_tin(values["tin"])
    contact.tin_type = values["tin_type"]
    contact.tin_last_four = extract_last_four(values["tin"])
    contact.is_us_based = values["is_us_based"]
    contact.w9_received = values["w9_received"]
    contact.w9_received_date = values["w9_received_date"]
    contact.updated_at = datetime.utcnow()

    record_event(
        s,
        actor=user,
        action="contacts.tax_info.update",
        entity_type="Contact",
        entity_id=str(contact.id),
        metadata={"after": _tax_audit(contact)},
    )
    return contact


def update_contact_tax_info_partial(s: Session, contact_id: int, payload: dict, user: User) -> Contact:
    ensure_permission(user, "contacts.tax", "You don't have permission to update tax information")
    values = clean_tax_info(payload, partial=True)
    contact = get_contact(s, user.tenant_id, contact_id)
    before = _tax_audit(contact)

    if "tin" in values:
        contact.tin_encrypted = encrypt_tin(values["tin"])
        contact.tin_type = values["tin_type"]
        contact.tin_last_four = extract_last_four(values["tin"])
    for field in ("is_us_based", "w9_received", "w9_received_date"):
        if field in values:
            setattr(contact, field, values[field])
    if contact.w9_received and not contact.w9_received_date:
        raise ValidationError(W9_DATE_REQUIRED)
    contact.updated_at = datetime.utcnow()

    record_event(
        s,
        actor=user,
        action="contacts.tax_info.update",
        entity_type="Contact",
        entity_id=str(contact.id),
        metadata={"changes": field_changes(before, _tax_audit(contact)), "partial": True},
    )
    return contact


def clear_contact_tax_info(s: Session, contact_id: int, user: User) -> Contact:
    ensure_permission(user, "contacts.tax", "You don't have permission to clear tax information")
    contact = get_contact(s, user.tenant_id, contact_id)
    before = _tax_audit(contact)

    contact.tin_encrypted = None
    contact.tin_type = None
    contact.tin_last_four = None
    contact.is_us_based = True
    contact.w9_received = False
    contact.w9_received_date = None
    contact.updated_at = datetime.utcnow()

    record_event(
        s,
        actor=user,
        action="contacts.tax_info.clear",
        entity_type="Contact",
        entity_id=str(contact.id),
        metadata={"before": before},
    )
    return contact


def reveal_contact_tin(s: Session, contact_id: int, user: User) -> str | None:
    """Decrypt the full TIN for display. Every reveal is audited."""
    ensure_permission(user, "contacts.tax", "You don't have permission to view tax information")
    contact = get_contact(s, user.tenant_id, contact_id)
    if not contact.tin_encrypted:
        return None
    tin = decrypt_tin(contact.tin_encrypted)
    record_event(
        s,
        actor=user,
        action="contacts.tax_info.reveal",
        entity_type="Contact",
        entity_id=str(contact.id),
        metadata={"tin_type": contact.tin_type, "tin_last_four": contact.tin_last_four},
    )
    return tin


# ---------------------------------------------------------------------------
# Serialization
# ---------------------------------------------------------------------------


def role_to_dict(r: ContactRole) -> dict:
    return {
        "id": r.id,
        "role": r.role,
        "role_specific_data": r.role_specific_data,
        "assigned_at": iso(r.assigned_at),
    }


def contact_to_dict(c: Contact, *, include_tax: bool = False) -> dict:
    out = {
        "id": c.id,
        "first_name": c.first_name,
        "last_name": c.last_name,
        "full_name": c.full_name,
        "email": c.email,
        "phone": c.phone,
        "address_line1": c.address_line1,
        "address_line2": c.address_line2,
        "city": c.city,
        "state": c.state,
        "postal_code": c.postal_code,
        "country": c.country,
        "notes": c.notes,
        "status": c.status,
        "portal_user_id": c.portal_user_id,
        "roles": [role_to_dict(r) for r in c.roles],
        "created_at": iso(c.created_at),
        "updated_at": iso(c.updated_at),
    }
    if include_tax:
        out["payment_info"] = c.payment_info
        out["tax_id"] = c.tax_id
        out["tax_info"] = {
            "tin_type": c.tin_type,
            "tin_masked": mask_tin(c.tin_last_four, c.tin_type) if c.tin_type else None,
            "is_us_based": c.is_us_based,
            "w9_received": c.w9_received,
            "w9_received_date": iso(c.w9_received_date),
        }
    return out
