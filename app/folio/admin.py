import json
from datetime import datetime, time, timedelta

from flask import Blueprint, request
from werkzeug.security import generate_password_hash

from app.folio.api import run_action, run_query
from app.folio.audit import record_event
from app.folio.errors import ConflictError, NotFound, ValidationError
from app.folio.models import AuditEvent, Role, User
from app.folio.rbac import require_permission
from app.folio.utils import as_text, current_user, is_valid_email, iso, parse_date, request_payload

bp = Blueprint("admin", __name__)

AUDIT_LIMIT = 200


def audit_to_dict(ev: AuditEvent) -> dict:
    return {
        "id": ev.id,
        "created_at": iso(ev.created_at),
        "request_id": ev.request_id,
        "client_ip": ev.client_ip,
        "actor_user_id": ev.actor_user_id,
        "actor_user_email": ev.actor_user_email,
        "action": ev.action,
        "entity_type": ev.entity_type,
        "entity_id": ev.entity_id,
        "reason": ev.reason,
        "metadata": json.loads(ev.metadata_json) if ev.metadata_json else None,
    }


def user_to_dict(u: User) -> dict:
    return {
        "id": u.id,
        "email": u.email,
        "is_active": u.is_active,
        "roles": sorted(u.role_keys),
        "created_at": iso(u.created_at),
    }


@bp.get("/audit")
@require_permission("audit.view")
def audit_list():
    """
    Tenant audit trail (last 200 events) with filters:
    - action (contains)
    - entity_type (exact)
    - actor_email (contains)
    - date range (YYYY-MM-DD, inclusive)
    """
    u = current_user()
    action = (request.args.get("action") or "").strip()
    entity_type = (request.args.get("entity_type") or "").strip()
    actor_email = (request.args.get("actor_email") or "").strip()

    def query(s):
        date_from = parse_date(request.args.get("date_from"), message="date_from must be YYYY-MM-DD")
        date_to = parse_date(request.args.get("date_to"), message="date_to must be YYYY-MM-DD")
        q = s.query(AuditEvent).filter(AuditEvent.tenant_id == u.tenant_id)
        if action:
            q = q.filter(AuditEvent.action.like(f"%{action}%"))
        if entity_type:
            q = q.filter(AuditEvent.entity_type == entity_type)
        if actor_email:
            q = q.filter(AuditEvent.actor_user_email.like(f"%{actor_email.lower()}%"))
        if date_from:
            q = q.filter(AuditEvent.created_at >= datetime.combine(date_from, time.min))
        if date_to:
            # inclusive end-date
            q = q.filter(AuditEvent.created_at < datetime.combine(date_to + timedelta(days=1), time.min))
        events = q.order_by(AuditEvent.created_at.desc(), AuditEvent.id.desc()).limit(AUDIT_LIMIT).all()
        return [audit_to_dict(ev) for ev in events]

    return run_query(query)


# ---------- Accounts (within the caller's tenant) ----------
def _tenant_user(s, tenant_id: int, user_id: int) -> User:
    user = s.query(User).filter(User.id == user_id, User.tenant_id == tenant_id).one_or_none()
    if not user:
        raise NotFound("Account not found")
    return user


def _roles_by_key(s, keys) -> list[Role]:
    keys = [k for k in (keys or []) if isinstance(k, str)]
    if not keys:
        return []
    roles = s.query(Role).filter(Role.key.in_(keys)).all()
    unknown = set(keys) - {r.key for r in roles}
    if unknown:
        raise ValidationError(f"Unknown role: {', '.join(sorted(unknown))}")
    return roles


def _password_errors(password: str, confirm: str | None) -> list[str]:
    if not password:
        return ["Password is required."]
    if len(password) < 8:
        return ["Password must be at least 8 characters."]
    if confirm is not None and password != confirm:
        return ["Passwords do not match."]
    return []


@bp.get("/accounts")
@require_permission("users.manage")
def accounts_list():
    u = current_user()
    return run_query(
        lambda s: [
            user_to_dict(x)
            for x in s.query(User).filter(User.tenant_id == u.tenant_id).order_by(User.email.asc()).all()
        ]
    )


@bp.post("/accounts")
@require_permission("users.manage")
def accounts_create():
    u = current_user()
    payload = request_payload()

    def action(s):
        email = as_text(payload.get("email"), "email").lower()
        password = as_text(payload.get("password"), "password", strip=False)
        errors = []
        if not email:
            errors.append("Email is required.")
        elif not is_valid_email(email):
            errors.append("Invalid email format.")
        errors += _password_errors(password, payload.get("password_confirm"))
        if errors:
            raise ValidationError(errors)
        if s.query(User.id).filter(User.email == email).first():
            raise ConflictError("An account with this email already exists.")

        new_user = User(
            tenant_id=u.tenant_id,
            email=email,
            password_hash=generate_password_hash(password),
            is_active=True,
        )
        new_user.roles.extend(_roles_by_key(s, payload.get("roles")))
        s.add(new_user)
        s.flush()

        record_event(
            s,
            actor=u,
            action="admin.user.create",
            entity_type="User",
            entity_id=str(new_user.id),
            metadata={"email": email, "roles": sorted(new_user.role_keys)},
        )
        return user_to_dict(new_user)

    return run_action("create account", action, status=201, integrity_message="An account with this email already exists.")


@bp.patch("/accounts/<int:user_id>")
@require_permission("users.manage")
def accounts_update(user_id: int):
    u = current_user()
    payload = request_payload()

    def action(s):
        user = _tenant_user(s, u.tenant_id, user_id)
        if user.id == u.id:
            raise ValidationError("You cannot modify your own account from this page.")
        before = {"is_active": user.is_active, "roles": sorted(user.role_keys)}
        if "is_active" in payload:
            user.is_active = bool(payload.get("is_active"))
        if "roles" in payload:
            roles = _roles_by_key(s, payload.get("roles"))
            user.roles.clear()
            user.roles.extend(roles)
        after = {"is_active": user.is_active, "roles": sorted(user.role_keys)}
        record_event(
            s,
            actor=u,
            action="admin.user.update",
            entity_type="User",
            entity_id=str(user.id),
            metadata={"before": before, "after": after},
        )
        return user_to_dict(user)

    return run_action("update account", action)


@bp.post("/accounts/<int:user_id>/reset-password")
@require_permission("users.manage")
def accounts_reset_password(user_id: int):
    u = current_user()
    payload = request_payload()

    def action(s):
        user = _tenant_user(s, u.tenant_id, user_id)
        errors = _password_errors(as_text(payload.get("password"), "password", strip=False), payload.get("password_confirm"))
        if errors:
            raise ValidationError(errors)
        user.password_hash = generate_password_hash(payload["password"])
        record_event(
            s,
            actor=u,
            action="admin.user.password_reset",
            entity_type="User",
            entity_id=str(user.id),
            metadata={"target_email": user.email},
        )
        return user_to_dict(user)

    return run_action("reset password", action)
