from collections.abc import Callable
from functools import wraps
from typing import Any

from flask import abort, g, jsonify
from sqlalchemy.orm import Session

from app.folio.errors import PermissionDenied
from app.folio.models import Permission, Role, User

# key -> display name
PERMISSIONS: dict[str, str] = {
    "contacts.view": "Contacts: view",
    "contacts.manage": "Contacts: create and edit",
    "contacts.assign_customer": "Contacts: assign customer role",
    "contacts.deactivate": "Contacts: deactivate and reactivate",
    "contacts.tax": "Contacts: view and edit tax information",
    "titles.view": "Titles: view",
    "titles.manage": "Titles: create and edit",
    "production.view": "Production: view",
    "production.manage": "Production: manage projects, tasks and proofs",
    "production.delete": "Production: delete projects",
    "invoices.view": "Invoices: view",
    "invoices.manage": "Invoices: create, send, void and record payments",
    "audit.view": "Audit log: view",
    "users.manage": "Users: manage accounts",
}

# role key -> (display name, permission keys)
ROLE_PERMISSIONS: dict[str, tuple[str, tuple[str, ...]]] = {
    "owner": ("Owner", tuple(PERMISSIONS)),
    "admin": ("Administrator", tuple(PERMISSIONS)),
    "editor": (
        "Editor",
        (
            "contacts.view",
            "contacts.manage",
            "titles.view",
            "titles.manage",
            "production.view",
            "production.manage",
        ),
    ),
    "finance": (
        "Finance",
        (
            "contacts.view",
            "contacts.assign_customer",
            "contacts.tax",
            "titles.view",
            "invoices.view",
            "invoices.manage",
        ),
    ),
    "author": ("Author", ()),
}


def seed_roles(s: Session) -> dict[str, Role]:
    """Create missing permissions and roles; extend existing roles with new permissions. Idempotent."""
    perms: dict[str, Permission] = {p.key: p for p in s.query(Permission).all()}
    for key, name in PERMISSIONS.items():
        if key not in perms:
            perms[key] = Permission(key=key, name=name)
            s.add(perms[key])

    roles: dict[str, Role] = {r.key: r for r in s.query(Role).all()}
    for key, (name, perm_keys) in ROLE_PERMISSIONS.items():
        role = roles.get(key)
        if not role:
            role = Role(key=key, name=name)
            s.add(role)
            roles[key] = role
        for pk in perm_keys:
            if perms[pk] not in role.permissions:
                role.permissions.append(perms[pk])
    return roles


def user_has_permission(user: User | None, permission_key: str) -> bool:
    if not user or not user.is_active:
        return False
    for role in user.roles:
        for perm in role.permissions:
            if perm.key == permission_key:
                return True
    return False


def ensure_permission(user: User | None, permission_key: str, message: str) -> None:
    """Service-level guard; raises PermissionDenied carrying the user-facing message."""
    if not user_has_permission(user, permission_key):
        raise PermissionDenied(message)


def require_permission(permission_key: str) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(fn)
        def wrapped(*args: Any, **kwargs: Any):
            user: User | None = getattr(g, "current_user", None)
            if not user or not user.is_active:
                return jsonify({"success": False, "error": "Authentication required"}), 401
            if not user_has_permission(user, permission_key):
                g.missing_permission = permission_key
                abort(403)
            return fn(*args, **kwargs)

        return wrapped

    return decorator


def require_login(fn: Callable[..., Any]) -> Callable[..., Any]:
    """Any active signed-in user; used by portal views that scope themselves to the caller."""

    @wraps(fn)
    def wrapped(*args: Any, **kwargs: Any):
        user: User | None = getattr(g, "current_user", None)
        if not user or not user.is_active:
            return jsonify({"success": False, "error": "Authentication required"}), 401
        return fn(*args, **kwargs)

    return wrapped
