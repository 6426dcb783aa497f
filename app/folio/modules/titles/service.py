from __future__ import annotations

import re
from typing import TYPE_CHECKING

from sqlalchemy.orm import Session

from app.folio.audit import record_event
from app.folio.errors import ConflictError, NotFound, ValidationError
from app.folio.modules.contacts.service import get_contact
from app.folio.rbac import ensure_permission
from app.folio.utils import iso

from .models import Title

if TYPE_CHECKING:
    from app.folio.models import User


def normalize_isbn13(raw: str | None) -> str | None:
    """Strip hyphens/spaces; None for empty. Raises ValidationError unless 13 digits remain."""
    if raw is None or not str(raw).strip():
        return None
    digits = re.sub(r"[\s-]", "", str(raw))
    if not re.fullmatch(r"\d{13}", digits):
        raise ValidationError("ISBN-13 must contain exactly 13 digits")
    return digits


def get_title(s: Session, tenant_id: int, title_id: int) -> Title:
    title = s.query(Title).filter(Title.id == title_id, Title.tenant_id == tenant_id).one_or_none()
    if not title:
        raise NotFound("Title not found")
    return title


def list_titles(s: Session, tenant_id: int) -> list[Title]:
    return s.query(Title).filter(Title.tenant_id == tenant_id).order_by(Title.name.asc()).all()


def create_title(
    s: Session,
    *,
    name: str,
    user: User,
    isbn13: str | None = None,
    author_contact_id: int | None = None,
) -> Title:
    name = (name or "").strip()
    if not name:
        raise ValidationError("Title is required")
    if len(name) > 500:
        raise ValidationError("Title is too long")
    isbn = normalize_isbn13(isbn13)

    ensure_permission(user, "titles.manage", "You don't have permission to manage titles")

    if author_contact_id is not None:
        author = get_contact(s, user.tenant_id, author_contact_id)
        if not author.has_role("author"):
            raise ValidationError("Selected contact is not an author")
    if isbn and s.query(Title.id).filter(Title.tenant_id == user.tenant_id, Title.isbn13 == isbn).first():
        raise ConflictError("A title with this ISBN already exists")

    title = Title(
        tenant_id=user.tenant_id,
        name=name,
        isbn13=isbn,
        author_contact_id=author_contact_id,
        created_by_user_id=user.id,
    )
    s.add(title)
    s.flush()

    record_event(
        s,
        actor=user,
        action="titles.title.create",
        entity_type="Title",
        entity_id=str(title.id),
        metadata={"name": title.name, "isbn13": title.isbn13},
    )
    return title


def title_to_dict(t: Title) -> dict:
    return {
        "id": t.id,
        "name": t.name,
        "isbn13": t.isbn13,
        "author_contact_id": t.author_contact_id,
        "author_name": t.author.full_name if t.author else None,
        "created_at": iso(t.created_at),
    }
