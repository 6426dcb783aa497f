from __future__ import annotations

import re
from datetime import date, datetime
from decimal import Decimal, InvalidOperation

from flask import g, request

from app.folio.errors import ValidationError
from app.folio.models import User
from app.folio.storage import Upload

EMAIL_RE = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")
URL_RE = re.compile(r"^https?://[^\s/$.?#].[^\s]*$", re.IGNORECASE)
ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")

CENT = Decimal("0.01")


def is_valid_email(email: str) -> bool:
    return bool(EMAIL_RE.match(email or ""))


def is_valid_url(url: str) -> bool:
    return bool(URL_RE.match(url or ""))


def parse_date(value, *, message: str = "Date must be in YYYY-MM-DD format") -> date | None:
    """Parse YYYY-MM-DD; empty values mean "no date"."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    raw = str(value).strip()
    if not raw:
        return None
    if not ISO_DATE_RE.match(raw):
        raise ValidationError(message)
    try:
        return date.fromisoformat(raw)
    except ValueError as e:
        raise ValidationError(message) from e


def parse_decimal(value, *, field: str, default: Decimal | None = None) -> Decimal | None:
    if value is None or (isinstance(value, str) and not value.strip()):
        return default
    try:
        d = Decimal(str(value).strip())
    except InvalidOperation as e:
        raise ValidationError(f"{field} must be a number") from e
    if not d.is_finite():
        raise ValidationError(f"{field} must be a number")
    return d


def as_text(value, field: str, *, strip: bool = True) -> str:
    """JSON string value; null reads as "". Numbers, lists and objects are rejected."""
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string")
    return value.strip() if strip else value


def plain_number(value: Decimal) -> str:
    """Decimal without trailing zeros or exponent: 2.500 -> "2.5", 100 -> "100"."""
    return format(value.normalize(), "f")


def clean_str(value) -> str | None:
    if value is None:
        return None
    s = str(value).strip()
    return s or None


def iso(value) -> str | None:
    return value.isoformat() if value is not None else None


def current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


def request_payload() -> dict:
    """JSON body for API callers, form fields otherwise."""
    if request.is_json:
        payload = request.get_json(silent=True)
        return payload if isinstance(payload, dict) else {}
    return request.form.to_dict()


def parse_optional_int(value, *, message: str) -> int | None:
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    if isinstance(value, bool):
        raise ValidationError(message)
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise ValidationError(message) from e


def request_upload(field: str) -> Upload | None:
    """The named multipart file, read into memory; None when absent or unnamed."""
    f = request.files.get(field)
    if not f or not f.filename:
        return None
    return Upload(filename=f.filename, data=f.read(), content_type=f.mimetype or "application/octet-stream")
