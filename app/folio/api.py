"""
Action boundary shared by the module blueprints.

Every mutating endpoint runs its service call through `run_action`, which
owns the commit/rollback and maps known failures to JSON:

    ValidationError  -> 400   PermissionDenied -> 403   NotFound -> 404
    ConflictError    -> 409   IntegrityError   -> 409 (per-action message)
    anything else    -> 500 "Failed to <action>. Please try again." (logged)
"""
from __future__ import annotations

from collections.abc import Callable
from typing import Any

from flask import current_app, g, jsonify
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.folio.db import db_session
from app.folio.errors import FolioError, ValidationError


def error_response(message: str, status: int, *, errors: list[str] | None = None):
    body: dict[str, Any] = {"success": False, "error": message}
    if errors and len(errors) > 1:
        body["errors"] = errors
    return jsonify(body), status


def ok(data: Any = None, status: int = 200, **extra: Any):
    body: dict[str, Any] = {"success": True, "data": data}
    body.update(extra)
    return jsonify(body), status


def run_action(
    action: str,
    fn: Callable[[Session], Any],
    *,
    status: int = 200,
    integrity_message: str | None = None,
):
    """
    Run `fn(session)`, commit, and wrap the result as {"success": true, "data": ...}.
    `fn` returns the already-serialized payload (or a (payload, extra_dict) tuple).
    """
    s = db_session()
    try:
        result = fn(s)
        s.commit()
    except FolioError as e:
        s.rollback()
        if e.status_code >= 500:
            current_app.logger.error("%s failed: %s (request_id=%s)", action, e.message, getattr(g, "request_id", None))
        return error_response(e.message, e.status_code, errors=getattr(e, "errors", None) if isinstance(e, ValidationError) else None)
    except IntegrityError as e:
        s.rollback()
        current_app.logger.warning("%s hit a constraint: %s (request_id=%s)", action, e.orig, getattr(g, "request_id", None))
        return error_response(integrity_message or f"Failed to {action}. Please try again.", 409)
    except Exception:
        s.rollback()
        current_app.logger.exception("%s crashed (request_id=%s)", action, getattr(g, "request_id", None))
        return error_response(f"Failed to {action}. Please try again.", 500)

    if isinstance(result, tuple):
        data, extra = result
        return ok(data, status, **extra)
    return ok(result, status)


def run_query(fn: Callable[[Session], Any]):
    """Read-only counterpart of run_action: no commit, same error mapping for known failures."""
    s = db_session()
    try:
        return ok(fn(s))
    except FolioError as e:
        return error_response(e.message, e.status_code, errors=getattr(e, "errors", None) if isinstance(e, ValidationError) else None)
