from flask import Blueprint, current_app, g, jsonify

from app.folio.security import ensure_csrf_token

bp = Blueprint("routes", __name__)


@bp.get("/")
def index():
    user = getattr(g, "current_user", None)
    return jsonify(
        {
            "app": "folio",
            "authenticated": bool(user),
            "tenant_id": user.tenant_id if user else None,
        }
    )


@bp.get("/csrf-token")
def csrf_token():
    """Hands the session's CSRF token to API clients for the X-CSRF-Token header."""
    return jsonify({"csrf_token": ensure_csrf_token()})


@bp.get("/health")
def health():
    """Health check endpoint. Returns JSON."""
    return {"ok": True, "env": current_app.config.get("ENV")}


@bp.get("/healthz")
def healthz():
    """
    Liveness probe. No DB access, minimal overhead.
    """
    return "ok", 200
