import logging
import os
from datetime import timedelta

from dotenv import load_dotenv
from flask import Flask, g, jsonify, request, session

from app.folio.admin import bp as admin_bp
from app.folio.auth import bp as auth_bp, load_current_user
from app.folio.config import load_config
from app.folio.db import init_db, teardown_db_session
from app.folio.modules.contacts.admin import bp as contacts_bp
from app.folio.modules.invoices.admin import bp as invoices_bp
from app.folio.modules.production.admin import bp as production_bp
from app.folio.modules.titles.admin import bp as titles_bp
from app.folio.routes import bp as routes_bp
from app.folio.security import ensure_csrf_token, validate_csrf

UNGUARDED_PREFIXES = ("/static/", "/health", "/healthz")


def _check_storage(app: Flask) -> None:
    """Fail loudly in the logs when S3 is selected but unusable."""
    if app.config.get("STORAGE_BACKEND") != "s3":
        return
    missing = [
        key
        for key in ("S3_ENDPOINT", "S3_BUCKET", "S3_ACCESS_KEY_ID", "S3_SECRET_ACCESS_KEY")
        if not app.config.get(key)
    ]
    if missing:
        app.logger.error("STORAGE CONFIG ERROR: Missing required S3 env vars: %s", ", ".join(missing))
        return

    from botocore.exceptions import BotoCoreError, ClientError

    from app.folio.storage import S3Storage, storage_from_config

    storage = storage_from_config(app.config)
    if not isinstance(storage, S3Storage):
        return
    try:
        storage._client().head_bucket(Bucket=storage.bucket)
        app.logger.info("Storage health check PASSED: S3 bucket '%s' accessible", storage.bucket)
    except (BotoCoreError, ClientError) as e:
        app.logger.error("STORAGE CONFIG ERROR: Cannot access S3 bucket: %s", e)


def create_app() -> Flask:
    load_dotenv()
    app = Flask(__name__)
    app.config.from_mapping(load_config())
    app.config["PERMANENT_SESSION_LIFETIME"] = timedelta(hours=8)
    app.config["SESSION_REFRESH_EACH_REQUEST"] = True

    @app.before_request
    def _csrf_guard():
        if request.path.startswith(UNGUARDED_PREFIXES):
            return None
        ensure_csrf_token()
        session.permanent = True
        if not app.config.get("CSRF_ENABLED", True):
            return None
        if request.method in ("POST", "PUT", "PATCH", "DELETE"):
            # login/logout carry no session state worth forging
            if (request.endpoint or "").startswith("auth."):
                return None
            if not validate_csrf(request):
                return jsonify({"success": False, "error": "CSRF token missing or invalid."}), 400
        return None

    # Production guardrails
    env = (app.config.get("ENV") or "").strip().lower()
    if env in ("prod", "production"):
        if not str(app.config.get("DATABASE_URL") or "").strip():
            raise RuntimeError("DATABASE_URL is required in production.")
        if str(app.config["DATABASE_URL"]).startswith("sqlite"):
            raise RuntimeError("DATABASE_URL must be Postgres in production (not sqlite).")
        if not app.config.get("SECRET_KEY") or str(app.config["SECRET_KEY"]) in ("", "change-me"):
            raise RuntimeError("SECRET_KEY must be set to a strong value in production (not default).")

    init_db(app)

    if hasattr(os, "register_at_fork"):

        def _after_fork_child():
            engine = app.extensions.get("sqlalchemy_engine")
            if engine:
                engine.dispose()
                app.logger.info("Disposed DB engine after fork (pid=%s)", os.getpid())

        os.register_at_fork(after_in_child=_after_fork_child)

    _check_storage(app)

    app.register_blueprint(routes_bp)
    app.register_blueprint(auth_bp, url_prefix="/auth")
    app.register_blueprint(admin_bp, url_prefix="/admin")
    app.register_blueprint(contacts_bp, url_prefix="/contacts")
    app.register_blueprint(titles_bp, url_prefix="/titles")
    app.register_blueprint(production_bp, url_prefix="/production")
    app.register_blueprint(invoices_bp, url_prefix="/invoices")

    def _load_user_wrapper():
        if request.path.startswith(UNGUARDED_PREFIXES):
            g.current_user = None
            return None
        return load_current_user()

    app.before_request(_load_user_wrapper)
    app.teardown_appcontext(teardown_db_session)

    @app.errorhandler(400)
    def _err_400(e):
        return jsonify({"success": False, "error": getattr(e, "description", None) or "Bad request"}), 400

    @app.errorhandler(403)
    def _err_403(e):
        missing = getattr(g, "missing_permission", None)
        if missing:
            app.logger.warning("Forbidden: missing_permission=%s request_id=%s", missing, getattr(g, "request_id", None))
        return jsonify({"success": False, "error": "You don't have permission to do that", "missing_permission": missing}), 403

    @app.errorhandler(404)
    def _err_404(e):
        return jsonify({"success": False, "error": "Not found"}), 404

    @app.errorhandler(413)
    def _err_413(e):
        limit_mb = int(app.config.get("MAX_CONTENT_LENGTH") or 0) // (1024 * 1024)
        return jsonify({"success": False, "error": f"File too large. Maximum size is {limit_mb}MB."}), 413

    @app.errorhandler(500)
    def _err_500(e):
        app.logger.exception("Unhandled 500 (request_id=%s)", getattr(g, "request_id", None))
        return jsonify({"success": False, "error": "Internal server error"}), 500

    logging.getLogger(__name__).info("create_app() complete; app ready to serve")
    return app
