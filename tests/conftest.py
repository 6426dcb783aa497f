"""Shared fixtures: an app on a throwaway SQLite file, two tenants, one account per role."""
import smtplib

import pytest
from werkzeug.security import generate_password_hash

from app.folio import create_app
from app.folio.auth import _login_attempts
from app.folio.db import session_scope
from app.folio.models import Base, Tenant, User
from app.folio.modules.contacts.models import Contact
from app.folio.modules.contacts.service import create_contact
from app.folio.modules.production.service import create_project
from app.folio.modules.titles.service import create_title
from app.folio.rbac import seed_roles

PASSWORD = "correct-horse-1"
TIN_KEY = "00112233445566778899aabbccddeeff" * 2

# email -> (tenant subdomain, role key)
ACCOUNTS = {
    "owner@acme.test": ("acme", "owner"),
    "editor@acme.test": ("acme", "editor"),
    "finance@acme.test": ("acme", "finance"),
    "author@acme.test": ("acme", "author"),
    "owner@other.test": ("other", "owner"),
}


class Outbox(list):
    """Messages handed to the fake SMTP server. Set `fail` to simulate an outage."""

    fail = False


@pytest.fixture()
def outbox():
    return Outbox()


@pytest.fixture()
def app(tmp_path, monkeypatch, outbox):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("CSRF_ENABLED", "0")
    monkeypatch.setenv("STORAGE_BACKEND", "local")
    monkeypatch.setenv("STORAGE_LOCAL_ROOT", str(tmp_path / "storage"))
    monkeypatch.setenv("TIN_ENCRYPTION_KEY", TIN_KEY)
    monkeypatch.setenv("SMTP_SERVER", "smtp.test")
    monkeypatch.setenv("SMTP_USE_TLS", "0")
    monkeypatch.setenv("EMAIL_FROM", "press@acme.test")
    for k in ("S3_ENDPOINT", "S3_REGION", "S3_BUCKET", "S3_ACCESS_KEY_ID", "S3_SECRET_ACCESS_KEY"):
        monkeypatch.delenv(k, raising=False)

    class FakeSMTP:
        def __init__(self, host, port, timeout=None):
            self.host = host

        def __enter__(self):
            return self

        def __exit__(self, *exc):
            return False

        def starttls(self):
            pass

        def login(self, username, password):
            pass

        def send_message(self, msg):
            if outbox.fail:
                raise smtplib.SMTPException("connection refused")
            outbox.append(msg)

    monkeypatch.setattr(smtplib, "SMTP", FakeSMTP)

    app = create_app()
    app.config["TESTING"] = True
    Base.metadata.create_all(bind=app.extensions["sqlalchemy_engine"])
    _login_attempts.clear()

    with session_scope(app) as s:
        roles = seed_roles(s)
        tenants = {
            "acme": Tenant(name="Acme Press", subdomain="acme"),
            "other": Tenant(name="Other House", subdomain="other"),
        }
        s.add_all(tenants.values())
        s.flush()
        for email, (tenant, role) in ACCOUNTS.items():
            u = User(
                tenant_id=tenants[tenant].id,
                email=email,
                password_hash=generate_password_hash(PASSWORD),
                is_active=True,
            )
            u.roles.append(roles[role])
            s.add(u)

    return app


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def login(client):
    """login(email) signs the shared test client in as that account."""

    def _login(email="owner@acme.test"):
        client.post("/auth/logout")
        r = client.post("/auth/login", json={"email": email, "password": PASSWORD})
        assert r.status_code == 200, r.get_json()
        return client

    return _login


class Factory:
    """Creates fixtures through the service layer, acting as the tenant's owner."""

    def __init__(self, app):
        self.app = app

    def _owner(self, s, tenant):
        return s.query(User).filter(User.email == f"owner@{tenant}.test").one()

    def user_id(self, email):
        with session_scope(self.app) as s:
            return s.query(User.id).filter(User.email == email).scalar()

    def contact(self, first="Jane", last="Doe", *, roles=(), email=None, tenant="acme", **fields):
        entries = [{"role": r} if isinstance(r, str) else r for r in roles]
        with self.app.app_context(), session_scope(self.app) as s:
            payload = {"first_name": first, "last_name": last, "email": email, **fields}
            return create_contact(s, payload, self._owner(s, tenant), roles=entries).id

    def title(self, name="The Long Draft", *, isbn13=None, author_id=None, tenant="acme"):
        with self.app.app_context(), session_scope(self.app) as s:
            return create_title(s, name=name, isbn13=isbn13, author_contact_id=author_id, user=self._owner(s, tenant)).id

    def project(self, title_id=None, *, target=None, tenant="acme"):
        if title_id is None:
            title_id = self.title(tenant=tenant)
        with self.app.app_context(), session_scope(self.app) as s:
            return create_project(s, title_id=title_id, user=self._owner(s, tenant), target_publication_date=target).id

    def link_portal(self, contact_id, email):
        with session_scope(self.app) as s:
            contact = s.get(Contact, contact_id)
            contact.portal_user_id = s.query(User.id).filter(User.email == email).scalar()


@pytest.fixture()
def factory(app):
    return Factory(app)
