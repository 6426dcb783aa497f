import sys
from pathlib import Path
import os

from werkzeug.security import generate_password_hash
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from contextlib import contextmanager

# Ensure repo root is on sys.path when running as a script.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.folio.models import Tenant, User
from app.folio.rbac import seed_roles


@contextmanager
def _session_scope(database_url: str):
    engine = create_engine(database_url, future=True)
    sm = sessionmaker(bind=engine, class_=Session, autoflush=False, autocommit=False, expire_on_commit=False, future=True)
    s: Session = sm()
    try:
        yield s
        s.commit()
    except Exception:
        s.rollback()
        raise
    finally:
        s.close()


def seed_only(*, database_url: str | None = None) -> None:
    """
    Seed permissions/roles, the first tenant and its owner in an idempotent way.
    Does NOT overwrite an existing owner's password.
    """
    admin_email = (os.environ.get("ADMIN_EMAIL") or "admin@folio.local").strip().lower()
    admin_password = os.environ.get("ADMIN_PASSWORD") or "change-me"
    tenant_name = (os.environ.get("TENANT_NAME") or "Folio Press").strip()
    subdomain = (os.environ.get("TENANT_SUBDOMAIN") or "folio").strip().lower()

    db_url = (database_url or os.environ.get("DATABASE_URL") or "sqlite:///folio.db").strip()

    # Direct engine/session so release can seed without importing app.wsgi.
    with _session_scope(db_url) as s:
        roles = seed_roles(s)

        tenant = s.query(Tenant).filter(Tenant.subdomain == subdomain).one_or_none()
        if not tenant:
            tenant = Tenant(name=tenant_name, subdomain=subdomain)
            s.add(tenant)
            s.flush()

        user = s.query(User).filter(User.email == admin_email).one_or_none()
        if not user:
            user = User(
                tenant_id=tenant.id,
                email=admin_email,
                password_hash=generate_password_hash(admin_password),
                is_active=True,
            )
            s.add(user)
        if roles["owner"] not in user.roles:
            user.roles.append(roles["owner"])

    print("Initialized database (seed_only).")
    print(f"Tenant: {tenant_name} ({subdomain})")
    print(f"Owner email: {admin_email}")
    print("Owner password: (from ADMIN_PASSWORD)")


def main() -> None:
    seed_only(database_url=None)


if __name__ == "__main__":
    main()
