#!/usr/bin/env python3
"""Attach a role to an existing account (idempotent).

Usage:
  python scripts/assign_role.py --email editor@press.example --role editor
"""

import sys
import os
import argparse
from pathlib import Path

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.folio.models import Role, User
from app.folio.rbac import ROLE_PERMISSIONS


def main() -> None:
    parser = argparse.ArgumentParser()
    parser.add_argument("--email", required=True, help="Account email")
    parser.add_argument("--role", default="admin", choices=sorted(ROLE_PERMISSIONS), help="Role key to attach")
    args = parser.parse_args()

    db_url = (os.environ.get("DATABASE_URL") or "sqlite:///folio.db").strip()
    engine = create_engine(db_url, future=True)
    sm = sessionmaker(bind=engine, class_=Session, autoflush=False, autocommit=False, expire_on_commit=False, future=True)
    s: Session = sm()
    try:
        user = s.query(User).filter(User.email.ilike(args.email)).one_or_none()
        if not user:
            print(f"User not found: {args.email}")
            sys.exit(1)
        role = s.query(Role).filter(Role.key == args.role).one_or_none()
        if not role:
            print(f"Role '{args.role}' not found. Run python scripts/init_db.py first.")
            sys.exit(1)
        if role in (user.roles or []):
            print(f"{args.email} already has role '{args.role}'")
            return
        user.roles.append(role)
        s.commit()
        print(f"Role '{args.role}' attached to {args.email}")
    finally:
        s.close()


if __name__ == "__main__":
    main()
