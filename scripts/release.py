"""
Release phase: migrate the schema, then seed roles and the first owner.

Both steps are idempotent, so this runs on every deploy. Existing passwords
are never overwritten.

Usage:
  python scripts/release.py [--revision head] [--skip-seed]
"""

from __future__ import annotations

import argparse
import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


def release_database_url() -> str:
    db_url = (os.environ.get("DATABASE_URL") or "").strip()
    if not db_url:
        raise RuntimeError("Missing required environment variable DATABASE_URL.")
    env = (os.environ.get("ENV") or "").strip().lower()
    if env in ("prod", "production") and db_url.startswith("sqlite"):
        raise RuntimeError("Refusing to release against a sqlite DATABASE_URL in production.")
    return db_url


def alembic_config(db_url: str):
    from alembic.config import Config

    cfg = Config(str(ROOT / "alembic.ini"))
    cfg.set_main_option("script_location", str(ROOT / "migrations"))
    cfg.set_main_option("sqlalchemy.url", db_url)
    return cfg


def migrate(db_url: str, revision: str = "head") -> None:
    from alembic import command

    print(f"Upgrading schema to {revision}...", flush=True)
    command.upgrade(alembic_config(db_url), revision)


def seed(db_url: str) -> None:
    from scripts import init_db

    print("Seeding roles, tenant and owner...", flush=True)
    init_db.seed_only(database_url=db_url)


def run_release(*, revision: str = "head", skip_seed: bool = False) -> None:
    db_url = release_database_url()
    print("=== Folio release start ===", flush=True)
    migrate(db_url, revision)
    if not skip_seed:
        seed(db_url)
    print("=== Folio release done ===", flush=True)


def main() -> None:
    parser = argparse.ArgumentParser(description="Run migrations and seed data for a deploy.")
    parser.add_argument("--revision", default="head", help="Alembic revision to upgrade to")
    parser.add_argument("--skip-seed", action="store_true", help="Only migrate")
    args = parser.parse_args()
    run_release(revision=args.revision, skip_seed=args.skip_seed)


if __name__ == "__main__":
    main()
