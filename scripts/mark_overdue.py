#!/usr/bin/env python3
"""Flip sent / partially paid invoices past their due date to overdue (all tenants).

Meant for a daily scheduled job.

Usage:
  python scripts/mark_overdue.py [--date YYYY-MM-DD]
"""

import argparse
import sys
from datetime import date
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.folio import create_app
from app.folio.db import session_scope
from app.folio.modules.invoices.service import mark_overdue_invoices


def main() -> None:
    parser = argparse.ArgumentParser()
    parser.add_argument("--date", type=date.fromisoformat, default=None, help="Treat this as today (YYYY-MM-DD)")
    args = parser.parse_args()

    app = create_app()
    with session_scope(app) as s:
        marked = mark_overdue_invoices(s, today=args.date)
        numbers = [inv.invoice_number for inv in marked]
    print(f"Marked {len(numbers)} invoice(s) overdue" + (f": {', '.join(numbers)}" if numbers else ""))


if __name__ == "__main__":
    main()
