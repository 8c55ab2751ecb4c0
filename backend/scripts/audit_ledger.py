from __future__ import annotations

import os
import sys

# Ensure `app` imports work when running from backend/.
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from app.db import Database  # noqa: E402
from app.ledger import audit_ledger  # noqa: E402


def main() -> int:
    db_url = (os.environ.get("DATABASE_URL") or "").strip()
    if not db_url:
        raise SystemExit("DATABASE_URL is required")

    database = Database(db_url)
    try:
        with database.session_scope() as db:
            report = audit_ledger(db)
    finally:
        database.dispose()

    for line in report.violations:
        print(f"VIOLATION: {line}")
    print(f"Checked {report.users_checked} users: {'ok' if report.ok else f'{len(report.violations)} violation(s)'}")
    return 0 if report.ok else 1


if __name__ == "__main__":
    sys.exit(main())
