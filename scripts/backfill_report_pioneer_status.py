"""
One-time script to stamp pioneer status onto field service reports imported before
reports carried their own status.

Reports still marked "none" whose member is currently a pioneer are stamped with the
member's current status, limited to months on or after --since (YYYY-MM).
Dry run unless --apply is given.

Run: python scripts/backfill_report_pioneer_status.py --since 2024-09 [--apply]
"""
from __future__ import annotations

import argparse
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app.congregation import create_app  # noqa: E402
from app.congregation.audit import record_event  # noqa: E402
from app.congregation.db import session_scope  # noqa: E402
from app.congregation.modules.field_service.models import FieldServiceReport  # noqa: E402
from app.congregation.modules.field_service.service_year import is_month_key  # noqa: E402
from app.congregation.modules.members.models import Member  # noqa: E402


def backfill(since: str, apply: bool) -> int:
    app = create_app()
    with session_scope(app) as s:
        rows = (
            s.query(FieldServiceReport)
            .join(Member, Member.id == FieldServiceReport.member_id)
            .filter(FieldServiceReport.month >= since)
            .filter(FieldServiceReport.pioneer_status == "none")
            .filter(Member.pioneer_status != "none")
            .order_by(FieldServiceReport.month.asc(), FieldServiceReport.id.asc())
            .all()
        )
        print(f"Found {len(rows)} report(s) to stamp since {since}")
        for r in rows:
            print(f"  {r.month} {r.member.full_name}: none -> {r.member.pioneer_status}")
            if apply:
                r.pioneer_status = r.member.pioneer_status
        if apply and rows:
            record_event(
                s,
                actor=None,
                action="field_service_report.backfill_pioneer_status",
                entity_type="FieldServiceReport",
                entity_id="backfill",
                metadata={"since": since, "count": len(rows)},
            )
        if not apply:
            s.rollback()
            print("Dry run; pass --apply to write changes.")
    return len(rows)


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[1])
    parser.add_argument("--since", required=True, help="first month to stamp (YYYY-MM)")
    parser.add_argument("--apply", action="store_true")
    args = parser.parse_args()
    if not is_month_key(args.since):
        parser.error("--since must be YYYY-MM")
    backfill(args.since, args.apply)


if __name__ == "__main__":
    main()
