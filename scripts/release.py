"""
Release step run before the web process starts.

Upgrades the schema to the latest Alembic revision, then seeds permissions, the
admin/secretary/overseer roles and the admin account (existing passwords are kept).
Afterwards prints a short roster summary and warns when field service reports still
lack a pioneer status stamp (see scripts/backfill_report_pioneer_status.py).

Usage:
  python scripts/release.py [--skip-migrations] [--skip-seed]
"""

from __future__ import annotations

import argparse
import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


def _database_url() -> str:
    db_url = (os.environ.get("DATABASE_URL") or "").strip()
    if not db_url:
        raise RuntimeError("DATABASE_URL must be set for a release.")
    env = (os.environ.get("ENV") or "").strip().lower()
    if env in ("prod", "production") and db_url.startswith("sqlite"):
        raise RuntimeError("Production releases need a PostgreSQL DATABASE_URL, not SQLite.")
    return db_url


def upgrade_schema(db_url: str) -> None:
    from alembic import command
    from alembic.config import Config

    cfg = Config(str(ROOT / "alembic.ini"))
    cfg.set_main_option("script_location", str(ROOT / "migrations"))
    cfg.set_main_option("sqlalchemy.url", db_url)
    command.upgrade(cfg, "head")


def roster_summary(db_url: str) -> dict[str, int]:
    from app.congregation.modules.field_service.models import FieldServiceReport
    from app.congregation.modules.members.models import Group, Member
    from scripts._db_utils import script_session

    with script_session(db_url) as s:
        return {
            "active_members": s.query(Member).filter(Member.is_active.is_(True)).count(),
            "groups": s.query(Group).count(),
            "reports": s.query(FieldServiceReport).count(),
            "unstamped_pioneer_reports": (
                s.query(FieldServiceReport)
                .join(Member, Member.id == FieldServiceReport.member_id)
                .filter(FieldServiceReport.pioneer_status == "none", Member.pioneer_status != "none")
                .count()
            ),
        }


def run_release(*, migrate: bool = True, seed: bool = True) -> None:
    db_url = _database_url()
    print("=== Congregation dashboard release ===", flush=True)

    if migrate:
        print("Upgrading schema to head...", flush=True)
        upgrade_schema(db_url)
    if seed:
        from scripts import init_db

        print("Seeding permissions, roles and admin account...", flush=True)
        init_db.seed_only(database_url=db_url)

    summary = roster_summary(db_url)
    print(
        f"{summary['active_members']} active member(s) in {summary['groups']} group(s); "
        f"{summary['reports']} field service report(s).",
        flush=True,
    )
    if summary["unstamped_pioneer_reports"]:
        print(
            f"WARNING: {summary['unstamped_pioneer_reports']} report(s) of current pioneers have no pioneer status; "
            "review them with scripts/backfill_report_pioneer_status.py.",
            flush=True,
        )
    print("=== Release done ===", flush=True)


def main() -> None:
    ap = argparse.ArgumentParser(description="Migrate and seed the congregation dashboard database.")
    ap.add_argument("--skip-migrations", action="store_true")
    ap.add_argument("--skip-seed", action="store_true")
    args = ap.parse_args()
    run_release(migrate=not args.skip_migrations, seed=not args.skip_seed)


if __name__ == "__main__":
    main()
