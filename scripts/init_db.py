import os
import sys
from pathlib import Path

from werkzeug.security import generate_password_hash

# Ensure repo root is on sys.path when running as a script.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.congregation.models import Base, Permission, Role, User  # noqa: E402
from scripts._db_utils import create_script_engine, resolve_database_url, script_session  # noqa: E402

PERMISSIONS = (
    ("admin.view", "Admin: view dashboard"),
    ("admin.edit", "Admin: manage accounts"),
    ("members.view", "Members: view"),
    ("members.edit", "Members: create/edit"),
    ("groups.manage", "Groups and privileges: manage"),
    ("reports.view", "Field service reports: view"),
    ("reports.edit", "Field service reports: submit/edit"),
    ("reports.export", "Field service reports: export"),
    ("assignments.view", "Meeting assignments: view"),
    ("assignments.edit", "Meeting assignments: edit/import"),
    ("territories.view", "Territories: view"),
    ("territories.edit", "Territories: edit/distribute/divide"),
    ("territories.assign", "Territories: check out/return"),
    ("cleaning.view", "Cleaning and inventory: view"),
    ("cleaning.edit", "Cleaning and inventory: edit"),
    ("financial.view", "Finances: view"),
    ("financial.edit", "Finances: record contributions/expenses"),
    ("financial.approve", "Finances: approve/pay expenses"),
    ("messages.view", "Messages: view"),
    ("messages.send", "Messages: send"),
    ("broadcasts.send", "Broadcasts: send"),
    ("overseer.view", "Overseer reports: view"),
    ("overseer.edit", "Overseer reports: submit/schedule"),
    ("attendance.view", "Meeting attendance: view"),
    ("attendance.edit", "Meeting attendance: record/edit"),
)

# admin receives every permission.
ROLES = {
    "admin": ("Administrator", None),
    "secretary": (
        "Secretary",
        (
            "admin.view",
            "members.view",
            "members.edit",
            "groups.manage",
            "reports.view",
            "reports.edit",
            "reports.export",
            "assignments.view",
            "territories.view",
            "messages.view",
            "messages.send",
            "overseer.view",
            "attendance.view",
            "attendance.edit",
        ),
    ),
    "overseer": (
        "Group Overseer",
        (
            "admin.view",
            "members.view",
            "reports.view",
            "territories.view",
            "territories.assign",
            "messages.view",
            "messages.send",
            "overseer.view",
            "overseer.edit",
        ),
    ),
}


def seed_permissions(s) -> dict[str, Permission]:
    """Idempotent: creates missing permissions and roles, and grants role permissions."""
    perms: dict[str, Permission] = {}
    for key, name in PERMISSIONS:
        p = s.query(Permission).filter(Permission.key == key).one_or_none()
        if not p:
            p = Permission(key=key, name=name)
            s.add(p)
        perms[key] = p

    for role_key, (role_name, keys) in ROLES.items():
        role = s.query(Role).filter(Role.key == role_key).one_or_none()
        if not role:
            role = Role(key=role_key, name=role_name)
            s.add(role)
        for key in keys if keys is not None else perms:
            if perms[key] not in role.permissions:
                role.permissions.append(perms[key])
    return perms


def seed_only(*, database_url: str | None = None, create_tables: bool = False) -> None:
    """
    Seed permissions/roles/admin user in an idempotent way.
    Does NOT overwrite an existing admin user's password.
    """
    admin_email = (os.environ.get("ADMIN_EMAIL") or "admin@congregation.local").strip().lower()
    admin_password = os.environ.get("ADMIN_PASSWORD") or "change-me"
    db_url = resolve_database_url(database_url)

    if create_tables:
        engine = create_script_engine(db_url)
        try:
            Base.metadata.create_all(bind=engine)
        finally:
            engine.dispose()

    # Direct engine/session so this can run in release without building the app.
    with script_session(db_url) as s:
        seed_permissions(s)
        s.flush()
        role_admin = s.query(Role).filter(Role.key == "admin").one()
        user = s.query(User).filter(User.email == admin_email).one_or_none()
        if not user:
            user = User(
                email=admin_email,
                password_hash=generate_password_hash(admin_password),
                display_name="Administrator",
                is_active=True,
            )
            s.add(user)
        if role_admin not in user.roles:
            user.roles.append(role_admin)

    print("Initialized database (seed_only).")
    print(f"Admin email: {admin_email}")
    print("Admin password: (from ADMIN_PASSWORD)")


def main() -> None:
    # Local development: create tables directly when no migration has run.
    seed_only(database_url=None, create_tables="--create-tables" in sys.argv)


if __name__ == "__main__":
    main()
