from __future__ import annotations

import re
from datetime import date

from flask import Blueprint, abort, current_app, flash, g, redirect, render_template, request, url_for
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.security import generate_password_hash

from app.congregation.audit import query_events, record_event
from app.congregation.db import db_session
from app.congregation.models import Role, User
from app.congregation.rbac import require_permission
from app.congregation.utils import parse_date, parse_id_list, parse_int

bp = Blueprint("admin", __name__)

EMAIL_RE = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


def _dashboard_counts(s) -> dict:
    from app.congregation.modules.cleaning.models import CleaningTask, InventoryItem
    from app.congregation.modules.communication.service import member_for_user, unread_count
    from app.congregation.modules.field_service.models import FieldServiceReport
    from app.congregation.modules.field_service.service_year import previous_month_key
    from app.congregation.modules.members.models import Member
    from app.congregation.modules.territories.models import TerritoryAssignment

    today = date.today()
    report_month = previous_month_key(today)
    return {
        "active_members": s.query(Member).filter(Member.is_active.is_(True)).count(),
        "report_month": report_month,
        "reports_this_month": s.query(FieldServiceReport).filter(FieldServiceReport.month == report_month).count(),
        "open_cleaning_tasks": s.query(CleaningTask).filter(CleaningTask.status != "Completed").count(),
        "low_stock_items": s.query(InventoryItem).filter(InventoryItem.quantity <= InventoryItem.min_quantity).count(),
        "territories_out": s.query(TerritoryAssignment).filter(TerritoryAssignment.status.in_(("assigned", "overdue"))).count(),
        "unread_messages": unread_count(s, member_for_user(s, _current_user())),
    }


@bp.get("/")
@require_permission("admin.view")
def index():
    s = db_session()
    status = {
        "env": (current_app.config.get("ENV") or "development").strip().lower(),
        "db_connected": False,
        "db_error": None,
        "workbook_sources": 1 + len(current_app.config.get("WORKBOOK_PROXIES") or []),
        "schema_ok": current_app.config.get("_schema_health_ok", True),
    }
    try:
        s.execute(text("SELECT 1"))
        status["db_connected"] = True
    except SQLAlchemyError as e:
        current_app.logger.warning("Dashboard DB check failed: %s", e)
        status["db_error"] = str(e)
        s.rollback()

    counts = _dashboard_counts(s) if status["db_connected"] else {}
    return render_template("admin/index.html", system_status=status, counts=counts)


@bp.get("/me")
@require_permission("admin.view")
def me():
    from app.congregation.modules.communication.service import member_for_user

    s = db_session()
    user = _current_user()
    role_keys = sorted({r.key for r in (user.roles or [])})
    perm_keys = sorted({p.key for r in (user.roles or []) for p in (r.permissions or [])})
    return render_template(
        "admin/me.html",
        user=user,
        member=member_for_user(s, user),
        role_keys=role_keys,
        perm_keys=perm_keys,
    )


@bp.post("/me")
@require_permission("admin.view")
def me_update():
    s = db_session()
    user = _current_user()
    old = user.display_name
    user.display_name = (request.form.get("display_name") or "").strip() or None
    record_event(
        s,
        actor=user,
        action="user.update_profile",
        entity_type="User",
        entity_id=str(user.id),
        metadata={"old": old, "new": user.display_name},
    )
    s.commit()
    flash("Profile updated.", "success")
    return redirect(url_for("admin.me"))


@bp.get("/audit")
@require_permission("admin.view")
def audit_list():
    """
    Audit trail UI (last 200 events) with simple filters:
    - action (contains)
    - actor_email (contains)
    - entity_type (exact)
    - date range (YYYY-MM-DD, inclusive)
    """
    s = db_session()
    action = (request.args.get("action") or "").strip()
    actor_email = (request.args.get("actor_email") or "").strip()
    entity_type = (request.args.get("entity_type") or "").strip()
    date_from = parse_date(request.args.get("date_from"))
    date_to = parse_date(request.args.get("date_to"))

    if (request.args.get("date_from") or "").strip() and not date_from:
        flash("date_from must be YYYY-MM-DD", "danger")
    if (request.args.get("date_to") or "").strip() and not date_to:
        flash("date_to must be YYYY-MM-DD", "danger")

    events = query_events(
        s, action=action, actor_email=actor_email, entity_type=entity_type, date_from=date_from, date_to=date_to
    )
    return render_template(
        "admin/audit/list.html",
        events=events,
        action=action,
        actor_email=actor_email,
        entity_type=entity_type,
        date_from=(request.args.get("date_from") or "").strip(),
        date_to=(request.args.get("date_to") or "").strip(),
    )


@bp.get("/login")
def login_redirect():
    return redirect(url_for("auth.login_get"))


# ============================================================================
# ACCOUNT MANAGEMENT
# ============================================================================


def _password_errors(password: str, confirm: str) -> list[str]:
    if not password:
        return ["Password is required."]
    if len(password) < 8:
        return ["Password must be at least 8 characters."]
    if password != confirm:
        return ["Passwords do not match."]
    return []


def _link_member(s, user: User, member_id: int | None) -> None:
    """Links a login to a member record (one login per member). None unlinks."""
    from app.congregation.modules.members.models import Member

    for m in s.query(Member).filter(Member.user_id == user.id).all():
        if m.id != member_id:
            m.user_id = None
    if member_id:
        m = s.get(Member, member_id)
        if m is None:
            raise ValueError("Unknown member.")
        if m.user_id not in (None, user.id):
            raise ValueError(f"{m.full_name} is already linked to another account.")
        m.user_id = user.id


@bp.get("/accounts")
@require_permission("admin.edit")
def accounts_list():
    s = db_session()
    users = s.query(User).order_by(User.email.asc()).all()
    roles = s.query(Role).order_by(Role.name.asc()).all()
    return render_template("admin/accounts/list.html", users=users, roles=roles)


@bp.post("/accounts/new")
@require_permission("admin.edit")
def accounts_new_post():
    s = db_session()
    u = _current_user()

    email = (request.form.get("email") or "").strip().lower()
    password = request.form.get("password") or ""
    errors = []
    if not email:
        errors.append("Email is required.")
    elif not EMAIL_RE.match(email):
        errors.append("Invalid email format.")
    elif s.query(User).filter(User.email == email).one_or_none():
        errors.append("An account with this email already exists.")
    errors.extend(_password_errors(password, request.form.get("password_confirm") or ""))
    if errors:
        for e in errors:
            flash(e, "danger")
        return redirect(url_for("admin.accounts_list"))

    new_user = User(
        email=email,
        password_hash=generate_password_hash(password),
        display_name=(request.form.get("display_name") or "").strip() or None,
        is_active=True,
    )
    role_ids = parse_id_list(request.form.getlist("role_ids"))
    if role_ids:
        new_user.roles = s.query(Role).filter(Role.id.in_(role_ids)).all()
    s.add(new_user)
    s.flush()

    record_event(
        s,
        actor=u,
        action="user.create",
        entity_type="User",
        entity_id=str(new_user.id),
        metadata={"email": email, "roles": [r.key for r in new_user.roles]},
    )
    s.commit()
    flash(f"Account created for {email}.", "success")
    return redirect(url_for("admin.accounts_detail", user_id=new_user.id))


@bp.get("/accounts/<int:user_id>")
@require_permission("admin.edit")
def accounts_detail(user_id: int):
    from app.congregation.modules.communication.service import member_for_user
    from app.congregation.modules.members.service import active_members

    s = db_session()
    user = s.get(User, user_id)
    if not user:
        abort(404)
    roles = s.query(Role).order_by(Role.name.asc()).all()
    return render_template(
        "admin/accounts/detail.html",
        account=user,
        roles=roles,
        linked_member=member_for_user(s, user),
        members=active_members(s),
    )


@bp.post("/accounts/<int:user_id>/update")
@require_permission("admin.edit")
def accounts_update(user_id: int):
    s = db_session()
    u = _current_user()
    user = s.get(User, user_id)
    if not user:
        abort(404)

    if user.id == u.id and request.form.get("is_active") != "1":
        flash("You cannot deactivate your own account.", "danger")
        return redirect(url_for("admin.accounts_detail", user_id=user_id))

    before = {"is_active": user.is_active, "roles": [r.key for r in user.roles]}
    user.is_active = request.form.get("is_active") == "1"
    role_ids = parse_id_list(request.form.getlist("role_ids"))
    user.roles = s.query(Role).filter(Role.id.in_(role_ids)).all() if role_ids else []
    try:
        _link_member(s, user, parse_int(request.form.get("member_id")))
    except ValueError as e:
        s.rollback()
        flash(str(e), "danger")
        return redirect(url_for("admin.accounts_detail", user_id=user_id))
    after = {"is_active": user.is_active, "roles": [r.key for r in user.roles]}

    record_event(
        s,
        actor=u,
        action="user.update",
        entity_type="User",
        entity_id=str(user.id),
        metadata={"before": before, "after": after, "member_id": parse_int(request.form.get("member_id"))},
    )
    s.commit()
    flash(f"Account updated for {user.email}.", "success")
    return redirect(url_for("admin.accounts_detail", user_id=user_id))


@bp.post("/accounts/<int:user_id>/reset-password")
@require_permission("admin.edit")
def accounts_reset_password(user_id: int):
    s = db_session()
    u = _current_user()
    user = s.get(User, user_id)
    if not user:
        abort(404)

    errors = _password_errors(request.form.get("password") or "", request.form.get("password_confirm") or "")
    if errors:
        for e in errors:
            flash(e, "danger")
        return redirect(url_for("admin.accounts_detail", user_id=user_id))

    user.password_hash = generate_password_hash(request.form.get("password") or "")
    record_event(
        s,
        actor=u,
        action="user.password_reset",
        entity_type="User",
        entity_id=str(user.id),
        metadata={"target_email": user.email},
    )
    s.commit()
    flash(f"Password reset for {user.email}.", "success")
    return redirect(url_for("admin.accounts_detail", user_id=user_id))
