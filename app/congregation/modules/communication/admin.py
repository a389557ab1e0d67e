from __future__ import annotations

from datetime import datetime

from flask import Blueprint, abort, flash, g, redirect, render_template, request, url_for

from app.congregation.db import db_session
from app.congregation.models import User
from app.congregation.modules.communication.models import (
    AUDIENCE_TYPES,
    DELIVERY_METHODS,
    PRIORITIES,
    Broadcast,
    BroadcastRecipient,
    MessageRecipient,
)
from app.congregation.modules.communication.service import (
    broadcasts_for_member,
    create_broadcast,
    inbox,
    list_broadcasts,
    mark_broadcast_read,
    mark_read,
    member_for_user,
    send_due_broadcasts,
    send_message,
    sent_messages,
    validate_broadcast_payload,
    validate_message_payload,
)
from app.congregation.modules.members.models import Group, Privilege
from app.congregation.modules.members.service import active_members
from app.congregation.rbac import require_permission
from app.congregation.utils import parse_bool, parse_id_list, parse_int

bp = Blueprint("communication", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


def _parse_datetime(value: str | None) -> datetime | None:
    v = (value or "").strip()
    if not v:
        return None
    try:
        return datetime.fromisoformat(v)
    except ValueError:
        return None


@bp.get("/messages")
@require_permission("messages.view")
def messages_inbox():
    s = db_session()
    u = _current_user()
    member = member_for_user(s, u)
    unread_only = parse_bool(request.args.get("unread"))
    return render_template(
        "admin/communication/inbox.html",
        member=member,
        items=inbox(s, member, unread_only=unread_only) if member else [],
        broadcasts=broadcasts_for_member(s, member) if member else [],
        unread_only=unread_only,
    )


@bp.get("/messages/sent")
@require_permission("messages.view")
def messages_sent():
    s = db_session()
    u = _current_user()
    return render_template("admin/communication/sent.html", messages=sent_messages(s, u))


@bp.get("/messages/new")
@require_permission("messages.send")
def messages_new_get():
    s = db_session()
    groups = s.query(Group).order_by(Group.name.asc()).all()
    return render_template(
        "admin/communication/compose.html",
        members=active_members(s),
        groups=groups,
        priorities=PRIORITIES,
    )


@bp.post("/messages/new")
@require_permission("messages.send")
def messages_new_post():
    s = db_session()
    u = _current_user()
    payload = {
        "subject": request.form.get("subject"),
        "content": request.form.get("content"),
        "priority": (request.form.get("priority") or "normal").strip(),
        "is_emergency": parse_bool(request.form.get("is_emergency")),
        "member_ids": parse_id_list(request.form.getlist("member_ids")),
        "group_id": parse_int(request.form.get("group_id")),
    }
    errors = validate_message_payload(payload)
    if errors:
        for e in errors:
            flash(e, "danger")
        return redirect(url_for("communication.messages_new_get"))
    try:
        msg = send_message(s, payload, u)
    except ValueError as e:
        flash(str(e), "danger")
        return redirect(url_for("communication.messages_new_get"))
    s.commit()
    flash(f"Message sent to {len(msg.recipients)} member(s).", "success")
    return redirect(url_for("communication.messages_sent"))


@bp.post("/messages/<int:recipient_id>/read")
@require_permission("messages.view")
def messages_mark_read(recipient_id: int):
    s = db_session()
    u = _current_user()
    r = s.get(MessageRecipient, recipient_id)
    member = member_for_user(s, u)
    # Only the addressee may mark a message read.
    if not r or not member or r.member_id != member.id:
        abort(404)
    if mark_read(s, r, u):
        s.commit()
    return redirect(url_for("communication.messages_inbox"))


@bp.post("/broadcasts/received/<int:recipient_id>/read")
@require_permission("messages.view")
def broadcasts_mark_read(recipient_id: int):
    s = db_session()
    u = _current_user()
    r = s.get(BroadcastRecipient, recipient_id)
    member = member_for_user(s, u)
    if not r or not member or r.member_id != member.id:
        abort(404)
    if mark_broadcast_read(r):
        s.commit()
    return redirect(url_for("communication.messages_inbox"))


@bp.get("/broadcasts")
@require_permission("messages.view")
def broadcasts_list():
    s = db_session()
    return render_template(
        "admin/communication/broadcasts.html",
        broadcasts=list_broadcasts(s),
        groups=s.query(Group).order_by(Group.name.asc()).all(),
        privileges=s.query(Privilege).order_by(Privilege.name.asc()).all(),
        audience_types=AUDIENCE_TYPES,
        delivery_methods=DELIVERY_METHODS,
        priorities=PRIORITIES,
    )


@bp.post("/broadcasts/new")
@require_permission("broadcasts.send")
def broadcasts_new_post():
    s = db_session()
    u = _current_user()
    audience_type = (request.form.get("audience_type") or "all").strip()
    payload = {
        "title": request.form.get("title"),
        "content": request.form.get("content"),
        "audience_type": audience_type,
        "audience_ids": parse_id_list(request.form.getlist(f"{audience_type}_ids")),
        "delivery_methods": [m.strip() for m in request.form.getlist("delivery_methods") if m.strip()],
        "priority": (request.form.get("priority") or "normal").strip(),
        "scheduled_for": _parse_datetime(request.form.get("scheduled_for")),
    }
    errors = validate_broadcast_payload(payload)
    if errors:
        for e in errors:
            flash(e, "danger")
        return redirect(url_for("communication.broadcasts_list"))
    b = create_broadcast(s, payload, u)
    s.commit()
    if b.status == "scheduled":
        flash(f"Broadcast scheduled for {b.scheduled_for:%Y-%m-%d %H:%M}.", "success")
    else:
        flash(f"Broadcast sent to {b.sent_count} member(s).", "success")
    return redirect(url_for("communication.broadcasts_list"))


@bp.post("/broadcasts/send-due")
@require_permission("broadcasts.send")
def broadcasts_send_due():
    s = db_session()
    u = _current_user()
    sent = send_due_broadcasts(s, u)
    s.commit()
    flash(f"{len(sent)} scheduled broadcast(s) delivered.", "success")
    return redirect(url_for("communication.broadcasts_list"))


@bp.get("/broadcasts/<int:broadcast_id>")
@require_permission("messages.view")
def broadcasts_detail(broadcast_id: int):
    s = db_session()
    b = s.get(Broadcast, broadcast_id)
    if not b:
        abort(404)
    return render_template("admin/communication/broadcast_detail.html", broadcast=b)
