from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING

from app.congregation.audit import record_event
from app.congregation.modules.communication.models import AUDIENCE_TYPES, DELIVERY_METHODS, PRIORITIES

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.congregation.models import User
    from app.congregation.modules.communication.models import Broadcast, BroadcastRecipient, Message, MessageRecipient
    from app.congregation.modules.members.models import Member

logger = logging.getLogger(__name__)


def member_for_user(s: "Session", user: "User") -> "Member | None":
    from app.congregation.modules.members.models import Member

    return s.query(Member).filter(Member.user_id == user.id).one_or_none()


def validate_message_payload(payload: dict) -> list[str]:
    errors = []
    if not (payload.get("subject") or "").strip():
        errors.append("Subject is required.")
    if not (payload.get("content") or "").strip():
        errors.append("Message content is required.")
    if (payload.get("priority") or "normal") not in PRIORITIES:
        errors.append("Unknown priority.")
    if not payload.get("member_ids") and not payload.get("group_id"):
        errors.append("Choose at least one recipient or a group.")
    return errors


def resolve_message_recipients(s: "Session", *, member_ids: list[int] | None = None, group_id: int | None = None) -> list["Member"]:
    """Active members addressed by explicit ids and/or a whole group, without duplicates."""
    from app.congregation.modules.members.models import Member

    seen: dict[int, Member] = {}
    if member_ids:
        for m in s.query(Member).filter(Member.id.in_(member_ids), Member.is_active.is_(True)).all():
            seen[m.id] = m
    if group_id:
        for m in s.query(Member).filter(Member.group_id == group_id, Member.is_active.is_(True)).all():
            seen.setdefault(m.id, m)
    return sorted(seen.values(), key=lambda m: m.full_name.lower())


def send_message(s: "Session", payload: dict, user: "User") -> "Message":
    from app.congregation.modules.communication.models import Message, MessageRecipient

    group_id = payload.get("group_id")
    recipients = resolve_message_recipients(s, member_ids=payload.get("member_ids"), group_id=group_id)
    if not recipients:
        raise ValueError("No active members match the chosen recipients.")

    msg = Message(
        sender_user_id=user.id,
        subject=payload["subject"].strip(),
        content=payload["content"].strip(),
        message_type="group" if group_id else "direct",
        priority=payload.get("priority") or "normal",
        is_emergency=bool(payload.get("is_emergency")),
        group_id=group_id,
    )
    msg.recipients = [MessageRecipient(member_id=m.id) for m in recipients]
    s.add(msg)
    s.flush()
    record_event(
        s,
        actor=user,
        action="message.send",
        entity_type="Message",
        entity_id=str(msg.id),
        metadata={"type": msg.message_type, "recipient_count": len(recipients), "emergency": msg.is_emergency},
    )
    return msg


def inbox(s: "Session", member: "Member", *, unread_only: bool = False) -> list["MessageRecipient"]:
    from app.congregation.modules.communication.models import Message, MessageRecipient

    q = s.query(MessageRecipient).join(Message).filter(MessageRecipient.member_id == member.id)
    if unread_only:
        q = q.filter(MessageRecipient.read_at.is_(None))
    return q.order_by(Message.created_at.desc(), Message.id.desc()).all()


def unread_count(s: "Session", member: "Member | None") -> int:
    from app.congregation.modules.communication.models import MessageRecipient

    if member is None:
        return 0
    return (
        s.query(MessageRecipient)
        .filter(MessageRecipient.member_id == member.id, MessageRecipient.read_at.is_(None))
        .count()
    )


def sent_messages(s: "Session", user: "User") -> list["Message"]:
    from app.congregation.modules.communication.models import Message

    return s.query(Message).filter(Message.sender_user_id == user.id).order_by(Message.created_at.desc(), Message.id.desc()).all()


def mark_read(s: "Session", recipient: "MessageRecipient", user: "User") -> bool:
    """Returns False when the message was already read."""
    if recipient.read_at is not None:
        return False
    recipient.read_at = datetime.utcnow()
    record_event(
        s,
        actor=user,
        action="message.read",
        entity_type="Message",
        entity_id=str(recipient.message_id),
        metadata={"member_id": recipient.member_id},
    )
    return True


# ============================================================================
# BROADCASTS
# ============================================================================


def validate_broadcast_payload(payload: dict) -> list[str]:
    errors = []
    if not (payload.get("title") or "").strip():
        errors.append("Title is required.")
    if not (payload.get("content") or "").strip():
        errors.append("Broadcast content is required.")
    audience = payload.get("audience_type") or "all"
    if audience not in AUDIENCE_TYPES:
        errors.append("Unknown audience.")
    elif audience != "all" and not payload.get("audience_ids"):
        errors.append(f"Choose at least one {audience}.")
    for method in payload.get("delivery_methods") or []:
        if method not in DELIVERY_METHODS:
            errors.append(f"Unknown delivery method '{method}'.")
    if (payload.get("priority") or "normal") not in PRIORITIES:
        errors.append("Unknown priority.")
    return errors


def resolve_audience(s: "Session", audience_type: str, audience_ids: list[int] | None) -> list["Member"]:
    from app.congregation.modules.members.models import Member, Privilege

    q = s.query(Member).filter(Member.is_active.is_(True))
    if audience_type == "group":
        q = q.filter(Member.group_id.in_(audience_ids or []))
    elif audience_type == "privilege":
        q = q.filter(Member.privileges.any(Privilege.id.in_(audience_ids or [])))
    elif audience_type != "all":
        raise ValueError(f"Unknown audience '{audience_type}'.")
    return q.order_by(Member.full_name.asc()).all()


def _deliver(s: "Session", b: "Broadcast", now: datetime) -> int:
    from app.congregation.modules.communication.models import BroadcastRecipient

    members = resolve_audience(s, b.audience_type, b.audience_ids)
    b.recipients = [BroadcastRecipient(member_id=m.id, delivered_at=now) for m in members]
    b.sent_count = len(members)
    b.sent_at = now
    b.status = "sent"
    return b.sent_count


def create_broadcast(s: "Session", payload: dict, user: "User", *, now: datetime | None = None) -> "Broadcast":
    from app.congregation.modules.communication.models import Broadcast

    now = now or datetime.utcnow()
    scheduled_for = payload.get("scheduled_for")
    b = Broadcast(
        title=payload["title"].strip(),
        content=payload["content"].strip(),
        audience_type=payload.get("audience_type") or "all",
        audience_ids=list(payload.get("audience_ids") or []) or None,
        delivery_methods=list(payload.get("delivery_methods") or ["in-app"]),
        priority=payload.get("priority") or "normal",
        scheduled_for=scheduled_for,
        status="draft",
        created_by_user_id=user.id,
    )
    s.add(b)
    if scheduled_for and scheduled_for > now:
        b.status = "scheduled"
    else:
        _deliver(s, b, now)
    s.flush()
    record_event(
        s,
        actor=user,
        action="broadcast.create",
        entity_type="Broadcast",
        entity_id=str(b.id),
        metadata={"status": b.status, "audience": b.audience_type, "sent_count": b.sent_count},
    )
    return b


def send_due_broadcasts(s: "Session", user: "User", *, now: datetime | None = None) -> list["Broadcast"]:
    """Deliver every scheduled broadcast whose time has come. Run on demand."""
    from app.congregation.modules.communication.models import Broadcast

    now = now or datetime.utcnow()
    due = (
        s.query(Broadcast)
        .filter(Broadcast.status == "scheduled", Broadcast.scheduled_for <= now)
        .order_by(Broadcast.scheduled_for.asc())
        .all()
    )
    for b in due:
        _deliver(s, b, now)
        record_event(
            s,
            actor=user,
            action="broadcast.send",
            entity_type="Broadcast",
            entity_id=str(b.id),
            metadata={"sent_count": b.sent_count},
        )
    if due:
        logger.info("Delivered %s scheduled broadcast(s)", len(due))
    return due


def list_broadcasts(s: "Session") -> list["Broadcast"]:
    from app.congregation.modules.communication.models import Broadcast

    return s.query(Broadcast).order_by(Broadcast.created_at.desc(), Broadcast.id.desc()).all()


def broadcasts_for_member(s: "Session", member: "Member") -> list["BroadcastRecipient"]:
    from app.congregation.modules.communication.models import Broadcast, BroadcastRecipient

    return (
        s.query(BroadcastRecipient)
        .join(Broadcast)
        .filter(BroadcastRecipient.member_id == member.id)
        .order_by(Broadcast.sent_at.desc(), Broadcast.id.desc())
        .all()
    )


def mark_broadcast_read(recipient: "BroadcastRecipient") -> bool:
    if recipient.read_at is not None:
        return False
    recipient.read_at = datetime.utcnow()
    return True
