from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.congregation.models import Base

if TYPE_CHECKING:
    from app.congregation.models import User
    from app.congregation.modules.members.models import Member

MESSAGE_TYPES = ("direct", "group", "broadcast")
PRIORITIES = ("low", "normal", "high", "urgent")
AUDIENCE_TYPES = ("all", "group", "privilege")
BROADCAST_STATUSES = ("draft", "scheduled", "sent")
DELIVERY_METHODS = ("in-app", "email", "sms")


class Message(Base):
    __tablename__ = "messages"
    __table_args__ = (Index("idx_messages_sender", "sender_user_id"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    sender_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    subject: Mapped[str] = mapped_column(String(255), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    message_type: Mapped[str] = mapped_column(String(16), nullable=False, default="direct")
    priority: Mapped[str] = mapped_column(String(16), nullable=False, default="normal")
    is_emergency: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    group_id: Mapped[int | None] = mapped_column(ForeignKey("groups.id", ondelete="SET NULL"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    sender: Mapped["User | None"] = relationship("User", lazy="selectin")
    recipients: Mapped[list["MessageRecipient"]] = relationship(
        "MessageRecipient",
        back_populates="message",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    @property
    def read_count(self) -> int:
        return sum(1 for r in self.recipients if r.read_at is not None)


class MessageRecipient(Base):
    __tablename__ = "message_recipients"
    __table_args__ = (
        UniqueConstraint("message_id", "member_id", name="uq_message_recipients_message_member"),
        Index("idx_message_recipients_member", "member_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    message_id: Mapped[int] = mapped_column(ForeignKey("messages.id", ondelete="CASCADE"), nullable=False)
    member_id: Mapped[int] = mapped_column(ForeignKey("members.id", ondelete="CASCADE"), nullable=False)
    read_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)

    message: Mapped[Message] = relationship("Message", back_populates="recipients")
    member: Mapped["Member"] = relationship("Member", lazy="selectin")


class Broadcast(Base):
    __tablename__ = "broadcasts"
    __table_args__ = (Index("idx_broadcasts_status", "status"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    audience_type: Mapped[str] = mapped_column(String(16), nullable=False, default="all")
    audience_ids: Mapped[list | None] = mapped_column(JSON, nullable=True)  # group or privilege ids
    delivery_methods: Mapped[list | None] = mapped_column(JSON, nullable=True)
    priority: Mapped[str] = mapped_column(String(16), nullable=False, default="normal")
    scheduled_for: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="draft")
    sent_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    sent_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    created_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    recipients: Mapped[list["BroadcastRecipient"]] = relationship(
        "BroadcastRecipient",
        back_populates="broadcast",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    @property
    def read_count(self) -> int:
        return sum(1 for r in self.recipients if r.read_at is not None)


class BroadcastRecipient(Base):
    __tablename__ = "broadcast_recipients"
    __table_args__ = (
        UniqueConstraint("broadcast_id", "member_id", name="uq_broadcast_recipients_broadcast_member"),
        Index("idx_broadcast_recipients_member", "member_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    broadcast_id: Mapped[int] = mapped_column(ForeignKey("broadcasts.id", ondelete="CASCADE"), nullable=False)
    member_id: Mapped[int] = mapped_column(ForeignKey("members.id", ondelete="CASCADE"), nullable=False)
    delivered_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    read_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)

    broadcast: Mapped[Broadcast] = relationship("Broadcast", back_populates="recipients")
    member: Mapped["Member"] = relationship("Member", lazy="selectin")
