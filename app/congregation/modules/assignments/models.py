from __future__ import annotations

from datetime import date, datetime
from typing import TYPE_CHECKING

from sqlalchemy import Date, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.congregation.models import Base

if TYPE_CHECKING:
    from app.congregation.modules.members.models import Member

MEETING_TYPES = ("Midweek", "Weekend")
ASSIGNMENT_TYPES = ("Watchtower Reader", "Bible Student Reader", "Life and Ministry", "Public Talk Speaker")


class Assignment(Base):
    __tablename__ = "assignments"
    __table_args__ = (
        Index("idx_assignments_week", "week"),
        Index("idx_assignments_assignee", "assignee_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    week: Mapped[date] = mapped_column(Date, nullable=False)  # Monday of the meeting week
    meeting_type: Mapped[str] = mapped_column(String(16), nullable=False, default="Midweek")
    assignment_type: Mapped[str] = mapped_column(String(64), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    source: Mapped[str | None] = mapped_column(String(255), nullable=True)
    duration: Mapped[int | None] = mapped_column(Integer, nullable=True)  # minutes

    assignee_id: Mapped[int | None] = mapped_column(ForeignKey("members.id", ondelete="SET NULL"), nullable=True)
    assistant_id: Mapped[int | None] = mapped_column(ForeignKey("members.id", ondelete="SET NULL"), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    created_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    assignee: Mapped["Member | None"] = relationship("Member", foreign_keys=[assignee_id], lazy="selectin")
    assistant: Mapped["Member | None"] = relationship("Member", foreign_keys=[assistant_id], lazy="selectin")
