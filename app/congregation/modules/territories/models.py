from __future__ import annotations

from datetime import date, datetime
from typing import TYPE_CHECKING

from sqlalchemy import JSON, Boolean, Date, DateTime, Float, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.congregation.models import Base

if TYPE_CHECKING:
    from app.congregation.modules.members.models import Group, Member

DIFFICULTIES = ("easy", "medium", "hard")
TERRITORY_TYPES = ("residential", "business", "rural", "apartment", "mixed")
ASSIGNMENT_STATUSES = ("assigned", "completed", "overdue", "returned")


class Territory(Base):
    __tablename__ = "territories"
    __table_args__ = (
        Index("idx_territories_group", "group_id"),
        Index("idx_territories_parent", "parent_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    number: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    boundary: Mapped[list | None] = mapped_column(JSON, nullable=True)  # [[lng, lat], ...]
    center_lat: Mapped[float | None] = mapped_column(Float, nullable=True)
    center_lng: Mapped[float | None] = mapped_column(Float, nullable=True)

    difficulty: Mapped[str] = mapped_column(String(16), nullable=False, default="medium")
    territory_type: Mapped[str] = mapped_column(String(32), nullable=False, default="residential")
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    estimated_hours: Mapped[int | None] = mapped_column(Integer, nullable=True, default=2)
    household_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    last_worked: Mapped[date | None] = mapped_column(Date, nullable=True)

    group_id: Mapped[int | None] = mapped_column(ForeignKey("groups.id", ondelete="SET NULL"), nullable=True)
    parent_id: Mapped[int | None] = mapped_column(ForeignKey("territories.id", ondelete="SET NULL"), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    created_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    group: Mapped["Group | None"] = relationship("Group", lazy="selectin")
    parent: Mapped["Territory | None"] = relationship("Territory", remote_side=[id], back_populates="children")
    children: Mapped[list["Territory"]] = relationship("Territory", back_populates="parent")
    assignments: Mapped[list["TerritoryAssignment"]] = relationship(
        "TerritoryAssignment",
        back_populates="territory",
        cascade="all, delete-orphan",
        order_by="TerritoryAssignment.assigned_date.desc()",
    )

    @property
    def current_assignment(self) -> "TerritoryAssignment | None":
        for a in self.assignments:
            if a.status in ("assigned", "overdue"):
                return a
        return None


class TerritoryAssignment(Base):
    __tablename__ = "territory_assignments"
    __table_args__ = (
        Index("idx_territory_assignments_territory", "territory_id"),
        Index("idx_territory_assignments_status", "status"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    territory_id: Mapped[int] = mapped_column(ForeignKey("territories.id", ondelete="CASCADE"), nullable=False)
    publisher_id: Mapped[int | None] = mapped_column(ForeignKey("members.id", ondelete="SET NULL"), nullable=True)

    assigned_date: Mapped[date] = mapped_column(Date, nullable=False)
    due_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    returned_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="assigned")

    hours_worked: Mapped[int | None] = mapped_column(Integer, nullable=True)
    households_visited: Mapped[int | None] = mapped_column(Integer, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    assigned_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    territory: Mapped[Territory] = relationship("Territory", back_populates="assignments")
    publisher: Mapped["Member | None"] = relationship("Member", lazy="selectin")

    def is_overdue(self, today: date | None = None) -> bool:
        today = today or date.today()
        return self.status in ("assigned", "overdue") and self.due_date is not None and self.due_date < today
