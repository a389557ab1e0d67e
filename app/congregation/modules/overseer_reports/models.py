from __future__ import annotations

from datetime import date, datetime
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, Date, DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.congregation.models import Base

if TYPE_CHECKING:
    from app.congregation.modules.members.models import Group

SCHEDULE_STATUSES = ("scheduled", "completed", "pending")


class OverseerReport(Base):
    __tablename__ = "overseer_reports"
    __table_args__ = (
        UniqueConstraint("group_id", "month", name="uq_overseer_reports_group_month"),
        Index("idx_overseer_reports_month", "month"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    group_id: Mapped[int] = mapped_column(ForeignKey("groups.id", ondelete="CASCADE"), nullable=False)
    month: Mapped[str] = mapped_column(String(7), nullable=False)  # YYYY-MM
    visit_date: Mapped[date] = mapped_column(Date, nullable=False)

    meeting_attendance: Mapped[str | None] = mapped_column(Text, nullable=True)
    field_service_participation: Mapped[str | None] = mapped_column(Text, nullable=True)
    general_observations: Mapped[str | None] = mapped_column(Text, nullable=True)
    encouragement: Mapped[str | None] = mapped_column(Text, nullable=True)
    recommendations: Mapped[str | None] = mapped_column(Text, nullable=True)
    follow_up_needed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    follow_up_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    overseer_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    overseer_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    group: Mapped["Group"] = relationship("Group", lazy="selectin")
    members: Mapped[list["OverseerReportMember"]] = relationship(
        "OverseerReportMember",
        back_populates="report",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="OverseerReportMember.name",
    )

    @property
    def present_count(self) -> int:
        return sum(1 for m in self.members if m.present)

    @property
    def study_count(self) -> int:
        return sum(1 for m in self.members if m.has_study)

    @property
    def ministry_count(self) -> int:
        return sum(1 for m in self.members if m.participates_in_ministry)


class OverseerReportMember(Base):
    __tablename__ = "overseer_report_members"
    __table_args__ = (UniqueConstraint("report_id", "member_id", name="uq_overseer_report_members_report_member"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    report_id: Mapped[int] = mapped_column(ForeignKey("overseer_reports.id", ondelete="CASCADE"), nullable=False)
    member_id: Mapped[int | None] = mapped_column(ForeignKey("members.id", ondelete="SET NULL"), nullable=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)  # snapshot at visit time
    present: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    has_study: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    participates_in_ministry: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    field_service_hours: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    submitted_report: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    report: Mapped[OverseerReport] = relationship("OverseerReport", back_populates="members")


class GroupSchedule(Base):
    __tablename__ = "group_schedules"
    __table_args__ = (UniqueConstraint("group_id", "month", name="uq_group_schedules_group_month"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    group_id: Mapped[int] = mapped_column(ForeignKey("groups.id", ondelete="CASCADE"), nullable=False)
    month: Mapped[str] = mapped_column(String(7), nullable=False)
    scheduled_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending")
    completed_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    notes: Mapped[str | None] = mapped_column(String(512), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    group: Mapped["Group"] = relationship("Group", lazy="selectin")
