from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.congregation.models import Base

if TYPE_CHECKING:
    from app.congregation.modules.members.models import Member


class FieldServiceReport(Base):
    """
    One monthly report per member. `month` is a "YYYY-MM" key.

    `pioneer_status` is stamped when the report is submitted so that a change of
    status later in the year does not rewrite earlier months.
    """

    __tablename__ = "field_service_reports"
    __table_args__ = (
        UniqueConstraint("member_id", "month", name="uq_field_service_reports_member_month"),
        Index("idx_field_service_reports_month", "month"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    member_id: Mapped[int] = mapped_column(ForeignKey("members.id", ondelete="CASCADE"), nullable=False)
    month: Mapped[str] = mapped_column(String(7), nullable=False)

    hours: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    bible_studies: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    participated: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    pioneer_status: Mapped[str] = mapped_column(String(16), nullable=False, default="none")
    comments: Mapped[str | None] = mapped_column(Text, nullable=True)

    submitted_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    submitted_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    member: Mapped["Member"] = relationship("Member", lazy="selectin")

    @property
    def is_auxiliary(self) -> bool:
        return self.pioneer_status == "auxiliary"

    @property
    def is_regular_pioneer(self) -> bool:
        return self.pioneer_status in ("regular", "special")
