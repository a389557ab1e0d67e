from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import Date, DateTime, ForeignKey, Index, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.congregation.models import Base

if TYPE_CHECKING:
    from app.congregation.modules.members.models import Member

FREQUENCIES = ("Daily", "Weekly", "Monthly", "Quarterly", "Yearly")
TASK_STATUSES = ("Pending", "In Progress", "Completed", "Overdue")
PRIORITIES = ("Low", "Medium", "High")
INVENTORY_CATEGORIES = ("Cleaning Supplies", "Audio", "Visual", "Literature", "Furniture", "Maintenance", "Other")


class CleaningTask(Base):
    __tablename__ = "cleaning_tasks"
    __table_args__ = (
        Index("idx_cleaning_tasks_due", "due_date"),
        Index("idx_cleaning_tasks_status", "status"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    area: Mapped[str] = mapped_column(String(128), nullable=False)
    task: Mapped[str] = mapped_column(String(255), nullable=False)
    frequency: Mapped[str] = mapped_column(String(16), nullable=False, default="Weekly")
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="Pending")
    priority: Mapped[str] = mapped_column(String(16), nullable=False, default="Medium")
    due_date: Mapped[date] = mapped_column(Date, nullable=False)
    completed_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    # Day of month that monthly and longer schedules return to after a short month.
    anchor_day: Mapped[int | None] = mapped_column(Integer, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    assignee_id: Mapped[int | None] = mapped_column(ForeignKey("members.id", ondelete="SET NULL"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    assignee: Mapped["Member | None"] = relationship("Member", lazy="selectin")

    def effective_status(self, today: date | None = None) -> str:
        today = today or date.today()
        if self.status in ("Pending", "In Progress") and self.due_date < today:
            return "Overdue"
        return self.status


class InventoryItem(Base):
    __tablename__ = "inventory_items"
    __table_args__ = (Index("idx_inventory_items_category", "category"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    category: Mapped[str] = mapped_column(String(64), nullable=False, default="Other")
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    unit: Mapped[str | None] = mapped_column(String(32), nullable=True)
    min_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    location: Mapped[str | None] = mapped_column(String(255), nullable=True)
    supplier: Mapped[str | None] = mapped_column(String(255), nullable=True)
    cost: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    last_restocked: Mapped[date | None] = mapped_column(Date, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    @property
    def is_low_stock(self) -> bool:
        return self.quantity <= self.min_quantity
