from __future__ import annotations

from datetime import date, datetime

from sqlalchemy import Boolean, Column, Date, DateTime, ForeignKey, Index, Integer, String, Table, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.congregation.models import Base

MEMBER_ROLES = ("publisher", "unbaptized", "ministerial_servant", "elder")
PIONEER_STATUSES = ("none", "auxiliary", "regular", "special")
GENDERS = ("male", "female")


member_privileges = Table(
    "member_privileges",
    Base.metadata,
    Column("member_id", ForeignKey("members.id", ondelete="CASCADE"), primary_key=True),
    Column("privilege_id", ForeignKey("privileges.id", ondelete="CASCADE"), primary_key=True),
)


class Group(Base):
    __tablename__ = "groups"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False, unique=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    members: Mapped[list["Member"]] = relationship("Member", back_populates="group")


class Privilege(Base):
    __tablename__ = "privileges"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False, unique=True)
    description: Mapped[str | None] = mapped_column(String(512), nullable=True)
    # Members holding this privilege are left out of activity summaries (e.g. "Infirm").
    exclude_from_activities: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)


class Member(Base):
    __tablename__ = "members"
    __table_args__ = (
        Index("idx_members_group", "group_id"),
        Index("idx_members_name", "full_name"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    gender: Mapped[str] = mapped_column(String(16), nullable=False, default="male")
    email: Mapped[str | None] = mapped_column(String(320), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(64), nullable=True)
    address: Mapped[str | None] = mapped_column(String(512), nullable=True)
    dob: Mapped[date | None] = mapped_column(Date, nullable=True)
    baptized_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    role: Mapped[str] = mapped_column(String(32), nullable=False, default="publisher")
    pioneer_status: Mapped[str] = mapped_column(String(16), nullable=False, default="none")
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    group_id: Mapped[int | None] = mapped_column(ForeignKey("groups.id", ondelete="SET NULL"), nullable=True)
    user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True, unique=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    group: Mapped["Group | None"] = relationship("Group", back_populates="members", lazy="selectin")
    privileges: Mapped[list[Privilege]] = relationship(secondary=member_privileges, lazy="selectin")
    duties: Mapped[list["MemberDuty"]] = relationship(
        "MemberDuty",
        back_populates="member",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    @property
    def is_pioneer(self) -> bool:
        return self.pioneer_status in ("regular", "special")

    @property
    def excluded_from_activities(self) -> bool:
        return any(p.exclude_from_activities for p in self.privileges)


class MemberDuty(Base):
    __tablename__ = "member_duties"
    __table_args__ = (Index("idx_member_duties_member", "member_id"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    member_id: Mapped[int] = mapped_column(ForeignKey("members.id", ondelete="CASCADE"), nullable=False)
    name: Mapped[str] = mapped_column(String(128), nullable=False)  # e.g. "Watchtower Reader"
    category: Mapped[str | None] = mapped_column(String(64), nullable=True)
    assigned_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    member: Mapped[Member] = relationship("Member", back_populates="duties")
