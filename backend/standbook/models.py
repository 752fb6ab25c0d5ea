from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import Optional

from sqlalchemy import JSON, Boolean, CheckConstraint, Enum, ForeignKey, Index, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.sql.sqltypes import BigInteger, DateTime, Integer, String, Text


class Base(DeclarativeBase):
    pass


class BookingStatus(StrEnum):
    CONFIRMED = "confirmed"
    CHECKED_IN = "checked-in"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no-show"


ACTIVE_STATUSES = frozenset({BookingStatus.CONFIRMED, BookingStatus.CHECKED_IN})
GUEST_COUNTED_STATUSES = frozenset({BookingStatus.CONFIRMED, BookingStatus.CHECKED_IN, BookingStatus.COMPLETED})


class HuntType(StrEnum):
    MORNING = "morning"
    EVENING = "evening"
    ALL_DAY = "all-day"


class MemberRole(StrEnum):
    OWNER = "owner"
    ADMIN = "admin"
    MEMBER = "member"
    GUEST = "guest"


def _str_enum(enum_cls: type[StrEnum]) -> Enum:
    return Enum(
        enum_cls,
        values_callable=lambda cls: [e.value for e in cls],
        native_enum=False,
    )


class User(Base):
    __tablename__ = "users"
    __table_args__ = (UniqueConstraint("email", name="uq_users_email"),)

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)


class Club(Base):
    __tablename__ = "clubs"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    timezone: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)

    stands: Mapped[list["Stand"]] = relationship(back_populates="club")
    policy: Mapped[Optional["ClubPolicy"]] = relationship(back_populates="club")


class ClubMember(Base):
    __tablename__ = "club_members"
    __table_args__ = (
        UniqueConstraint("club_id", "user_id", name="uq_club_members"),
        Index("idx_club_members_user", "user_id"),
    )

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    club_id: Mapped[int] = mapped_column(ForeignKey("clubs.id"), nullable=False)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    role: Mapped[MemberRole] = mapped_column(_str_enum(MemberRole), nullable=False, default=MemberRole.MEMBER)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)


class ClubPolicy(Base):
    __tablename__ = "club_policies"
    __table_args__ = (
        CheckConstraint("max_days_in_advance IS NULL OR max_days_in_advance >= 0", name="chk_policy_advance"),
        CheckConstraint("min_advance_hours IS NULL OR min_advance_hours >= 0", name="chk_policy_notice"),
    )

    club_id: Mapped[int] = mapped_column(ForeignKey("clubs.id"), primary_key=True)
    max_days_in_advance: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    min_advance_hours: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    max_consecutive_days: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    # ISO dates ("2024-11-23"), calendar days in the club's zone
    blackout_dates: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    allow_guests: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    guests_require_approval: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    max_guest_days: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)

    club: Mapped["Club"] = relationship(back_populates="policy")


class Stand(Base):
    __tablename__ = "stands"
    __table_args__ = (Index("idx_stands_club", "club_id"),)

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    club_id: Mapped[int] = mapped_column(ForeignKey("clubs.id"), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)

    club: Mapped["Club"] = relationship(back_populates="stands")
    bookings: Mapped[list["Booking"]] = relationship(back_populates="stand")


class Booking(Base):
    __tablename__ = "bookings"
    __table_args__ = (
        CheckConstraint("starts_at < ends_at", name="chk_bookings_time"),
        Index("idx_bookings_stand_status", "stand_id", "status"),
        Index("idx_bookings_user_club", "user_id", "club_id"),
    )

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    stand_id: Mapped[int] = mapped_column(ForeignKey("stands.id"), nullable=False)
    club_id: Mapped[int] = mapped_column(ForeignKey("clubs.id"), nullable=False)
    user_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    starts_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    ends_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    status: Mapped[BookingStatus] = mapped_column(
        _str_enum(BookingStatus),
        nullable=False,
        default=BookingStatus.CONFIRMED,
    )
    hunt_type: Mapped[Optional[HuntType]] = mapped_column(_str_enum(HuntType), nullable=True)
    is_guest: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    check_in_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=False), nullable=True)
    check_out_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=False), nullable=True)
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=False), nullable=True)
    cancellation_reason: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)

    stand: Mapped["Stand"] = relationship(back_populates="bookings")
