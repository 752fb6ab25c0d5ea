from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, Field, field_serializer

from .domain.errors import ErrorKind
from .domain.policy import UNRESTRICTED_GUESTS, GuestRestrictions, PolicyConfig
from .domain.snapshots import ValidationResult
from .models import Booking, BookingStatus, HuntType
from .utils.time import utc_naive_to_aware


class BookingWindow(BaseModel):
    starts_at: datetime
    ends_at: datetime


class BookingValidate(BookingWindow):
    stand_id: int
    exclude_booking_id: Optional[int] = None


class BookingCreate(BookingWindow):
    stand_id: int
    hunt_type: Optional[HuntType] = None
    notes: Optional[str] = Field(default=None, max_length=2000)


class BookingUpdate(BookingWindow):
    stand_id: Optional[int] = None
    hunt_type: Optional[HuntType] = None
    notes: Optional[str] = Field(default=None, max_length=2000)


class BookingCancel(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=500)


class ConflictRead(BaseModel):
    booking_id: int
    starts_at: datetime
    ends_at: datetime


class ValidationRead(BaseModel):
    valid: bool
    error: Optional[str] = None
    kind: Optional[ErrorKind] = None
    conflict: Optional[ConflictRead] = None
    days_before: Optional[int] = None
    days_after: Optional[int] = None
    days_used: Optional[int] = None
    requires_approval: bool = False

    @classmethod
    def from_result(cls, result: ValidationResult) -> "ValidationRead":
        conflict = None
        if result.conflict is not None:
            conflict = ConflictRead(
                booking_id=result.conflict.id,
                starts_at=result.conflict.starts_at,
                ends_at=result.conflict.ends_at,
            )
        return cls(
            valid=result.valid,
            error=result.error,
            kind=result.kind,
            conflict=conflict,
            days_before=result.days_before,
            days_after=result.days_after,
            days_used=result.days_used,
            requires_approval=result.requires_approval,
        )


class BookingRead(BaseModel):
    booking_id: int
    stand_id: int
    club_id: int
    user_id: int
    starts_at: datetime
    ends_at: datetime
    status: BookingStatus
    hunt_type: Optional[HuntType]
    is_guest: bool
    notes: Optional[str] = None
    check_in_at: Optional[datetime] = None
    check_out_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None

    @field_serializer("starts_at", "ends_at", "check_in_at", "check_out_at", "cancelled_at")
    def _ser_datetime(self, dt: Optional[datetime]) -> Optional[str]:
        return dt.isoformat() if dt is not None else None

    @classmethod
    def from_db(cls, *, booking: Booking) -> "BookingRead":
        def aware(value: Optional[datetime]) -> Optional[datetime]:
            return utc_naive_to_aware(value) if value is not None else None

        return cls(
            booking_id=booking.id,
            stand_id=booking.stand_id,
            club_id=booking.club_id,
            user_id=booking.user_id,
            starts_at=utc_naive_to_aware(booking.starts_at),
            ends_at=utc_naive_to_aware(booking.ends_at),
            status=booking.status,
            hunt_type=booking.hunt_type,
            is_guest=booking.is_guest,
            notes=booking.notes,
            check_in_at=aware(booking.check_in_at),
            check_out_at=aware(booking.check_out_at),
            cancelled_at=aware(booking.cancelled_at),
            cancellation_reason=booking.cancellation_reason,
        )


class NextAvailableRead(BaseModel):
    stand_id: int
    available_from: datetime


class GuestRestrictionsSchema(BaseModel):
    allow_guests: bool = True
    requires_approval: bool = True
    max_guest_days: Optional[int] = Field(default=2, ge=0)


class PolicySchema(BaseModel):
    max_days_in_advance: Optional[int] = Field(default=30, ge=0)
    min_advance_hours: Optional[int] = Field(default=0, ge=0)
    max_consecutive_days: Optional[int] = Field(default=3, ge=0)
    blackout_dates: list[date] = Field(default_factory=list)
    # Always present; "no guest rule" is allow_guests with no quota and no approval.
    guest_restrictions: GuestRestrictionsSchema = Field(default_factory=GuestRestrictionsSchema)

    @classmethod
    def from_config(cls, policy: PolicyConfig) -> "PolicySchema":
        guests = policy.guest_restrictions or UNRESTRICTED_GUESTS
        return cls(
            max_days_in_advance=policy.max_days_in_advance,
            min_advance_hours=policy.min_advance_hours,
            max_consecutive_days=policy.max_consecutive_days,
            blackout_dates=sorted(policy.blackout_dates),
            guest_restrictions=GuestRestrictionsSchema(
                allow_guests=guests.allow_guests,
                requires_approval=guests.requires_approval,
                max_guest_days=guests.max_guest_days,
            ),
        )

    def to_config(self) -> PolicyConfig:
        guests = self.guest_restrictions
        return PolicyConfig(
            max_days_in_advance=self.max_days_in_advance,
            min_advance_hours=self.min_advance_hours,
            max_consecutive_days=self.max_consecutive_days,
            blackout_dates=frozenset(self.blackout_dates),
            guest_restrictions=GuestRestrictions(
                allow_guests=guests.allow_guests,
                requires_approval=guests.requires_approval,
                max_guest_days=guests.max_guest_days,
            ),
        )
