from __future__ import annotations

from datetime import datetime, timedelta, tzinfo
from typing import Iterable

from ..models import ACTIVE_STATUSES, HuntType
from .errors import ErrorKind
from .policy import PolicyConfig
from .rules import validate_rules
from .snapshots import BookingProposal, BookingSnapshot, ValidationResult

MIN_DURATION = timedelta(hours=1)
MAX_DURATION = timedelta(hours=12)


def _require_aware(*values: datetime) -> None:
    for value in values:
        if value.tzinfo is None:
            raise ValueError("datetime must be timezone-aware")


def validate_window(start: datetime, end: datetime, now: datetime) -> ValidationResult:
    """Physical plausibility of a booking window, independent of club policy."""
    _require_aware(start, end, now)
    if start < now:
        return ValidationResult.fail(ErrorKind.IN_PAST, "Cannot book in the past")
    if end <= start:
        return ValidationResult.fail(ErrorKind.INVERTED_OR_ZERO, "End time must be after start time")
    duration = end - start
    if duration < MIN_DURATION:
        return ValidationResult.fail(ErrorKind.TOO_SHORT, "Booking must be at least 1 hour")
    if duration > MAX_DURATION:
        return ValidationResult.fail(ErrorKind.TOO_LONG, "Booking cannot exceed 12 hours")
    return ValidationResult.ok()


def overlaps(existing: BookingSnapshot, start: datetime, end: datetime) -> bool:
    # Half-open intervals: back-to-back bookings do not overlap.
    return existing.starts_at < end and existing.ends_at > start


def find_conflict(
    stand_id: int,
    start: datetime,
    end: datetime,
    active: Iterable[BookingSnapshot],
    exclude_id: int | None = None,
) -> BookingSnapshot | None:
    """
    Return the earliest-starting active booking of ``stand_id`` that overlaps
    ``[start, end)``, or None. Bookings of other stands, non-active bookings and
    ``exclude_id`` are ignored even if the caller passes them in.
    """
    conflicts = [
        booking
        for booking in active
        if booking.stand_id == stand_id
        and booking.status in ACTIVE_STATUSES
        and (exclude_id is None or booking.id != exclude_id)
        and overlaps(booking, start, end)
    ]
    if not conflicts:
        return None
    return min(conflicts, key=lambda b: (b.starts_at, b.id))


def classify_hunt_type(start: datetime, tz: tzinfo) -> HuntType:
    hour = start.astimezone(tz).hour
    if 4 <= hour < 11:
        return HuntType.MORNING
    if 14 <= hour < 20:
        return HuntType.EVENING
    return HuntType.ALL_DAY


def validate_booking(
    proposal: BookingProposal,
    policy: PolicyConfig,
    now: datetime,
    *,
    stand_bookings: Iterable[BookingSnapshot],
    owner_bookings: Iterable[BookingSnapshot],
    exclude_id: int | None = None,
) -> ValidationResult:
    """
    Window sanity, then conflicts, then club policy. The first failure is
    returned; nothing after it is evaluated.

    ``stand_bookings`` are the active bookings of the proposed stand.
    ``owner_bookings`` are the owner's club-wide bookings; the consecutive-days
    and guest rules narrow them to what they need. ``exclude_id`` removes the
    booking being edited from both collections.
    """
    result = validate_window(proposal.starts_at, proposal.ends_at, now)
    if not result.valid:
        return result

    existing = find_conflict(
        proposal.stand_id,
        proposal.starts_at,
        proposal.ends_at,
        stand_bookings,
        exclude_id=exclude_id,
    )
    if existing is not None:
        local_start = existing.starts_at.astimezone(policy.tz)
        local_end = existing.ends_at.astimezone(policy.tz)
        return ValidationResult.fail(
            ErrorKind.CONFLICT,
            f"This stand is already booked from {local_start:%Y-%m-%d %H:%M} to {local_end:%H:%M}",
            conflict=existing,
        )

    others = [b for b in owner_bookings if exclude_id is None or b.id != exclude_id]
    return validate_rules(proposal, policy, now, owner_bookings=others)
