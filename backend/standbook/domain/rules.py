"""
Club policy rules for stand bookings.

Rules run in a fixed order and stop at the first failure so the member is told
the one reason that blocks the booking. Calendar-date comparisons are made in
the club's zone (``PolicyConfig.tz``), never on raw instants.
"""
from __future__ import annotations

from datetime import date, datetime, time, timedelta, tzinfo
from typing import Iterable

from ..models import ACTIVE_STATUSES, GUEST_COUNTED_STATUSES
from ..utils.time import local_date
from .errors import ErrorKind
from .policy import GuestRestrictions, PolicyConfig
from .snapshots import BookingProposal, BookingSnapshot, ValidationResult

GUEST_LOOKBACK = timedelta(days=90)
NEXT_AVAILABLE_HORIZON_DAYS = 30
NEXT_AVAILABLE_HOUR = time(6, 0)


def check_advance_window(start: datetime, now: datetime, max_days_in_advance: int | None) -> ValidationResult:
    if max_days_in_advance and start > now + timedelta(days=max_days_in_advance):
        return ValidationResult.fail(
            ErrorKind.TOO_FAR_IN_ADVANCE,
            f"Bookings can only be made {max_days_in_advance} days in advance",
        )
    return ValidationResult.ok()


def check_min_notice(start: datetime, now: datetime, min_advance_hours: int | None) -> ValidationResult:
    if min_advance_hours and start < now + timedelta(hours=min_advance_hours):
        return ValidationResult.fail(
            ErrorKind.NOT_ENOUGH_NOTICE,
            f"Bookings must be made at least {min_advance_hours} hours in advance",
        )
    return ValidationResult.ok()


def is_blackout_date(start: datetime, blackout_dates: Iterable[date], tz: tzinfo) -> bool:
    return local_date(start, tz) in set(blackout_dates)


def count_consecutive_days(
    proposed_day: date,
    booked_days: set[date],
    limit: int,
) -> tuple[int, int]:
    """
    Length of the run of booked days directly before and after ``proposed_day``.
    Each walk stops at the first gap and never goes further than ``limit`` days.
    """
    days_before = 0
    for offset in range(1, limit + 1):
        if proposed_day - timedelta(days=offset) not in booked_days:
            break
        days_before += 1

    days_after = 0
    for offset in range(1, limit + 1):
        if proposed_day + timedelta(days=offset) not in booked_days:
            break
        days_after += 1

    return days_before, days_after


def _consecutive_message(limit: int, days_before: int, days_after: int) -> str:
    held = []
    if days_before:
        held.append(f"{days_before} days before")
    if days_after:
        held.append(f"{days_after} days after")
    return (
        f"You can only book this stand for {limit} consecutive days. "
        f"You already have {' and '.join(held)} this date."
    )


def check_consecutive_days(
    proposal: BookingProposal,
    owner_bookings: Iterable[BookingSnapshot],
    max_consecutive_days: int | None,
    tz: tzinfo,
) -> ValidationResult:
    if not max_consecutive_days:
        return ValidationResult.ok()

    # Same owner, same stand, same club, active only.
    booked_days = {
        local_date(b.starts_at, tz)
        for b in owner_bookings
        if b.user_id == proposal.user_id
        and b.stand_id == proposal.stand_id
        and b.club_id == proposal.club_id
        and b.status in ACTIVE_STATUSES
    }
    days_before, days_after = count_consecutive_days(
        local_date(proposal.starts_at, tz),
        booked_days,
        max_consecutive_days,
    )
    if days_before + 1 + days_after > max_consecutive_days:
        return ValidationResult.fail(
            ErrorKind.CONSECUTIVE_LIMIT_EXCEEDED,
            _consecutive_message(max_consecutive_days, days_before, days_after),
            days_before=days_before,
            days_after=days_after,
        )
    return ValidationResult.ok()


def guest_days_used(
    proposal: BookingProposal,
    owner_bookings: Iterable[BookingSnapshot],
    now: datetime,
    tz: tzinfo,
) -> set[date]:
    """Distinct local days the owner has booked in the club over the trailing 90 days."""
    since = now - GUEST_LOOKBACK
    return {
        local_date(b.starts_at, tz)
        for b in owner_bookings
        if b.user_id == proposal.user_id
        and b.club_id == proposal.club_id
        and b.status in GUEST_COUNTED_STATUSES
        and b.starts_at >= since
    }


def check_guest_limit(
    proposal: BookingProposal,
    owner_bookings: Iterable[BookingSnapshot],
    restrictions: GuestRestrictions,
    now: datetime,
    tz: tzinfo,
) -> ValidationResult:
    if not restrictions.allow_guests:
        return ValidationResult.fail(ErrorKind.GUESTS_NOT_ALLOWED, "Guest bookings are not allowed")

    max_days = restrictions.max_guest_days
    if max_days:
        used = guest_days_used(proposal, owner_bookings, now, tz)
        # Only a new distinct day can overflow the quota.
        if local_date(proposal.starts_at, tz) not in used and len(used) >= max_days:
            return ValidationResult.fail(
                ErrorKind.GUEST_QUOTA_EXCEEDED,
                f"Guest bookings are limited to {max_days} days per season. You have used {len(used)} days.",
                days_used=len(used),
            )
    return ValidationResult.ok(requires_approval=restrictions.requires_approval)


def validate_rules(
    proposal: BookingProposal,
    policy: PolicyConfig,
    now: datetime,
    *,
    owner_bookings: Iterable[BookingSnapshot],
) -> ValidationResult:
    owner_bookings = list(owner_bookings)
    start = proposal.starts_at

    for result in (
        check_advance_window(start, now, policy.max_days_in_advance),
        check_min_notice(start, now, policy.min_advance_hours),
    ):
        if not result.valid:
            return result

    if policy.blackout_dates and is_blackout_date(start, policy.blackout_dates, policy.tz):
        return ValidationResult.fail(
            ErrorKind.BLACKED_OUT,
            "This date is not available for booking (work day, special event, etc.)",
        )

    result = check_consecutive_days(proposal, owner_bookings, policy.max_consecutive_days, policy.tz)
    if not result.valid:
        return result

    if proposal.is_guest and policy.guest_restrictions is not None:
        return check_guest_limit(proposal, owner_bookings, policy.guest_restrictions, now, policy.tz)
    return ValidationResult.ok()


def next_open_day(
    bookings: Iterable[BookingSnapshot],
    start: datetime,
    tz: tzinfo,
    horizon_days: int = NEXT_AVAILABLE_HORIZON_DAYS,
) -> datetime:
    """
    First day, from 06:00 local on ``start``'s date, on which no active booking
    starts. Falls back to ``horizon_days`` out when every day is taken.
    """
    booked_days = {local_date(b.starts_at, tz) for b in bookings if b.status in ACTIVE_STATUSES}
    day = local_date(start, tz)
    for offset in range(horizon_days):
        candidate = day + timedelta(days=offset)
        if candidate not in booked_days:
            return datetime.combine(candidate, NEXT_AVAILABLE_HOUR, tzinfo=tz)
    return datetime.combine(day + timedelta(days=horizon_days), NEXT_AVAILABLE_HOUR, tzinfo=tz)
