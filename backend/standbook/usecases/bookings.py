from __future__ import annotations

import logging
from datetime import date, datetime, time, timedelta

from ..domain.errors import (
    BookingNotFoundError,
    BookingRejectedError,
    InvalidTransitionError,
    StandNotFoundError,
)
from ..domain.policy import PolicyConfig
from ..domain.repositories import BookingRepository, ClubRepository, PolicyRepository
from ..domain.rules import GUEST_LOOKBACK, next_open_day
from ..domain.services import classify_hunt_type, validate_booking
from ..domain.snapshots import BookingProposal, ValidationResult
from ..models import GUEST_COUNTED_STATUSES, Booking, BookingStatus, HuntType, MemberRole, Stand
from ..utils.time import to_utc_naive, utc_now
from .policies import get_policy, require_member

logger = logging.getLogger(__name__)

DEFAULT_CANCELLATION_REASON = "Cancelled by user"


async def _require_stand(club_repo: ClubRepository, *, club_id: int, stand_id: int) -> Stand:
    stand = await club_repo.get_stand(club_id, stand_id)
    if stand is None or not stand.is_active:
        raise StandNotFoundError("stand not found")
    return stand


async def _evaluate(
    club_repo: ClubRepository,
    policy_repo: PolicyRepository,
    booking_repo: BookingRepository,
    *,
    club_id: int,
    stand_id: int,
    user_id: int,
    starts_at: datetime,
    ends_at: datetime,
    now: datetime,
    fallback_tz: str,
    exclude_id: int | None = None,
) -> tuple[ValidationResult, BookingProposal, PolicyConfig]:
    member = await require_member(club_repo, club_id=club_id, user_id=user_id)
    await _require_stand(club_repo, club_id=club_id, stand_id=stand_id)
    policy = await get_policy(club_repo, policy_repo, club_id=club_id, fallback_tz=fallback_tz)

    proposal = BookingProposal(
        stand_id=stand_id,
        club_id=club_id,
        user_id=user_id,
        starts_at=starts_at,
        ends_at=ends_at,
        is_guest=member.role == MemberRole.GUEST,
    )

    # One owner read covers both the consecutive-days walk and the guest lookback.
    walk_start = starts_at - timedelta(days=(policy.max_consecutive_days or 0) + 1)
    since = min(now - GUEST_LOOKBACK, walk_start)
    stand_bookings = await booking_repo.list_active_for_stand(stand_id, club_id)
    owner_bookings = await booking_repo.list_for_owner(user_id, club_id, GUEST_COUNTED_STATUSES, since=since)

    result = validate_booking(
        proposal,
        policy,
        now,
        stand_bookings=stand_bookings,
        owner_bookings=owner_bookings,
        exclude_id=exclude_id,
    )
    if not result.valid:
        logger.info(
            "booking rejected stand=%s user=%s kind=%s: %s",
            stand_id,
            user_id,
            result.kind,
            result.error,
        )
    return result, proposal, policy


async def validate_booking_request(
    club_repo: ClubRepository,
    policy_repo: PolicyRepository,
    booking_repo: BookingRepository,
    *,
    club_id: int,
    stand_id: int,
    user_id: int,
    starts_at: datetime,
    ends_at: datetime,
    fallback_tz: str,
    exclude_id: int | None = None,
    now: datetime | None = None,
) -> ValidationResult:
    result, _, _ = await _evaluate(
        club_repo,
        policy_repo,
        booking_repo,
        club_id=club_id,
        stand_id=stand_id,
        user_id=user_id,
        starts_at=starts_at,
        ends_at=ends_at,
        now=now or utc_now(),
        fallback_tz=fallback_tz,
        exclude_id=exclude_id,
    )
    return result


async def create_booking(
    club_repo: ClubRepository,
    policy_repo: PolicyRepository,
    booking_repo: BookingRepository,
    *,
    club_id: int,
    stand_id: int,
    user_id: int,
    starts_at: datetime,
    ends_at: datetime,
    fallback_tz: str,
    hunt_type: HuntType | None = None,
    notes: str | None = None,
    now: datetime | None = None,
) -> tuple[Booking, ValidationResult]:
    """
    Read, validate, write. The reads and the insert are expected to share the
    caller's transaction; two members racing for the same window between the
    read and the write are not serialized here.
    """
    result, proposal, policy = await _evaluate(
        club_repo,
        policy_repo,
        booking_repo,
        club_id=club_id,
        stand_id=stand_id,
        user_id=user_id,
        starts_at=starts_at,
        ends_at=ends_at,
        now=now or utc_now(),
        fallback_tz=fallback_tz,
    )
    if not result.valid:
        raise BookingRejectedError(result)

    booking = await booking_repo.create(
        stand_id=stand_id,
        club_id=club_id,
        user_id=user_id,
        starts_at=starts_at,
        ends_at=ends_at,
        hunt_type=hunt_type or classify_hunt_type(starts_at, policy.tz),
        is_guest=proposal.is_guest,
        notes=notes,
    )
    return booking, result


async def update_booking(
    club_repo: ClubRepository,
    policy_repo: PolicyRepository,
    booking_repo: BookingRepository,
    *,
    booking_id: int,
    user_id: int,
    starts_at: datetime,
    ends_at: datetime,
    fallback_tz: str,
    stand_id: int | None = None,
    hunt_type: HuntType | None = None,
    notes: str | None = None,
    now: datetime | None = None,
) -> Booking:
    """Move a confirmed booking, validating it against everything except itself."""
    booking = await booking_repo.get_for_user_for_update(booking_id, user_id)
    if booking is None:
        raise BookingNotFoundError("booking not found")
    if booking.status != BookingStatus.CONFIRMED:
        raise InvalidTransitionError(f"cannot change a booking that is {booking.status}")

    target_stand = stand_id or booking.stand_id
    result, _, policy = await _evaluate(
        club_repo,
        policy_repo,
        booking_repo,
        club_id=booking.club_id,
        stand_id=target_stand,
        user_id=user_id,
        starts_at=starts_at,
        ends_at=ends_at,
        now=now or utc_now(),
        fallback_tz=fallback_tz,
        exclude_id=booking.id,
    )
    if not result.valid:
        raise BookingRejectedError(result)

    booking.stand_id = target_stand
    booking.starts_at = to_utc_naive(starts_at)
    booking.ends_at = to_utc_naive(ends_at)
    booking.hunt_type = hunt_type or classify_hunt_type(starts_at, policy.tz)
    if notes is not None:
        booking.notes = notes
    booking.updated_at = to_utc_naive(now or utc_now())
    return await booking_repo.save(booking)


async def cancel_booking(
    booking_repo: BookingRepository,
    *,
    booking_id: int,
    user_id: int,
    reason: str | None = None,
    now: datetime | None = None,
) -> tuple[Booking, BookingStatus]:
    """Returns the booking and its status before the call."""
    booking = await booking_repo.get_for_user_for_update(booking_id, user_id)
    if booking is None:
        raise BookingNotFoundError("booking not found")
    previous = booking.status
    # Idempotent: already cancelled returns as-is
    if previous == BookingStatus.CANCELLED:
        return booking, previous
    # A hunter on the stand must check out first.
    if previous != BookingStatus.CONFIRMED:
        raise InvalidTransitionError(f"cannot cancel a booking that is {previous}")

    stamp = to_utc_naive(now or utc_now())
    booking.status = BookingStatus.CANCELLED
    booking.cancelled_at = stamp
    booking.cancellation_reason = reason or DEFAULT_CANCELLATION_REASON
    booking.updated_at = stamp
    return await booking_repo.save(booking), previous


async def _transition(
    booking_repo: BookingRepository,
    *,
    booking_id: int,
    user_id: int,
    source: BookingStatus,
    target: BookingStatus,
    now: datetime | None,
) -> tuple[Booking, BookingStatus]:
    booking = await booking_repo.get_for_user_for_update(booking_id, user_id)
    if booking is None:
        raise BookingNotFoundError("booking not found")
    previous = booking.status
    if previous == target:
        return booking, previous
    if previous != source:
        raise InvalidTransitionError(f"cannot move a booking from {previous} to {target}")

    stamp = to_utc_naive(now or utc_now())
    booking.status = target
    if target == BookingStatus.CHECKED_IN:
        booking.check_in_at = stamp
    else:
        booking.check_out_at = stamp
    booking.updated_at = stamp
    return await booking_repo.save(booking), previous


async def check_in(
    booking_repo: BookingRepository,
    *,
    booking_id: int,
    user_id: int,
    now: datetime | None = None,
) -> tuple[Booking, BookingStatus]:
    return await _transition(
        booking_repo,
        booking_id=booking_id,
        user_id=user_id,
        source=BookingStatus.CONFIRMED,
        target=BookingStatus.CHECKED_IN,
        now=now,
    )


async def check_out(
    booking_repo: BookingRepository,
    *,
    booking_id: int,
    user_id: int,
    now: datetime | None = None,
) -> tuple[Booking, BookingStatus]:
    return await _transition(
        booking_repo,
        booking_id=booking_id,
        user_id=user_id,
        source=BookingStatus.CHECKED_IN,
        target=BookingStatus.COMPLETED,
        now=now,
    )


async def list_user_bookings(
    booking_repo: BookingRepository,
    *,
    user_id: int,
    status: BookingStatus | None = None,
) -> list[Booking]:
    return await booking_repo.list_by_user(user_id, status)


async def get_user_booking(
    booking_repo: BookingRepository,
    *,
    booking_id: int,
    user_id: int,
) -> Booking | None:
    return await booking_repo.get_for_user(booking_id, user_id)


async def list_stand_bookings(
    club_repo: ClubRepository,
    booking_repo: BookingRepository,
    *,
    club_id: int,
    stand_id: int,
    user_id: int,
    start: datetime,
    end: datetime,
) -> list[Booking]:
    if start >= end:
        raise ValueError("start must be earlier than end")
    await require_member(club_repo, club_id=club_id, user_id=user_id)
    await _require_stand(club_repo, club_id=club_id, stand_id=stand_id)
    return await booking_repo.list_for_stand(stand_id, start, end)


async def list_club_bookings_for_date(
    club_repo: ClubRepository,
    policy_repo: PolicyRepository,
    booking_repo: BookingRepository,
    *,
    club_id: int,
    user_id: int,
    day: date,
    fallback_tz: str,
) -> list[Booking]:
    """Every stand's bookings starting on ``day`` in the club's calendar."""
    await require_member(club_repo, club_id=club_id, user_id=user_id)
    policy = await get_policy(club_repo, policy_repo, club_id=club_id, fallback_tz=fallback_tz)
    start = datetime.combine(day, time.min, tzinfo=policy.tz)
    end = datetime.combine(day + timedelta(days=1), time.min, tzinfo=policy.tz)
    return await booking_repo.list_for_club_starting_between(club_id, start, end)


async def find_next_available(
    club_repo: ClubRepository,
    policy_repo: PolicyRepository,
    booking_repo: BookingRepository,
    *,
    club_id: int,
    stand_id: int,
    user_id: int,
    from_: datetime,
    fallback_tz: str,
) -> datetime:
    """Advisory: first day within 30 days on which nobody starts a hunt on the stand."""
    await require_member(club_repo, club_id=club_id, user_id=user_id)
    await _require_stand(club_repo, club_id=club_id, stand_id=stand_id)
    policy = await get_policy(club_repo, policy_repo, club_id=club_id, fallback_tz=fallback_tz)
    bookings = await booking_repo.list_active_for_stand(stand_id, club_id)
    return next_open_day(bookings, from_, policy.tz)
