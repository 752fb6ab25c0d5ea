from datetime import date, datetime, timedelta, timezone
from zoneinfo import ZoneInfo

from standbook.domain.errors import ErrorKind
from standbook.domain.policy import GuestRestrictions, PolicyConfig, default_policy
from standbook.domain.rules import (
    check_advance_window,
    check_min_notice,
    count_consecutive_days,
    is_blackout_date,
    next_open_day,
    validate_rules,
)
from standbook.domain.snapshots import BookingProposal, BookingSnapshot
from standbook.models import BookingStatus

UTC = timezone.utc
NOW = datetime(2024, 11, 18, 12, 0, tzinfo=UTC)
OWNER = 7


def _day(day: int, hour: int = 5) -> datetime:
    return datetime(2024, 11, day, hour, 0, tzinfo=UTC)


def _proposal(start: datetime, *, stand_id: int = 1, is_guest: bool = False) -> BookingProposal:
    return BookingProposal(
        stand_id=stand_id,
        club_id=1,
        user_id=OWNER,
        starts_at=start,
        ends_at=start + timedelta(hours=6),
        is_guest=is_guest,
    )


def _held(
    booking_id: int,
    start: datetime,
    *,
    stand_id: int = 1,
    status: BookingStatus = BookingStatus.CONFIRMED,
) -> BookingSnapshot:
    return BookingSnapshot(
        id=booking_id,
        stand_id=stand_id,
        club_id=1,
        user_id=OWNER,
        starts_at=start,
        ends_at=start + timedelta(hours=6),
        status=status,
    )


def test_default_policy_values() -> None:
    policy = default_policy()
    assert policy.max_days_in_advance == 30
    assert policy.max_consecutive_days == 3
    assert policy.min_advance_hours == 0
    assert policy.blackout_dates == frozenset()
    assert policy.guest_restrictions == GuestRestrictions(allow_guests=True, requires_approval=True, max_guest_days=2)


def test_advance_window() -> None:
    assert check_advance_window(NOW + timedelta(days=31), NOW, 30).kind == ErrorKind.TOO_FAR_IN_ADVANCE
    assert check_advance_window(NOW + timedelta(days=30), NOW, 30).valid
    assert check_advance_window(NOW + timedelta(days=365), NOW, None).valid


def test_min_notice() -> None:
    result = check_min_notice(NOW + timedelta(hours=2), NOW, 24)
    assert result.kind == ErrorKind.NOT_ENOUGH_NOTICE
    assert result.error == "Bookings must be made at least 24 hours in advance"
    assert check_min_notice(NOW + timedelta(hours=24), NOW, 24).valid
    assert check_min_notice(NOW + timedelta(minutes=5), NOW, 0).valid


def test_blackout_matches_calendar_date() -> None:
    policy = PolicyConfig(blackout_dates=frozenset({date(2024, 11, 23)}))
    early = validate_rules(_proposal(datetime(2024, 11, 23, 5, 0, tzinfo=UTC)), policy, NOW, owner_bookings=[])
    late = validate_rules(_proposal(datetime(2024, 11, 23, 23, 0, tzinfo=UTC)), policy, NOW, owner_bookings=[])
    next_day = validate_rules(_proposal(datetime(2024, 11, 24, 0, 1, tzinfo=UTC)), policy, NOW, owner_bookings=[])
    assert early.kind == ErrorKind.BLACKED_OUT
    assert late.kind == ErrorKind.BLACKED_OUT
    assert next_day.valid


def test_blackout_uses_club_zone() -> None:
    chicago = ZoneInfo("America/Chicago")
    # 03:00 UTC on the 24th is still the evening of the 23rd in Chicago.
    start = datetime(2024, 11, 24, 3, 0, tzinfo=UTC)
    assert is_blackout_date(start, {date(2024, 11, 23)}, chicago)
    assert not is_blackout_date(start, {date(2024, 11, 23)}, UTC)


def test_rules_stop_at_first_failure() -> None:
    policy = PolicyConfig(max_days_in_advance=3, blackout_dates=frozenset({date(2024, 11, 25)}))
    result = validate_rules(_proposal(_day(25)), policy, NOW, owner_bookings=[])
    assert result.kind == ErrorKind.TOO_FAR_IN_ADVANCE


def test_consecutive_days_two_before_is_allowed() -> None:
    held = [_held(1, _day(20)), _held(2, _day(21))]
    result = validate_rules(_proposal(_day(22)), PolicyConfig(), NOW, owner_bookings=held)
    assert result.valid


def test_consecutive_days_span_of_four_fails() -> None:
    held = [_held(1, _day(20)), _held(2, _day(21)), _held(3, _day(23))]
    result = validate_rules(_proposal(_day(22)), PolicyConfig(), NOW, owner_bookings=held)
    assert result.kind == ErrorKind.CONSECUTIVE_LIMIT_EXCEEDED
    assert (result.days_before, result.days_after) == (2, 1)
    assert result.error == (
        "You can only book this stand for 3 consecutive days. "
        "You already have 2 days before and 1 days after this date."
    )


def test_consecutive_days_scoped_to_stand_and_active_status() -> None:
    held = [
        _held(1, _day(20), stand_id=2),
        _held(2, _day(21), stand_id=2),
        _held(3, _day(23), status=BookingStatus.CANCELLED),
        _held(4, _day(24)),
    ]
    result = validate_rules(_proposal(_day(22)), PolicyConfig(), NOW, owner_bookings=held)
    assert result.valid


def test_consecutive_days_disabled_by_zero() -> None:
    held = [_held(i, _day(19 + i)) for i in range(1, 6)]
    result = validate_rules(
        _proposal(_day(25)),
        PolicyConfig(max_consecutive_days=0),
        NOW,
        owner_bookings=held,
    )
    assert result.valid


def test_count_consecutive_days_walk_is_bounded() -> None:
    booked = {date(2024, 11, d) for d in range(10, 20)}
    assert count_consecutive_days(date(2024, 11, 20), booked, 3) == (3, 0)
    assert count_consecutive_days(date(2024, 11, 9), booked, 2) == (0, 2)
    assert count_consecutive_days(date(2024, 11, 25), booked, 3) == (0, 0)


def test_guests_not_allowed() -> None:
    policy = PolicyConfig(guest_restrictions=GuestRestrictions(allow_guests=False))
    result = validate_rules(_proposal(_day(22), is_guest=True), policy, NOW, owner_bookings=[])
    assert result.kind == ErrorKind.GUESTS_NOT_ALLOWED


def test_guest_quota_blocks_third_distinct_day() -> None:
    used = [
        _held(1, NOW - timedelta(days=10), status=BookingStatus.COMPLETED),
        _held(2, _day(21), stand_id=2),
    ]
    result = validate_rules(_proposal(_day(25), is_guest=True), PolicyConfig(), NOW, owner_bookings=used)
    assert result.kind == ErrorKind.GUEST_QUOTA_EXCEEDED
    assert result.days_used == 2
    assert result.error == "Guest bookings are limited to 2 days per season. You have used 2 days."


def test_guest_quota_allows_already_used_day() -> None:
    used = [
        _held(1, NOW - timedelta(days=10), status=BookingStatus.COMPLETED),
        _held(2, _day(21), stand_id=2),
    ]
    result = validate_rules(_proposal(_day(21, hour=15), is_guest=True), PolicyConfig(), NOW, owner_bookings=used)
    assert result.valid
    assert result.requires_approval


def test_guest_quota_allows_reaching_the_cap() -> None:
    used = [_held(1, NOW - timedelta(days=3), status=BookingStatus.COMPLETED)]
    result = validate_rules(_proposal(_day(25), is_guest=True), PolicyConfig(), NOW, owner_bookings=used)
    assert result.valid


def test_guest_quota_ignores_old_and_cancelled_days() -> None:
    used = [
        _held(1, NOW - timedelta(days=91), status=BookingStatus.COMPLETED),
        _held(2, NOW - timedelta(days=5), status=BookingStatus.CANCELLED),
        _held(3, NOW - timedelta(days=4), status=BookingStatus.NO_SHOW),
        _held(4, _day(21), stand_id=2),
    ]
    result = validate_rules(_proposal(_day(25), is_guest=True), PolicyConfig(), NOW, owner_bookings=used)
    assert result.valid


def test_guest_rule_skipped_for_members() -> None:
    used = [_held(1, NOW - timedelta(days=3)), _held(2, _day(21), stand_id=2)]
    policy = PolicyConfig(guest_restrictions=GuestRestrictions(allow_guests=False))
    result = validate_rules(_proposal(_day(25)), policy, NOW, owner_bookings=used)
    assert result.valid
    assert not result.requires_approval


def test_next_open_day_starts_at_six_local() -> None:
    chicago = ZoneInfo("America/Chicago")
    start = datetime(2024, 11, 20, 14, 30, tzinfo=chicago)
    assert next_open_day([], start, chicago) == datetime(2024, 11, 20, 6, 0, tzinfo=chicago)


def test_next_open_day_skips_booked_days() -> None:
    bookings = [
        _held(1, _day(20)),
        _held(2, _day(21, hour=16)),
        _held(3, _day(22), status=BookingStatus.CANCELLED),
    ]
    assert next_open_day(bookings, _day(20, hour=0), UTC) == datetime(2024, 11, 22, 6, 0, tzinfo=UTC)


def test_next_open_day_fails_open_after_horizon() -> None:
    start = datetime(2024, 12, 1, 0, 0, tzinfo=UTC)
    bookings = [_held(i, start + timedelta(days=i, hours=5)) for i in range(30)]
    assert next_open_day(bookings, start, UTC) == datetime(2024, 12, 31, 6, 0, tzinfo=UTC)
