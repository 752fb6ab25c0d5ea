from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from functools import wraps
from typing import Any, Awaitable, Callable, Iterable, List, Optional, TypeVar

from sqlalchemy import Select, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..domain.errors import StoreUnavailableError
from ..domain.policy import UNRESTRICTED_GUESTS, GuestRestrictions, PolicyConfig
from ..domain.repositories import BookingRepository, ClubRepository, PolicyRepository
from ..domain.snapshots import BookingSnapshot
from ..models import ACTIVE_STATUSES, Booking, BookingStatus, Club, ClubMember, ClubPolicy, HuntType, Stand
from ..utils.time import resolve_zone, to_utc_naive, utc_naive_to_aware

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _store_call(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
    """Re-raise driver/ORM failures as StoreUnavailableError."""

    @wraps(func)
    async def wrapper(*args: Any, **kwargs: Any) -> T:
        try:
            return await func(*args, **kwargs)
        except SQLAlchemyError as exc:
            logger.warning("store call %s failed: %s", func.__qualname__, exc)
            raise StoreUnavailableError("booking store unavailable") from exc

    return wrapper


def to_snapshot(booking: Booking) -> BookingSnapshot:
    return BookingSnapshot(
        id=booking.id,
        stand_id=booking.stand_id,
        club_id=booking.club_id,
        user_id=booking.user_id,
        starts_at=utc_naive_to_aware(booking.starts_at),
        ends_at=utc_naive_to_aware(booking.ends_at),
        status=booking.status,
    )


def policy_from_row(row: ClubPolicy, *, tz_name: str | None, fallback_tz: str) -> PolicyConfig:
    return PolicyConfig(
        max_days_in_advance=row.max_days_in_advance,
        min_advance_hours=row.min_advance_hours,
        max_consecutive_days=row.max_consecutive_days,
        blackout_dates=frozenset(date.fromisoformat(value) for value in row.blackout_dates or []),
        guest_restrictions=GuestRestrictions(
            allow_guests=row.allow_guests,
            requires_approval=row.guests_require_approval,
            max_guest_days=row.max_guest_days,
        ),
        tz=resolve_zone(tz_name, fallback_tz),
    )


class SqlAlchemyClubRepository(ClubRepository):
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    @_store_call
    async def get(self, club_id: int) -> Club | None:
        result = await self.session.scalar(select(Club).where(Club.id == club_id))
        return result if isinstance(result, Club) else None

    @_store_call
    async def get_membership(self, club_id: int, user_id: int) -> ClubMember | None:
        stmt = select(ClubMember).where(ClubMember.club_id == club_id, ClubMember.user_id == user_id)
        result = await self.session.scalar(stmt)
        return result if isinstance(result, ClubMember) else None

    @_store_call
    async def get_stand(self, club_id: int, stand_id: int) -> Stand | None:
        stmt = select(Stand).where(Stand.id == stand_id, Stand.club_id == club_id)
        result = await self.session.scalar(stmt)
        return result if isinstance(result, Stand) else None


class SqlAlchemyPolicyRepository(PolicyRepository):
    def __init__(self, session: AsyncSession, *, fallback_tz: str) -> None:
        self.session = session
        self.fallback_tz = fallback_tz

    @_store_call
    async def get_policy(self, club_id: int) -> PolicyConfig | None:
        stmt = select(ClubPolicy, Club.timezone).join(Club, ClubPolicy.club_id == Club.id).where(
            ClubPolicy.club_id == club_id
        )
        row = (await self.session.execute(stmt)).first()
        if row is None:
            return None
        policy, tz_name = row
        return policy_from_row(policy, tz_name=tz_name, fallback_tz=self.fallback_tz)

    @_store_call
    async def save_policy(self, club_id: int, policy: PolicyConfig) -> PolicyConfig:
        row = await self.session.get(ClubPolicy, club_id)
        if row is None:
            row = ClubPolicy(club_id=club_id)
        guests = policy.guest_restrictions or UNRESTRICTED_GUESTS
        row.max_days_in_advance = policy.max_days_in_advance
        row.min_advance_hours = policy.min_advance_hours
        row.max_consecutive_days = policy.max_consecutive_days
        row.blackout_dates = sorted(d.isoformat() for d in policy.blackout_dates)
        row.allow_guests = guests.allow_guests
        row.guests_require_approval = guests.requires_approval
        row.max_guest_days = guests.max_guest_days
        row.updated_at = datetime.now(timezone.utc).replace(tzinfo=None)
        self.session.add(row)
        await self.session.flush()
        return policy


class SqlAlchemyBookingRepository(BookingRepository):
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    @_store_call
    async def list_active_for_stand(self, stand_id: int, club_id: int | None = None) -> List[BookingSnapshot]:
        stmt: Select[tuple[Booking]] = select(Booking).where(
            Booking.stand_id == stand_id,
            Booking.status.in_(ACTIVE_STATUSES),
        )
        if club_id is not None:
            stmt = stmt.where(Booking.club_id == club_id)
        rows = await self.session.scalars(stmt.order_by(Booking.starts_at, Booking.id))
        return [to_snapshot(booking) for booking in rows]

    @_store_call
    async def list_for_owner(
        self,
        user_id: int,
        club_id: int,
        statuses: Iterable[BookingStatus],
        since: datetime | None = None,
        stand_id: int | None = None,
    ) -> List[BookingSnapshot]:
        stmt: Select[tuple[Booking]] = select(Booking).where(
            Booking.user_id == user_id,
            Booking.club_id == club_id,
            Booking.status.in_(list(statuses)),
        )
        if since is not None:
            stmt = stmt.where(Booking.starts_at >= to_utc_naive(since))
        if stand_id is not None:
            stmt = stmt.where(Booking.stand_id == stand_id)
        rows = await self.session.scalars(stmt.order_by(Booking.starts_at))
        return [to_snapshot(booking) for booking in rows]

    @_store_call
    async def get_for_user(self, booking_id: int, user_id: int) -> Optional[Booking]:
        stmt = select(Booking).where(Booking.id == booking_id, Booking.user_id == user_id)
        result = await self.session.scalar(stmt)
        return result if isinstance(result, Booking) else None

    @_store_call
    async def get_for_user_for_update(self, booking_id: int, user_id: int) -> Optional[Booking]:
        stmt = select(Booking).where(Booking.id == booking_id, Booking.user_id == user_id).with_for_update()
        result = await self.session.scalar(stmt)
        return result if isinstance(result, Booking) else None

    @_store_call
    async def create(
        self,
        *,
        stand_id: int,
        club_id: int,
        user_id: int,
        starts_at: datetime,
        ends_at: datetime,
        hunt_type: HuntType,
        is_guest: bool,
        notes: str | None,
    ) -> Booking:
        now = datetime.now(timezone.utc).replace(tzinfo=None)
        booking = Booking(
            stand_id=stand_id,
            club_id=club_id,
            user_id=user_id,
            starts_at=to_utc_naive(starts_at),
            ends_at=to_utc_naive(ends_at),
            status=BookingStatus.CONFIRMED,
            hunt_type=hunt_type,
            is_guest=is_guest,
            notes=notes,
            created_at=now,
            updated_at=now,
        )
        self.session.add(booking)
        await self.session.flush()
        return booking

    @_store_call
    async def save(self, booking: Booking) -> Booking:
        self.session.add(booking)
        await self.session.flush()
        return booking

    @_store_call
    async def list_by_user(self, user_id: int, status: BookingStatus | None = None) -> List[Booking]:
        stmt: Select[tuple[Booking]] = select(Booking).where(Booking.user_id == user_id)
        if status is not None:
            stmt = stmt.where(Booking.status == status)
        rows = await self.session.scalars(stmt.order_by(Booking.starts_at))
        return list(rows)

    @_store_call
    async def list_for_stand(self, stand_id: int, start: datetime, end: datetime) -> List[Booking]:
        stmt = (
            select(Booking)
            .where(
                Booking.stand_id == stand_id,
                Booking.starts_at < to_utc_naive(end),
                Booking.ends_at > to_utc_naive(start),
            )
            .order_by(Booking.starts_at)
        )
        rows = await self.session.scalars(stmt)
        return list(rows)

    @_store_call
    async def list_for_club_starting_between(self, club_id: int, start: datetime, end: datetime) -> List[Booking]:
        stmt = (
            select(Booking)
            .where(
                Booking.club_id == club_id,
                Booking.starts_at >= to_utc_naive(start),
                Booking.starts_at < to_utc_naive(end),
            )
            .order_by(Booking.starts_at, Booking.stand_id)
        )
        rows = await self.session.scalars(stmt)
        return list(rows)
