from __future__ import annotations

from datetime import datetime
from typing import Iterable, Protocol

from ..models import Booking, BookingStatus, Club, ClubMember, HuntType, Stand
from .policy import PolicyConfig
from .snapshots import BookingSnapshot


class ClubRepository(Protocol):
    async def get(self, club_id: int) -> Club | None: ...

    async def get_membership(self, club_id: int, user_id: int) -> ClubMember | None: ...

    async def get_stand(self, club_id: int, stand_id: int) -> Stand | None: ...


class PolicyRepository(Protocol):
    async def get_policy(self, club_id: int) -> PolicyConfig | None: ...

    async def save_policy(self, club_id: int, policy: PolicyConfig) -> PolicyConfig: ...


class BookingRepository(Protocol):
    async def list_active_for_stand(self, stand_id: int, club_id: int | None = None) -> list[BookingSnapshot]: ...

    async def list_for_owner(
        self,
        user_id: int,
        club_id: int,
        statuses: Iterable[BookingStatus],
        since: datetime | None = None,
        stand_id: int | None = None,
    ) -> list[BookingSnapshot]: ...

    async def get_for_user(self, booking_id: int, user_id: int) -> Booking | None: ...

    async def get_for_user_for_update(self, booking_id: int, user_id: int) -> Booking | None: ...

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
    ) -> Booking: ...

    async def save(self, booking: Booking) -> Booking: ...

    async def list_by_user(self, user_id: int, status: BookingStatus | None = None) -> list[Booking]: ...

    async def list_for_stand(self, stand_id: int, start: datetime, end: datetime) -> list[Booking]: ...

    async def list_for_club_starting_between(self, club_id: int, start: datetime, end: datetime) -> list[Booking]: ...
