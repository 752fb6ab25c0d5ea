from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, timezone, tzinfo


@dataclass(frozen=True)
class GuestRestrictions:
    allow_guests: bool = True
    requires_approval: bool = True
    max_guest_days: int | None = 2


@dataclass(frozen=True)
class PolicyConfig:
    """Per-club booking policy. Read fresh for each validation, never mutated."""

    max_days_in_advance: int | None = 30
    min_advance_hours: int | None = 0
    max_consecutive_days: int | None = 3
    blackout_dates: frozenset[date] = field(default_factory=frozenset)
    guest_restrictions: GuestRestrictions | None = field(default_factory=GuestRestrictions)
    tz: tzinfo = timezone.utc


def default_policy(tz: tzinfo = timezone.utc) -> PolicyConfig:
    return PolicyConfig(tz=tz)


# Behaves like a policy with no guest rule at all.
UNRESTRICTED_GUESTS = GuestRestrictions(allow_guests=True, requires_approval=False, max_guest_days=None)
