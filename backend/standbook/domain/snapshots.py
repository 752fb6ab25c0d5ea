from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from ..models import BookingStatus
from .errors import ErrorKind


@dataclass(frozen=True)
class BookingSnapshot:
    """Read-only view of a persisted booking. Instants are timezone-aware."""

    id: int
    stand_id: int
    club_id: int
    user_id: int
    starts_at: datetime
    ends_at: datetime
    status: BookingStatus


@dataclass(frozen=True)
class BookingProposal:
    stand_id: int
    club_id: int
    user_id: int
    starts_at: datetime
    ends_at: datetime
    is_guest: bool = False


@dataclass(frozen=True)
class ValidationResult:
    valid: bool
    error: Optional[str] = None
    kind: Optional[ErrorKind] = None
    conflict: Optional[BookingSnapshot] = None
    days_before: Optional[int] = None
    days_after: Optional[int] = None
    days_used: Optional[int] = None
    requires_approval: bool = False

    @classmethod
    def ok(cls, *, requires_approval: bool = False) -> "ValidationResult":
        return cls(valid=True, requires_approval=requires_approval)

    @classmethod
    def fail(cls, kind: ErrorKind, error: str, **details: object) -> "ValidationResult":
        return cls(valid=False, error=error, kind=kind, **details)  # type: ignore[arg-type]
