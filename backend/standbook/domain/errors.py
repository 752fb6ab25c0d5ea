from __future__ import annotations

from enum import StrEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .snapshots import ValidationResult


class ErrorKind(StrEnum):
    """Machine-readable reason a booking proposal was refused."""

    IN_PAST = "in_past"
    INVERTED_OR_ZERO = "inverted_or_zero"
    TOO_SHORT = "too_short"
    TOO_LONG = "too_long"
    CONFLICT = "conflict"
    TOO_FAR_IN_ADVANCE = "too_far_in_advance"
    NOT_ENOUGH_NOTICE = "not_enough_notice"
    BLACKED_OUT = "blacked_out"
    CONSECUTIVE_LIMIT_EXCEEDED = "consecutive_limit_exceeded"
    GUESTS_NOT_ALLOWED = "guests_not_allowed"
    GUEST_QUOTA_EXCEEDED = "guest_quota_exceeded"


class DomainError(Exception):
    pass


class BookingNotFoundError(DomainError):
    pass


class StandNotFoundError(DomainError):
    pass


class NotClubMemberError(DomainError):
    pass


class PermissionDeniedError(DomainError):
    pass


class InvalidTransitionError(DomainError):
    pass


class StoreUnavailableError(DomainError):
    """A store read or write failed; transient, the caller may retry."""


class BookingRejectedError(DomainError):
    """Raised by write usecases when the validator refused the proposal."""

    def __init__(self, result: "ValidationResult") -> None:
        self.result = result
        super().__init__(result.error or "booking rejected")
