from datetime import date, datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Path, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import get_settings
from ..deps import get_current_user_id, get_session
from ..domain.errors import (
    BookingNotFoundError,
    BookingRejectedError,
    DomainError,
    InvalidTransitionError,
    NotClubMemberError,
    PermissionDeniedError,
    StandNotFoundError,
    StoreUnavailableError,
)
from ..infrastructure.repositories import (
    SqlAlchemyBookingRepository,
    SqlAlchemyClubRepository,
    SqlAlchemyPolicyRepository,
)
from ..models import Booking, BookingStatus
from ..schemas import (
    BookingCancel,
    BookingCreate,
    BookingRead,
    BookingUpdate,
    BookingValidate,
    BookingWindow,
    NextAvailableRead,
    ValidationRead,
)
from ..usecases import bookings as booking_usecase
from ..utils.audit_log import AuditAction, emit_audit_log
from ..utils.time import utc_naive_to_aware, utc_now

router = APIRouter(prefix="", tags=["bookings"], dependencies=[Depends(get_current_user_id)])


def to_http_error(exc: DomainError) -> HTTPException:
    if isinstance(exc, BookingRejectedError):
        return HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={"error": exc.result.error, "kind": exc.result.kind},
        )
    if isinstance(exc, (BookingNotFoundError, StandNotFoundError)):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, (NotClubMemberError, PermissionDeniedError)):
        return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc))
    if isinstance(exc, InvalidTransitionError):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    if isinstance(exc, StoreUnavailableError):
        return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="booking store unavailable")
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))


def _require_timezone(window: BookingWindow) -> None:
    if window.starts_at.tzinfo is None or window.ends_at.tzinfo is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="starts_at/ends_at must have timezone")


def _audit(action: AuditAction, booking: Booking, *, status_from: Optional[BookingStatus], **extra: object) -> None:
    try:
        emit_audit_log(
            action=action,
            user_id=booking.user_id,
            club_id=booking.club_id,
            booking_id=booking.id,
            stand_id=booking.stand_id,
            status_from=status_from,
            status_to=booking.status,
            starts_at=utc_naive_to_aware(booking.starts_at),
            ends_at=utc_naive_to_aware(booking.ends_at),
            extra=dict(extra) or None,
        )
    except RuntimeError as exc:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="audit log failed") from exc


@router.post("/clubs/{club_id}/bookings/validate", response_model=ValidationRead, response_model_exclude_none=True)
async def validate_booking(
    payload: BookingValidate,
    club_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
    user_id: int = Depends(get_current_user_id),
) -> ValidationRead:
    _require_timezone(payload)
    settings = get_settings()
    club_repo = SqlAlchemyClubRepository(session)
    policy_repo = SqlAlchemyPolicyRepository(session, fallback_tz=settings.default_timezone)
    booking_repo = SqlAlchemyBookingRepository(session)
    try:
        result = await booking_usecase.validate_booking_request(
            club_repo,
            policy_repo,
            booking_repo,
            club_id=club_id,
            stand_id=payload.stand_id,
            user_id=user_id,
            starts_at=payload.starts_at,
            ends_at=payload.ends_at,
            fallback_tz=settings.default_timezone,
            exclude_id=payload.exclude_booking_id,
        )
    except DomainError as exc:
        raise to_http_error(exc) from exc
    return ValidationRead.from_result(result)


@router.post(
    "/clubs/{club_id}/bookings",
    response_model=BookingRead,
    response_model_exclude_none=True,
    status_code=status.HTTP_201_CREATED,
)
async def create_booking(
    payload: BookingCreate,
    club_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
    user_id: int = Depends(get_current_user_id),
) -> BookingRead:
    _require_timezone(payload)
    settings = get_settings()
    club_repo = SqlAlchemyClubRepository(session)
    policy_repo = SqlAlchemyPolicyRepository(session, fallback_tz=settings.default_timezone)
    booking_repo = SqlAlchemyBookingRepository(session)
    async with session.begin():
        try:
            booking, result = await booking_usecase.create_booking(
                club_repo,
                policy_repo,
                booking_repo,
                club_id=club_id,
                stand_id=payload.stand_id,
                user_id=user_id,
                starts_at=payload.starts_at,
                ends_at=payload.ends_at,
                fallback_tz=settings.default_timezone,
                hunt_type=payload.hunt_type,
                notes=payload.notes,
            )
        except DomainError as exc:
            raise to_http_error(exc) from exc

    _audit("booking.created", booking, status_from=None, requires_approval=result.requires_approval or None)
    return BookingRead.from_db(booking=booking)


@router.get("/me/bookings", response_model=List[BookingRead], response_model_exclude_none=True)
async def list_my_bookings(
    status_filter: Optional[BookingStatus] = Query(default=None, alias="status"),
    session: AsyncSession = Depends(get_session),
    user_id: int = Depends(get_current_user_id),
) -> list[BookingRead]:
    booking_repo = SqlAlchemyBookingRepository(session)
    try:
        rows = await booking_usecase.list_user_bookings(booking_repo, user_id=user_id, status=status_filter)
    except DomainError as exc:
        raise to_http_error(exc) from exc
    return [BookingRead.from_db(booking=booking) for booking in rows]


@router.get("/me/bookings/{booking_id}", response_model=BookingRead, response_model_exclude_none=True)
async def get_my_booking(
    booking_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
    user_id: int = Depends(get_current_user_id),
) -> BookingRead:
    booking_repo = SqlAlchemyBookingRepository(session)
    try:
        booking = await booking_usecase.get_user_booking(booking_repo, booking_id=booking_id, user_id=user_id)
    except DomainError as exc:
        raise to_http_error(exc) from exc
    if booking is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="booking not found")
    return BookingRead.from_db(booking=booking)


@router.patch("/me/bookings/{booking_id}", response_model=BookingRead, response_model_exclude_none=True)
async def reschedule_booking(
    payload: BookingUpdate,
    booking_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
    user_id: int = Depends(get_current_user_id),
) -> BookingRead:
    _require_timezone(payload)
    settings = get_settings()
    club_repo = SqlAlchemyClubRepository(session)
    policy_repo = SqlAlchemyPolicyRepository(session, fallback_tz=settings.default_timezone)
    booking_repo = SqlAlchemyBookingRepository(session)
    async with session.begin():
        try:
            booking = await booking_usecase.update_booking(
                club_repo,
                policy_repo,
                booking_repo,
                booking_id=booking_id,
                user_id=user_id,
                starts_at=payload.starts_at,
                ends_at=payload.ends_at,
                fallback_tz=settings.default_timezone,
                stand_id=payload.stand_id,
                hunt_type=payload.hunt_type,
                notes=payload.notes,
            )
        except DomainError as exc:
            raise to_http_error(exc) from exc

    _audit("booking.rescheduled", booking, status_from=booking.status)
    return BookingRead.from_db(booking=booking)


@router.post("/me/bookings/{booking_id}/cancel", response_model=BookingRead, response_model_exclude_none=True)
async def cancel_booking(
    payload: Optional[BookingCancel] = None,
    booking_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
    user_id: int = Depends(get_current_user_id),
) -> BookingRead:
    booking_repo = SqlAlchemyBookingRepository(session)
    async with session.begin():
        try:
            booking, previous = await booking_usecase.cancel_booking(
                booking_repo,
                booking_id=booking_id,
                user_id=user_id,
                reason=payload.reason if payload else None,
            )
        except DomainError as exc:
            raise to_http_error(exc) from exc

    if previous != booking.status:
        _audit("booking.cancelled", booking, status_from=previous, reason=booking.cancellation_reason)
    return BookingRead.from_db(booking=booking)


@router.post("/me/bookings/{booking_id}/check-in", response_model=BookingRead, response_model_exclude_none=True)
async def check_in(
    booking_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
    user_id: int = Depends(get_current_user_id),
) -> BookingRead:
    booking_repo = SqlAlchemyBookingRepository(session)
    async with session.begin():
        try:
            booking, previous = await booking_usecase.check_in(booking_repo, booking_id=booking_id, user_id=user_id)
        except DomainError as exc:
            raise to_http_error(exc) from exc

    if previous != booking.status:
        _audit("booking.checked_in", booking, status_from=previous)
    return BookingRead.from_db(booking=booking)


@router.post("/me/bookings/{booking_id}/check-out", response_model=BookingRead, response_model_exclude_none=True)
async def check_out(
    booking_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
    user_id: int = Depends(get_current_user_id),
) -> BookingRead:
    booking_repo = SqlAlchemyBookingRepository(session)
    async with session.begin():
        try:
            booking, previous = await booking_usecase.check_out(booking_repo, booking_id=booking_id, user_id=user_id)
        except DomainError as exc:
            raise to_http_error(exc) from exc

    if previous != booking.status:
        _audit("booking.checked_out", booking, status_from=previous)
    return BookingRead.from_db(booking=booking)


@router.get(
    "/clubs/{club_id}/stands/{stand_id}/bookings",
    response_model=List[BookingRead],
    response_model_exclude_none=True,
)
async def list_stand_bookings(
    club_id: int = Path(..., ge=1),
    stand_id: int = Path(..., ge=1),
    start: datetime = Query(..., description="Window start (ISO 8601 with offset)"),
    end: datetime = Query(..., description="Window end (ISO 8601 with offset)"),
    session: AsyncSession = Depends(get_session),
    user_id: int = Depends(get_current_user_id),
) -> list[BookingRead]:
    if start.tzinfo is None or end.tzinfo is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="start/end must have timezone")
    club_repo = SqlAlchemyClubRepository(session)
    booking_repo = SqlAlchemyBookingRepository(session)
    try:
        rows = await booking_usecase.list_stand_bookings(
            club_repo,
            booking_repo,
            club_id=club_id,
            stand_id=stand_id,
            user_id=user_id,
            start=start,
            end=end,
        )
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except DomainError as exc:
        raise to_http_error(exc) from exc
    return [BookingRead.from_db(booking=booking) for booking in rows]


@router.get("/clubs/{club_id}/bookings", response_model=List[BookingRead], response_model_exclude_none=True)
async def list_club_bookings(
    club_id: int = Path(..., ge=1),
    day: date = Query(..., alias="date", description="Calendar date in the club's zone"),
    session: AsyncSession = Depends(get_session),
    user_id: int = Depends(get_current_user_id),
) -> list[BookingRead]:
    settings = get_settings()
    club_repo = SqlAlchemyClubRepository(session)
    policy_repo = SqlAlchemyPolicyRepository(session, fallback_tz=settings.default_timezone)
    booking_repo = SqlAlchemyBookingRepository(session)
    try:
        rows = await booking_usecase.list_club_bookings_for_date(
            club_repo,
            policy_repo,
            booking_repo,
            club_id=club_id,
            user_id=user_id,
            day=day,
            fallback_tz=settings.default_timezone,
        )
    except DomainError as exc:
        raise to_http_error(exc) from exc
    return [BookingRead.from_db(booking=booking) for booking in rows]


@router.get("/clubs/{club_id}/stands/{stand_id}/next-available", response_model=NextAvailableRead)
async def next_available(
    club_id: int = Path(..., ge=1),
    stand_id: int = Path(..., ge=1),
    from_: Optional[datetime] = Query(default=None, alias="from"),
    session: AsyncSession = Depends(get_session),
    user_id: int = Depends(get_current_user_id),
) -> NextAvailableRead:
    if from_ is not None and from_.tzinfo is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="from must have timezone")
    settings = get_settings()
    club_repo = SqlAlchemyClubRepository(session)
    policy_repo = SqlAlchemyPolicyRepository(session, fallback_tz=settings.default_timezone)
    booking_repo = SqlAlchemyBookingRepository(session)
    try:
        available = await booking_usecase.find_next_available(
            club_repo,
            policy_repo,
            booking_repo,
            club_id=club_id,
            stand_id=stand_id,
            user_id=user_id,
            from_=from_ or utc_now(),
            fallback_tz=settings.default_timezone,
        )
    except DomainError as exc:
        raise to_http_error(exc) from exc
    return NextAvailableRead(stand_id=stand_id, available_from=available)
