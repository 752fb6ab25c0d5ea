from fastapi import APIRouter, Depends, HTTPException, Path, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import get_settings
from ..deps import get_current_user_id, get_session
from ..domain.errors import DomainError
from ..infrastructure.repositories import SqlAlchemyClubRepository, SqlAlchemyPolicyRepository
from ..schemas import PolicySchema
from ..usecases import policies as policy_usecase
from ..utils.audit_log import emit_audit_log
from .bookings import to_http_error

router = APIRouter(prefix="/clubs", tags=["policies"], dependencies=[Depends(get_current_user_id)])


@router.get("/{club_id}/policy", response_model=PolicySchema)
async def get_policy(
    club_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
    user_id: int = Depends(get_current_user_id),
) -> PolicySchema:
    settings = get_settings()
    club_repo = SqlAlchemyClubRepository(session)
    policy_repo = SqlAlchemyPolicyRepository(session, fallback_tz=settings.default_timezone)
    try:
        await policy_usecase.require_member(club_repo, club_id=club_id, user_id=user_id)
        policy = await policy_usecase.get_policy(
            club_repo,
            policy_repo,
            club_id=club_id,
            fallback_tz=settings.default_timezone,
        )
    except DomainError as exc:
        raise to_http_error(exc) from exc
    return PolicySchema.from_config(policy)


@router.put("/{club_id}/policy", response_model=PolicySchema, status_code=status.HTTP_200_OK)
async def update_policy(
    payload: PolicySchema,
    club_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
    user_id: int = Depends(get_current_user_id),
) -> PolicySchema:
    settings = get_settings()
    club_repo = SqlAlchemyClubRepository(session)
    policy_repo = SqlAlchemyPolicyRepository(session, fallback_tz=settings.default_timezone)
    async with session.begin():
        try:
            saved = await policy_usecase.update_policy(
                club_repo,
                policy_repo,
                club_id=club_id,
                user_id=user_id,
                policy=payload.to_config(),
            )
        except DomainError as exc:
            raise to_http_error(exc) from exc

    try:
        emit_audit_log(action="policy.updated", user_id=user_id, club_id=club_id)
    except RuntimeError as exc:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="audit log failed") from exc
    return PolicySchema.from_config(saved)
