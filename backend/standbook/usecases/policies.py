from __future__ import annotations

import logging

from ..domain.errors import NotClubMemberError, PermissionDeniedError
from ..domain.policy import PolicyConfig, default_policy
from ..domain.repositories import ClubRepository, PolicyRepository
from ..models import ClubMember, MemberRole
from ..utils.time import resolve_zone

logger = logging.getLogger(__name__)

POLICY_EDITORS = frozenset({MemberRole.OWNER, MemberRole.ADMIN})


async def require_member(club_repo: ClubRepository, *, club_id: int, user_id: int) -> ClubMember:
    member = await club_repo.get_membership(club_id, user_id)
    if member is None:
        raise NotClubMemberError("user is not a member of this club")
    return member


async def get_policy(
    club_repo: ClubRepository,
    policy_repo: PolicyRepository,
    *,
    club_id: int,
    fallback_tz: str,
) -> PolicyConfig:
    """Stored policy for the club, or the default policy in the club's zone."""
    policy = await policy_repo.get_policy(club_id)
    if policy is not None:
        return policy
    club = await club_repo.get(club_id)
    logger.debug("club %s has no stored policy, using defaults", club_id)
    return default_policy(resolve_zone(club.timezone if club else None, fallback_tz))


async def update_policy(
    club_repo: ClubRepository,
    policy_repo: PolicyRepository,
    *,
    club_id: int,
    user_id: int,
    policy: PolicyConfig,
) -> PolicyConfig:
    member = await require_member(club_repo, club_id=club_id, user_id=user_id)
    if member.role not in POLICY_EDITORS:
        raise PermissionDeniedError("only club owners and admins can change booking rules")
    saved = await policy_repo.save_policy(club_id, policy)
    logger.info("booking policy updated for club %s by user %s", club_id, user_id)
    return saved
