"""Leaderboard visibility.

Who may see (and therefore join) a leaderboard depends on its tier:

- ORG_WIDE: any active member of the owning organisation.
- GROUP: active organisation members linked to the board's group.
- AD_HOC: existing participants, or a caller presenting the invite code.

Denials carry a reason so the caller can tell "not yours" from "gone".
"""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from orgaccess.access.context import resolve_context
from orgaccess.db.models import (
    Leaderboard,
    LeaderboardMember,
    OrganisationGroup,
    OrganisationGroupMember,
    OrganisationMember,
)
from orgaccess.enums import DenialReason, LeaderboardVisibility, MemberStatus


@dataclass(frozen=True)
class VisibilityResult:
    allowed: bool
    reason: DenialReason | None = None


ALLOWED = VisibilityResult(allowed=True)


def _deny(reason: DenialReason) -> VisibilityResult:
    return VisibilityResult(allowed=False, reason=reason)


async def get_live_leaderboard(db: AsyncSession, leaderboard_id: str) -> Leaderboard | None:
    result = await db.execute(
        select(Leaderboard).where(Leaderboard.id == leaderboard_id, Leaderboard.deleted_at.is_(None))
    )
    return result.scalar_one_or_none()


async def _is_group_member(db: AsyncSession, board: Leaderboard, user_id: str) -> bool:
    result = await db.execute(
        select(OrganisationGroupMember.id)
        .join(OrganisationMember, OrganisationMember.id == OrganisationGroupMember.organisation_member_id)
        .join(OrganisationGroup, OrganisationGroup.id == OrganisationGroupMember.organisation_group_id)
        .where(
            OrganisationGroupMember.organisation_group_id == board.organisation_group_id,
            OrganisationGroup.organisation_id == board.organisation_id,
            OrganisationGroup.deleted_at.is_(None),
            OrganisationMember.user_id == user_id,
            OrganisationMember.status == MemberStatus.ACTIVE.value,
            OrganisationMember.deleted_at.is_(None),
        )
        .limit(1)
    )
    return result.scalar_one_or_none() is not None


async def _has_membership_row(db: AsyncSession, leaderboard_id: str, user_id: str) -> bool:
    result = await db.execute(
        select(LeaderboardMember.id).where(
            LeaderboardMember.leaderboard_id == leaderboard_id,
            LeaderboardMember.user_id == user_id,
        )
    )
    return result.scalar_one_or_none() is not None


async def visibility_for(
    db: AsyncSession,
    board: Leaderboard,
    user_id: str,
    *,
    invited: bool = False,
) -> VisibilityResult:
    """Evaluate visibility for an already-loaded, live leaderboard."""
    visibility = board.visibility

    if visibility == LeaderboardVisibility.ORG_WIDE:
        ctx = await resolve_context(db, user_id, board.organisation_id)
        if ctx is None or ctx.status != MemberStatus.ACTIVE:
            return _deny(DenialReason.NOT_ORG_MEMBER)
        return ALLOWED

    if visibility == LeaderboardVisibility.GROUP:
        if await _is_group_member(db, board, user_id):
            return ALLOWED
        return _deny(DenialReason.NOT_GROUP_MEMBER)

    if visibility == LeaderboardVisibility.AD_HOC:
        if invited or await _has_membership_row(db, board.id, user_id):
            return ALLOWED
        return _deny(DenialReason.NOT_INVITED)

    # Unknown tier stored in the row: treat as unreachable
    return _deny(DenialReason.NOT_FOUND)


async def check_visibility(
    db: AsyncSession,
    leaderboard_id: str,
    user_id: str,
    *,
    invited: bool = False,
) -> VisibilityResult:
    """Can ``user_id`` see ``leaderboard_id``?

    ``invited`` is set by the invite-code path only; it never widens
    ORG_WIDE or GROUP boards.
    """
    board = await get_live_leaderboard(db, leaderboard_id)
    if board is None:
        return _deny(DenialReason.NOT_FOUND)
    return await visibility_for(db, board, user_id, invited=invited)
