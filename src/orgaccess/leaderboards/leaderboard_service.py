"""Leaderboard creation and administration.

ORG_WIDE and GROUP boards belong to an organisation and follow its role
grants and billing state. AD_HOC boards belong to nobody but their creator:
they carry an invite code and are reached only through it.
"""

from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from orgaccess.access.context import AccessContext, resolve_context
from orgaccess.access.errors import Forbidden, NotFound, PermissionDenied, SubscriptionExpired
from orgaccess.access.gate import (
    has_permission,
    has_premium_access,
    require_permission,
    require_platform_permission,
    require_write,
)
from orgaccess.access.grants import (
    LEADERBOARDS_CREATE_AD_HOC,
    ORG_LEADERBOARDS_CREATE,
    ORG_LEADERBOARDS_MANAGE,
)
from orgaccess.audit.activity_service import record_activity
from orgaccess.db.models import Leaderboard, LeaderboardMember
from orgaccess.enums import ActivityType, LeaderboardVisibility
from orgaccess.leaderboards.invite_codes import generate_unique_invite_code
from orgaccess.leaderboards.visibility import get_live_leaderboard, visibility_for
from orgaccess.organisations.group_service import get_group
from orgaccess.organisations.organisation_service import get_user
from orgaccess.time_utils import utcnow

logger = logging.getLogger(__name__)


async def get_leaderboard(db: AsyncSession, leaderboard_id: str) -> Leaderboard:
    """Get a live leaderboard. Raises NotFound otherwise."""
    board = await get_live_leaderboard(db, leaderboard_id)
    if board is None:
        raise NotFound("Leaderboard not found", leaderboard_id=leaderboard_id)
    return board


async def get_visible_leaderboard(db: AsyncSession, leaderboard_id: str, user_id: str) -> Leaderboard:
    """Get a leaderboard the user may see. Raises Forbidden with the denial reason."""
    board = await get_leaderboard(db, leaderboard_id)
    visibility = await visibility_for(db, board, user_id)
    if not visibility.allowed:
        raise Forbidden(
            "Leaderboard is not visible to this user",
            reason=visibility.reason.value,
            leaderboard_id=leaderboard_id,
            user_id=user_id,
        )
    return board


async def list_organisation_leaderboards(
    db: AsyncSession,
    organisation_id: str,
    visible_to: str | None = None,
) -> list[Leaderboard]:
    """Live leaderboards of an organisation.

    With ``visible_to`` set, GROUP boards the user cannot see are left out.
    """
    result = await db.execute(
        select(Leaderboard)
        .where(
            Leaderboard.organisation_id == organisation_id,
            Leaderboard.deleted_at.is_(None),
        )
        .order_by(Leaderboard.created_at.desc())
    )
    boards = list(result.scalars().all())
    if visible_to is None:
        return boards

    visible = []
    for board in boards:
        if (await visibility_for(db, board, visible_to)).allowed:
            visible.append(board)
    return visible


async def create_leaderboard(
    db: AsyncSession,
    ctx: AccessContext | None,
    name: str,
    visibility: LeaderboardVisibility | str,
    *,
    description: str | None = None,
    organisation_group_id: str | None = None,
) -> Leaderboard:
    """Create an ORG_WIDE or GROUP leaderboard in the context's organisation."""
    visibility = LeaderboardVisibility(visibility)
    require_permission(ctx, ORG_LEADERBOARDS_CREATE)
    require_write(ctx, action=ORG_LEADERBOARDS_CREATE)

    if visibility == LeaderboardVisibility.AD_HOC:
        raise ValueError("AD_HOC leaderboards are not owned by an organisation")
    name = name.strip()
    if not name:
        raise ValueError("Leaderboard name is required")

    if visibility == LeaderboardVisibility.GROUP:
        if not organisation_group_id:
            raise ValueError("GROUP leaderboards require a group")
        await get_group(db, ctx.organisation_id, organisation_group_id)
    elif organisation_group_id:
        raise ValueError("Only GROUP leaderboards can be scoped to a group")

    board = Leaderboard(
        name=name,
        description=description,
        visibility=visibility.value,
        organisation_id=ctx.organisation_id,
        organisation_group_id=organisation_group_id,
        created_by_user_id=ctx.user_id,
        created_at=utcnow(),
    )
    db.add(board)
    await db.commit()

    logger.info(
        "Leaderboard created: %s (id=%s, organisation=%s, visibility=%s)",
        name, board.id, ctx.organisation_id, visibility.value,
    )
    await record_activity(
        db,
        ctx.organisation_id,
        ctx.user_id,
        ActivityType.LEADERBOARD_CREATED,
        {
            "leaderboard_id": board.id,
            "name": name,
            "visibility": visibility.value,
            "group_id": organisation_group_id,
        },
    )
    return board


async def create_ad_hoc_leaderboard(
    db: AsyncSession,
    user_id: str,
    name: str,
    *,
    description: str | None = None,
    ctx: AccessContext | None = None,
) -> Leaderboard:
    """Create an invite-only AD_HOC leaderboard. The creator is its first member.

    Authorised either by an organisation role granting ad hoc creation
    (billing follows that organisation) or by the user's platform role
    (billing follows the user's own subscription).
    """
    user = await get_user(db, user_id)
    if user is None:
        raise NotFound("User not found", user_id=user_id)
    if ctx is not None and ctx.user_id != user_id:
        raise PermissionDenied(
            f"Permission denied: {LEADERBOARDS_CREATE_AD_HOC}",
            action=LEADERBOARDS_CREATE_AD_HOC,
            organisation_id=ctx.organisation_id,
            user_id=user_id,
        )

    if ctx is not None and has_permission(ctx, LEADERBOARDS_CREATE_AD_HOC):
        require_write(ctx, action=LEADERBOARDS_CREATE_AD_HOC)
    else:
        require_platform_permission(user, LEADERBOARDS_CREATE_AD_HOC)
        if not has_premium_access(user):
            raise SubscriptionExpired("A premium subscription is required", user_id=user_id)

    name = name.strip()
    if not name:
        raise ValueError("Leaderboard name is required")

    now = utcnow()
    board = Leaderboard(
        name=name,
        description=description,
        visibility=LeaderboardVisibility.AD_HOC.value,
        created_by_user_id=user_id,
        invite_code=await generate_unique_invite_code(db),
        created_at=now,
    )
    db.add(board)
    await db.flush()

    db.add(LeaderboardMember(leaderboard_id=board.id, user_id=user_id, joined_at=now))
    await db.commit()

    logger.info("Ad hoc leaderboard created: %s (id=%s, creator=%s)", name, board.id, user_id)
    return board


async def delete_leaderboard(db: AsyncSession, leaderboard_id: str, actor_user_id: str) -> None:
    """Soft-delete a leaderboard."""
    board = await get_leaderboard(db, leaderboard_id)

    if board.organisation_id is not None:
        ctx = await resolve_context(db, actor_user_id, board.organisation_id)
        require_permission(ctx, ORG_LEADERBOARDS_MANAGE, board.organisation_id)
        require_write(ctx)
    elif board.created_by_user_id != actor_user_id:
        raise Forbidden(
            "Only the creator can delete this leaderboard",
            leaderboard_id=leaderboard_id,
            user_id=actor_user_id,
        )

    board.deleted_at = utcnow()
    await db.commit()

    logger.info("Leaderboard %s deleted by %s", leaderboard_id, actor_user_id)
    if board.organisation_id is not None:
        await record_activity(
            db,
            board.organisation_id,
            actor_user_id,
            ActivityType.LEADERBOARD_DELETED,
            {"leaderboard_id": leaderboard_id},
        )


async def regenerate_invite_code(db: AsyncSession, leaderboard_id: str, actor_user_id: str) -> str:
    """Creator replaces an AD_HOC leaderboard's invite code. The old code stops working."""
    board = await get_leaderboard(db, leaderboard_id)
    if board.visibility != LeaderboardVisibility.AD_HOC:
        raise ValueError("Only AD_HOC leaderboards have invite codes")
    if board.created_by_user_id != actor_user_id:
        raise Forbidden(
            "Only the creator can regenerate the invite code",
            leaderboard_id=leaderboard_id,
            user_id=actor_user_id,
        )

    board.invite_code = await generate_unique_invite_code(db)
    await db.commit()
    logger.info("Invite code regenerated for leaderboard %s", leaderboard_id)
    return board.invite_code
