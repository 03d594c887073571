"""Leaderboard membership lifecycle.

Per (leaderboard, user) pair: Unjoined -> Active -> {Muted, Left}.

Rules:
- One row per pair, ever. Rejoining after leaving clears ``left_at`` on the
  same row through an upsert keyed on (leaderboard_id, user_id), so two
  concurrent joins converge on one active row.
- Muting is only possible on ORG_WIDE boards, which cannot be truly left;
  a muted member stays counted but is suppressed from display.
- Visibility is checked before anything is written.
"""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from orgaccess.access.context import resolve_context
from orgaccess.access.errors import AlreadyMember, Forbidden, NotFound, NotMember
from orgaccess.access.gate import require_platform_permission
from orgaccess.access.grants import LEADERBOARDS_JOIN
from orgaccess.audit.activity_service import record_activity
from orgaccess.db.models import Leaderboard, LeaderboardMember, User
from orgaccess.db.upsert import insert_for
from orgaccess.enums import ActivityType, LeaderboardVisibility
from orgaccess.leaderboards.invite_codes import resolve_invite_code
from orgaccess.leaderboards.visibility import get_live_leaderboard, visibility_for
from orgaccess.time_utils import utcnow

logger = logging.getLogger(__name__)


async def _require_board(db: AsyncSession, leaderboard_id: str) -> Leaderboard:
    board = await get_live_leaderboard(db, leaderboard_id)
    if board is None:
        raise NotFound("Leaderboard not found", leaderboard_id=leaderboard_id)
    return board


async def get_active_membership(
    db: AsyncSession,
    leaderboard_id: str,
    user_id: str,
    *,
    for_update: bool = False,
) -> LeaderboardMember | None:
    """The user's row on this board if it has not been left (muted rows count)."""
    stmt = select(LeaderboardMember).where(
        LeaderboardMember.leaderboard_id == leaderboard_id,
        LeaderboardMember.user_id == user_id,
        LeaderboardMember.left_at.is_(None),
    )
    if for_update:
        stmt = stmt.with_for_update().execution_options(populate_existing=True)
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def _upsert_membership(
    db: AsyncSession,
    leaderboard_id: str,
    user_id: str,
    organisation_member_id: str | None,
    now: datetime,
) -> LeaderboardMember:
    """INSERT ... ON CONFLICT (leaderboard_id, user_id) DO UPDATE.

    A left row is reactivated in place, so the row id is stable across
    leave/rejoin cycles.
    """
    stmt = (
        insert_for(db, LeaderboardMember)
        .values(
            leaderboard_id=leaderboard_id,
            user_id=user_id,
            organisation_member_id=organisation_member_id,
            joined_at=now,
            left_at=None,
            muted=False,
        )
        .on_conflict_do_update(
            index_elements=["leaderboard_id", "user_id"],
            set_={
                "left_at": None,
                "muted": False,
                "joined_at": now,
                "organisation_member_id": organisation_member_id,
            },
        )
    )
    await db.execute(stmt)

    result = await db.execute(
        select(LeaderboardMember)
        .where(
            LeaderboardMember.leaderboard_id == leaderboard_id,
            LeaderboardMember.user_id == user_id,
        )
        .execution_options(populate_existing=True)
    )
    return result.scalar_one()


async def join(
    db: AsyncSession,
    leaderboard_id: str,
    user_id: str,
    *,
    invited: bool = False,
) -> LeaderboardMember:
    """Join a leaderboard the user can see.

    ``invited`` is only set by :func:`join_by_code`. Boards outside any
    organisation also need the platform role to grant ``leaderboards:join``.
    """
    board = await _require_board(db, leaderboard_id)
    if board.organisation_id is None:
        user = await db.get(User, user_id)
        if user is None:
            raise NotFound("User not found", user_id=user_id)
        require_platform_permission(user, LEADERBOARDS_JOIN)

    visibility = await visibility_for(db, board, user_id, invited=invited)
    if not visibility.allowed:
        raise Forbidden(
            "Leaderboard is not visible to this user",
            reason=visibility.reason.value,
            leaderboard_id=leaderboard_id,
            user_id=user_id,
        )

    if await get_active_membership(db, leaderboard_id, user_id) is not None:
        raise AlreadyMember(
            "Already a member of this leaderboard",
            leaderboard_id=leaderboard_id,
            user_id=user_id,
        )

    organisation_member_id = None
    if board.organisation_id is not None:
        ctx = await resolve_context(db, user_id, board.organisation_id)
        organisation_member_id = ctx.member_id if ctx is not None else None

    membership = await _upsert_membership(db, leaderboard_id, user_id, organisation_member_id, utcnow())
    await db.commit()

    logger.info("User %s joined leaderboard %s", user_id, leaderboard_id)
    if board.organisation_id is not None:
        await record_activity(
            db,
            board.organisation_id,
            user_id,
            ActivityType.LEADERBOARD_JOINED,
            {"leaderboard_id": leaderboard_id, "member_id": organisation_member_id},
        )
    return membership


async def join_by_code(db: AsyncSession, code: str, user_id: str) -> LeaderboardMember:
    """Join an AD_HOC leaderboard using its invite code."""
    leaderboard_id = await resolve_invite_code(db, code)
    if leaderboard_id is None:
        raise NotFound("Invalid invite code")
    return await join(db, leaderboard_id, user_id, invited=True)


async def leave(
    db: AsyncSession,
    leaderboard_id: str,
    user_id: str,
    *,
    mute: bool = False,
) -> LeaderboardMember:
    """Leave a leaderboard, or mute it when it is ORG_WIDE and ``mute`` is set."""
    board = await _require_board(db, leaderboard_id)

    membership = await get_active_membership(db, leaderboard_id, user_id, for_update=True)
    if membership is None:
        raise NotMember(
            "Not a member of this leaderboard",
            leaderboard_id=leaderboard_id,
            user_id=user_id,
        )

    if mute and board.visibility == LeaderboardVisibility.ORG_WIDE:
        membership.muted = True
        activity_type = ActivityType.LEADERBOARD_MUTED
    else:
        membership.left_at = utcnow()
        activity_type = ActivityType.LEADERBOARD_LEFT
    await db.commit()

    logger.info("User %s left leaderboard %s (muted=%s)", user_id, leaderboard_id, membership.muted)
    if board.organisation_id is not None:
        await record_activity(
            db,
            board.organisation_id,
            user_id,
            activity_type,
            {"leaderboard_id": leaderboard_id, "member_id": membership.organisation_member_id},
        )
    return membership


async def unmute(db: AsyncSession, leaderboard_id: str, user_id: str) -> LeaderboardMember:
    """Muted -> Active. Unmuting an unmuted membership is a no-op."""
    await _require_board(db, leaderboard_id)

    membership = await get_active_membership(db, leaderboard_id, user_id, for_update=True)
    if membership is None:
        raise NotMember(
            "Not a member of this leaderboard",
            leaderboard_id=leaderboard_id,
            user_id=user_id,
        )
    if membership.muted:
        membership.muted = False
        await db.commit()
        logger.info("User %s unmuted leaderboard %s", user_id, leaderboard_id)
    return membership


async def list_user_leaderboards(
    db: AsyncSession, user_id: str
) -> list[tuple[LeaderboardMember, Leaderboard]]:
    """Live leaderboards the user has not left, with the membership row."""
    result = await db.execute(
        select(LeaderboardMember, Leaderboard)
        .join(Leaderboard, LeaderboardMember.leaderboard_id == Leaderboard.id)
        .where(
            LeaderboardMember.user_id == user_id,
            LeaderboardMember.left_at.is_(None),
            Leaderboard.deleted_at.is_(None),
        )
        .order_by(LeaderboardMember.joined_at.desc())
    )
    return [(row.LeaderboardMember, row.Leaderboard) for row in result]


async def list_leaderboard_members(
    db: AsyncSession, leaderboard_id: str
) -> list[tuple[LeaderboardMember, User]]:
    """Active (including muted) members of a leaderboard with user info."""
    result = await db.execute(
        select(LeaderboardMember, User)
        .join(User, LeaderboardMember.user_id == User.id)
        .where(
            LeaderboardMember.leaderboard_id == leaderboard_id,
            LeaderboardMember.left_at.is_(None),
        )
        .order_by(LeaderboardMember.joined_at.asc())
    )
    return [(row.LeaderboardMember, row.User) for row in result]
