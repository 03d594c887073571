"""Leaderboard API endpoints.

Organisation boards (2), Ad hoc (2), Board (4), Membership (4), Me (1).
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from orgaccess.access.context import AccessContext, resolve_context
from orgaccess.access.gate import require_permission
from orgaccess.access.grants import ORG_VIEW
from orgaccess.auth.dependencies import get_access_context, get_current_user
from orgaccess.database import get_session
from orgaccess.db.models import Leaderboard, User
from orgaccess.leaderboards.leaderboard_service import (
    create_ad_hoc_leaderboard,
    create_leaderboard,
    delete_leaderboard,
    get_visible_leaderboard,
    list_organisation_leaderboards,
    regenerate_invite_code,
)
from orgaccess.leaderboards.membership_service import (
    join,
    join_by_code,
    leave,
    list_leaderboard_members,
    list_user_leaderboards,
    unmute,
)
from orgaccess.leaderboards.schemas import (
    CreateAdHocLeaderboardRequest,
    CreateLeaderboardRequest,
    InviteCodeResponse,
    JoinByCodeRequest,
    LeaderboardListResponse,
    LeaderboardMemberListResponse,
    LeaderboardMemberResponse,
    LeaderboardResponse,
    LeaveLeaderboardRequest,
    MembershipResponse,
    MyLeaderboardListResponse,
    MyLeaderboardResponse,
    VisibilityResponse,
)
from orgaccess.leaderboards.visibility import check_visibility

router = APIRouter(prefix="/api/v1", tags=["Leaderboards"])


# ── Helper ──


def _build_leaderboard_response(board: Leaderboard, viewer_id: str) -> LeaderboardResponse:
    """Build a LeaderboardResponse from ORM model."""
    return LeaderboardResponse(
        id=board.id,
        name=board.name,
        description=board.description,
        visibility=board.visibility,
        organisation_id=board.organisation_id,
        organisation_group_id=board.organisation_group_id,
        created_by_user_id=board.created_by_user_id,
        created_at=board.created_at,
        invite_code=board.invite_code if board.created_by_user_id == viewer_id else None,
    )


# ── Organisation Leaderboard Endpoints (2) ──


@router.get("/organisations/{organisation_id}/leaderboards", response_model=LeaderboardListResponse)
async def list_organisation_leaderboards_endpoint(
    organisation_id: str,
    user: User = Depends(get_current_user),
    ctx: AccessContext | None = Depends(get_access_context),
    db: AsyncSession = Depends(get_session),
):
    """Leaderboards of an organisation the caller can see."""
    require_permission(ctx, ORG_VIEW, organisation_id)
    boards = await list_organisation_leaderboards(db, organisation_id, visible_to=user.id)
    return LeaderboardListResponse(leaderboards=[_build_leaderboard_response(b, user.id) for b in boards])


@router.post(
    "/organisations/{organisation_id}/leaderboards",
    response_model=LeaderboardResponse,
    status_code=201,
)
async def create_leaderboard_endpoint(
    organisation_id: str,
    body: CreateLeaderboardRequest,
    user: User = Depends(get_current_user),
    ctx: AccessContext | None = Depends(get_access_context),
    db: AsyncSession = Depends(get_session),
):
    """Create an ORG_WIDE or GROUP leaderboard."""
    board = await create_leaderboard(
        db,
        ctx,
        body.name,
        body.visibility,
        description=body.description,
        organisation_group_id=body.organisation_group_id,
    )
    return _build_leaderboard_response(board, user.id)


# ── Ad Hoc Endpoints (2) ──


@router.post("/leaderboards", response_model=LeaderboardResponse, status_code=201)
async def create_ad_hoc_leaderboard_endpoint(
    body: CreateAdHocLeaderboardRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Create an invite-only leaderboard. The creator joins it."""
    ctx = None
    if body.organisation_id is not None:
        ctx = await resolve_context(db, user.id, body.organisation_id)
    board = await create_ad_hoc_leaderboard(db, user.id, body.name, description=body.description, ctx=ctx)
    return _build_leaderboard_response(board, user.id)


@router.post("/leaderboards/join-by-code", response_model=MembershipResponse)
async def join_by_code_endpoint(
    body: JoinByCodeRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Join an ad hoc leaderboard with its invite code."""
    membership = await join_by_code(db, body.invite_code, user.id)
    return MembershipResponse.model_validate(membership)


# ── Board Endpoints (4) ──


@router.get("/leaderboards/{leaderboard_id}", response_model=LeaderboardResponse)
async def get_leaderboard_endpoint(
    leaderboard_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Get a leaderboard visible to the caller."""
    board = await get_visible_leaderboard(db, leaderboard_id, user.id)
    return _build_leaderboard_response(board, user.id)


@router.delete("/leaderboards/{leaderboard_id}", status_code=204)
async def delete_leaderboard_endpoint(
    leaderboard_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Delete a leaderboard."""
    await delete_leaderboard(db, leaderboard_id, user.id)


@router.get("/leaderboards/{leaderboard_id}/visibility", response_model=VisibilityResponse)
async def get_visibility_endpoint(
    leaderboard_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Whether the caller can see the leaderboard, and why not."""
    result = await check_visibility(db, leaderboard_id, user.id)
    return VisibilityResponse(
        leaderboard_id=leaderboard_id,
        allowed=result.allowed,
        reason=result.reason.value if result.reason is not None else None,
    )


@router.post("/leaderboards/{leaderboard_id}/invite-code", response_model=InviteCodeResponse)
async def regenerate_invite_code_endpoint(
    leaderboard_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Creator replaces the invite code."""
    code = await regenerate_invite_code(db, leaderboard_id, user.id)
    return InviteCodeResponse(invite_code=code)


# ── Membership Endpoints (4) ──


@router.get("/leaderboards/{leaderboard_id}/members", response_model=LeaderboardMemberListResponse)
async def list_leaderboard_members_endpoint(
    leaderboard_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Active members of a leaderboard visible to the caller."""
    await get_visible_leaderboard(db, leaderboard_id, user.id)
    rows = await list_leaderboard_members(db, leaderboard_id)
    members = [
        LeaderboardMemberResponse(user_id=m.user_id, name=u.name, joined_at=m.joined_at, muted=m.muted)
        for m, u in rows
    ]
    return LeaderboardMemberListResponse(members=members, total=len(members))


@router.post("/leaderboards/{leaderboard_id}/join", response_model=MembershipResponse)
async def join_endpoint(
    leaderboard_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Join a leaderboard the caller can see."""
    membership = await join(db, leaderboard_id, user.id)
    return MembershipResponse.model_validate(membership)


@router.post("/leaderboards/{leaderboard_id}/leave", response_model=MembershipResponse)
async def leave_endpoint(
    leaderboard_id: str,
    body: LeaveLeaderboardRequest | None = None,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Leave a leaderboard, or mute an organisation-wide one."""
    mute = body.mute if body is not None else False
    membership = await leave(db, leaderboard_id, user.id, mute=mute)
    return MembershipResponse.model_validate(membership)


@router.post("/leaderboards/{leaderboard_id}/unmute", response_model=MembershipResponse)
async def unmute_endpoint(
    leaderboard_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Show a muted organisation-wide leaderboard again."""
    membership = await unmute(db, leaderboard_id, user.id)
    return MembershipResponse.model_validate(membership)


# ── Me Endpoint (1) ──


@router.get("/me/leaderboards", response_model=MyLeaderboardListResponse)
async def my_leaderboards_endpoint(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Leaderboards the caller has joined and not left."""
    rows = await list_user_leaderboards(db, user.id)
    return MyLeaderboardListResponse(
        leaderboards=[
            MyLeaderboardResponse(
                leaderboard=_build_leaderboard_response(board, user.id),
                joined_at=membership.joined_at,
                muted=membership.muted,
            )
            for membership, board in rows
        ]
    )
