"""Organisation API endpoints.

Organisation (5), Members (5), Seats (2), Groups (6), Activity (1).
Platform staff may read organisation details, billing and the audit trail
without being members.
Handlers are thin: resolve the caller's context, call one service, shape the
response. Access errors are mapped to status codes by the global handler.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from orgaccess.access.context import AccessContext
from orgaccess.access.errors import PermissionDenied
from orgaccess.access.gate import can_read, can_write, require_permission, require_permission_or_platform
from orgaccess.access.grants import ORG_VIEW, PLATFORM_AUDIT_VIEW, PLATFORM_ORGANISATIONS_VIEW
from orgaccess.audit.activity_service import list_activity
from orgaccess.auth.dependencies import get_access_context, get_current_user
from orgaccess.config import get_settings
from orgaccess.database import get_session
from orgaccess.db.models import User
from orgaccess.organisations.group_service import (
    add_group_member,
    create_group,
    delete_group,
    get_group,
    list_group_members,
    list_groups,
    remove_group_member,
)
from orgaccess.organisations.member_service import (
    get_seat_usage,
    invite_member,
    list_members,
    remove_member,
    set_seat_capacity,
    update_role,
    update_status,
)
from orgaccess.organisations.organisation_service import (
    create_organisation,
    get_billing_summary,
    get_organisation,
    update_organisation,
)
from orgaccess.organisations.schemas import (
    AccessContextResponse,
    ActivityListResponse,
    ActivityResponse,
    AddGroupMemberRequest,
    BillingSummaryResponse,
    CreateGroupRequest,
    CreateOrganisationRequest,
    GroupListResponse,
    GroupMemberResponse,
    GroupResponse,
    InviteMemberRequest,
    MemberListResponse,
    MemberResponse,
    OrganisationResponse,
    SeatUsageResponse,
    SetSeatsRequest,
    UpdateMemberRequest,
    UpdateOrganisationRequest,
)

router = APIRouter(prefix="/api/v1", tags=["Organisations"])


# ── Organisation Endpoints (5) ──


@router.post("/organisations", response_model=OrganisationResponse, status_code=201)
async def create_organisation_endpoint(
    body: CreateOrganisationRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Create an organisation. The caller becomes its owner."""
    org, _owner = await create_organisation(
        db, user.id, body.name, max_seats=body.max_seats, email_domain=body.email_domain,
    )
    return OrganisationResponse.model_validate(org)


@router.get("/organisations/{organisation_id}", response_model=OrganisationResponse)
async def get_organisation_endpoint(
    organisation_id: str,
    user: User = Depends(get_current_user),
    ctx: AccessContext | None = Depends(get_access_context),
    db: AsyncSession = Depends(get_session),
):
    """Organisation details for its members and platform staff."""
    require_permission_or_platform(ctx, user, ORG_VIEW, PLATFORM_ORGANISATIONS_VIEW, organisation_id)
    org = await get_organisation(db, organisation_id)
    return OrganisationResponse.model_validate(org)


@router.patch("/organisations/{organisation_id}", response_model=OrganisationResponse)
async def update_organisation_endpoint(
    organisation_id: str,
    body: UpdateOrganisationRequest,
    ctx: AccessContext | None = Depends(get_access_context),
    db: AsyncSession = Depends(get_session),
):
    """Rename the organisation or change its invite email domain."""
    org = await update_organisation(db, organisation_id, ctx, name=body.name, email_domain=body.email_domain)
    return OrganisationResponse.model_validate(org)


@router.get("/organisations/{organisation_id}/billing", response_model=BillingSummaryResponse)
async def get_billing_endpoint(
    organisation_id: str,
    user: User = Depends(get_current_user),
    ctx: AccessContext | None = Depends(get_access_context),
    db: AsyncSession = Depends(get_session),
):
    """Billing state and seat usage."""
    summary = await get_billing_summary(db, organisation_id, user, ctx)
    seats = summary.seats
    return BillingSummaryResponse(
        organisation_id=summary.organisation_id,
        status=summary.status,
        current_period_end=summary.current_period_end,
        grace_period_end=summary.grace_period_end,
        seats=SeatUsageResponse(total=seats.total, used=seats.used, available=seats.available),
    )


@router.get("/organisations/{organisation_id}/context", response_model=AccessContextResponse)
async def get_context_endpoint(
    organisation_id: str,
    ctx: AccessContext | None = Depends(get_access_context),
):
    """The caller's role, status and read/write access in this organisation."""
    if ctx is None:
        raise PermissionDenied("Not a member of this organisation", organisation_id=organisation_id)
    return AccessContextResponse(
        organisation_id=ctx.organisation_id,
        member_id=ctx.member_id,
        role=ctx.role,
        status=ctx.status,
        organisation_status=ctx.organisation_status,
        can_read=can_read(ctx),
        can_write=can_write(ctx),
    )


# ── Member Endpoints (5) ──


@router.get("/organisations/{organisation_id}/members", response_model=MemberListResponse)
async def list_members_endpoint(
    organisation_id: str,
    ctx: AccessContext | None = Depends(get_access_context),
    db: AsyncSession = Depends(get_session),
):
    """List live members with user info."""
    require_permission(ctx, ORG_VIEW, organisation_id)
    rows = await list_members(db, organisation_id)
    members = [
        MemberResponse(
            id=m.id,
            user_id=m.user_id,
            role=m.role,
            status=m.status,
            email=u.email,
            name=u.name,
            seat_assigned_at=m.seat_assigned_at,
            seat_released_at=m.seat_released_at,
            created_at=m.created_at,
        )
        for m, u in rows
    ]
    return MemberListResponse(members=members, total=len(members))


@router.post("/organisations/{organisation_id}/members", response_model=MemberResponse, status_code=201)
async def invite_member_endpoint(
    organisation_id: str,
    body: InviteMemberRequest,
    ctx: AccessContext | None = Depends(get_access_context),
    db: AsyncSession = Depends(get_session),
):
    """Invite a user by email and assign a seat."""
    member = await invite_member(db, organisation_id, body.email, body.role, ctx)
    return MemberResponse.model_validate(member)


@router.patch("/organisations/{organisation_id}/members/{member_id}", response_model=MemberResponse)
async def update_member_endpoint(
    organisation_id: str,
    member_id: str,
    body: UpdateMemberRequest,
    ctx: AccessContext | None = Depends(get_access_context),
    db: AsyncSession = Depends(get_session),
):
    """Change a member's role or status (one per request)."""
    if (body.role is None) == (body.status is None):
        raise ValueError("Provide exactly one of role or status")
    if body.role is not None:
        member = await update_role(db, organisation_id, member_id, body.role, ctx)
    else:
        member = await update_status(db, organisation_id, member_id, body.status, ctx)
    return MemberResponse.model_validate(member)


@router.delete("/organisations/{organisation_id}/members/{member_id}", status_code=204)
async def remove_member_endpoint(
    organisation_id: str,
    member_id: str,
    ctx: AccessContext | None = Depends(get_access_context),
    db: AsyncSession = Depends(get_session),
):
    """Remove a member and release its seat."""
    await remove_member(db, organisation_id, member_id, ctx)


@router.get("/organisations/{organisation_id}/seats", response_model=SeatUsageResponse)
async def get_seats_endpoint(
    organisation_id: str,
    ctx: AccessContext | None = Depends(get_access_context),
    db: AsyncSession = Depends(get_session),
):
    """Seat capacity and usage."""
    require_permission(ctx, ORG_VIEW, organisation_id)
    usage = await get_seat_usage(db, organisation_id)
    return SeatUsageResponse(total=usage.total, used=usage.used, available=usage.available)


@router.put("/organisations/{organisation_id}/seats", response_model=SeatUsageResponse)
async def set_seats_endpoint(
    organisation_id: str,
    body: SetSeatsRequest,
    user: User = Depends(get_current_user),
    ctx: AccessContext | None = Depends(get_access_context),
    db: AsyncSession = Depends(get_session),
):
    """Change seat capacity. Owners and platform admins only."""
    usage = await set_seat_capacity(db, organisation_id, body.max_seats, user, ctx)
    return SeatUsageResponse(total=usage.total, used=usage.used, available=usage.available)


# ── Group Endpoints (6) ──


@router.get("/organisations/{organisation_id}/groups", response_model=GroupListResponse)
async def list_groups_endpoint(
    organisation_id: str,
    ctx: AccessContext | None = Depends(get_access_context),
    db: AsyncSession = Depends(get_session),
):
    """List live groups."""
    require_permission(ctx, ORG_VIEW, organisation_id)
    groups = await list_groups(db, organisation_id)
    return GroupListResponse(groups=[GroupResponse.model_validate(g) for g in groups])


@router.post("/organisations/{organisation_id}/groups", response_model=GroupResponse, status_code=201)
async def create_group_endpoint(
    organisation_id: str,
    body: CreateGroupRequest,
    ctx: AccessContext | None = Depends(get_access_context),
    db: AsyncSession = Depends(get_session),
):
    """Create a group."""
    group = await create_group(db, ctx, organisation_id, body.name, body.type, body.description)
    return GroupResponse.model_validate(group)


@router.delete("/organisations/{organisation_id}/groups/{group_id}", status_code=204)
async def delete_group_endpoint(
    organisation_id: str,
    group_id: str,
    ctx: AccessContext | None = Depends(get_access_context),
    db: AsyncSession = Depends(get_session),
):
    """Delete a group."""
    await delete_group(db, ctx, organisation_id, group_id)


@router.get("/organisations/{organisation_id}/groups/{group_id}/members", response_model=MemberListResponse)
async def list_group_members_endpoint(
    organisation_id: str,
    group_id: str,
    ctx: AccessContext | None = Depends(get_access_context),
    db: AsyncSession = Depends(get_session),
):
    """List the organisation members linked to a group."""
    require_permission(ctx, ORG_VIEW, organisation_id)
    await get_group(db, organisation_id, group_id)
    members = await list_group_members(db, group_id)
    return MemberListResponse(
        members=[MemberResponse.model_validate(m) for m in members], total=len(members),
    )


@router.post(
    "/organisations/{organisation_id}/groups/{group_id}/members",
    response_model=GroupMemberResponse,
    status_code=201,
)
async def add_group_member_endpoint(
    organisation_id: str,
    group_id: str,
    body: AddGroupMemberRequest,
    ctx: AccessContext | None = Depends(get_access_context),
    db: AsyncSession = Depends(get_session),
):
    """Add an organisation member to a group."""
    link = await add_group_member(db, ctx, organisation_id, group_id, body.member_id)
    return GroupMemberResponse.model_validate(link)


@router.delete("/organisations/{organisation_id}/groups/{group_id}/members/{member_id}", status_code=204)
async def remove_group_member_endpoint(
    organisation_id: str,
    group_id: str,
    member_id: str,
    ctx: AccessContext | None = Depends(get_access_context),
    db: AsyncSession = Depends(get_session),
):
    """Remove a member from a group."""
    await remove_group_member(db, ctx, organisation_id, group_id, member_id)


# ── Activity Endpoint (1) ──


@router.get("/organisations/{organisation_id}/activity", response_model=ActivityListResponse)
async def list_activity_endpoint(
    organisation_id: str,
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1),
    user: User = Depends(get_current_user),
    ctx: AccessContext | None = Depends(get_access_context),
    db: AsyncSession = Depends(get_session),
):
    """Audit trail, newest first."""
    require_permission_or_platform(ctx, user, ORG_VIEW, PLATFORM_AUDIT_VIEW, organisation_id)
    per_page = min(per_page, get_settings().activity_page_max)
    activities, total = await list_activity(db, organisation_id, page, per_page)
    return ActivityListResponse(
        activities=[
            ActivityResponse(
                id=a.id,
                actor_user_id=a.actor_user_id,
                type=a.type,
                metadata=a.activity_metadata,
                created_at=a.created_at,
            )
            for a in activities
        ],
        total=total,
        page=page,
        per_page=per_page,
    )
