"""Platform administration endpoints.

Organisations (1), Members (1), Users (1).
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from orgaccess.admin.schemas import (
    AdminMemberRoleRequest,
    OrganisationListResponse,
    SetPlatformRoleRequest,
    UserResponse,
)
from orgaccess.admin.service import admin_update_member_role, list_organisations, set_platform_role
from orgaccess.auth.dependencies import get_current_user
from orgaccess.config import get_settings
from orgaccess.database import get_session
from orgaccess.db.models import User
from orgaccess.organisations.schemas import MemberResponse, OrganisationResponse

router = APIRouter(prefix="/api/v1/admin", tags=["Admin"])


@router.get("/organisations", response_model=OrganisationListResponse)
async def list_organisations_endpoint(
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Every organisation on the platform."""
    per_page = min(per_page, get_settings().admin_page_max)
    organisations, total = await list_organisations(db, user, page, per_page)
    return OrganisationListResponse(
        organisations=[OrganisationResponse.model_validate(o) for o in organisations],
        total=total,
        page=page,
        per_page=per_page,
    )


@router.put("/organisations/{organisation_id}/members/{member_id}/role", response_model=MemberResponse)
async def update_member_role_endpoint(
    organisation_id: str,
    member_id: str,
    body: AdminMemberRoleRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Set a member's role in any organisation, including ownership transfer."""
    member = await admin_update_member_role(db, user, organisation_id, member_id, body.role)
    return MemberResponse.model_validate(member)


@router.patch("/users/{user_id}", response_model=UserResponse)
async def set_platform_role_endpoint(
    user_id: str,
    body: SetPlatformRoleRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Grant or clear a platform role."""
    target = await set_platform_role(db, user, user_id, body.platform_role)
    return UserResponse.model_validate(target)
