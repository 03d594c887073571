"""Pydantic schemas for platform administration endpoints."""

from __future__ import annotations

from pydantic import BaseModel

from orgaccess.enums import OrgRole, PlatformRole
from orgaccess.organisations.schemas import OrganisationResponse


class OrganisationListResponse(BaseModel):
    organisations: list[OrganisationResponse]
    total: int
    page: int
    per_page: int


class AdminMemberRoleRequest(BaseModel):
    role: OrgRole


class SetPlatformRoleRequest(BaseModel):
    # null clears the role
    platform_role: PlatformRole | None


class UserResponse(BaseModel):
    id: str
    email: str | None = None
    name: str | None = None
    platform_role: str | None = None

    model_config = {"from_attributes": True}
