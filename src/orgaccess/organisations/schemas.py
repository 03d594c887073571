"""Pydantic schemas for organisation endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from orgaccess.enums import GroupType, MemberStatus, OrgRole


# --- Organisation ---


class CreateOrganisationRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=128)
    max_seats: int | None = Field(None, ge=0)
    email_domain: str | None = Field(None, max_length=255)


class UpdateOrganisationRequest(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=128)
    # Empty string clears the invite domain restriction
    email_domain: str | None = Field(None, max_length=255)


class OrganisationResponse(BaseModel):
    id: str
    name: str
    status: str
    max_seats: int
    email_domain: str | None = None
    created_at: datetime

    model_config = {"from_attributes": True}


class AccessContextResponse(BaseModel):
    organisation_id: str
    member_id: str
    role: str
    status: str
    organisation_status: str
    can_read: bool
    can_write: bool


# --- Members ---


class InviteMemberRequest(BaseModel):
    email: str = Field(..., min_length=3, max_length=320)
    role: OrgRole = OrgRole.TEACHER


class UpdateMemberRequest(BaseModel):
    role: OrgRole | None = None
    status: MemberStatus | None = None


class MemberResponse(BaseModel):
    id: str
    user_id: str
    role: str
    status: str
    email: str | None = None
    name: str | None = None
    seat_assigned_at: datetime | None = None
    seat_released_at: datetime | None = None
    created_at: datetime

    model_config = {"from_attributes": True}


class MemberListResponse(BaseModel):
    members: list[MemberResponse]
    total: int


class SeatUsageResponse(BaseModel):
    total: int
    used: int
    available: int


class SetSeatsRequest(BaseModel):
    max_seats: int = Field(..., ge=0)


class BillingSummaryResponse(BaseModel):
    organisation_id: str
    status: str
    current_period_end: datetime | None = None
    grace_period_end: datetime | None = None
    seats: SeatUsageResponse


# --- Groups ---


class CreateGroupRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=128)
    type: GroupType = GroupType.CUSTOM
    description: str | None = Field(None, max_length=1024)


class AddGroupMemberRequest(BaseModel):
    member_id: str


class GroupResponse(BaseModel):
    id: str
    organisation_id: str
    name: str
    type: str
    description: str | None = None
    created_by_user_id: str
    created_at: datetime

    model_config = {"from_attributes": True}


class GroupListResponse(BaseModel):
    groups: list[GroupResponse]


class GroupMemberResponse(BaseModel):
    id: str
    organisation_group_id: str
    organisation_member_id: str
    created_at: datetime

    model_config = {"from_attributes": True}


# --- Activity ---


class ActivityResponse(BaseModel):
    id: str
    actor_user_id: str
    type: str
    metadata: dict[str, Any] = {}
    created_at: datetime


class ActivityListResponse(BaseModel):
    activities: list[ActivityResponse]
    total: int
    page: int
    per_page: int
