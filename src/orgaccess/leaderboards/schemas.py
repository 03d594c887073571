"""Pydantic schemas for leaderboard endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from orgaccess.enums import LeaderboardVisibility


class CreateLeaderboardRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=128)
    visibility: LeaderboardVisibility = LeaderboardVisibility.ORG_WIDE
    description: str | None = Field(None, max_length=1024)
    organisation_group_id: str | None = None


class CreateAdHocLeaderboardRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=128)
    description: str | None = Field(None, max_length=1024)
    # Act through an organisation role instead of the personal subscription
    organisation_id: str | None = None


class JoinByCodeRequest(BaseModel):
    invite_code: str = Field(..., min_length=8, max_length=8)


class LeaveLeaderboardRequest(BaseModel):
    mute: bool = False


class LeaderboardResponse(BaseModel):
    id: str
    name: str
    description: str | None = None
    visibility: str
    organisation_id: str | None = None
    organisation_group_id: str | None = None
    created_by_user_id: str
    created_at: datetime
    invite_code: str | None = None  # Only shown to the creator


class LeaderboardListResponse(BaseModel):
    leaderboards: list[LeaderboardResponse]


class MembershipResponse(BaseModel):
    id: str
    leaderboard_id: str
    user_id: str
    organisation_member_id: str | None = None
    joined_at: datetime
    left_at: datetime | None = None
    muted: bool

    model_config = {"from_attributes": True}


class LeaderboardMemberResponse(BaseModel):
    user_id: str
    name: str | None = None
    joined_at: datetime
    muted: bool


class LeaderboardMemberListResponse(BaseModel):
    members: list[LeaderboardMemberResponse]
    total: int


class MyLeaderboardResponse(BaseModel):
    leaderboard: LeaderboardResponse
    joined_at: datetime
    muted: bool


class MyLeaderboardListResponse(BaseModel):
    leaderboards: list[MyLeaderboardResponse]


class VisibilityResponse(BaseModel):
    leaderboard_id: str
    allowed: bool
    reason: str | None = None


class InviteCodeResponse(BaseModel):
    invite_code: str
