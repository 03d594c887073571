"""ORM models for tenants, memberships, groups and leaderboards.

Rows are never hard-deleted (except group links): ``deleted_at`` and
``left_at`` carry soft-delete state. Column types are portable so the same
metadata runs on PostgreSQL and SQLite.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    false,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from orgaccess.db.base import Base
from orgaccess.enums import (
    GroupType,
    MemberStatus,
    OrganisationStatus,
    SubscriptionTier,
)

JSONType = JSON().with_variant(JSONB(), "postgresql")


def _uuid() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


class User(Base):
    """Platform-wide identity with its billing state."""

    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    email: Mapped[str | None] = mapped_column(String(320), nullable=True, unique=True)
    name: Mapped[str | None] = mapped_column(String(128), nullable=True)
    tier: Mapped[str] = mapped_column(String(16), nullable=False, default=SubscriptionTier.FREE.value)
    subscription_status: Mapped[str | None] = mapped_column(String(16), nullable=True)
    free_trial_until: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    platform_role: Mapped[str | None] = mapped_column(String(32), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)


# ---------------------------------------------------------------------------
# Organisations
# ---------------------------------------------------------------------------


class Organisation(Base):
    """Tenant boundary. Status is supplied by billing and treated as opaque."""

    __tablename__ = "organisations"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default=OrganisationStatus.TRIALING.value)
    max_seats: Mapped[int] = mapped_column(Integer, nullable=False, default=30)
    email_domain: Mapped[str | None] = mapped_column(String(255), nullable=True)
    current_period_end: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    grace_period_end: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    members: Mapped[list[OrganisationMember]] = relationship("OrganisationMember", back_populates="organisation")


class OrganisationMember(Base):
    """User ↔ Organisation link. Soft-deleted on removal, seat released with it."""

    __tablename__ = "organisation_members"
    __table_args__ = (
        UniqueConstraint("organisation_id", "user_id", name="uq_org_members_org_user"),
        Index(
            "uq_org_members_one_owner",
            "organisation_id",
            unique=True,
            postgresql_where=text("role = 'OWNER' AND deleted_at IS NULL"),
            sqlite_where=text("role = 'OWNER' AND deleted_at IS NULL"),
        ),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    organisation_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("organisations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    role: Mapped[str] = mapped_column(String(16), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default=MemberStatus.PENDING.value)
    seat_assigned_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    seat_released_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    organisation: Mapped[Organisation] = relationship("Organisation", back_populates="members")
    user: Mapped[User] = relationship("User")


# ---------------------------------------------------------------------------
# Groups
# ---------------------------------------------------------------------------


class OrganisationGroup(Base):
    """Named subdivision of an organisation (class, house, ...)."""

    __tablename__ = "organisation_groups"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    organisation_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("organisations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    type: Mapped[str] = mapped_column(String(16), nullable=False, default=GroupType.CUSTOM.value)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_by_user_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id"), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class OrganisationGroupMember(Base):
    """Group ↔ OrganisationMember link (never directly to a user)."""

    __tablename__ = "organisation_group_members"
    __table_args__ = (
        UniqueConstraint(
            "organisation_group_id", "organisation_member_id", name="uq_group_members_group_member"
        ),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    organisation_group_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("organisation_groups.id", ondelete="CASCADE"), nullable=False, index=True
    )
    organisation_member_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("organisation_members.id", ondelete="CASCADE"), nullable=False, index=True
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)

    member: Mapped[OrganisationMember] = relationship("OrganisationMember")


# ---------------------------------------------------------------------------
# Leaderboards
# ---------------------------------------------------------------------------


class Leaderboard(Base):
    """Competitive scoreboard scoped by its visibility tier."""

    __tablename__ = "leaderboards"
    __table_args__ = (
        CheckConstraint(
            "visibility <> 'GROUP' OR organisation_group_id IS NOT NULL",
            name="ck_leaderboards_group_scope",
        ),
        CheckConstraint(
            "visibility <> 'AD_HOC' OR organisation_id IS NULL",
            name="ck_leaderboards_ad_hoc_scope",
        ),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    visibility: Mapped[str] = mapped_column(String(16), nullable=False)
    organisation_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("organisations.id", ondelete="CASCADE"), nullable=True, index=True
    )
    organisation_group_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("organisation_groups.id"), nullable=True
    )
    created_by_user_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id"), nullable=False)
    invite_code: Mapped[str | None] = mapped_column(String(8), nullable=True, unique=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class LeaderboardMember(Base):
    """Leaderboard ↔ User link. At most one row per pair; leaving sets ``left_at``."""

    __tablename__ = "leaderboard_members"
    __table_args__ = (
        UniqueConstraint("leaderboard_id", "user_id", name="uq_leaderboard_members_board_user"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    leaderboard_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("leaderboards.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    organisation_member_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("organisation_members.id"), nullable=True
    )
    joined_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
    left_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    muted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=false())


# ---------------------------------------------------------------------------
# Audit
# ---------------------------------------------------------------------------


class OrganisationActivity(Base):
    """Append-only audit trail of state-changing actions."""

    __tablename__ = "organisation_activity"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    organisation_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("organisations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    actor_user_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id"), nullable=False)
    type: Mapped[str] = mapped_column(String(32), nullable=False)
    activity_metadata: Mapped[dict[str, Any]] = mapped_column("metadata", JSONType, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, index=True
    )
