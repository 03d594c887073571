"""String enumerations shared by the models, the access layer and the API.

Values are stored verbatim in VARCHAR columns, so every enum subclasses
``str`` and compares equal to its stored value.
"""

from __future__ import annotations

from enum import Enum


class SubscriptionTier(str, Enum):
    VISITOR = "visitor"
    FREE = "free"
    PREMIUM = "premium"


class SubscriptionStatus(str, Enum):
    FREE_TRIAL = "FREE_TRIAL"
    ACTIVE = "ACTIVE"
    TRIALING = "TRIALING"
    PAST_DUE = "PAST_DUE"
    CANCELLED = "CANCELLED"
    EXPIRED = "EXPIRED"


class PlatformRole(str, Enum):
    """Global roles. Never interchangeable with OrgRole."""

    PLATFORM_ADMIN = "PLATFORM_ADMIN"
    ORG_ADMIN = "ORG_ADMIN"
    TEACHER = "TEACHER"
    STUDENT = "STUDENT"
    PARENT = "PARENT"


class OrganisationStatus(str, Enum):
    TRIALING = "TRIALING"
    ACTIVE = "ACTIVE"
    PAST_DUE = "PAST_DUE"
    CANCELLED = "CANCELLED"
    EXPIRED = "EXPIRED"


class OrgRole(str, Enum):
    """Roles scoped to a single organisation."""

    OWNER = "OWNER"
    ADMIN = "ADMIN"
    TEACHER = "TEACHER"
    BILLING_ADMIN = "BILLING_ADMIN"


class MemberStatus(str, Enum):
    ACTIVE = "ACTIVE"
    PENDING = "PENDING"
    INACTIVE = "INACTIVE"
    SUSPENDED = "SUSPENDED"


class GroupType(str, Enum):
    CLASS = "CLASS"
    YEAR_GROUP = "YEAR_GROUP"
    HOUSE = "HOUSE"
    DEPARTMENT = "DEPARTMENT"
    CUSTOM = "CUSTOM"


class LeaderboardVisibility(str, Enum):
    ORG_WIDE = "ORG_WIDE"
    GROUP = "GROUP"
    AD_HOC = "AD_HOC"


class ActivityType(str, Enum):
    ORGANISATION_CREATED = "ORGANISATION_CREATED"
    ORGANISATION_UPDATED = "ORGANISATION_UPDATED"
    SEAT_CAPACITY_CHANGED = "SEAT_CAPACITY_CHANGED"
    MEMBER_INVITED = "MEMBER_INVITED"
    MEMBER_REMOVED = "MEMBER_REMOVED"
    MEMBER_ROLE_CHANGED = "MEMBER_ROLE_CHANGED"
    MEMBER_STATUS_CHANGED = "MEMBER_STATUS_CHANGED"
    OWNERSHIP_TRANSFERRED = "OWNERSHIP_TRANSFERRED"
    GROUP_CREATED = "GROUP_CREATED"
    GROUP_DELETED = "GROUP_DELETED"
    GROUP_MEMBER_ADDED = "GROUP_MEMBER_ADDED"
    GROUP_MEMBER_REMOVED = "GROUP_MEMBER_REMOVED"
    LEADERBOARD_CREATED = "LEADERBOARD_CREATED"
    LEADERBOARD_DELETED = "LEADERBOARD_DELETED"
    LEADERBOARD_JOINED = "LEADERBOARD_JOINED"
    LEADERBOARD_LEFT = "LEADERBOARD_LEFT"
    LEADERBOARD_MUTED = "LEADERBOARD_MUTED"


class DenialReason(str, Enum):
    """Why a leaderboard is not reachable for a user."""

    NOT_ORG_MEMBER = "NOT_ORG_MEMBER"
    NOT_GROUP_MEMBER = "NOT_GROUP_MEMBER"
    NOT_INVITED = "NOT_INVITED"
    NOT_FOUND = "NOT_FOUND"
