"""Permission gate: pure functions over ``AccessContext``.

Role and billing are checked separately: ``require_permission`` answers
"does the role allow it", ``require_write`` answers "does billing and member
status allow mutating anything". Mutating operations call both, in that
order, so a cancelled organisation's owner gets SubscriptionExpired rather
than a generic denial.

A PAST_DUE organisation degrades before it locks: growth actions (new
leaderboards, new members) stop at once, other writes continue until the
grace period ends.
"""

from __future__ import annotations

from datetime import datetime

from orgaccess.access.context import AccessContext
from orgaccess.access.errors import PermissionDenied, SubscriptionExpired
from orgaccess.access.grants import (
    LEADERBOARDS_CREATE_AD_HOC,
    ORG_LEADERBOARDS_CREATE,
    ORG_MEMBERS_INVITE,
    platform_grants,
    role_grants,
)
from orgaccess.db.models import User
from orgaccess.enums import (
    MemberStatus,
    OrganisationStatus,
    SubscriptionStatus,
    SubscriptionTier,
)
from orgaccess.time_utils import as_utc, utcnow

READABLE_STATUSES = frozenset({MemberStatus.ACTIVE.value, MemberStatus.PENDING.value})

ACTIVE_ORG_STATUSES = frozenset({OrganisationStatus.ACTIVE.value, OrganisationStatus.TRIALING.value})

# Never writable, grace period or not.
LOCKED_ORG_STATUSES = frozenset({OrganisationStatus.CANCELLED.value, OrganisationStatus.EXPIRED.value})

# Blocked while PAST_DUE even inside the grace period.
PAST_DUE_BLOCKED_ACTIONS = frozenset({ORG_LEADERBOARDS_CREATE, ORG_MEMBERS_INVITE, LEADERBOARDS_CREATE_AD_HOC})

PREMIUM_SUBSCRIPTION_STATUSES = frozenset({SubscriptionStatus.ACTIVE.value, SubscriptionStatus.TRIALING.value})


def can_read(ctx: AccessContext | None) -> bool:
    """Active or pending members can read; suspended and inactive members cannot."""
    if ctx is None:
        return False
    return ctx.status in READABLE_STATUSES


def has_permission(ctx: AccessContext | None, action: str) -> bool:
    """Role-table check. Ignores billing state."""
    if not can_read(ctx):
        return False
    return role_grants(ctx.role, action)


def require_permission(
    ctx: AccessContext | None, action: str, organisation_id: str | None = None
) -> None:
    """Raise PermissionDenied unless the context's role grants ``action``.

    When ``organisation_id`` is given the context must belong to that
    organisation; a context is never valid across tenants.
    """
    if ctx is not None and organisation_id is not None and ctx.organisation_id != organisation_id:
        raise PermissionDenied(
            f"Permission denied: {action}",
            action=action,
            organisation_id=organisation_id,
            user_id=ctx.user_id,
        )
    if has_permission(ctx, action):
        return
    if ctx is None:
        raise PermissionDenied(f"Permission denied: {action}", action=action, organisation_id=organisation_id)
    raise PermissionDenied(
        f"Permission denied: {action}",
        action=action,
        organisation_id=ctx.organisation_id,
        user_id=ctx.user_id,
        role=ctx.role,
    )


def require_permission_or_platform(
    ctx: AccessContext | None,
    user: User,
    action: str,
    platform_action: str,
    organisation_id: str,
) -> None:
    """Pass when the platform role grants ``platform_action``, else check the org role."""
    if platform_grants(user.platform_role, platform_action):
        return
    require_permission(ctx, action, organisation_id)


def is_subscription_active(ctx: AccessContext, now: datetime | None = None) -> bool:
    """Whether the organisation's billing state allows writes.

    PAST_DUE keeps writing only while the billing-supplied grace period runs.
    """
    if ctx.organisation_status in ACTIVE_ORG_STATUSES:
        return True
    if ctx.organisation_status in LOCKED_ORG_STATUSES:
        return False
    if ctx.organisation_status == OrganisationStatus.PAST_DUE and ctx.grace_period_end is not None:
        return (now or utcnow()) < as_utc(ctx.grace_period_end)
    return False


def _billing_allows(ctx: AccessContext, now: datetime | None, action: str | None) -> bool:
    if action in PAST_DUE_BLOCKED_ACTIONS and ctx.organisation_status == OrganisationStatus.PAST_DUE:
        return False
    return is_subscription_active(ctx, now)


def can_write(ctx: AccessContext | None, now: datetime | None = None, action: str | None = None) -> bool:
    """Active member of an organisation whose billing state allows the write.

    ``action`` names the write when it matters: growth actions are refused
    to PAST_DUE organisations regardless of grace.
    """
    if ctx is None:
        return False
    return ctx.status == MemberStatus.ACTIVE and _billing_allows(ctx, now, action)


def require_write(ctx: AccessContext | None, now: datetime | None = None, *, action: str | None = None) -> None:
    """Raise PermissionDenied for non-active members, SubscriptionExpired for billing blocks."""
    if ctx is None:
        raise PermissionDenied("Not a member of this organisation")
    if ctx.status != MemberStatus.ACTIVE:
        raise PermissionDenied(
            "Membership is not active",
            organisation_id=ctx.organisation_id,
            user_id=ctx.user_id,
            status=ctx.status,
        )
    if not _billing_allows(ctx, now, action):
        raise SubscriptionExpired(
            "Organisation subscription does not allow changes",
            organisation_id=ctx.organisation_id,
            organisation_status=ctx.organisation_status,
            action=action,
        )


def has_premium_access(user: User, now: datetime | None = None) -> bool:
    """Personal (non-organisation) billing entitlement."""
    if user.tier == SubscriptionTier.PREMIUM:
        return True
    if user.subscription_status in PREMIUM_SUBSCRIPTION_STATUSES:
        return True
    if user.free_trial_until is not None:
        return (now or utcnow()) < as_utc(user.free_trial_until)
    return False


def require_platform_permission(user: User, action: str) -> None:
    """Raise PermissionDenied unless the user's platform role grants ``action``."""
    if not platform_grants(user.platform_role, action):
        raise PermissionDenied(
            f"Permission denied: {action}",
            action=action,
            user_id=user.id,
            platform_role=user.platform_role,
        )
