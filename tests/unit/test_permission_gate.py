"""Unit tests for the permission gate: role, member status and billing checks."""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timedelta, timezone

import pytest

from orgaccess.access.context import AccessContext
from orgaccess.access.errors import PermissionDenied, SubscriptionExpired
from orgaccess.access.gate import (
    can_read,
    can_write,
    has_permission,
    has_premium_access,
    is_subscription_active,
    require_permission,
    require_platform_permission,
    require_write,
)
from orgaccess.access.grants import (
    LEADERBOARDS_CREATE_AD_HOC,
    ORG_LEADERBOARDS_CREATE,
    ORG_MEMBERS_INVITE,
    ORG_MEMBERS_REMOVE,
    ORG_VIEW,
)
from orgaccess.db.models import User
from orgaccess.enums import (
    MemberStatus,
    OrganisationStatus,
    OrgRole,
    PlatformRole,
    SubscriptionStatus,
    SubscriptionTier,
)

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _ctx(
    role: OrgRole = OrgRole.OWNER,
    status: MemberStatus = MemberStatus.ACTIVE,
    org_status: OrganisationStatus = OrganisationStatus.ACTIVE,
    grace_period_end: datetime | None = None,
) -> AccessContext:
    return AccessContext(
        organisation_id="org-1",
        user_id="u-1",
        member_id="m-1",
        role=role.value,
        status=status.value,
        organisation_status=org_status.value,
        grace_period_end=grace_period_end,
    )


def _user(**fields) -> User:
    fields.setdefault("tier", SubscriptionTier.FREE.value)
    return User(id="u-1", **fields)


class TestReadAccess:
    @pytest.mark.parametrize(
        ("status", "expected"),
        [
            (MemberStatus.ACTIVE, True),
            (MemberStatus.PENDING, True),
            (MemberStatus.SUSPENDED, False),
            (MemberStatus.INACTIVE, False),
        ],
    )
    def test_can_read_by_member_status(self, status: MemberStatus, expected: bool):
        assert can_read(_ctx(status=status)) is expected

    def test_no_context_cannot_read(self):
        assert can_read(None) is False

    def test_suspended_owner_has_no_permissions(self):
        assert has_permission(_ctx(status=MemberStatus.SUSPENDED), ORG_VIEW) is False


class TestRequirePermission:
    def test_granted_action_passes(self):
        require_permission(_ctx(role=OrgRole.ADMIN), ORG_MEMBERS_REMOVE)

    def test_missing_grant_raises_with_details(self):
        with pytest.raises(PermissionDenied) as exc_info:
            require_permission(_ctx(role=OrgRole.TEACHER), ORG_MEMBERS_REMOVE)
        err = exc_info.value
        assert err.kind == "permission_denied"
        assert err.details["action"] == ORG_MEMBERS_REMOVE
        assert err.details["organisation_id"] == "org-1"
        assert err.details["user_id"] == "u-1"
        assert err.details["role"] == "TEACHER"

    def test_no_context_raises(self):
        with pytest.raises(PermissionDenied):
            require_permission(None, ORG_VIEW, "org-1")

    def test_context_from_another_organisation_is_denied(self):
        with pytest.raises(PermissionDenied) as exc_info:
            require_permission(_ctx(role=OrgRole.OWNER), ORG_VIEW, "org-2")
        assert exc_info.value.details["organisation_id"] == "org-2"

    def test_pending_member_keeps_read_grants(self):
        require_permission(_ctx(role=OrgRole.TEACHER, status=MemberStatus.PENDING), ORG_VIEW)


class TestSubscriptionGate:
    """Billing gates writes independent of role."""

    @pytest.mark.parametrize(
        ("org_status", "expected"),
        [
            (OrganisationStatus.ACTIVE, True),
            (OrganisationStatus.TRIALING, True),
            (OrganisationStatus.PAST_DUE, False),
            (OrganisationStatus.CANCELLED, False),
            (OrganisationStatus.EXPIRED, False),
        ],
    )
    def test_owner_write_by_org_status(self, org_status: OrganisationStatus, expected: bool):
        assert can_write(_ctx(org_status=org_status), NOW) is expected

    def test_expired_owner_keeps_role_grant_but_cannot_write(self):
        ctx = _ctx(org_status=OrganisationStatus.EXPIRED)
        require_permission(ctx, ORG_LEADERBOARDS_CREATE)
        assert can_write(ctx, NOW) is False

    def test_past_due_within_grace_keeps_ordinary_writes(self):
        ctx = _ctx(org_status=OrganisationStatus.PAST_DUE, grace_period_end=NOW + timedelta(days=3))
        assert is_subscription_active(ctx, NOW) is True
        assert can_write(ctx, NOW) is True
        assert can_write(ctx, NOW, action=ORG_MEMBERS_REMOVE) is True

    @pytest.mark.parametrize("action", [ORG_LEADERBOARDS_CREATE, ORG_MEMBERS_INVITE, LEADERBOARDS_CREATE_AD_HOC])
    def test_past_due_blocks_growth_actions_within_grace(self, action: str):
        ctx = _ctx(org_status=OrganisationStatus.PAST_DUE, grace_period_end=NOW + timedelta(days=3))
        assert can_write(ctx, NOW, action=action) is False
        with pytest.raises(SubscriptionExpired) as exc_info:
            require_write(ctx, NOW, action=action)
        assert exc_info.value.details["action"] == action

    def test_growth_actions_allowed_when_active(self):
        ctx = _ctx(org_status=OrganisationStatus.ACTIVE)
        require_write(ctx, NOW, action=ORG_LEADERBOARDS_CREATE)
        require_write(ctx, NOW, action=ORG_MEMBERS_INVITE)

    def test_past_due_after_grace_cannot_write(self):
        ctx = _ctx(org_status=OrganisationStatus.PAST_DUE, grace_period_end=NOW - timedelta(seconds=1))
        assert can_write(ctx, NOW) is False

    def test_naive_grace_period_is_treated_as_utc(self):
        naive = (NOW + timedelta(hours=1)).replace(tzinfo=None)
        ctx = _ctx(org_status=OrganisationStatus.PAST_DUE, grace_period_end=naive)
        assert can_write(ctx, NOW) is True

    def test_cancelled_ignores_grace_period(self):
        ctx = _ctx(org_status=OrganisationStatus.CANCELLED, grace_period_end=NOW + timedelta(days=30))
        assert can_write(ctx, NOW) is False

    @pytest.mark.parametrize("status", [MemberStatus.PENDING, MemberStatus.SUSPENDED, MemberStatus.INACTIVE])
    def test_non_active_member_cannot_write(self, status: MemberStatus):
        assert can_write(_ctx(status=status), NOW) is False

    def test_no_context_cannot_write(self):
        assert can_write(None, NOW) is False


class TestRequireWrite:
    def test_active_member_of_active_org_passes(self):
        require_write(_ctx(role=OrgRole.TEACHER), NOW)

    def test_billing_block_raises_subscription_expired(self):
        with pytest.raises(SubscriptionExpired) as exc_info:
            require_write(_ctx(org_status=OrganisationStatus.CANCELLED), NOW)
        assert exc_info.value.kind == "subscription_expired"
        assert exc_info.value.details["organisation_status"] == "CANCELLED"

    def test_pending_member_raises_permission_denied(self):
        with pytest.raises(PermissionDenied):
            require_write(_ctx(status=MemberStatus.PENDING), NOW)

    def test_member_status_checked_before_billing(self):
        ctx = _ctx(status=MemberStatus.SUSPENDED, org_status=OrganisationStatus.EXPIRED)
        with pytest.raises(PermissionDenied):
            require_write(ctx, NOW)

    def test_no_context_raises_permission_denied(self):
        with pytest.raises(PermissionDenied):
            require_write(None, NOW)

    def test_context_is_immutable(self):
        ctx = _ctx()
        with pytest.raises(AttributeError):
            ctx.role = "ADMIN"  # type: ignore[misc]
        assert replace(ctx, role="ADMIN").role == "ADMIN"


class TestPremiumAccess:
    def test_premium_tier(self):
        assert has_premium_access(_user(tier=SubscriptionTier.PREMIUM.value), NOW) is True

    @pytest.mark.parametrize("status", [SubscriptionStatus.ACTIVE, SubscriptionStatus.TRIALING])
    def test_paying_subscription(self, status: SubscriptionStatus):
        assert has_premium_access(_user(subscription_status=status.value), NOW) is True

    def test_unexpired_free_trial(self):
        assert has_premium_access(_user(free_trial_until=NOW + timedelta(days=1)), NOW) is True

    def test_expired_free_trial(self):
        assert has_premium_access(_user(free_trial_until=NOW - timedelta(days=1)), NOW) is False

    def test_cancelled_free_user(self):
        assert has_premium_access(_user(subscription_status=SubscriptionStatus.CANCELLED.value), NOW) is False


class TestPlatformPermission:
    def test_teacher_can_create_ad_hoc(self):
        require_platform_permission(_user(platform_role=PlatformRole.TEACHER.value), LEADERBOARDS_CREATE_AD_HOC)

    def test_student_cannot_create_ad_hoc(self):
        with pytest.raises(PermissionDenied) as exc_info:
            require_platform_permission(_user(platform_role=PlatformRole.STUDENT.value), LEADERBOARDS_CREATE_AD_HOC)
        assert exc_info.value.details["platform_role"] == "STUDENT"

    def test_no_platform_role_is_denied(self):
        with pytest.raises(PermissionDenied):
            require_platform_permission(_user(), LEADERBOARDS_CREATE_AD_HOC)
