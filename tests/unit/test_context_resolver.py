"""Unit tests for access context resolution."""

from __future__ import annotations

from datetime import timedelta

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from orgaccess.access.context import resolve_context
from orgaccess.enums import MemberStatus, OrganisationStatus, OrgRole, SubscriptionStatus
from orgaccess.time_utils import as_utc, utcnow


class TestResolveContext:
    @pytest.mark.asyncio
    async def test_owner_context(self, db_session: AsyncSession, make_user, make_org):
        owner = await make_user("owner", subscription_status=SubscriptionStatus.ACTIVE.value)
        org, owner_member = await make_org(owner)

        ctx = await resolve_context(db_session, owner.id, org.id)

        assert ctx is not None
        assert ctx.organisation_id == org.id
        assert ctx.user_id == owner.id
        assert ctx.member_id == owner_member.id
        assert ctx.role == OrgRole.OWNER
        assert ctx.status == MemberStatus.ACTIVE
        assert ctx.organisation_status == OrganisationStatus.ACTIVE
        assert ctx.user_subscription_status == SubscriptionStatus.ACTIVE

    @pytest.mark.asyncio
    async def test_non_member_resolves_to_none(self, db_session: AsyncSession, make_user, make_org):
        owner = await make_user("owner")
        stranger = await make_user("stranger")
        org, _ = await make_org(owner)

        assert await resolve_context(db_session, stranger.id, org.id) is None

    @pytest.mark.asyncio
    async def test_unknown_organisation_resolves_to_none(self, db_session: AsyncSession, make_user):
        user = await make_user("user")
        assert await resolve_context(db_session, user.id, "no-such-org") is None

    @pytest.mark.asyncio
    async def test_soft_deleted_member_resolves_to_none(
        self, db_session: AsyncSession, make_user, make_org, add_member
    ):
        owner = await make_user("owner")
        teacher = await make_user("teacher")
        org, _ = await make_org(owner)
        member = await add_member(org, teacher)
        member.deleted_at = utcnow()
        await db_session.commit()

        assert await resolve_context(db_session, teacher.id, org.id) is None

    @pytest.mark.asyncio
    async def test_context_is_scoped_to_one_organisation(
        self, db_session: AsyncSession, make_user, make_org, add_member
    ):
        owner_a = await make_user("owner_a")
        owner_b = await make_user("owner_b")
        teacher = await make_user("teacher")
        org_a, _ = await make_org(owner_a)
        org_b, _ = await make_org(owner_b)
        await add_member(org_a, teacher, OrgRole.ADMIN)
        await add_member(org_b, teacher, OrgRole.TEACHER)

        ctx_a = await resolve_context(db_session, teacher.id, org_a.id)
        ctx_b = await resolve_context(db_session, teacher.id, org_b.id)

        assert ctx_a.role == OrgRole.ADMIN
        assert ctx_b.role == OrgRole.TEACHER
        assert ctx_a.member_id != ctx_b.member_id

    @pytest.mark.asyncio
    async def test_grace_period_is_carried(self, db_session: AsyncSession, make_user, make_org):
        owner = await make_user("owner")
        grace = utcnow() + timedelta(days=5)
        org, _ = await make_org(owner, status=OrganisationStatus.PAST_DUE, grace_period_end=grace)

        ctx = await resolve_context(db_session, owner.id, org.id)

        assert ctx.organisation_status == OrganisationStatus.PAST_DUE
        assert abs(as_utc(ctx.grace_period_end) - grace) < timedelta(seconds=1)
