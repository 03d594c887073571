"""Integration tests: organisation and leaderboard flows via the API."""

from __future__ import annotations

from datetime import timedelta

import pytest
import pytest_asyncio
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from orgaccess.db.models import Organisation
from orgaccess.enums import OrganisationStatus, PlatformRole, SubscriptionTier
from orgaccess.time_utils import utcnow


def _as(user) -> dict[str, str]:
    return {"X-User-Id": user.id}


@pytest_asyncio.fixture
async def school(client: AsyncClient, make_user) -> dict:
    """Organisation created through the API, with a teacher invited."""
    owner = await make_user("owner")
    resp = await client.post("/api/v1/organisations", json={"name": "Hill School", "max_seats": 5}, headers=_as(owner))
    assert resp.status_code == 201
    org = resp.json()

    resp = await client.post(
        f"/api/v1/organisations/{org['id']}/members",
        json={"email": "teacher@hill.test", "role": "TEACHER"},
        headers=_as(owner),
    )
    assert resp.status_code == 201
    teacher_member = resp.json()
    return {"owner": owner, "org": org, "teacher_member": teacher_member}


class TestIdentity:
    @pytest.mark.asyncio
    async def test_missing_header_is_401(self, client: AsyncClient):
        response = await client.post("/api/v1/organisations", json={"name": "X"})
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_unknown_user_is_401(self, client: AsyncClient):
        response = await client.post("/api/v1/organisations", json={"name": "X"}, headers={"X-User-Id": "nobody"})
        assert response.status_code == 401


class TestOrganisationApi:
    @pytest.mark.asyncio
    async def test_context_and_seats(self, client: AsyncClient, school: dict):
        org_id = school["org"]["id"]
        owner = school["owner"]

        ctx = (await client.get(f"/api/v1/organisations/{org_id}/context", headers=_as(owner))).json()
        assert ctx["role"] == "OWNER"
        assert ctx["can_write"] is True

        seats = (await client.get(f"/api/v1/organisations/{org_id}/seats", headers=_as(owner))).json()
        assert seats == {"total": 5, "used": 1, "available": 4}

        members = (await client.get(f"/api/v1/organisations/{org_id}/members", headers=_as(owner))).json()
        assert members["total"] == 2
        assert {m["email"] for m in members["members"]} == {"owner@school.test", "teacher@hill.test"}

    @pytest.mark.asyncio
    async def test_get_organisation(self, client: AsyncClient, school: dict, make_user):
        org_id = school["org"]["id"]

        response = await client.get(f"/api/v1/organisations/{org_id}", headers=_as(school["owner"]))
        assert response.status_code == 200
        assert response.json()["status"] == "TRIALING"

        stranger = await make_user("stranger")
        response = await client.get(f"/api/v1/organisations/{org_id}", headers=_as(stranger))
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_non_member_context_is_403(self, client: AsyncClient, school: dict, make_user):
        stranger = await make_user("stranger")
        response = await client.get(f"/api/v1/organisations/{school['org']['id']}/context", headers=_as(stranger))
        assert response.status_code == 403
        assert response.json()["kind"] == "permission_denied"

    @pytest.mark.asyncio
    async def test_removing_owner_is_500_invariant(self, client: AsyncClient, school: dict):
        org_id = school["org"]["id"]
        owner = school["owner"]
        ctx = (await client.get(f"/api/v1/organisations/{org_id}/context", headers=_as(owner))).json()

        response = await client.delete(
            f"/api/v1/organisations/{org_id}/members/{ctx['member_id']}", headers=_as(owner)
        )

        assert response.status_code == 500
        body = response.json()
        assert body["kind"] == "invariant_violation"
        assert body["member_id"] == ctx["member_id"]

    @pytest.mark.asyncio
    async def test_duplicate_invite_is_409(self, client: AsyncClient, school: dict):
        response = await client.post(
            f"/api/v1/organisations/{school['org']['id']}/members",
            json={"email": "teacher@hill.test", "role": "TEACHER"},
            headers=_as(school["owner"]),
        )
        assert response.status_code == 409
        assert response.json()["kind"] == "already_member"

    @pytest.mark.asyncio
    async def test_role_change_and_activity(self, client: AsyncClient, school: dict):
        org_id = school["org"]["id"]
        owner = school["owner"]
        member_id = school["teacher_member"]["id"]

        response = await client.patch(
            f"/api/v1/organisations/{org_id}/members/{member_id}", json={"role": "ADMIN"}, headers=_as(owner)
        )
        assert response.status_code == 200
        assert response.json()["role"] == "ADMIN"

        activity = (await client.get(f"/api/v1/organisations/{org_id}/activity", headers=_as(owner))).json()
        assert activity["activities"][0]["type"] == "MEMBER_ROLE_CHANGED"
        assert activity["activities"][0]["metadata"]["new_role"] == "ADMIN"

    @pytest.mark.asyncio
    async def test_patch_requires_exactly_one_field(self, client: AsyncClient, school: dict):
        response = await client.patch(
            f"/api/v1/organisations/{school['org']['id']}/members/{school['teacher_member']['id']}",
            json={},
            headers=_as(school["owner"]),
        )
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_remove_member(self, client: AsyncClient, school: dict):
        org_id = school["org"]["id"]
        owner = school["owner"]

        response = await client.delete(
            f"/api/v1/organisations/{org_id}/members/{school['teacher_member']['id']}", headers=_as(owner)
        )
        assert response.status_code == 204

        seats = (await client.get(f"/api/v1/organisations/{org_id}/seats", headers=_as(owner))).json()
        assert seats["used"] == 0

    @pytest.mark.asyncio
    async def test_owner_updates_settings(self, client: AsyncClient, school: dict):
        org_id = school["org"]["id"]

        response = await client.patch(
            f"/api/v1/organisations/{org_id}",
            json={"name": "Hill Academy", "email_domain": "hill.test"},
            headers=_as(school["owner"]),
        )

        assert response.status_code == 200
        assert response.json()["name"] == "Hill Academy"
        assert response.json()["email_domain"] == "hill.test"

    @pytest.mark.asyncio
    async def test_seat_capacity(self, client: AsyncClient, school: dict):
        org_id = school["org"]["id"]
        teacher_headers = {"X-User-Id": school["teacher_member"]["user_id"]}

        denied = await client.put(f"/api/v1/organisations/{org_id}/seats", json={"max_seats": 9}, headers=teacher_headers)
        assert denied.status_code == 403

        too_small = await client.put(
            f"/api/v1/organisations/{org_id}/seats", json={"max_seats": 0}, headers=_as(school["owner"])
        )
        assert too_small.status_code == 409
        assert too_small.json()["kind"] == "conflict"

        resized = await client.put(
            f"/api/v1/organisations/{org_id}/seats", json={"max_seats": 9}, headers=_as(school["owner"])
        )
        assert resized.status_code == 200
        assert resized.json() == {"total": 9, "used": 1, "available": 8}

    @pytest.mark.asyncio
    async def test_billing_summary(self, client: AsyncClient, school: dict):
        org_id = school["org"]["id"]

        owner_view = await client.get(f"/api/v1/organisations/{org_id}/billing", headers=_as(school["owner"]))
        assert owner_view.status_code == 200
        assert owner_view.json()["status"] == "TRIALING"
        assert owner_view.json()["seats"] == {"total": 5, "used": 1, "available": 4}

        teacher_view = await client.get(
            f"/api/v1/organisations/{org_id}/billing", headers={"X-User-Id": school["teacher_member"]["user_id"]}
        )
        assert teacher_view.status_code == 403

    @pytest.mark.asyncio
    async def test_past_due_invite_is_subscription_expired(
        self, client: AsyncClient, school: dict, db_session: AsyncSession
    ):
        org = await db_session.get(Organisation, school["org"]["id"])
        org.status = OrganisationStatus.PAST_DUE.value
        org.grace_period_end = utcnow() + timedelta(days=3)
        await db_session.commit()

        response = await client.post(
            f"/api/v1/organisations/{org.id}/members",
            json={"email": "late@hill.test", "role": "TEACHER"},
            headers=_as(school["owner"]),
        )

        assert response.status_code == 403
        assert response.json()["kind"] == "subscription_expired"
        assert response.json()["action"] == "org:members:invite"


class TestPlatformAdminApi:
    @pytest.mark.asyncio
    async def test_staff_read_without_membership(self, client: AsyncClient, school: dict, make_user):
        staff = await make_user("staff", platform_role=PlatformRole.PLATFORM_ADMIN.value)
        org_id = school["org"]["id"]

        assert (await client.get(f"/api/v1/organisations/{org_id}", headers=_as(staff))).status_code == 200
        assert (await client.get(f"/api/v1/organisations/{org_id}/activity", headers=_as(staff))).status_code == 200
        assert (await client.get(f"/api/v1/organisations/{org_id}/billing", headers=_as(staff))).status_code == 200

        listing = (await client.get("/api/v1/admin/organisations", headers=_as(staff))).json()
        assert listing["total"] == 1
        assert listing["organisations"][0]["id"] == org_id

    @pytest.mark.asyncio
    async def test_member_role_and_ownership(self, client: AsyncClient, school: dict, make_user):
        staff = await make_user("staff", platform_role=PlatformRole.PLATFORM_ADMIN.value)
        org_id = school["org"]["id"]
        member_id = school["teacher_member"]["id"]

        response = await client.put(
            f"/api/v1/admin/organisations/{org_id}/members/{member_id}/role",
            json={"role": "OWNER"},
            headers=_as(staff),
        )
        assert response.status_code == 200
        assert response.json()["role"] == "OWNER"

        ctx = (await client.get(f"/api/v1/organisations/{org_id}/context", headers=_as(school["owner"]))).json()
        assert ctx["role"] == "ADMIN"

    @pytest.mark.asyncio
    async def test_non_staff_are_denied(self, client: AsyncClient, school: dict):
        org_id = school["org"]["id"]
        response = await client.put(
            f"/api/v1/admin/organisations/{org_id}/members/{school['teacher_member']['id']}/role",
            json={"role": "ADMIN"},
            headers=_as(school["owner"]),
        )
        assert response.status_code == 403
        assert (await client.get("/api/v1/admin/organisations", headers=_as(school["owner"]))).status_code == 403

    @pytest.mark.asyncio
    async def test_set_platform_role(self, client: AsyncClient, make_user):
        staff = await make_user("staff", platform_role=PlatformRole.PLATFORM_ADMIN.value)
        pupil = await make_user("pupil")

        response = await client.patch(
            f"/api/v1/admin/users/{pupil.id}", json={"platform_role": "STUDENT"}, headers=_as(staff)
        )

        assert response.status_code == 200
        assert response.json()["platform_role"] == "STUDENT"


class TestLeaderboardApi:
    @pytest.mark.asyncio
    async def test_org_wide_join_and_mute(self, client: AsyncClient, school: dict):
        org_id = school["org"]["id"]
        owner = school["owner"]
        teacher_headers = {"X-User-Id": school["teacher_member"]["user_id"]}

        resp = await client.post(
            f"/api/v1/organisations/{org_id}/leaderboards", json={"name": "School Cup"}, headers=_as(owner)
        )
        assert resp.status_code == 201
        board_id = resp.json()["id"]

        joined = await client.post(f"/api/v1/leaderboards/{board_id}/join", headers=teacher_headers)
        assert joined.status_code == 200
        assert joined.json()["organisation_member_id"] == school["teacher_member"]["id"]

        again = await client.post(f"/api/v1/leaderboards/{board_id}/join", headers=teacher_headers)
        assert again.status_code == 409

        muted = await client.post(f"/api/v1/leaderboards/{board_id}/leave", json={"mute": True}, headers=teacher_headers)
        assert muted.status_code == 200
        assert muted.json()["muted"] is True
        assert muted.json()["left_at"] is None

        mine = (await client.get("/api/v1/me/leaderboards", headers=teacher_headers)).json()
        assert mine["leaderboards"][0]["muted"] is True

        unmuted = await client.post(f"/api/v1/leaderboards/{board_id}/unmute", headers=teacher_headers)
        assert unmuted.json()["muted"] is False

    @pytest.mark.asyncio
    async def test_cancelled_org_create_is_subscription_expired(
        self, client: AsyncClient, school: dict, db_session: AsyncSession
    ):
        org = await db_session.get(Organisation, school["org"]["id"])
        org.status = OrganisationStatus.CANCELLED.value
        await db_session.commit()

        resp = await client.post(
            f"/api/v1/organisations/{org.id}/leaderboards", json={"name": "Late Cup"}, headers=_as(school["owner"])
        )

        assert resp.status_code == 403
        assert resp.json()["kind"] == "subscription_expired"

    @pytest.mark.asyncio
    async def test_group_board_visibility(self, client: AsyncClient, school: dict):
        org_id = school["org"]["id"]
        owner = school["owner"]
        teacher_headers = {"X-User-Id": school["teacher_member"]["user_id"]}

        group = (await client.post(
            f"/api/v1/organisations/{org_id}/groups", json={"name": "7B", "type": "CLASS"}, headers=_as(owner)
        )).json()
        board = (await client.post(
            f"/api/v1/organisations/{org_id}/leaderboards",
            json={"name": "7B Cup", "visibility": "GROUP", "organisation_group_id": group["id"]},
            headers=_as(owner),
        )).json()

        denied = (await client.get(f"/api/v1/leaderboards/{board['id']}/visibility", headers=teacher_headers)).json()
        assert denied == {"leaderboard_id": board["id"], "allowed": False, "reason": "NOT_GROUP_MEMBER"}

        forbidden = await client.post(f"/api/v1/leaderboards/{board['id']}/join", headers=teacher_headers)
        assert forbidden.status_code == 403
        assert forbidden.json()["reason"] == "NOT_GROUP_MEMBER"

        added = await client.post(
            f"/api/v1/organisations/{org_id}/groups/{group['id']}/members",
            json={"member_id": school["teacher_member"]["id"]},
            headers=_as(owner),
        )
        assert added.status_code == 201

        joined = await client.post(f"/api/v1/leaderboards/{board['id']}/join", headers=teacher_headers)
        assert joined.status_code == 200

    @pytest.mark.asyncio
    async def test_ad_hoc_invite_flow(self, client: AsyncClient, make_user):
        creator = await make_user("creator", platform_role=PlatformRole.TEACHER.value, tier=SubscriptionTier.PREMIUM.value)
        friend = await make_user("friend", platform_role=PlatformRole.STUDENT.value)

        resp = await client.post("/api/v1/leaderboards", json={"name": "Quiz Night"}, headers=_as(creator))
        assert resp.status_code == 201
        board = resp.json()
        assert len(board["invite_code"]) == 8

        hidden = await client.get(f"/api/v1/leaderboards/{board['id']}", headers=_as(friend))
        assert hidden.status_code == 403

        joined = await client.post(
            "/api/v1/leaderboards/join-by-code", json={"invite_code": board["invite_code"]}, headers=_as(friend)
        )
        assert joined.status_code == 200

        seen = (await client.get(f"/api/v1/leaderboards/{board['id']}", headers=_as(friend))).json()
        assert seen["invite_code"] is None

        members = (await client.get(f"/api/v1/leaderboards/{board['id']}/members", headers=_as(friend))).json()
        assert members["total"] == 2

    @pytest.mark.asyncio
    async def test_free_user_cannot_create_ad_hoc(self, client: AsyncClient, make_user):
        teacher = await make_user("teacher", platform_role=PlatformRole.TEACHER.value)
        resp = await client.post("/api/v1/leaderboards", json={"name": "Quiz"}, headers=_as(teacher))
        assert resp.status_code == 403
        assert resp.json()["kind"] == "subscription_expired"

    @pytest.mark.asyncio
    async def test_unknown_board_is_404(self, client: AsyncClient, make_user):
        user = await make_user("user")
        resp = await client.post("/api/v1/leaderboards/nope/join", headers=_as(user))
        assert resp.status_code == 404
        assert resp.json()["kind"] == "not_found"

    @pytest.mark.asyncio
    async def test_parent_cannot_join_by_code(self, client: AsyncClient, make_user):
        creator = await make_user("creator", platform_role=PlatformRole.TEACHER.value, tier=SubscriptionTier.PREMIUM.value)
        parent = await make_user("parent", platform_role=PlatformRole.PARENT.value)
        board = (await client.post("/api/v1/leaderboards", json={"name": "Quiz Night"}, headers=_as(creator))).json()

        response = await client.post(
            "/api/v1/leaderboards/join-by-code", json={"invite_code": board["invite_code"]}, headers=_as(parent)
        )

        assert response.status_code == 403
        assert response.json()["kind"] == "permission_denied"
        assert response.json()["action"] == "leaderboards:join"
