"""Shared test fixtures.

Every test gets a fresh in-memory SQLite database built from ORM metadata.
"""

from __future__ import annotations

import os
from collections.abc import AsyncGenerator, Awaitable, Callable
from datetime import datetime

import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from orgaccess.config import get_settings
from orgaccess.database import close_db, create_schema, get_session, init_db
from orgaccess.db.models import Organisation, OrganisationMember, User
from orgaccess.enums import MemberStatus, OrganisationStatus, OrgRole
from orgaccess.time_utils import utcnow

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

os.environ["ORGACCESS_DATABASE_URL"] = TEST_DATABASE_URL
os.environ["ORGACCESS_LOG_FORMAT"] = "console"
get_settings.cache_clear()


@pytest_asyncio.fixture
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """A session on a fresh, empty schema."""
    await init_db(TEST_DATABASE_URL)
    await create_schema()
    async for session in get_session():
        yield session
        break
    await close_db()


@pytest_asyncio.fixture
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client sharing the test database with ``db_session``."""
    from orgaccess.main import create_app

    app = create_app()
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest_asyncio.fixture
async def make_user(db_session: AsyncSession) -> Callable[..., Awaitable[User]]:
    """Factory: ``await make_user("alice", tier=..., platform_role=...)``."""
    counter = 0

    async def _make_user(name: str | None = None, **fields) -> User:
        nonlocal counter
        counter += 1
        name = name or f"user{counter}"
        user = User(email=f"{name}@school.test", name=name, **fields)
        db_session.add(user)
        await db_session.commit()
        return user

    return _make_user


@pytest_asyncio.fixture
async def make_org(db_session: AsyncSession) -> Callable[..., Awaitable[tuple[Organisation, OrganisationMember]]]:
    """Factory: an organisation with an ACTIVE owner. Returns (org, owner_member)."""

    async def _make_org(
        owner: User,
        *,
        status: OrganisationStatus = OrganisationStatus.ACTIVE,
        max_seats: int = 30,
        grace_period_end: datetime | None = None,
        email_domain: str | None = None,
    ) -> tuple[Organisation, OrganisationMember]:
        org = Organisation(
            name="Test School",
            status=status.value,
            max_seats=max_seats,
            grace_period_end=grace_period_end,
            email_domain=email_domain,
        )
        db_session.add(org)
        await db_session.flush()
        owner_member = OrganisationMember(
            organisation_id=org.id,
            user_id=owner.id,
            role=OrgRole.OWNER.value,
            status=MemberStatus.ACTIVE.value,
        )
        db_session.add(owner_member)
        await db_session.commit()
        return org, owner_member

    return _make_org


@pytest_asyncio.fixture
async def add_member(db_session: AsyncSession) -> Callable[..., Awaitable[OrganisationMember]]:
    """Factory: attach ``user`` to ``org`` directly, holding a seat."""

    async def _add_member(
        org: Organisation,
        user: User,
        role: OrgRole = OrgRole.TEACHER,
        status: MemberStatus = MemberStatus.ACTIVE,
    ) -> OrganisationMember:
        member = OrganisationMember(
            organisation_id=org.id,
            user_id=user.id,
            role=role.value,
            status=status.value,
            seat_assigned_at=utcnow(),
        )
        db_session.add(member)
        await db_session.commit()
        return member

    return _add_member
