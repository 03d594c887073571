"""Organisation creation, lookup, settings and billing summary."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from orgaccess.access.context import AccessContext
from orgaccess.access.errors import NotFound
from orgaccess.access.gate import require_permission, require_permission_or_platform, require_write
from orgaccess.access.grants import ORG_BILLING_VIEW, ORG_SETTINGS, PLATFORM_ORGANISATIONS_VIEW
from orgaccess.audit.activity_service import record_activity
from orgaccess.config import get_settings
from orgaccess.db.models import Organisation, OrganisationMember, User
from orgaccess.enums import ActivityType, MemberStatus, OrganisationStatus, OrgRole
from orgaccess.organisations.member_service import SeatUsage, get_seat_usage
from orgaccess.time_utils import utcnow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BillingSummary:
    organisation_id: str
    status: str
    current_period_end: datetime | None
    grace_period_end: datetime | None
    seats: SeatUsage


async def get_organisation(db: AsyncSession, organisation_id: str) -> Organisation:
    """Get an organisation by ID. Raises NotFound otherwise."""
    result = await db.execute(select(Organisation).where(Organisation.id == organisation_id))
    org = result.scalar_one_or_none()
    if org is None:
        raise NotFound("Organisation not found", organisation_id=organisation_id)
    return org


async def get_user(db: AsyncSession, user_id: str) -> User | None:
    """Get a user by ID."""
    result = await db.execute(select(User).where(User.id == user_id))
    return result.scalar_one_or_none()


async def create_organisation(
    db: AsyncSession,
    owner_user_id: str,
    name: str,
    *,
    max_seats: int | None = None,
    email_domain: str | None = None,
) -> tuple[Organisation, OrganisationMember]:
    """Create an organisation. The creator becomes its OWNER.

    The owner does not consume a seat.
    """
    name = name.strip()
    if not name:
        raise ValueError("Organisation name is required")
    if max_seats is not None and max_seats < 0:
        raise ValueError("max_seats must not be negative")

    owner = await get_user(db, owner_user_id)
    if owner is None:
        raise NotFound("User not found", user_id=owner_user_id)

    now = utcnow()
    org = Organisation(
        name=name,
        status=OrganisationStatus.TRIALING.value,
        max_seats=max_seats if max_seats is not None else get_settings().default_max_seats,
        email_domain=_normalise_domain(email_domain),
        created_at=now,
        updated_at=now,
    )
    db.add(org)
    await db.flush()

    member = OrganisationMember(
        organisation_id=org.id,
        user_id=owner_user_id,
        role=OrgRole.OWNER.value,
        status=MemberStatus.ACTIVE.value,
        created_at=now,
        updated_at=now,
    )
    db.add(member)
    await db.commit()

    logger.info("Organisation created: %s (id=%s, owner=%s)", name, org.id, owner_user_id)
    await record_activity(
        db, org.id, owner_user_id, ActivityType.ORGANISATION_CREATED, {"name": name},
    )
    return org, member


def _normalise_domain(email_domain: str | None) -> str | None:
    return email_domain.strip().lower().lstrip("@") if email_domain else None


async def update_organisation(
    db: AsyncSession,
    organisation_id: str,
    ctx: AccessContext | None,
    *,
    name: str | None = None,
    email_domain: str | None = None,
) -> Organisation:
    """Rename an organisation or change its invite email domain.

    An empty ``email_domain`` clears the restriction; ``None`` leaves it.
    """
    require_permission(ctx, ORG_SETTINGS, organisation_id)
    require_write(ctx)

    org = await get_organisation(db, organisation_id)
    changes: dict[str, str | None] = {}
    if name is not None:
        name = name.strip()
        if not name:
            raise ValueError("Organisation name is required")
        if name != org.name:
            changes["name"] = name
    if email_domain is not None:
        domain = _normalise_domain(email_domain)
        if domain != org.email_domain:
            changes["email_domain"] = domain
    if not changes:
        return org

    for field, value in changes.items():
        setattr(org, field, value)
    org.updated_at = utcnow()
    await db.commit()

    logger.info("Organisation %s updated: %s", organisation_id, sorted(changes))
    await record_activity(db, organisation_id, ctx.user_id, ActivityType.ORGANISATION_UPDATED, changes)
    return org


async def get_billing_summary(
    db: AsyncSession,
    organisation_id: str,
    user: User,
    ctx: AccessContext | None,
) -> BillingSummary:
    """Billing state and seat usage, for billing roles and platform staff."""
    require_permission_or_platform(ctx, user, ORG_BILLING_VIEW, PLATFORM_ORGANISATIONS_VIEW, organisation_id)
    org = await get_organisation(db, organisation_id)
    seats = await get_seat_usage(db, organisation_id)
    return BillingSummary(
        organisation_id=org.id,
        status=org.status,
        current_period_end=org.current_period_end,
        grace_period_end=org.grace_period_end,
        seats=seats,
    )
