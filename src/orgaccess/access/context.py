"""Access context resolution.

An ``AccessContext`` is the immutable snapshot every permission check runs
against. Resolution is one joined SELECT; no lazy loads, no recursion.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from orgaccess.db.models import Organisation, OrganisationMember, User


@dataclass(frozen=True, slots=True)
class AccessContext:
    """A user's role, status and billing state within one organisation."""

    organisation_id: str
    user_id: str
    member_id: str
    role: str
    status: str
    organisation_status: str
    user_subscription_status: str | None = None
    grace_period_end: datetime | None = None


async def resolve_context(
    db: AsyncSession, user_id: str, organisation_id: str
) -> AccessContext | None:
    """Load the caller's live membership of ``organisation_id``.

    Returns None when the user is not a member (or the membership is
    soft-deleted). That is a valid "no access" answer, not an error.
    """
    result = await db.execute(
        select(
            OrganisationMember.id,
            OrganisationMember.role,
            OrganisationMember.status,
            Organisation.status.label("organisation_status"),
            Organisation.grace_period_end,
            User.subscription_status,
        )
        .join(Organisation, Organisation.id == OrganisationMember.organisation_id)
        .join(User, User.id == OrganisationMember.user_id)
        .where(
            OrganisationMember.organisation_id == organisation_id,
            OrganisationMember.user_id == user_id,
            OrganisationMember.deleted_at.is_(None),
        )
    )
    row = result.one_or_none()
    if row is None:
        return None

    return AccessContext(
        organisation_id=organisation_id,
        user_id=user_id,
        member_id=row.id,
        role=row.role,
        status=row.status,
        organisation_status=row.organisation_status,
        user_subscription_status=row.subscription_status,
        grace_period_end=row.grace_period_end,
    )
