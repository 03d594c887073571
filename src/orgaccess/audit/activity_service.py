"""Organisation activity recording (audit trail).

Auditing is best-effort: it runs after the primary mutation has committed and
a failed write is rolled back, logged and swallowed. The business state is the
source of truth; the trail is a diagnostic aid.
"""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from orgaccess.db.models import OrganisationActivity
from orgaccess.enums import ActivityType
from orgaccess.time_utils import utcnow

logger = logging.getLogger(__name__)


async def record_activity(
    db: AsyncSession,
    organisation_id: str,
    actor_user_id: str,
    activity_type: ActivityType | str,
    metadata: dict[str, Any] | None = None,
) -> OrganisationActivity | None:
    """Append one activity row. Returns None if the write failed."""
    activity_type = ActivityType(activity_type).value
    activity = OrganisationActivity(
        organisation_id=organisation_id,
        actor_user_id=actor_user_id,
        type=activity_type,
        activity_metadata=metadata or {},
        created_at=utcnow(),
    )
    # Own session and transaction: a failure here must not touch the caller's.
    async with AsyncSession(db.bind, expire_on_commit=False) as audit_db:
        try:
            audit_db.add(activity)
            await audit_db.commit()
        except SQLAlchemyError:
            await audit_db.rollback()
            logger.warning(
                "Failed to record %s activity for organisation %s (actor=%s)",
                activity_type,
                organisation_id,
                actor_user_id,
                exc_info=True,
            )
            return None
    return activity


async def list_activity(
    db: AsyncSession,
    organisation_id: str,
    page: int = 1,
    per_page: int = 20,
) -> tuple[list[OrganisationActivity], int]:
    """Get an organisation's activity trail, newest first (paginated)."""
    offset = (page - 1) * per_page

    total_result = await db.execute(
        select(func.count())
        .select_from(OrganisationActivity)
        .where(OrganisationActivity.organisation_id == organisation_id)
    )
    total = total_result.scalar_one()

    result = await db.execute(
        select(OrganisationActivity)
        .where(OrganisationActivity.organisation_id == organisation_id)
        .order_by(OrganisationActivity.created_at.desc())
        .offset(offset)
        .limit(per_page)
    )
    activities = list(result.scalars().all())
    return activities, total
