"""Organisation groups (classes, houses, ...) and their member links.

A group links to OrganisationMember rows, so only live members of the same
organisation can be added.
"""

from __future__ import annotations

import logging

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from orgaccess.access.context import AccessContext
from orgaccess.access.errors import NotFound, NotMember
from orgaccess.access.gate import require_permission, require_write
from orgaccess.access.grants import ORG_GROUPS_CREATE, ORG_GROUPS_MANAGE
from orgaccess.audit.activity_service import record_activity
from orgaccess.db.models import OrganisationGroup, OrganisationGroupMember, OrganisationMember
from orgaccess.db.upsert import insert_for
from orgaccess.enums import ActivityType, GroupType
from orgaccess.organisations.member_service import get_member
from orgaccess.time_utils import utcnow

logger = logging.getLogger(__name__)


async def get_group(db: AsyncSession, organisation_id: str, group_id: str) -> OrganisationGroup:
    """Get a live group of ``organisation_id``. Raises NotFound otherwise."""
    result = await db.execute(
        select(OrganisationGroup).where(
            OrganisationGroup.id == group_id,
            OrganisationGroup.organisation_id == organisation_id,
            OrganisationGroup.deleted_at.is_(None),
        )
    )
    group = result.scalar_one_or_none()
    if group is None:
        raise NotFound("Group not found", organisation_id=organisation_id, group_id=group_id)
    return group


async def list_groups(db: AsyncSession, organisation_id: str) -> list[OrganisationGroup]:
    """Live groups of an organisation, newest first."""
    result = await db.execute(
        select(OrganisationGroup)
        .where(
            OrganisationGroup.organisation_id == organisation_id,
            OrganisationGroup.deleted_at.is_(None),
        )
        .order_by(OrganisationGroup.created_at.desc())
    )
    return list(result.scalars().all())


async def list_group_members(db: AsyncSession, group_id: str) -> list[OrganisationMember]:
    """Live organisation members linked to a group."""
    result = await db.execute(
        select(OrganisationMember)
        .join(OrganisationGroupMember, OrganisationGroupMember.organisation_member_id == OrganisationMember.id)
        .where(
            OrganisationGroupMember.organisation_group_id == group_id,
            OrganisationMember.deleted_at.is_(None),
        )
        .order_by(OrganisationGroupMember.created_at.asc())
    )
    return list(result.scalars().all())


async def create_group(
    db: AsyncSession,
    ctx: AccessContext | None,
    organisation_id: str,
    name: str,
    group_type: GroupType | str = GroupType.CUSTOM,
    description: str | None = None,
) -> OrganisationGroup:
    """Create a group inside the caller's organisation."""
    group_type = GroupType(group_type)
    require_permission(ctx, ORG_GROUPS_CREATE, organisation_id)
    require_write(ctx)

    name = name.strip()
    if not name:
        raise ValueError("Group name is required")

    group = OrganisationGroup(
        organisation_id=organisation_id,
        name=name,
        type=group_type.value,
        description=description,
        created_by_user_id=ctx.user_id,
        created_at=utcnow(),
    )
    db.add(group)
    await db.commit()

    logger.info("Group created: %s (id=%s, organisation=%s)", name, group.id, organisation_id)
    await record_activity(
        db,
        organisation_id,
        ctx.user_id,
        ActivityType.GROUP_CREATED,
        {"group_id": group.id, "name": name, "type": group_type.value},
    )
    return group


async def delete_group(
    db: AsyncSession,
    ctx: AccessContext | None,
    organisation_id: str,
    group_id: str,
) -> None:
    """Soft-delete a group. GROUP leaderboards scoped to it become unreachable."""
    require_permission(ctx, ORG_GROUPS_MANAGE, organisation_id)
    require_write(ctx)

    group = await get_group(db, organisation_id, group_id)
    group.deleted_at = utcnow()
    await db.commit()

    logger.info("Group %s deleted from organisation %s", group_id, organisation_id)
    await record_activity(db, organisation_id, ctx.user_id, ActivityType.GROUP_DELETED, {"group_id": group_id})


async def add_group_member(
    db: AsyncSession,
    ctx: AccessContext | None,
    organisation_id: str,
    group_id: str,
    member_id: str,
) -> OrganisationGroupMember:
    """Link an organisation member to a group. Adding twice is a no-op."""
    require_permission(ctx, ORG_GROUPS_MANAGE, organisation_id)
    require_write(ctx)

    await get_group(db, organisation_id, group_id)
    await get_member(db, organisation_id, member_id)

    stmt = (
        insert_for(db, OrganisationGroupMember)
        .values(
            organisation_group_id=group_id,
            organisation_member_id=member_id,
            created_at=utcnow(),
        )
        .on_conflict_do_nothing(index_elements=["organisation_group_id", "organisation_member_id"])
    )
    await db.execute(stmt)
    await db.commit()

    result = await db.execute(
        select(OrganisationGroupMember).where(
            OrganisationGroupMember.organisation_group_id == group_id,
            OrganisationGroupMember.organisation_member_id == member_id,
        )
    )
    link = result.scalar_one()

    await record_activity(
        db,
        organisation_id,
        ctx.user_id,
        ActivityType.GROUP_MEMBER_ADDED,
        {"group_id": group_id, "member_id": member_id},
    )
    return link


async def remove_group_member(
    db: AsyncSession,
    ctx: AccessContext | None,
    organisation_id: str,
    group_id: str,
    member_id: str,
) -> None:
    """Unlink a member from a group."""
    require_permission(ctx, ORG_GROUPS_MANAGE, organisation_id)
    require_write(ctx)

    await get_group(db, organisation_id, group_id)
    result = await db.execute(
        delete(OrganisationGroupMember).where(
            OrganisationGroupMember.organisation_group_id == group_id,
            OrganisationGroupMember.organisation_member_id == member_id,
        )
    )
    if result.rowcount == 0:
        await db.rollback()
        raise NotMember(
            "Member is not in this group",
            organisation_id=organisation_id,
            group_id=group_id,
            member_id=member_id,
        )
    await db.commit()

    await record_activity(
        db,
        organisation_id,
        ctx.user_id,
        ActivityType.GROUP_MEMBER_REMOVED,
        {"group_id": group_id, "member_id": member_id},
    )
