"""Platform administration.

Cross-tenant operations for platform staff. Every entry point checks the
actor's platform role first; organisation membership is never consulted, and
billing state does not block them.
"""

from __future__ import annotations

import logging

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from orgaccess.access.errors import Forbidden, InvariantViolation, NotFound
from orgaccess.access.gate import require_platform_permission
from orgaccess.access.grants import (
    PLATFORM_ORGANISATIONS_MANAGE,
    PLATFORM_ORGANISATIONS_VIEW,
    PLATFORM_USERS_MANAGE,
)
from orgaccess.db.models import Organisation, OrganisationMember, User
from orgaccess.enums import OrgRole, PlatformRole
from orgaccess.organisations.member_service import (
    apply_role_change,
    get_member,
    get_owner,
    transfer_ownership,
)
from orgaccess.organisations.organisation_service import get_organisation, get_user

logger = logging.getLogger(__name__)


async def list_organisations(
    db: AsyncSession,
    actor: User,
    page: int = 1,
    per_page: int = 20,
) -> tuple[list[Organisation], int]:
    """All organisations, newest first (paginated)."""
    require_platform_permission(actor, PLATFORM_ORGANISATIONS_VIEW)
    total = (await db.execute(select(func.count()).select_from(Organisation))).scalar_one()
    result = await db.execute(
        select(Organisation)
        .order_by(Organisation.created_at.desc())
        .offset((page - 1) * per_page)
        .limit(per_page)
    )
    return list(result.scalars().all()), total


async def admin_update_member_role(
    db: AsyncSession,
    actor: User,
    organisation_id: str,
    member_id: str,
    new_role: OrgRole | str,
) -> OrganisationMember:
    """Change any member's role. Granting OWNER transfers ownership.

    The previous owner becomes ADMIN, as with a transfer made by the owner.
    """
    new_role = OrgRole(new_role)
    require_platform_permission(actor, PLATFORM_ORGANISATIONS_MANAGE)
    await get_organisation(db, organisation_id)

    target = await get_member(db, organisation_id, member_id, for_update=True)
    if target.role == new_role:
        return target
    if new_role == OrgRole.OWNER:
        current_owner = await get_owner(db, organisation_id, for_update=True)
        logger.info("Platform admin %s transferring ownership of %s", actor.id, organisation_id)
        return await transfer_ownership(db, organisation_id, target, current_owner, actor.id)
    if target.role == OrgRole.OWNER:
        raise InvariantViolation(
            "An organisation must keep its owner; transfer ownership instead",
            organisation_id=organisation_id,
            member_id=member_id,
        )
    return await apply_role_change(db, organisation_id, target, new_role, actor.id)


async def set_platform_role(
    db: AsyncSession,
    actor: User,
    user_id: str,
    platform_role: PlatformRole | str | None,
) -> User:
    """Grant or clear a user's platform role. Staff cannot change their own."""
    require_platform_permission(actor, PLATFORM_USERS_MANAGE)
    role = PlatformRole(platform_role).value if platform_role is not None else None
    if user_id == actor.id:
        raise Forbidden("Cannot change your own platform role", user_id=user_id)

    user = await get_user(db, user_id)
    if user is None:
        raise NotFound("User not found", user_id=user_id)
    old_role = user.platform_role
    if old_role == role:
        return user

    user.platform_role = role
    await db.commit()
    logger.info("Platform role of %s changed %s -> %s by %s", user_id, old_role, role, actor.id)
    return user
