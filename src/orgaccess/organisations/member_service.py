"""Organisation membership lifecycle.

Rules:
- Exactly one live OWNER per organisation. The owner is never removed through
  ``remove_member`` and the role only moves by an explicit transfer, made by
  the current owner or a platform admin.
- Removal is a soft delete; the seat is released in the same transaction.
- Target rows are re-read with SELECT ... FOR UPDATE inside the transaction
  that changes them.
- Every successful mutation commits first, then writes one audit record.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from orgaccess.access.context import AccessContext
from orgaccess.access.errors import (
    AlreadyMember,
    Forbidden,
    InvariantViolation,
    NotFound,
    PermissionDenied,
    SeatLimitReached,
)
from orgaccess.access.gate import require_permission, require_write
from orgaccess.access.grants import (
    ORG_MEMBERS_INVITE,
    ORG_MEMBERS_REMOVE,
    ORG_MEMBERS_UPDATE_ROLE,
    ORG_SEATS_MANAGE,
    PLATFORM_ORGANISATIONS_MANAGE,
    platform_grants,
)
from orgaccess.audit.activity_service import record_activity
from orgaccess.db.models import (
    Leaderboard,
    LeaderboardMember,
    Organisation,
    OrganisationMember,
    User,
)
from orgaccess.enums import ActivityType, MemberStatus, OrgRole
from orgaccess.time_utils import utcnow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SeatUsage:
    total: int
    used: int
    available: int


async def get_member(
    db: AsyncSession,
    organisation_id: str,
    member_id: str,
    *,
    for_update: bool = False,
) -> OrganisationMember:
    """Get a live member of ``organisation_id``. Raises NotFound otherwise."""
    stmt = select(OrganisationMember).where(
        OrganisationMember.id == member_id,
        OrganisationMember.organisation_id == organisation_id,
        OrganisationMember.deleted_at.is_(None),
    )
    if for_update:
        stmt = stmt.with_for_update().execution_options(populate_existing=True)
    result = await db.execute(stmt)
    member = result.scalar_one_or_none()
    if member is None:
        raise NotFound("Member not found", organisation_id=organisation_id, member_id=member_id)
    return member


async def _count_used_seats(db: AsyncSession, organisation_id: str) -> int:
    result = await db.execute(
        select(func.count())
        .select_from(OrganisationMember)
        .where(
            OrganisationMember.organisation_id == organisation_id,
            OrganisationMember.status == MemberStatus.ACTIVE.value,
            OrganisationMember.seat_assigned_at.is_not(None),
            OrganisationMember.seat_released_at.is_(None),
            OrganisationMember.deleted_at.is_(None),
        )
    )
    return result.scalar_one()


async def _lock_organisation(db: AsyncSession, organisation_id: str) -> Organisation:
    """SELECT ... FOR UPDATE on the organisation row. Serialises seat changes."""
    result = await db.execute(
        select(Organisation)
        .where(Organisation.id == organisation_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    org = result.scalar_one_or_none()
    if org is None:
        raise NotFound("Organisation not found", organisation_id=organisation_id)
    return org


def _holds_seat(member: OrganisationMember) -> bool:
    return member.seat_assigned_at is not None and member.seat_released_at is None


async def get_seat_usage(db: AsyncSession, organisation_id: str) -> SeatUsage:
    """Seat capacity versus seats held by live, active members."""
    result = await db.execute(select(Organisation.max_seats).where(Organisation.id == organisation_id))
    total = result.scalar_one_or_none()
    if total is None:
        raise NotFound("Organisation not found", organisation_id=organisation_id)

    used = await _count_used_seats(db, organisation_id)
    return SeatUsage(total=total, used=used, available=max(0, total - used))


async def list_members(
    db: AsyncSession, organisation_id: str
) -> list[tuple[OrganisationMember, User]]:
    """Get all live members of an organisation with user info."""
    result = await db.execute(
        select(OrganisationMember, User)
        .join(User, OrganisationMember.user_id == User.id)
        .where(
            OrganisationMember.organisation_id == organisation_id,
            OrganisationMember.deleted_at.is_(None),
        )
        .order_by(OrganisationMember.created_at.asc())
    )
    return [(row.OrganisationMember, row.User) for row in result]


async def invite_member(
    db: AsyncSession,
    organisation_id: str,
    email: str,
    role: OrgRole | str,
    actor_ctx: AccessContext | None,
) -> OrganisationMember:
    """Add a user (created on first invite) to the organisation and assign a seat.

    A previously removed member is restored on the same row.
    """
    role = OrgRole(role)
    require_permission(actor_ctx, ORG_MEMBERS_INVITE, organisation_id)
    require_write(actor_ctx, action=ORG_MEMBERS_INVITE)

    if role == OrgRole.OWNER:
        raise Forbidden(
            "Ownership can only be transferred by the current owner",
            organisation_id=organisation_id,
        )

    email = email.strip().lower()
    local_part, _, domain = email.partition("@")
    if not local_part or not domain:
        raise ValueError("A valid email address is required")

    # Concurrent invites cannot oversell seats
    org = await _lock_organisation(db, organisation_id)

    if org.email_domain and domain != org.email_domain:
        raise ValueError(f"Email must be from {org.email_domain}")

    user_result = await db.execute(select(User).where(User.email == email))
    user = user_result.scalar_one_or_none()
    if user is None:
        user = User(email=email, name=local_part)
        db.add(user)
        await db.flush()

    existing_result = await db.execute(
        select(OrganisationMember)
        .where(
            OrganisationMember.organisation_id == organisation_id,
            OrganisationMember.user_id == user.id,
        )
        .with_for_update()
    )
    member = existing_result.scalar_one_or_none()
    if member is not None and member.deleted_at is None:
        raise AlreadyMember(
            "User is already a member",
            organisation_id=organisation_id,
            member_id=member.id,
            user_id=user.id,
        )

    used = await _count_used_seats(db, organisation_id)
    if used >= org.max_seats:
        raise SeatLimitReached(
            "No available seats",
            organisation_id=organisation_id,
            total=org.max_seats,
            used=used,
        )

    now = utcnow()
    if member is None:
        member = OrganisationMember(
            organisation_id=organisation_id,
            user_id=user.id,
            created_at=now,
        )
        db.add(member)
    member.role = role.value
    member.status = MemberStatus.ACTIVE.value
    member.seat_assigned_at = now
    member.seat_released_at = None
    member.deleted_at = None
    member.updated_at = now
    await db.commit()

    logger.info("Member %s invited to organisation %s as %s", member.id, organisation_id, role.value)
    await record_activity(
        db,
        organisation_id,
        actor_ctx.user_id,
        ActivityType.MEMBER_INVITED,
        {"email": email, "role": role.value, "member_id": member.id},
    )
    return member


async def remove_member(
    db: AsyncSession,
    organisation_id: str,
    member_id: str,
    actor_ctx: AccessContext | None,
) -> OrganisationMember:
    """Soft-delete a member, release its seat and end its org leaderboard memberships."""
    if actor_ctx is None or actor_ctx.organisation_id != organisation_id:
        raise PermissionDenied(
            f"Permission denied: {ORG_MEMBERS_REMOVE}",
            action=ORG_MEMBERS_REMOVE,
            organisation_id=organisation_id,
        )

    target = await get_member(db, organisation_id, member_id, for_update=True)
    if target.role == OrgRole.OWNER:
        raise InvariantViolation(
            "The organisation owner cannot be removed",
            organisation_id=organisation_id,
            member_id=member_id,
        )

    require_permission(actor_ctx, ORG_MEMBERS_REMOVE, organisation_id)
    require_write(actor_ctx)

    now = utcnow()
    had_seat = _holds_seat(target)
    target.deleted_at = now
    target.status = MemberStatus.INACTIVE.value
    target.updated_at = now
    if had_seat:
        target.seat_released_at = now

    org_boards = select(Leaderboard.id).where(Leaderboard.organisation_id == organisation_id)
    await db.execute(
        update(LeaderboardMember)
        .where(
            LeaderboardMember.user_id == target.user_id,
            LeaderboardMember.leaderboard_id.in_(org_boards),
            LeaderboardMember.left_at.is_(None),
        )
        .values(left_at=now)
        .execution_options(synchronize_session=False)
    )
    await db.commit()

    logger.info(
        "Member %s removed from organisation %s by %s (seat released=%s)",
        member_id, organisation_id, actor_ctx.user_id, had_seat,
    )
    await record_activity(
        db,
        organisation_id,
        actor_ctx.user_id,
        ActivityType.MEMBER_REMOVED,
        {"member_id": member_id, "user_id": target.user_id, "seat_released": had_seat},
    )
    return target


async def update_role(
    db: AsyncSession,
    organisation_id: str,
    member_id: str,
    new_role: OrgRole | str,
    actor_ctx: AccessContext | None,
) -> OrganisationMember:
    """Change a member's role.

    Granting OWNER is an ownership transfer: only the current owner may do
    it, and the owner becomes ADMIN in the same transaction.
    """
    new_role = OrgRole(new_role)
    require_permission(actor_ctx, ORG_MEMBERS_UPDATE_ROLE, organisation_id)
    require_write(actor_ctx)

    # Re-read inside the transaction; the lock closes the check/update race
    target = await get_member(db, organisation_id, member_id, for_update=True)
    old_role = target.role
    actor_is_owner = actor_ctx.role == OrgRole.OWNER

    if old_role == OrgRole.OWNER and not actor_is_owner:
        raise Forbidden("Cannot modify owner role", organisation_id=organisation_id, member_id=member_id)
    if new_role == OrgRole.OWNER and not actor_is_owner:
        raise Forbidden(
            "Only the owner can transfer ownership", organisation_id=organisation_id, member_id=member_id,
        )
    if new_role == old_role:
        return target
    if old_role == OrgRole.OWNER:
        raise InvariantViolation(
            "An organisation must keep its owner; transfer ownership instead",
            organisation_id=organisation_id,
            member_id=member_id,
        )

    now = utcnow()
    if new_role == OrgRole.OWNER:
        current_owner = await get_member(db, organisation_id, actor_ctx.member_id, for_update=True)
        if current_owner.role != OrgRole.OWNER:
            raise Forbidden(
                "Only the owner can transfer ownership", organisation_id=organisation_id, member_id=target.id,
            )
        return await transfer_ownership(db, organisation_id, target, current_owner, actor_ctx.user_id, now)

    return await apply_role_change(db, organisation_id, target, new_role, actor_ctx.user_id, now)


async def apply_role_change(
    db: AsyncSession,
    organisation_id: str,
    target: OrganisationMember,
    new_role: OrgRole,
    actor_user_id: str,
    now: datetime | None = None,
) -> OrganisationMember:
    """Set a non-owner role on a locked, authorised target and audit it."""
    old_role = target.role
    target.role = new_role.value
    target.updated_at = now or utcnow()
    await db.commit()

    logger.info("Member %s role changed %s -> %s in organisation %s", target.id, old_role, new_role.value, organisation_id)
    await record_activity(
        db,
        organisation_id,
        actor_user_id,
        ActivityType.MEMBER_ROLE_CHANGED,
        {"member_id": target.id, "old_role": old_role, "new_role": new_role.value},
    )
    return target


async def get_owner(db: AsyncSession, organisation_id: str, *, for_update: bool = False) -> OrganisationMember:
    """The live OWNER row. Its absence is a broken invariant, not a missing resource."""
    stmt = select(OrganisationMember).where(
        OrganisationMember.organisation_id == organisation_id,
        OrganisationMember.role == OrgRole.OWNER.value,
        OrganisationMember.deleted_at.is_(None),
    )
    if for_update:
        stmt = stmt.with_for_update().execution_options(populate_existing=True)
    result = await db.execute(stmt)
    owner = result.scalar_one_or_none()
    if owner is None:
        raise InvariantViolation("Organisation has no owner", organisation_id=organisation_id)
    return owner


async def transfer_ownership(
    db: AsyncSession,
    organisation_id: str,
    target: OrganisationMember,
    current_owner: OrganisationMember,
    actor_user_id: str,
    now: datetime | None = None,
) -> OrganisationMember:
    """Make ``target`` the OWNER and demote ``current_owner`` to ADMIN in one transaction.

    Callers authorise the transfer and lock both rows first.
    """
    if target.status != MemberStatus.ACTIVE:
        raise ValueError("Ownership can only be transferred to an active member")

    now = now or utcnow()
    previous_role = target.role
    current_owner.role = OrgRole.ADMIN.value
    current_owner.updated_at = now
    # Demote first: at most one live OWNER row may exist at any point
    await db.flush()
    target.role = OrgRole.OWNER.value
    target.updated_at = now
    await db.commit()

    logger.info("Ownership of organisation %s transferred %s -> %s", organisation_id, current_owner.id, target.id)
    await record_activity(
        db,
        organisation_id,
        actor_user_id,
        ActivityType.OWNERSHIP_TRANSFERRED,
        {
            "member_id": target.id,
            "old_role": previous_role,
            "new_role": OrgRole.OWNER.value,
            "previous_owner_member_id": current_owner.id,
        },
    )
    return target


async def update_status(
    db: AsyncSession,
    organisation_id: str,
    member_id: str,
    new_status: MemberStatus | str,
    actor_ctx: AccessContext | None,
) -> OrganisationMember:
    """Suspend, reactivate or mark a member pending. Removal has its own path.

    Only ACTIVE members count against seat capacity, so activation re-checks
    capacity under the same organisation lock as ``invite_member``.
    """
    new_status = MemberStatus(new_status)
    require_permission(actor_ctx, ORG_MEMBERS_UPDATE_ROLE, organisation_id)
    require_write(actor_ctx)

    if new_status == MemberStatus.INACTIVE:
        raise ValueError("Use member removal to deactivate a member")

    org = None
    if new_status == MemberStatus.ACTIVE:
        org = await _lock_organisation(db, organisation_id)

    target = await get_member(db, organisation_id, member_id, for_update=True)
    old_status = target.status
    if target.role == OrgRole.OWNER:
        if actor_ctx.role != OrgRole.OWNER:
            raise Forbidden("Cannot modify owner", organisation_id=organisation_id, member_id=member_id)
        if new_status != MemberStatus.ACTIVE:
            raise InvariantViolation(
                "The organisation owner must stay active",
                organisation_id=organisation_id,
                member_id=member_id,
            )
    if new_status == old_status:
        return target

    now = utcnow()
    # The owner never takes a seat
    if org is not None and target.role != OrgRole.OWNER:
        used = await _count_used_seats(db, organisation_id)
        if used >= org.max_seats:
            raise SeatLimitReached(
                "No available seats",
                organisation_id=organisation_id,
                member_id=member_id,
                total=org.max_seats,
                used=used,
            )
        if not _holds_seat(target):
            target.seat_assigned_at = now
            target.seat_released_at = None

    target.status = new_status.value
    target.updated_at = now
    await db.commit()

    logger.info("Member %s status changed %s -> %s in organisation %s", member_id, old_status, new_status.value, organisation_id)
    await record_activity(
        db,
        organisation_id,
        actor_ctx.user_id,
        ActivityType.MEMBER_STATUS_CHANGED,
        {"member_id": member_id, "old_status": old_status, "new_status": new_status.value},
    )
    return target


async def set_seat_capacity(
    db: AsyncSession,
    organisation_id: str,
    max_seats: int,
    actor: User,
    actor_ctx: AccessContext | None,
) -> SeatUsage:
    """Change an organisation's seat capacity.

    Platform admins may resize any organisation, whatever its billing state.
    Capacity never drops below the seats already held.
    """
    if max_seats < 0:
        raise ValueError("max_seats must not be negative")
    if not platform_grants(actor.platform_role, PLATFORM_ORGANISATIONS_MANAGE):
        require_permission(actor_ctx, ORG_SEATS_MANAGE, organisation_id)
        require_write(actor_ctx)

    org = await _lock_organisation(db, organisation_id)
    old_max = org.max_seats
    used = await _count_used_seats(db, organisation_id)
    if max_seats < used:
        raise SeatLimitReached(
            "Seat capacity cannot drop below seats in use",
            organisation_id=organisation_id,
            total=max_seats,
            used=used,
        )
    if max_seats == old_max:
        return SeatUsage(total=old_max, used=used, available=old_max - used)

    org.max_seats = max_seats
    org.updated_at = utcnow()
    await db.commit()

    logger.info("Organisation %s seat capacity %d -> %d by %s", organisation_id, old_max, max_seats, actor.id)
    await record_activity(
        db,
        organisation_id,
        actor.id,
        ActivityType.SEAT_CAPACITY_CHANGED,
        {"old_max_seats": old_max, "new_max_seats": max_seats, "used": used},
    )
    return SeatUsage(total=max_seats, used=used, available=max_seats - used)
