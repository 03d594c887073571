"""Invite codes for AD_HOC leaderboards.

Codes are 8-character alphanumeric (A-Z, 0-9), generated server-side
with a cryptographic random source. Users cannot choose their own codes.
"""

from __future__ import annotations

import secrets
import string

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from orgaccess.config import get_settings
from orgaccess.db.models import Leaderboard
from orgaccess.enums import LeaderboardVisibility

INVITE_CHARSET = string.ascii_uppercase + string.digits  # A-Z, 0-9
INVITE_LENGTH = 8


def generate_invite_code() -> str:
    """Generate a cryptographically random 8-character invite code."""
    return "".join(secrets.choice(INVITE_CHARSET) for _ in range(INVITE_LENGTH))


def normalize_invite_code(code: str) -> str:
    """Normalize an invite code to uppercase for case-insensitive lookup."""
    return code.strip().upper()


async def generate_unique_invite_code(db: AsyncSession) -> str:
    """Generate an invite code that doesn't already exist in the database."""
    attempts = get_settings().invite_code_max_attempts
    for _ in range(attempts):
        code = generate_invite_code()
        existing = await db.execute(select(Leaderboard.id).where(Leaderboard.invite_code == code))
        if existing.scalar_one_or_none() is None:
            return code
    raise RuntimeError(f"Failed to generate unique invite code after {attempts} attempts")


async def resolve_invite_code(db: AsyncSession, code: str) -> str | None:
    """Resolve a code to the id of a live AD_HOC leaderboard."""
    result = await db.execute(
        select(Leaderboard.id).where(
            Leaderboard.invite_code == normalize_invite_code(code),
            Leaderboard.visibility == LeaderboardVisibility.AD_HOC.value,
            Leaderboard.deleted_at.is_(None),
        )
    )
    return result.scalar_one_or_none()
