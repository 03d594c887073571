"""FastAPI identity dependencies.

Authentication happens upstream: the gateway verifies the caller and passes
the user id in a trusted header. This module only loads that user.
"""

from __future__ import annotations

from fastapi import Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from orgaccess.access.context import AccessContext, resolve_context
from orgaccess.config import get_settings
from orgaccess.database import get_session
from orgaccess.db.models import User
from orgaccess.organisations.organisation_service import get_user


async def get_current_user(
    request: Request,
    db: AsyncSession = Depends(get_session),
) -> User:
    """Return the User named by the identity header. Raises 401 when absent or unknown."""
    header = get_settings().user_id_header
    user_id = request.headers.get(header)
    if not user_id:
        raise HTTPException(status_code=401, detail=f"Missing {header} header")

    user = await get_user(db, user_id)
    if user is None:
        raise HTTPException(status_code=401, detail="User not found")
    return user


async def get_access_context(
    organisation_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> AccessContext | None:
    """The caller's context in the path's organisation, or None for non-members."""
    return await resolve_context(db, user.id, organisation_id)
