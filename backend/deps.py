"""
Shared FastAPI dependencies.

Routers import DB session, identity and privilege guards, and pagination
from here.
"""

from __future__ import annotations

import logging
from typing import TypedDict

from fastapi import Depends, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from db_models import User
from domain.enums import Role
from domain.errors import ForbiddenError, InternalError
from middleware.auth import Identity, require_sign_in

logger = logging.getLogger(__name__)


class Pagination(TypedDict):
    limit: int
    offset: int


def pagination_params(
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0, le=100_000),
) -> Pagination:
    return {"limit": limit, "offset": offset}


async def check_admin(db: AsyncSession, identity: Identity | None) -> Identity:
    """
    Privilege gate. Exactly one user lookup, nothing cached.

    A missing identity means the verifier did not run for this request,
    which is a wiring bug rather than a caller error.
    """
    if identity is None or not identity.subject:
        logger.error("Privilege gate reached without a verified identity")
        raise InternalError()

    res = await db.execute(select(User.role).where(User.id == identity.subject))
    raw_role = res.scalar_one_or_none()
    try:
        role = Role(raw_role) if raw_role is not None else None
    except ValueError:
        role = None
    if role != Role.ADMIN:
        raise ForbiddenError("Unauthorized Access")
    return Identity(subject=identity.subject, is_admin=True)


async def require_admin(
    identity: Identity = Depends(require_sign_in),
    db: AsyncSession = Depends(get_db),
) -> Identity:
    """Dependency for admin-only routes; runs after require_sign_in."""
    return await check_admin(db, identity)
