"""User service: register or look up a user by external identity."""

import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from gitstack.db.session import now_ms
from gitstack.errors import ConflictError
from gitstack.users.models import User, UserCreateOrGet

log = logging.getLogger(__name__)


async def get_user_by_external_id(session: AsyncSession, external_user_id: str) -> Optional[User]:
    """Return user by external identity or None."""
    result = await session.execute(select(User).where(User.external_user_id == external_user_id))
    return result.scalar_one_or_none()


async def create_or_get_user(session: AsyncSession, payload: UserCreateOrGet) -> User:
    """
    Return the existing user (and record the login time) or create one.
    A concurrent registration of the same identity raises ConflictError.
    """
    now = now_ms()
    existing = await get_user_by_external_id(session, payload.external_user_id)
    if existing:
        existing.last_login_at = now
        await session.commit()
        log.info("create_or_get_user existing id=%s", existing.id)
        return existing
    user = User(
        external_user_id=payload.external_user_id,
        email=payload.email,
        name=payload.name,
        created_at=now,
        last_login_at=now,
    )
    session.add(user)
    try:
        await session.commit()
    except IntegrityError as e:
        await session.rollback()
        log.warning("create_or_get_user conflict external_user_id=%s", payload.external_user_id)
        raise ConflictError("A user with this external id already exists.") from e
    log.info("create_or_get_user created id=%s email=%s", user.id, user.email)
    return user
