"""User routes: register or look up the signed-in user."""

import logging

from fastapi import APIRouter, Request

from gitstack.dependencies import SessionDep
from gitstack.limiter import limiter
from gitstack.users.models import UserCreateOrGet, UserIdResponse
from gitstack.users.service import create_or_get_user

router = APIRouter(prefix="/api/users", tags=["users"])
log = logging.getLogger(__name__)


@router.post("/create-or-get", response_model=UserIdResponse)
@limiter.limit("30/minute")
async def create_or_get(
    request: Request,
    body: UserCreateOrGet,
    session: SessionDep,
) -> UserIdResponse:
    """Return the internal user id for an external identity, creating the user on first sight."""
    user = await create_or_get_user(session, body)
    return UserIdResponse(user_id=user.id)
