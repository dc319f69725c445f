"""Tests for user service: get_user_by_external_id, create_or_get_user."""

import pytest
from unittest.mock import AsyncMock, patch

from gitstack.errors import ConflictError
from gitstack.users.models import User, UserCreateOrGet
from gitstack.users.service import create_or_get_user, get_user_by_external_id


@pytest.mark.asyncio
async def test_get_user_by_external_id_none_when_empty_db(session):
    """get_user_by_external_id returns None when no user exists."""
    assert await get_user_by_external_id(session, "nobody") is None


@pytest.mark.asyncio
async def test_create_or_get_user_creates_then_returns_same(database):
    """Second call with the same identity returns the same user and records the login."""
    payload = UserCreateOrGet(external_user_id="ext-42", email="new@example.com", name="New")
    async with database.session() as session:
        user = await create_or_get_user(session, payload)
        user_id, first_login = user.id, user.last_login_at
    assert user.email == "new@example.com"
    assert user.created_at == first_login

    async with database.session() as session:
        again = await create_or_get_user(session, payload)
        assert again.id == user_id
        assert again.last_login_at >= first_login


@pytest.mark.asyncio
async def test_create_or_get_user_concurrent_registration_conflicts(database):
    """A unique violation on insert (someone registered meanwhile) raises ConflictError."""
    async with database.session() as session:
        session.add(User(external_user_id="ext-race", email="a@example.com"))
    from gitstack.users import service as svc

    payload = UserCreateOrGet(external_user_id="ext-race", email="b@example.com")
    with patch.object(svc, "get_user_by_external_id", AsyncMock(return_value=None)):
        async with database.session() as session:
            with pytest.raises(ConflictError, match="already exists"):
                await create_or_get_user(session, payload)
