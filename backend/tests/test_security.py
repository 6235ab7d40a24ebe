"""Security tests: password hashing, token claims, identity resolution."""
import uuid
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
from jose import jwt

from spendflow.core.config import settings
from spendflow.core.errors import Unauthenticated
from spendflow.core.identity import Identity, resolve_credential
from spendflow.core.permissions import Role
from spendflow.core.security import (
    create_access_token,
    create_refresh_token,
    decode_token,
    hash_password,
    verify_password,
)


# ─── Fixtures ─────────────────────────────────────────────────────────────────

def _user(**overrides):
    data = dict(
        id=uuid.uuid4(),
        company_id=uuid.uuid4(),
        email="employee@example.com",
        role="employee",
        is_active=True,
        deleted_at=None,
    )
    data.update(overrides)
    return SimpleNamespace(**data)


def _session_returning(user):
    result = MagicMock()
    result.scalar_one_or_none.return_value = user
    session = MagicMock()
    session.execute = AsyncMock(return_value=result)
    return session


def _token_for(user) -> str:
    return create_access_token(str(user.id), role=user.role, company_id=str(user.company_id))


# ─── Passwords & tokens ───────────────────────────────────────────────────────

def test_password_hash_round_trip():
    hashed = hash_password("changeme123")
    assert hashed != "changeme123"
    assert verify_password("changeme123", hashed)
    assert not verify_password("wrong", hashed)


def test_access_token_carries_company_and_type():
    user = _user()
    claims = decode_token(_token_for(user))
    assert claims["sub"] == str(user.id)
    assert claims["company_id"] == str(user.company_id)
    assert claims["type"] == "access"
    assert decode_token(create_refresh_token(str(user.id)))["type"] == "refresh"


# ─── resolve_credential ───────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_resolve_credential_returns_identity_from_user_row():
    user = _user(role="manager")
    identity = await resolve_credential(_session_returning(user), _token_for(user))
    assert identity == Identity(user.id, user.company_id, Role.manager, user.email)


@pytest.mark.asyncio
async def test_missing_token_is_unauthenticated():
    with pytest.raises(Unauthenticated):
        await resolve_credential(_session_returning(None), None)


@pytest.mark.asyncio
async def test_expired_token_is_unauthenticated():
    user = _user()
    expired = jwt.encode(
        {"sub": str(user.id), "type": "access", "exp": datetime.now(timezone.utc) - timedelta(minutes=1)},
        settings.JWT_SECRET,
        algorithm=settings.JWT_ALGORITHM,
    )
    with pytest.raises(Unauthenticated):
        await resolve_credential(_session_returning(user), expired)


@pytest.mark.asyncio
async def test_token_signed_with_other_secret_is_unauthenticated():
    user = _user()
    forged = jwt.encode(
        {"sub": str(user.id), "type": "access", "exp": datetime.now(timezone.utc) + timedelta(minutes=5)},
        "not-the-secret",
        algorithm=settings.JWT_ALGORITHM,
    )
    with pytest.raises(Unauthenticated):
        await resolve_credential(_session_returning(user), forged)


@pytest.mark.asyncio
async def test_deleted_or_inactive_user_is_unauthenticated():
    user = _user()
    with pytest.raises(Unauthenticated):
        await resolve_credential(_session_returning(None), _token_for(user))
    with pytest.raises(Unauthenticated):
        await resolve_credential(_session_returning(_user(id=user.id, is_active=False)), _token_for(user))


@pytest.mark.asyncio
async def test_unknown_role_is_unauthenticated():
    user = _user(role="superuser")
    with pytest.raises(Unauthenticated):
        await resolve_credential(_session_returning(user), _token_for(user))


@pytest.mark.asyncio
async def test_malformed_subject_is_unauthenticated():
    token = create_access_token("not-a-uuid", role="employee", company_id=str(uuid.uuid4()))
    with pytest.raises(Unauthenticated):
        await resolve_credential(_session_returning(None), token)
