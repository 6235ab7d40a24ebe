"""Bearer credential → Identity resolution."""
import logging
import uuid
from dataclasses import dataclass

from jose import JWTError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from spendflow.core.errors import Unauthenticated
from spendflow.core.permissions import Role, parse_role
from spendflow.core.security import decode_token

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Identity:
    user_id: uuid.UUID
    company_id: uuid.UUID
    role: Role
    email: str | None = None

    @classmethod
    def from_user(cls, user) -> "Identity":
        role = parse_role(user.role)
        if role is None:
            raise Unauthenticated(f"User {user.id} has unknown role '{user.role}'.")
        return cls(user_id=user.id, company_id=user.company_id, role=role, email=user.email)


async def resolve_user(db: AsyncSession, token: str | None, token_type: str = "access"):
    """Return the active User a token refers to, or raise Unauthenticated.

    Role and company always come from the user row, never from the token claims.
    """
    from spendflow.models.user import User

    if not token:
        raise Unauthenticated("Not authenticated")
    try:
        payload = decode_token(token)
    except JWTError:
        raise Unauthenticated("Could not validate credentials")

    if payload.get("type") != token_type:
        raise Unauthenticated("Could not validate credentials")
    try:
        user_id = uuid.UUID(str(payload.get("sub")))
    except ValueError:
        raise Unauthenticated("Could not validate credentials")

    result = await db.execute(
        select(User).where(User.id == user_id, User.deleted_at.is_(None))
    )
    user = result.scalar_one_or_none()
    if user is None or not user.is_active:
        logger.info("Token for missing or inactive user %s rejected", user_id)
        raise Unauthenticated("Could not validate credentials")
    return user


async def resolve_credential(db: AsyncSession, token: str | None) -> Identity:
    user = await resolve_user(db, token)
    return Identity.from_user(user)
