"""Company user administration.

Every lookup is filtered by the caller's company: a user id from another
company is reported as not found.
"""
import logging
import uuid
from datetime import datetime, timezone
from typing import Annotated

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from spendflow.core.deps import get_current_user, require_operation
from spendflow.core.errors import Conflict, InvalidState, NotFound
from spendflow.core.identity import Identity
from spendflow.core.permissions import Operation, Role
from spendflow.core.security import hash_password
from spendflow.db.session import get_session
from spendflow.models.user import User
from spendflow.schemas.user import UserAdminOut, UserCreate, UserListResponse, UserUpdate
from spendflow.services import audit as audit_svc

logger = logging.getLogger(__name__)

router = APIRouter()


async def _company_user(db: AsyncSession, company_id: uuid.UUID, user_id: uuid.UUID) -> User:
    result = await db.execute(
        select(User).where(
            User.id == user_id,
            User.company_id == company_id,
            User.deleted_at.is_(None),
        )
    )
    user = result.scalar_one_or_none()
    if user is None:
        raise NotFound("User not found.")
    return user


def _snapshot(user: User) -> dict:
    return {
        "name": user.name,
        "role": user.role,
        "manager_id": user.manager_id,
        "is_active": user.is_active,
    }


# ─── GET /users ───

@router.get("", response_model=UserListResponse)
async def list_users(
    db: Annotated[AsyncSession, Depends(get_session)],
    identity: Annotated[Identity, Depends(require_operation(Operation.USER_LIST))],
    role: Role | None = Query(default=None),
):
    """Admins see the whole company; managers see employees and their own reports."""
    stmt = select(User).where(
        User.company_id == identity.company_id,
        User.deleted_at.is_(None),
    )
    if identity.role == Role.manager:
        stmt = stmt.where(or_(User.role == Role.employee.value, User.manager_id == identity.user_id))
    if role:
        stmt = stmt.where(User.role == role.value)
    result = await db.execute(stmt.order_by(User.created_at.desc()))
    users = list(result.scalars().all())
    return UserListResponse(
        items=[UserAdminOut.model_validate(u) for u in users],
        total=len(users),
    )


@router.get("/me", response_model=UserAdminOut)
async def get_me(current_user: Annotated[User, Depends(get_current_user)]):
    return current_user


# ─── POST /users ───

@router.post("", response_model=UserAdminOut, status_code=status.HTTP_201_CREATED)
async def create_user(
    body: UserCreate,
    db: Annotated[AsyncSession, Depends(get_session)],
    identity: Annotated[Identity, Depends(require_operation(Operation.USER_CREATE))],
):
    existing = await db.execute(select(User.id).where(User.email == body.email))
    if existing.scalar_one_or_none() is not None:
        raise Conflict("Email already exists")
    if body.manager_id is not None:
        await _company_user(db, identity.company_id, body.manager_id)

    user = User(
        id=uuid.uuid4(),
        company_id=identity.company_id,
        email=body.email,
        name=body.name,
        password_hash=hash_password(body.password),
        role=body.role.value,
        manager_id=body.manager_id,
        is_active=True,
    )
    db.add(user)
    audit_svc.log(
        db,
        action="user.created",
        entity_type="user",
        entity_id=user.id,
        company_id=identity.company_id,
        actor_id=identity.user_id,
        actor_email=identity.email,
        after={"email": user.email, **_snapshot(user)},
    )
    await db.commit()
    logger.info("User %s (%s) created in company %s", user.email, user.role, identity.company_id)
    return user


# ─── PATCH /users/{id} ───

@router.patch("/{user_id}", response_model=UserAdminOut)
async def update_user(
    user_id: uuid.UUID,
    body: UserUpdate,
    db: Annotated[AsyncSession, Depends(get_session)],
    identity: Annotated[Identity, Depends(require_operation(Operation.USER_UPDATE))],
):
    user = await _company_user(db, identity.company_id, user_id)
    changes = body.model_dump(exclude_unset=True)
    if changes.get("manager_id") is not None:
        if changes["manager_id"] == user.id:
            raise InvalidState("A user cannot be their own manager.")
        await _company_user(db, identity.company_id, changes["manager_id"])

    before = _snapshot(user)
    for field, value in changes.items():
        if field == "role" and value is not None:
            value = value.value
        if field in ("name", "role", "is_active") and value is None:
            continue
        setattr(user, field, value)

    audit_svc.log(
        db,
        action="user.updated",
        entity_type="user",
        entity_id=user.id,
        company_id=identity.company_id,
        actor_id=identity.user_id,
        actor_email=identity.email,
        before=before,
        after=_snapshot(user),
    )
    await db.commit()
    return user


# ─── DELETE /users/{id} ───

@router.delete("/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_user(
    user_id: uuid.UUID,
    db: Annotated[AsyncSession, Depends(get_session)],
    identity: Annotated[Identity, Depends(require_operation(Operation.USER_DELETE))],
):
    """Soft delete: the row stays for audit and expense history."""
    if user_id == identity.user_id:
        raise InvalidState("You cannot delete your own account.")
    user = await _company_user(db, identity.company_id, user_id)
    user.deleted_at = datetime.now(timezone.utc)
    user.is_active = False

    audit_svc.log(
        db,
        action="user.deleted",
        entity_type="user",
        entity_id=user.id,
        company_id=identity.company_id,
        actor_id=identity.user_id,
        actor_email=identity.email,
        before=_snapshot(user),
    )
    await db.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)
