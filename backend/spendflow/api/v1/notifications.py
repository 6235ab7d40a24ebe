import uuid
from datetime import datetime, timezone
from typing import Annotated

from fastapi import APIRouter, Depends, Query
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from spendflow.core.deps import require_operation
from spendflow.core.errors import NotFound
from spendflow.core.identity import Identity
from spendflow.core.permissions import Operation
from spendflow.db.session import get_session
from spendflow.models.notification import Notification
from spendflow.schemas.notification import NotificationListResponse, NotificationOut

router = APIRouter()

PAGE_LIMIT = 50


@router.get("", response_model=NotificationListResponse)
async def list_notifications(
    db: Annotated[AsyncSession, Depends(get_session)],
    identity: Annotated[Identity, Depends(require_operation(Operation.NOTIFICATION_READ))],
    is_read: bool | None = Query(default=None),
):
    stmt = select(Notification).where(Notification.user_id == identity.user_id)
    if is_read is not None:
        stmt = stmt.where(Notification.is_read.is_(is_read))
    result = await db.execute(stmt.order_by(Notification.created_at.desc()).limit(PAGE_LIMIT))

    unread = await db.execute(
        select(func.count()).select_from(Notification).where(
            Notification.user_id == identity.user_id,
            Notification.is_read.is_(False),
        )
    )
    return NotificationListResponse(
        items=[NotificationOut.model_validate(n) for n in result.scalars().all()],
        unread=unread.scalar_one(),
    )


@router.post("/{notification_id}/read", response_model=NotificationOut)
async def mark_read(
    notification_id: uuid.UUID,
    db: Annotated[AsyncSession, Depends(get_session)],
    identity: Annotated[Identity, Depends(require_operation(Operation.NOTIFICATION_READ))],
):
    result = await db.execute(
        select(Notification).where(
            Notification.id == notification_id,
            Notification.user_id == identity.user_id,
        )
    )
    notification = result.scalar_one_or_none()
    if notification is None:
        raise NotFound("Notification not found.")
    if not notification.is_read:
        notification.is_read = True
        notification.read_at = datetime.now(timezone.utc)
        await db.commit()
    return notification
