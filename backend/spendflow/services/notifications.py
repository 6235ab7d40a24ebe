"""Subscribers for ExpenseStatusChanged: in-app inbox, email, real-time push.

All three are best-effort. Failures surface as UpstreamUnavailable and are
logged by the event bus; the committed transition is never affected.
"""
import asyncio
import json
import logging

from sqlalchemy import select

from spendflow.core.config import Settings
from spendflow.core.errors import UpstreamUnavailable
from spendflow.services.events import ExpenseStatusChanged
from spendflow.services.fx import format_amount

logger = logging.getLogger(__name__)


# ─── Message templates ───

def describe(event: ExpenseStatusChanged) -> list[tuple[str, str, str, str]]:
    """Return (audience, type, title, message) tuples for an event.

    audience is "owner" or "approvers" (users holding next_approver_role).
    """
    amount = format_amount(event.amount, event.currency)
    messages: list[tuple[str, str, str, str]] = []

    if event.previous_status == "submitted":
        messages.append((
            "owner", "expense_submitted", "Expense Submitted",
            f"Your expense of {amount} was submitted for approval",
        ))

    if event.new_status == "pending_approval":
        messages.append((
            "approvers", "approval_required", "Approval Required",
            f"An expense of {amount} is waiting for your approval",
        ))
    elif event.new_status == "escalated":
        messages.append((
            "approvers", "expense_escalated", "Expense Escalated",
            f"An expense of {amount} has been escalated to you for approval",
        ))
    elif event.new_status == "approved":
        messages.append((
            "owner", "expense_approved", "Expense Approved",
            f"Your expense of {amount} has been approved",
        ))
    elif event.new_status == "rejected":
        reason = f": {event.comment}" if event.comment else ""
        messages.append((
            "owner", "expense_rejected", "Expense Rejected",
            f"Your expense of {amount} has been rejected{reason}",
        ))
    return messages


# ─── In-app notifications ───

class InAppNotifier:
    """Writes Notification rows in a session of its own."""

    def __init__(self, session_factory):
        self.session_factory = session_factory

    async def __call__(self, event: ExpenseStatusChanged) -> None:
        from spendflow.models.notification import Notification
        from spendflow.models.user import User

        messages = describe(event)
        if not messages:
            return

        try:
            async with self.session_factory() as db:
                approver_ids = []
                if event.next_approver_role and any(m[0] == "approvers" for m in messages):
                    result = await db.execute(
                        select(User.id).where(
                            User.company_id == event.company_id,
                            User.role == event.next_approver_role,
                            User.is_active.is_(True),
                            User.deleted_at.is_(None),
                        )
                    )
                    approver_ids = list(result.scalars().all())

                for audience, ntype, title, message in messages:
                    recipients = [event.submitted_by] if audience == "owner" else approver_ids
                    for user_id in recipients:
                        db.add(Notification(
                            company_id=event.company_id,
                            user_id=user_id,
                            type=ntype,
                            title=title,
                            message=message,
                            data={
                                "expense_id": str(event.expense_id),
                                "status": event.new_status,
                                "tier": event.current_tier,
                            },
                        ))
                await db.commit()
        except Exception as exc:
            raise UpstreamUnavailable(f"In-app notification write failed: {exc}") from exc


# ─── Email ───

class EmailNotifier:
    """Hands the event to the email worker (Celery) or the console mock."""

    def __init__(self, settings: Settings):
        self.settings = settings

    async def __call__(self, event: ExpenseStatusChanged) -> None:
        payload = event.to_dict()
        try:
            if self.settings.CELERY_DISPATCH_ENABLED:
                from spendflow.workers.notification_tasks import send_expense_status_email_task
                await asyncio.to_thread(send_expense_status_email_task.delay, payload)
            else:
                from spendflow.services.email import send_expense_status_email
                send_expense_status_email(payload, mail_enabled=self.settings.MAIL_ENABLED)
        except Exception as exc:
            raise UpstreamUnavailable(f"Email dispatch failed: {exc}") from exc


# ─── Real-time push ───

class RealtimePublisher:
    """Publishes events on a per-company Redis pub/sub channel."""

    def __init__(self, redis_client, channel_prefix: str = "company"):
        self.redis = redis_client
        self.channel_prefix = channel_prefix

    def channel_for(self, event: ExpenseStatusChanged) -> str:
        return f"{self.channel_prefix}:{event.company_id}"

    async def __call__(self, event: ExpenseStatusChanged) -> None:
        try:
            await self.redis.publish(
                self.channel_for(event),
                json.dumps({"type": "expense.status_changed", "data": event.to_dict()}),
            )
        except Exception as exc:
            raise UpstreamUnavailable(f"Real-time publish failed: {exc}") from exc
