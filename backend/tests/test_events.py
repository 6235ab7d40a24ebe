"""Tests for the event bus and the notification subscribers."""
import asyncio
import json
import uuid
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from spendflow.core.config import Settings
from spendflow.core.errors import UpstreamUnavailable
from spendflow.services.events import EventBus, ExpenseStatusChanged
from spendflow.services.notifications import (
    EmailNotifier,
    InAppNotifier,
    RealtimePublisher,
    describe,
)


def _event(previous="submitted", new="pending_approval", **overrides) -> ExpenseStatusChanged:
    data = dict(
        expense_id=uuid.uuid4(),
        company_id=uuid.uuid4(),
        submitted_by=uuid.uuid4(),
        previous_status=previous,
        new_status=new,
        actor_id=uuid.uuid4(),
        amount=Decimal("120.00"),
        currency="USD",
        current_tier=0,
        next_approver_role="manager" if new in ("pending_approval", "escalated") else None,
    )
    data.update(overrides)
    return ExpenseStatusChanged(**data)


# ─── EventBus ─────────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_publish_does_not_wait_for_subscribers():
    bus = EventBus()
    started = asyncio.Event()
    release = asyncio.Event()
    received = []

    async def slow(event):
        started.set()
        await release.wait()
        received.append(event)

    bus.subscribe(slow)
    bus.publish(_event())
    assert received == []  # publish returned before the subscriber ran

    await started.wait()
    release.set()
    await bus.drain()
    assert len(received) == 1


@pytest.mark.asyncio
async def test_failing_subscriber_is_isolated(caplog):
    bus = EventBus()
    received = []

    async def broken(event):
        raise UpstreamUnavailable("redis down")

    async def healthy(event):
        received.append(event)

    bus.subscribe(broken, name="broken")
    bus.subscribe(healthy, name="healthy")
    bus.publish(_event())
    await bus.drain()

    assert len(received) == 1
    assert "subscriber broken failed" in caplog.text
    assert bus.subscribers == ["broken", "healthy"]


def test_event_to_dict_is_json_safe():
    payload = _event().to_dict()
    json.dumps(payload)
    assert payload["amount"] == "120.00"
    assert payload["new_status"] == "pending_approval"


# ─── Message templates ────────────────────────────────────────────────────────

def test_describe_routing_notifies_owner_and_approvers():
    audiences = [m[0] for m in describe(_event())]
    assert audiences == ["owner", "approvers"]


def test_describe_rejection_includes_comment():
    messages = describe(_event("pending_approval", "rejected", comment="missing receipt"))
    assert len(messages) == 1
    audience, ntype, _, message = messages[0]
    assert (audience, ntype) == ("owner", "expense_rejected")
    assert "missing receipt" in message


def test_describe_escalation_targets_approvers():
    messages = describe(_event("pending_approval", "escalated"))
    assert [m[1] for m in messages] == ["expense_escalated"]


# ─── Sinks ────────────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_realtime_publisher_uses_company_channel():
    redis = MagicMock()
    redis.publish = AsyncMock()
    event = _event()

    await RealtimePublisher(redis, "company")(event)

    channel, body = redis.publish.call_args.args
    assert channel == f"company:{event.company_id}"
    assert json.loads(body)["data"]["expense_id"] == str(event.expense_id)


@pytest.mark.asyncio
async def test_realtime_publisher_wraps_failures():
    redis = MagicMock()
    redis.publish = AsyncMock(side_effect=ConnectionError("refused"))
    with pytest.raises(UpstreamUnavailable):
        await RealtimePublisher(redis)(_event())


@pytest.mark.asyncio
async def test_email_notifier_uses_console_mock_when_celery_disabled():
    notifier = EmailNotifier(Settings(CELERY_DISPATCH_ENABLED=False))
    with patch("spendflow.services.email.send_expense_status_email") as send:
        await notifier(_event("pending_approval", "approved"))
    send.assert_called_once()
    assert send.call_args.args[0]["new_status"] == "approved"


@pytest.mark.asyncio
async def test_email_notifier_passes_its_own_mail_setting():
    notifier = EmailNotifier(Settings(CELERY_DISPATCH_ENABLED=False, MAIL_ENABLED=True))
    with patch("spendflow.services.email.send_expense_status_email") as send:
        await notifier(_event("pending_approval", "rejected"))
    assert send.call_args.kwargs["mail_enabled"] is True


def test_status_email_mock_logs_when_mail_disabled(caplog):
    from spendflow.services.email import send_expense_status_email

    payload = _event("pending_approval", "approved").to_dict()
    with caplog.at_level("INFO", logger="spendflow.services.email"):
        send_expense_status_email(payload, mail_enabled=False)
    assert "EXPENSE STATUS EMAIL" in caplog.text
    assert "not configured" not in caplog.text


@pytest.mark.asyncio
async def test_email_notifier_enqueues_celery_task():
    notifier = EmailNotifier(Settings(CELERY_DISPATCH_ENABLED=True))
    with patch("spendflow.workers.notification_tasks.send_expense_status_email_task.delay") as delay:
        await notifier(_event())
    delay.assert_called_once()


@pytest.mark.asyncio
async def test_in_app_notifier_writes_rows_for_owner_and_approvers():
    approver_ids = [uuid.uuid4(), uuid.uuid4()]
    result = MagicMock()
    result.scalars.return_value.all.return_value = approver_ids

    session = MagicMock()
    session.execute = AsyncMock(return_value=result)
    session.commit = AsyncMock()
    session.__aenter__ = AsyncMock(return_value=session)
    session.__aexit__ = AsyncMock(return_value=False)

    event = _event()
    await InAppNotifier(lambda: session)(event)

    added = [call.args[0] for call in session.add.call_args_list]
    assert sorted(str(n.user_id) for n in added) == sorted(
        [str(event.submitted_by)] + [str(i) for i in approver_ids]
    )
    assert {n.type for n in added} == {"expense_submitted", "approval_required"}
    session.commit.assert_awaited_once()


@pytest.mark.asyncio
async def test_in_app_notifier_wraps_db_failures():
    session = MagicMock()
    session.__aenter__ = AsyncMock(side_effect=OSError("db unreachable"))
    session.__aexit__ = AsyncMock(return_value=False)
    with pytest.raises(UpstreamUnavailable):
        await InAppNotifier(lambda: session)(_event("pending_approval", "approved"))
