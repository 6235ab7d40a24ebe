"""Expense status-change events and the in-process event bus.

The workflow publishes one ``ExpenseStatusChanged`` per committed transition.
Each subscriber runs as its own asyncio task: publishing never waits on a
subscriber, and a failing subscriber is logged and dropped without affecting
the transition or the other subscribers.
"""
import asyncio
import logging
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from decimal import Decimal

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExpenseStatusChanged:
    expense_id: uuid.UUID
    company_id: uuid.UUID
    submitted_by: uuid.UUID
    previous_status: str
    new_status: str
    actor_id: uuid.UUID | None
    amount: Decimal
    currency: str
    current_tier: int
    decision: str | None = None
    next_approver_role: str | None = None
    comment: str | None = None
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict:
        data = asdict(self)
        for key in ("expense_id", "company_id", "submitted_by", "actor_id"):
            data[key] = str(data[key]) if data[key] is not None else None
        data["amount"] = str(self.amount)
        data["occurred_at"] = self.occurred_at.isoformat()
        return data


Handler = Callable[[ExpenseStatusChanged], Awaitable[None]]


class EventBus:
    def __init__(self) -> None:
        self._handlers: list[tuple[str, Handler]] = []
        self._pending: set[asyncio.Task] = set()

    def subscribe(self, handler: Handler, name: str | None = None) -> None:
        self._handlers.append((name or getattr(handler, "__name__", repr(handler)), handler))

    @property
    def subscribers(self) -> list[str]:
        return [name for name, _ in self._handlers]

    def publish(self, event: ExpenseStatusChanged) -> None:
        """Schedule every subscriber; returns immediately."""
        for name, handler in self._handlers:
            task = asyncio.create_task(self._deliver(name, handler, event))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)

    async def _deliver(self, name: str, handler: Handler, event: ExpenseStatusChanged) -> None:
        try:
            await handler(event)
        except Exception as exc:
            logger.warning(
                "UpstreamUnavailable: subscriber %s failed for expense %s (%s -> %s): %s",
                name, event.expense_id, event.previous_status, event.new_status, exc,
                exc_info=True,
            )

    async def drain(self) -> None:
        """Wait for in-flight deliveries (shutdown and tests)."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
