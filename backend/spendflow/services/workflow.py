"""Approval workflow service.

Loads an expense, runs the company-scoping guard, applies one transition of
``spendflow.rules.approval_engine``, persists it with an optimistic version
check and, once committed, publishes an ``ExpenseStatusChanged`` event.

A refused transition (Forbidden / InvalidState / Conflict) persists nothing
and is reported to the caller as a terminal failure of that request.
"""
import logging
import uuid

from spendflow.core.config import Settings
from spendflow.core.errors import AppError, CrossTenantAccess, NotFound
from spendflow.core.identity import Identity
from spendflow.models.expense import Expense, ExpenseDecision
from spendflow.rules import approval_engine as engine
from spendflow.rules.scoping import scope_check
from spendflow.services import fx
from spendflow.services.events import EventBus, ExpenseStatusChanged

logger = logging.getLogger(__name__)


def expense_snapshot(expense: Expense) -> dict:
    return {
        "status": expense.status,
        "current_tier": expense.current_tier,
        "decisions": len(expense.decisions),
        "version": expense.version,
    }


class WorkflowService:
    def __init__(self, store, events: EventBus | None, settings: Settings):
        self.store = store
        self.events = events
        self.settings = settings

    # ─── Loading ───

    async def load_scoped(self, identity: Identity, expense_id: uuid.UUID) -> Expense:
        """Load an expense the caller may see.

        Another company's expense is reported as NotFound so its existence is
        not leaked across tenants.
        """
        expense = await self.store.load_expense(expense_id)
        try:
            scope_check(identity, expense)
        except CrossTenantAccess:
            logger.info(
                "Cross-tenant access to expense %s by user %s refused",
                expense_id, identity.user_id,
            )
            raise NotFound("Expense not found.")
        return expense

    # ─── Entry ───

    async def prepare_route(self, expense: Expense) -> engine.Transition:
        """Build the approval chain for ``expense`` and enter it (in memory only)."""
        definition = await self.store.load_workflow_definition(expense.company_id)
        company = await self.store.load_company(expense.company_id)
        amount = fx.convert(expense.amount, expense.currency, company.currency)
        chain, escalation_index = engine.build_chain(
            definition.tiers, definition.escalation_tier, amount
        )
        return engine.enter_workflow(expense, chain, escalation_index)

    # ─── Decisions ───

    async def approve_step(
        self, identity: Identity, expense_id: uuid.UUID, comment: str | None = None
    ) -> Expense:
        return await self._decide(engine.approve_step, "expense.step_approved", identity, expense_id, comment)

    async def reject_step(
        self, identity: Identity, expense_id: uuid.UUID, comment: str | None = None
    ) -> Expense:
        return await self._decide(engine.reject_step, "expense.rejected", identity, expense_id, comment)

    async def escalate(
        self, identity: Identity, expense_id: uuid.UUID, comment: str | None = None
    ) -> Expense:
        return await self._decide(engine.escalate, "expense.escalated", identity, expense_id, comment)

    async def get_history(self, identity: Identity, expense_id: uuid.UUID) -> list[ExpenseDecision]:
        expense = await self.load_scoped(identity, expense_id)
        return engine.get_history(expense)

    async def pending_for(self, identity: Identity) -> list[Expense]:
        """Expenses in the caller's company awaiting a decision from the caller's role."""
        expenses = await self.store.list_awaiting_decision(identity.company_id)
        return [e for e in expenses if engine.required_role(e) == identity.role.value]

    # ─── Internals ───

    async def _decide(self, transition_fn, action: str, identity, expense_id, comment):
        expense = await self.load_scoped(identity, expense_id)
        expected_version = expense.version
        before = expense_snapshot(expense)

        try:
            transition = transition_fn(
                expense,
                identity,
                comment=comment,
                block_self_approval=self.settings.WORKFLOW_BLOCK_SELF_APPROVAL,
            )
        except AppError:
            await self.store.rollback()
            raise

        await self.commit_transition(
            identity, expense, expected_version, transition, action, before, comment
        )
        return expense

    async def commit_transition(
        self,
        identity: Identity | None,
        expense: Expense,
        expected_version: int,
        transition: engine.Transition,
        action: str,
        before: dict,
        comment: str | None = None,
    ) -> None:
        self.store.record_audit(
            action=action,
            entity_type="expense",
            entity_id=expense.id,
            company_id=expense.company_id,
            actor_id=identity.user_id if identity else None,
            actor_email=identity.email if identity else None,
            before=before,
            after={
                **expense_snapshot(expense),
                "from_tier": transition.from_tier,
                "to_tier": transition.to_tier,
            },
            notes=comment,
        )
        await self.store.save_expense(expense, expected_version)

        logger.info(
            "Workflow transition: expense=%s %s -> %s tier %s -> %s actor=%s",
            expense.id, transition.previous_status, transition.new_status,
            transition.from_tier, transition.to_tier,
            identity.user_id if identity else None,
        )
        self.publish(expense, transition, identity, comment)

    def publish(
        self,
        expense: Expense,
        transition: engine.Transition,
        identity: Identity | None,
        comment: str | None = None,
    ) -> None:
        if self.events is None:
            return
        self.events.publish(
            ExpenseStatusChanged(
                expense_id=expense.id,
                company_id=expense.company_id,
                submitted_by=expense.submitted_by,
                previous_status=transition.previous_status,
                new_status=transition.new_status,
                actor_id=identity.user_id if identity else None,
                amount=expense.amount,
                currency=expense.currency,
                current_tier=expense.current_tier,
                decision=transition.decision.decision if transition.decision else None,
                next_approver_role=engine.required_role(expense)
                if transition.new_status in ("pending_approval", "escalated")
                else None,
                comment=comment,
            )
        )
