"""Approval workflow state machine: deterministic, no I/O.

Edges:

  submitted         --route (chain empty)--> approved
  submitted         --route-->               pending_approval (tier 0)
  pending/escalated --approve (last tier)--> approved
  pending/escalated --approve-->             pending_approval (tier + 1)
  pending/escalated --reject-->              rejected
  pending/escalated --escalate-->            escalated (tier = escalation target)

Every precondition is checked before the expense is touched, so a refused
transition leaves no partial state behind. Persistence and notification
belong to ``spendflow.services.workflow``.
"""
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal

from spendflow.core.errors import CrossTenantAccess, Forbidden, InvalidState
from spendflow.core.identity import Identity
from spendflow.core.permissions import APPROVER_ROLES, is_authorized
from spendflow.models.expense import (
    AWAITING_DECISION_STATUSES,
    EDITABLE_STATUSES,
    Expense,
    ExpenseDecision,
)

logger = logging.getLogger(__name__)


# ─── Result dataclasses ───

@dataclass
class ChainTier:
    tier: int
    approver_role: str
    source_position: int

    def as_dict(self) -> dict:
        return {
            "tier": self.tier,
            "approver_role": self.approver_role,
            "source_position": self.source_position,
        }


@dataclass
class Transition:
    expense_id: uuid.UUID
    previous_status: str
    new_status: str
    from_tier: int
    to_tier: int | None
    decision: ExpenseDecision | None = None


# ─── Chain construction ───

def build_chain(
    tiers,
    escalation_position: int | None,
    amount: Decimal,
) -> tuple[list[ChainTier], int | None]:
    """Select the tiers an expense of ``amount`` must pass.

    ``tiers`` are definition tiers (``position``, ``approver_role``,
    ``min_amount``); ``amount`` is already in the company currency. Returns
    the chain and the chain index of the escalation tier, or None when the
    definition has none or the tier does not apply to this amount.
    """
    chain: list[ChainTier] = []
    for tier in sorted(tiers, key=lambda t: t.position):
        threshold = Decimal(str(tier.min_amount or 0))
        if amount >= threshold:
            chain.append(
                ChainTier(
                    tier=len(chain),
                    approver_role=tier.approver_role,
                    source_position=tier.position,
                )
            )

    escalation_index = None
    if escalation_position is not None:
        for entry in chain:
            if entry.source_position == escalation_position:
                escalation_index = entry.tier
                break
    return chain, escalation_index


# ─── Entry into the workflow ───

def enter_workflow(
    expense: Expense,
    chain: list[ChainTier],
    escalation_index: int | None,
    now: datetime | None = None,
) -> Transition:
    """Hand a ``submitted`` expense to its approval chain.

    An empty chain auto-approves the expense with no decision records.
    """
    if expense.status not in EDITABLE_STATUSES:
        raise InvalidState(
            f"Expense {expense.id} cannot enter the workflow from status '{expense.status}'."
        )

    now = now or datetime.now(timezone.utc)
    previous = expense.status

    expense.approval_chain = [entry.as_dict() for entry in chain]
    expense.escalation_tier = escalation_index
    expense.current_tier = 0

    if not chain:
        expense.status = "approved"
        expense.decided_at = now
        logger.info("Expense %s auto-approved: approval chain is empty", expense.id)
        return Transition(expense.id, previous, "approved", from_tier=0, to_tier=None)

    expense.status = "pending_approval"
    return Transition(expense.id, previous, "pending_approval", from_tier=0, to_tier=0)


# ─── Decisions ───

def required_role(expense: Expense) -> str | None:
    """Role required at the expense's current tier, or None outside the chain."""
    chain = expense.approval_chain or []
    if 0 <= expense.current_tier < len(chain):
        return chain[expense.current_tier]["approver_role"]
    return None


def _authorize_decision(
    expense: Expense,
    approver: Identity,
    block_self_approval: bool,
) -> str:
    """Shared preconditions for approve/reject/escalate. Returns the tier role."""
    if str(approver.company_id) != str(expense.company_id):
        raise CrossTenantAccess("Approver belongs to a different company.")

    if expense.status not in AWAITING_DECISION_STATUSES:
        raise InvalidState(
            f"Expense {expense.id} is not awaiting approval (status={expense.status})."
        )

    role = required_role(expense)
    if role is None:
        raise InvalidState(f"Expense {expense.id} has no tier {expense.current_tier}.")

    if not is_authorized(approver.role, {role}):
        raise Forbidden(
            f"Role '{approver.role.value}' cannot decide tier {expense.current_tier} "
            f"(requires '{role}')."
        )

    if block_self_approval and str(approver.user_id) == str(expense.submitted_by):
        raise Forbidden("Submitters may not decide their own expenses.")
    return role


def _append_decision(
    expense: Expense,
    approver: Identity,
    role: str,
    decision: str,
    comment: str | None,
    to_tier: int | None,
    now: datetime,
) -> ExpenseDecision:
    record = ExpenseDecision(
        id=uuid.uuid4(),
        sequence=len(expense.decisions),
        tier=expense.current_tier,
        approver_role=role,
        approver_id=approver.user_id,
        decision=decision,
        comment=comment,
        from_tier=expense.current_tier,
        to_tier=to_tier,
        decided_at=now,
    )
    expense.decisions.append(record)
    return record


def approve_step(
    expense: Expense,
    approver: Identity,
    comment: str | None = None,
    now: datetime | None = None,
    block_self_approval: bool = False,
) -> Transition:
    role = _authorize_decision(expense, approver, block_self_approval)
    now = now or datetime.now(timezone.utc)

    previous = expense.status
    from_tier = expense.current_tier
    is_last = from_tier >= len(expense.approval_chain) - 1
    to_tier = None if is_last else from_tier + 1

    record = _append_decision(expense, approver, role, "approved", comment, to_tier, now)
    if is_last:
        expense.status = "approved"
        expense.decided_at = now
    else:
        expense.current_tier = to_tier
        expense.status = "pending_approval"

    return Transition(expense.id, previous, expense.status, from_tier, to_tier, record)


def reject_step(
    expense: Expense,
    approver: Identity,
    comment: str | None = None,
    now: datetime | None = None,
    block_self_approval: bool = False,
) -> Transition:
    role = _authorize_decision(expense, approver, block_self_approval)
    now = now or datetime.now(timezone.utc)

    previous = expense.status
    from_tier = expense.current_tier
    record = _append_decision(expense, approver, role, "rejected", comment, None, now)
    expense.status = "rejected"
    expense.decided_at = now

    return Transition(expense.id, previous, "rejected", from_tier, None, record)


def escalate(
    expense: Expense,
    approver: Identity,
    comment: str | None = None,
    now: datetime | None = None,
    block_self_approval: bool = False,
) -> Transition:
    """Jump to the company's escalation tier.

    Unlike approve_step this does not move to ``current_tier + 1``: the target
    is the escalation tier snapshotted when the expense entered the workflow.
    """
    if approver.role not in APPROVER_ROLES:
        raise Forbidden("Only managers and admins may escalate.")
    role = _authorize_decision(expense, approver, block_self_approval)

    target = expense.escalation_tier
    if target is None:
        raise InvalidState(f"Expense {expense.id} has no escalation tier configured.")
    if target <= expense.current_tier:
        raise InvalidState(
            f"Expense {expense.id} is already at or beyond its escalation tier ({target})."
        )

    now = now or datetime.now(timezone.utc)
    previous = expense.status
    from_tier = expense.current_tier
    record = _append_decision(expense, approver, role, "escalated", comment, target, now)
    expense.current_tier = target
    expense.status = "escalated"

    return Transition(expense.id, previous, "escalated", from_tier, target, record)


def get_history(expense: Expense) -> list[ExpenseDecision]:
    return sorted(expense.decisions, key=lambda d: d.sequence)
