"""Expense record lifecycle: submit, route, edit, delete, view, list."""
import logging
import uuid
from datetime import date, timedelta
from decimal import Decimal

from spendflow.core.config import Settings
from spendflow.core.errors import Forbidden, InvalidState, ValidationError
from spendflow.core.identity import Identity
from spendflow.core.permissions import APPROVER_ROLES
from spendflow.models.expense import CATEGORIES, EDITABLE_STATUSES, STATUSES, Expense
from spendflow.services import fx
from spendflow.services.workflow import WorkflowService, expense_snapshot

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = ("amount", "currency", "category", "description", "expense_date", "receipt_url")


def validate_expense_fields(
    amount: Decimal,
    currency: str,
    category: str,
    description: str,
    expense_date: date,
    tolerance_days: int,
    today: date | None = None,
) -> None:
    """Raise ValidationError on the first business-rule violation."""
    today = today or date.today()
    if amount is None or Decimal(str(amount)) <= 0:
        raise ValidationError("Amount must be greater than zero.")
    if not fx.is_supported(currency):
        raise ValidationError(f"Unsupported currency: {currency}")
    if category not in CATEGORIES:
        raise ValidationError(f"Unknown category '{category}'.")
    if not description or not description.strip():
        raise ValidationError("Description is required.")
    if len(description) > 500:
        raise ValidationError("Description cannot exceed 500 characters.")
    if expense_date > today + timedelta(days=tolerance_days):
        raise ValidationError(
            f"Expense date {expense_date.isoformat()} is too far in the future."
        )


class ExpenseService:
    def __init__(self, store, workflow: WorkflowService, settings: Settings):
        self.store = store
        self.workflow = workflow
        self.settings = settings

    async def submit(
        self,
        identity: Identity,
        data: dict,
        submit_for_approval: bool = True,
    ) -> Expense:
        """Create an expense owned by the caller.

        With ``submit_for_approval`` the expense enters its approval chain in
        the same transaction; an empty chain auto-approves it.
        """
        expense_date = data.get("expense_date") or date.today()
        currency = (data.get("currency") or "").upper()
        validate_expense_fields(
            data.get("amount"),
            currency,
            data.get("category"),
            data.get("description"),
            expense_date,
            self.settings.EXPENSE_FUTURE_DATE_TOLERANCE_DAYS,
        )

        expense = Expense(
            id=uuid.uuid4(),
            company_id=identity.company_id,
            submitted_by=identity.user_id,
            amount=Decimal(str(data["amount"])),
            currency=currency,
            category=data["category"],
            description=data["description"].strip(),
            expense_date=expense_date,
            receipt_url=data.get("receipt_url"),
            status="submitted",
            current_tier=0,
            approval_chain=[],
            escalation_tier=None,
            # Loaded-empty, so serialising after commit never lazy-loads.
            decisions=[],
        )

        transition = None
        if submit_for_approval:
            transition = await self.workflow.prepare_route(expense)

        self.store.record_audit(
            action="expense.submitted",
            entity_type="expense",
            entity_id=expense.id,
            company_id=expense.company_id,
            actor_id=identity.user_id,
            actor_email=identity.email,
            after={
                "status": expense.status,
                "amount": str(expense.amount),
                "currency": expense.currency,
                "chain": expense.approval_chain,
            },
            notes="Auto-approved: empty approval chain"
            if transition is not None and transition.new_status == "approved"
            else None,
        )
        await self.store.add_expense(expense)
        logger.info(
            "Expense %s submitted by %s (%s %s) status=%s",
            expense.id, identity.user_id, expense.amount, expense.currency, expense.status,
        )

        if transition is not None:
            self.workflow.publish(expense, transition, identity)
        return expense

    async def route(self, identity: Identity, expense_id: uuid.UUID) -> Expense:
        """Explicitly hand a ``submitted`` expense to the approval workflow."""
        expense = await self._load_owned(identity, expense_id, "submit")
        expected_version = expense.version
        before = expense_snapshot(expense)
        try:
            transition = await self.workflow.prepare_route(expense)
        except (InvalidState, ValidationError):
            await self.store.rollback()
            raise
        await self.workflow.commit_transition(
            identity, expense, expected_version, transition, "expense.routed", before
        )
        return expense

    async def get(self, identity: Identity, expense_id: uuid.UUID) -> Expense:
        return await self.workflow.load_scoped(identity, expense_id)

    async def edit(self, identity: Identity, expense_id: uuid.UUID, changes: dict) -> Expense:
        expense = await self._load_owned(identity, expense_id, "edit")
        expected_version = expense.version

        changes = {k: v for k, v in changes.items() if k in EDITABLE_FIELDS}
        if "currency" in changes and changes["currency"]:
            changes["currency"] = changes["currency"].upper()
        merged = {field: getattr(expense, field) for field in EDITABLE_FIELDS}
        merged.update({k: v for k, v in changes.items() if v is not None or k == "receipt_url"})
        validate_expense_fields(
            merged["amount"],
            merged["currency"],
            merged["category"],
            merged["description"],
            merged["expense_date"],
            self.settings.EXPENSE_FUTURE_DATE_TOLERANCE_DAYS,
        )

        before = {field: getattr(expense, field) for field in changes}
        for field, value in merged.items():
            if field == "amount":
                value = Decimal(str(value))
            setattr(expense, field, value)

        self.store.record_audit(
            action="expense.edited",
            entity_type="expense",
            entity_id=expense.id,
            company_id=expense.company_id,
            actor_id=identity.user_id,
            actor_email=identity.email,
            before=before,
            after={field: getattr(expense, field) for field in changes},
        )
        await self.store.save_expense(expense, expected_version)
        return expense

    async def delete(self, identity: Identity, expense_id: uuid.UUID) -> None:
        expense = await self._load_owned(identity, expense_id, "delete")
        self.store.record_audit(
            action="expense.deleted",
            entity_type="expense",
            entity_id=expense.id,
            company_id=expense.company_id,
            actor_id=identity.user_id,
            actor_email=identity.email,
            before={"status": expense.status, "amount": str(expense.amount)},
        )
        await self.store.delete_expense(expense, expense.version)
        logger.info("Expense %s deleted by %s", expense.id, identity.user_id)

    async def list_mine(self, identity: Identity, status: str | None = None) -> list[Expense]:
        self._check_status_filter(status)
        return await self.store.list_expenses(
            identity.company_id, submitted_by=identity.user_id, status=status
        )

    async def list_company(self, identity: Identity, status: str | None = None) -> list[Expense]:
        if identity.role not in APPROVER_ROLES:
            raise Forbidden("Only managers and admins may list company expenses.")
        self._check_status_filter(status)
        return await self.store.list_expenses(identity.company_id, status=status)

    async def history_for_user(self, identity: Identity, user_id: uuid.UUID) -> list[Expense]:
        if identity.role not in APPROVER_ROLES:
            raise Forbidden("Only managers and admins may view another user's history.")
        # Company filter keeps other tenants' users invisible: an unknown id yields [].
        return await self.store.list_expenses(identity.company_id, submitted_by=user_id)

    # ─── Internals ───

    async def _load_owned(self, identity: Identity, expense_id: uuid.UUID, verb: str) -> Expense:
        """Scoped load that also requires ownership and an editable state."""
        expense = await self.workflow.load_scoped(identity, expense_id)
        if str(expense.submitted_by) != str(identity.user_id):
            raise Forbidden(f"Only the submitter may {verb} this expense.")
        if expense.status not in EDITABLE_STATUSES:
            raise InvalidState(
                f"Cannot {verb} expense in status '{expense.status}'."
            )
        return expense

    @staticmethod
    def _check_status_filter(status: str | None) -> None:
        if status and status not in STATUSES:
            raise ValidationError(f"Unknown status '{status}'.")
