"""In-memory stand-ins for the persistence store, shared by the service tests.

``InMemoryStore.load_expense`` hands out a fresh copy on every call, so two
callers loading the same expense behave like two concurrent requests.
"""
import asyncio
import copy
import uuid
from decimal import Decimal
from types import SimpleNamespace

from spendflow.core.errors import Conflict, NotFound
from spendflow.core.identity import Identity
from spendflow.core.permissions import Role
from spendflow.models import Expense, ExpenseDecision, WorkflowDefinition, WorkflowTier
from spendflow.models.expense import AWAITING_DECISION_STATUSES

EXPENSE_FIELDS = (
    "id", "company_id", "submitted_by", "amount", "currency", "category",
    "description", "expense_date", "receipt_url", "status", "current_tier",
    "approval_chain", "escalation_tier", "decided_at", "version", "created_at",
)
DECISION_FIELDS = (
    "id", "sequence", "tier", "approver_role", "approver_id", "decision",
    "comment", "from_tier", "to_tier", "decided_at",
)


def make_identity(role: str = "employee", company_id: uuid.UUID | None = None,
                  user_id: uuid.UUID | None = None) -> Identity:
    return Identity(
        user_id=user_id or uuid.uuid4(),
        company_id=company_id or uuid.uuid4(),
        role=Role(role),
        email=f"{role}@example.com",
    )


def make_definition(company_id: uuid.UUID, tiers: list[tuple[str, str]],
                    escalation_tier: int | None = None) -> WorkflowDefinition:
    """``tiers`` is a list of (approver_role, min_amount)."""
    return WorkflowDefinition(
        id=uuid.uuid4(),
        company_id=company_id,
        escalation_tier=escalation_tier,
        tiers=[
            WorkflowTier(position=i, approver_role=role, min_amount=Decimal(min_amount))
            for i, (role, min_amount) in enumerate(tiers)
        ],
    )


class InMemoryStore:
    def __init__(self, company_id: uuid.UUID, definition: WorkflowDefinition | None = None,
                 currency: str = "USD"):
        self.company = SimpleNamespace(id=company_id, currency=currency)
        self.definition = definition or make_definition(company_id, [("manager", "0")])
        self.rows: dict[uuid.UUID, dict] = {}
        self.audit: list[dict] = []
        self.pending_audit: list[dict] = []
        self.rollbacks = 0

    # ─── Snapshot helpers ───

    def _dump(self, expense: Expense) -> dict:
        row = {f: copy.deepcopy(getattr(expense, f)) for f in EXPENSE_FIELDS}
        row["decisions"] = [
            {f: getattr(d, f) for f in DECISION_FIELDS} for d in expense.decisions
        ]
        return row

    def _build(self, row: dict) -> Expense:
        data = {f: copy.deepcopy(row[f]) for f in EXPENSE_FIELDS}
        expense = Expense(**data)
        for d in row["decisions"]:
            expense.decisions.append(ExpenseDecision(expense_id=expense.id, **d))
        return expense

    def _flush_audit(self) -> None:
        self.audit.extend(self.pending_audit)
        self.pending_audit = []

    # ─── Reads ───

    async def load_expense(self, expense_id):
        row = self.rows.get(expense_id)
        if row is None:
            raise NotFound("Expense not found.")
        expense = self._build(row)
        # Yield so concurrent callers both load before either saves.
        await asyncio.sleep(0)
        return expense

    async def load_company(self, company_id):
        if company_id != self.company.id:
            raise NotFound("Company not found.")
        return self.company

    async def load_workflow_definition(self, company_id):
        return self.definition

    async def list_expenses(self, company_id, submitted_by=None, status=None):
        rows = [
            r for r in self.rows.values()
            if r["company_id"] == company_id
            and (submitted_by is None or r["submitted_by"] == submitted_by)
            and (not status or r["status"] == status)
        ]
        return [self._build(r) for r in rows]

    async def list_awaiting_decision(self, company_id):
        return [
            self._build(r) for r in self.rows.values()
            if r["company_id"] == company_id and r["status"] in AWAITING_DECISION_STATUSES
        ]

    # ─── Writes ───

    def record_audit(self, **kwargs) -> None:
        self.pending_audit.append(kwargs)

    async def add_expense(self, expense):
        if expense.id in self.rows:
            raise Conflict("duplicate id")
        expense.version = 1
        self.rows[expense.id] = self._dump(expense)
        self._flush_audit()
        return expense

    async def save_expense(self, expense, expected_version):
        stored = self.rows[expense.id]
        if stored["version"] != expected_version or expense.version != expected_version:
            self.pending_audit = []
            raise Conflict(f"Expense {expense.id} was modified concurrently.")
        expense.version = expected_version + 1
        self.rows[expense.id] = self._dump(expense)
        self._flush_audit()
        return expense

    async def delete_expense(self, expense, expected_version):
        if self.rows[expense.id]["version"] != expected_version:
            raise Conflict(f"Expense {expense.id} was modified concurrently.")
        del self.rows[expense.id]
        self._flush_audit()

    async def rollback(self):
        self.rollbacks += 1
        self.pending_audit = []
