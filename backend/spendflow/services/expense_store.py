"""Persistence boundary for expenses and workflow definitions.

``save_expense`` and ``delete_expense`` rely on the ``version`` column of
``Expense`` (SQLAlchemy ``version_id_col``): the emitted statement carries
``WHERE version = <loaded version>`` and a lost race surfaces as
``StaleDataError``, reported here as ``Conflict``. Nothing is retried.
"""
import logging
import uuid
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from sqlalchemy.orm.exc import StaleDataError

from spendflow.core.errors import Conflict, NotFound
from spendflow.models.company import Company
from spendflow.models.expense import AWAITING_DECISION_STATUSES, Expense
from spendflow.models.workflow import WorkflowDefinition, WorkflowTier
from spendflow.services import audit as audit_svc

logger = logging.getLogger(__name__)

# Used for companies that never stored a definition.
DEFAULT_TIERS = [("manager", Decimal("0"))]


def default_workflow_definition(company_id: uuid.UUID) -> WorkflowDefinition:
    return WorkflowDefinition(
        company_id=company_id,
        escalation_tier=None,
        tiers=[
            WorkflowTier(position=i, approver_role=role, min_amount=min_amount)
            for i, (role, min_amount) in enumerate(DEFAULT_TIERS)
        ],
    )


class SqlExpenseStore:
    def __init__(self, db: AsyncSession):
        self.db = db

    # ─── Reads ───

    async def load_expense(self, expense_id: uuid.UUID) -> Expense:
        result = await self.db.execute(
            select(Expense)
            .options(selectinload(Expense.decisions))
            .where(Expense.id == expense_id)
        )
        expense = result.scalars().first()
        if expense is None:
            raise NotFound("Expense not found.")
        return expense

    async def load_company(self, company_id: uuid.UUID) -> Company:
        company = await self.db.get(Company, company_id)
        if company is None:
            raise NotFound("Company not found.")
        return company

    async def load_workflow_definition(self, company_id: uuid.UUID) -> WorkflowDefinition:
        result = await self.db.execute(
            select(WorkflowDefinition)
            .options(selectinload(WorkflowDefinition.tiers))
            .where(WorkflowDefinition.company_id == company_id)
        )
        definition = result.scalars().first()
        if definition is None:
            logger.info("No workflow definition for company %s; using default", company_id)
            return default_workflow_definition(company_id)
        return definition

    async def list_expenses(
        self,
        company_id: uuid.UUID,
        submitted_by: uuid.UUID | None = None,
        status: str | None = None,
    ) -> list[Expense]:
        stmt = select(Expense).where(Expense.company_id == company_id)
        if submitted_by is not None:
            stmt = stmt.where(Expense.submitted_by == submitted_by)
        if status:
            stmt = stmt.where(Expense.status == status)
        stmt = stmt.order_by(Expense.created_at.desc())
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def list_awaiting_decision(self, company_id: uuid.UUID) -> list[Expense]:
        result = await self.db.execute(
            select(Expense)
            .where(
                Expense.company_id == company_id,
                Expense.status.in_(list(AWAITING_DECISION_STATUSES)),
            )
            .order_by(Expense.created_at.asc())
        )
        return list(result.scalars().all())

    # ─── Writes ───

    def record_audit(self, **kwargs) -> None:
        audit_svc.log(self.db, **kwargs)

    async def add_expense(self, expense: Expense) -> Expense:
        self.db.add(expense)
        try:
            await self.db.commit()
        except IntegrityError as exc:
            await self.db.rollback()
            raise Conflict(f"Expense could not be stored: {exc.orig}") from exc
        return expense

    # Rollback expires every instance: only values read before it may be used after.

    async def save_expense(self, expense: Expense, expected_version: int) -> Expense:
        expense_id, version = expense.id, expense.version
        if version != expected_version:
            await self.db.rollback()
            raise Conflict(
                f"Expense {expense_id} is at version {version}, expected {expected_version}."
            )
        try:
            await self.db.commit()
        except (StaleDataError, IntegrityError) as exc:
            # IntegrityError: a concurrent decision already took this sequence number.
            await self.db.rollback()
            logger.info("Concurrent modification of expense %s detected", expense_id)
            raise Conflict(f"Expense {expense_id} was modified concurrently.") from exc
        return expense

    async def delete_expense(self, expense: Expense, expected_version: int) -> None:
        expense_id = expense.id
        if expense.version != expected_version:
            await self.db.rollback()
            raise Conflict(f"Expense {expense_id} was modified concurrently.")
        await self.db.delete(expense)
        try:
            await self.db.commit()
        except StaleDataError as exc:
            await self.db.rollback()
            logger.info("Concurrent modification of expense %s detected on delete", expense_id)
            raise Conflict(f"Expense {expense_id} was modified concurrently.") from exc

    async def rollback(self) -> None:
        await self.db.rollback()
