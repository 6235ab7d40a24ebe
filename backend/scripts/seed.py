"""Seed script: creates a demo company, its users, workflow and a few expenses.

Idempotent: checks for existing records before inserting.
Run: python scripts/seed.py   (from backend/)
"""
import asyncio
import sys
import os
from datetime import date, timedelta
from decimal import Decimal

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from spendflow.core.config import settings
from spendflow.core.identity import Identity
from spendflow.core.security import hash_password as get_password_hash
from spendflow.db.session import build_engine, build_session_factory
from spendflow.models.company import Company
from spendflow.models.expense import Expense
from spendflow.models.user import User
from spendflow.models.workflow import WorkflowDefinition, WorkflowTier
from spendflow.services.expense_store import SqlExpenseStore
from spendflow.services.expenses import ExpenseService
from spendflow.services.workflow import WorkflowService

DEMO_COMPANY = "Acme Travel Co"
TODAY = date.today()


# ─── Upsert helpers ───────────────────────────────────────────────────────────

async def _upsert_company(db: AsyncSession) -> Company:
    result = await db.execute(select(Company).where(Company.name == DEMO_COMPANY))
    company = result.scalars().first()
    if company:
        print(f"  [skip] Company {DEMO_COMPANY}")
        return company
    company = Company(name=DEMO_COMPANY, country="US", currency="USD")
    db.add(company)
    await db.flush()
    print(f"  [new]  Company {DEMO_COMPANY}")
    return company


async def _upsert_user(db: AsyncSession, company: Company, email: str, name: str,
                        role: str, manager: User | None = None) -> User:
    result = await db.execute(select(User).where(User.email == email))
    user = result.scalars().first()
    if user:
        print(f"  [skip] User {email}")
        return user
    user = User(
        company_id=company.id, email=email, name=name,
        password_hash=get_password_hash("changeme123"),
        role=role, manager_id=manager.id if manager else None, is_active=True,
    )
    db.add(user)
    await db.flush()
    print(f"  [new]  User {email} ({role})")
    return user


async def _upsert_workflow(db: AsyncSession, company: Company) -> WorkflowDefinition:
    result = await db.execute(
        select(WorkflowDefinition).where(WorkflowDefinition.company_id == company.id)
    )
    definition = result.scalars().first()
    if definition:
        print("  [skip] Workflow definition")
        return definition
    # manager → manager (over 1,000) → admin (over 5,000); escalation jumps straight to admin
    definition = WorkflowDefinition(
        company_id=company.id,
        escalation_tier=2,
        tiers=[
            WorkflowTier(position=0, approver_role="manager", min_amount=Decimal("0")),
            WorkflowTier(position=1, approver_role="manager", min_amount=Decimal("1000")),
            WorkflowTier(position=2, approver_role="admin", min_amount=Decimal("5000")),
        ],
    )
    db.add(definition)
    await db.flush()
    print("  [new]  Workflow definition (3 tiers, escalation → tier 2)")
    return definition


# ─── Main ─────────────────────────────────────────────────────────────────────

async def main() -> None:
    engine = build_engine(settings)
    SessionLocal = build_session_factory(engine)

    async with SessionLocal() as db:
        print("Company & users:")
        company = await _upsert_company(db)
        admin = await _upsert_user(db, company, "admin@example.com", "Ada Admin", "admin")
        manager = await _upsert_user(db, company, "manager@example.com", "Max Manager", "manager")
        employee = await _upsert_user(db, company, "employee@example.com", "Eve Employee", "employee", manager)
        await _upsert_workflow(db, company)
        await db.commit()

        existing = await db.execute(select(Expense.id).where(Expense.submitted_by == employee.id))
        if existing.scalars().first():
            print("Expenses:\n  [skip] demo expenses already present")
        else:
            print("Expenses:")
            store = SqlExpenseStore(db)
            workflow = WorkflowService(store, None, settings)
            expenses = ExpenseService(store, workflow, settings)
            caller = Identity.from_user(employee)
            for amount, currency, category, description, days_ago in [
                ("42.50", "USD", "meals", "Client lunch", 2),
                ("1800.00", "EUR", "travel", "Flights to Berlin offsite", 10),
                ("7200.00", "USD", "training", "Team certification course", 20),
            ]:
                expense = await expenses.submit(caller, {
                    "amount": Decimal(amount),
                    "currency": currency,
                    "category": category,
                    "description": description,
                    "expense_date": TODAY - timedelta(days=days_ago),
                })
                print(f"  [new]  {description} ({amount} {currency}) → {expense.status}, "
                      f"{len(expense.approval_chain)} tier(s)")

    await engine.dispose()
    print(f"\nDone. Log in as {admin.email} / changeme123")


if __name__ == "__main__":
    asyncio.run(main())
