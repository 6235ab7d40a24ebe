"""Pydantic schemas for expense and approval workflow endpoints."""
import uuid
from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field


# ─── Requests ───

class ExpenseCreate(BaseModel):
    amount: Decimal
    currency: str = Field(min_length=3, max_length=3)
    category: str
    description: str
    expense_date: date | None = None
    receipt_url: str | None = None
    submit_for_approval: bool = True


class ExpenseUpdate(BaseModel):
    amount: Decimal | None = None
    currency: str | None = Field(default=None, min_length=3, max_length=3)
    category: str | None = None
    description: str | None = None
    expense_date: date | None = None
    receipt_url: str | None = None


class DecisionRequest(BaseModel):
    comment: str | None = Field(default=None, max_length=2000)


# ─── Responses ───

class DecisionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    sequence: int
    tier: int
    approver_role: str
    approver_id: uuid.UUID
    decision: str
    comment: str | None
    from_tier: int
    to_tier: int | None
    decided_at: datetime


class ChainTierOut(BaseModel):
    tier: int
    approver_role: str


class ExpenseOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    company_id: uuid.UUID
    submitted_by: uuid.UUID
    amount: Decimal
    currency: str
    category: str
    description: str
    expense_date: date
    receipt_url: str | None
    status: str
    current_tier: int
    approval_chain: list[ChainTierOut]
    escalation_tier: int | None
    decided_at: datetime | None
    version: int
    created_at: datetime | None = None
    decisions: list[DecisionOut] = []


class ExpenseListResponse(BaseModel):
    items: list[ExpenseOut]
    total: int
