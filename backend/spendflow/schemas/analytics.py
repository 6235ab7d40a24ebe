"""Spending dashboard schemas. Every ``total`` is in the company currency."""
import uuid
from decimal import Decimal

from pydantic import BaseModel


class DashboardSummary(BaseModel):
    total_expenses: int
    total_amount: Decimal
    awaiting_decision: int    # pending_approval + escalated
    awaiting_amount: Decimal


class StatusTotal(BaseModel):
    status: str
    count: int
    total: Decimal


class CategoryTotal(BaseModel):
    category: str
    count: int
    total: Decimal


class MonthTotal(BaseModel):
    year: int
    month: int
    count: int
    total: Decimal


class SpenderTotal(BaseModel):
    user_id: uuid.UUID
    name: str | None
    email: str | None
    count: int
    total: Decimal


class DashboardOut(BaseModel):
    currency: str
    summary: DashboardSummary
    by_status: list[StatusTotal]
    by_category: list[CategoryTotal]
    by_month: list[MonthTotal]
    top_spenders: list[SpenderTotal]
