import uuid
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import Date, DateTime, ForeignKey, Integer, JSON, Numeric, String, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from spendflow.db.base import Base, TimestampMixin, UUIDMixin

CATEGORIES = (
    "travel",
    "meals",
    "accommodation",
    "transportation",
    "office_supplies",
    "entertainment",
    "training",
    "communication",
    "other",
)

# submitted is the only editable state; approved and rejected are terminal.
STATUSES = ("submitted", "pending_approval", "approved", "rejected", "escalated")
EDITABLE_STATUSES = frozenset({"submitted"})
AWAITING_DECISION_STATUSES = frozenset({"pending_approval", "escalated"})
TERMINAL_STATUSES = frozenset({"approved", "rejected"})


class Expense(Base, UUIDMixin, TimestampMixin):
    """An expense claim and its position in the company approval chain."""

    __tablename__ = "expenses"

    company_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("companies.id"), nullable=False, index=True
    )
    submitted_by: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    category: Mapped[str] = mapped_column(String(50), nullable=False)
    description: Mapped[str] = mapped_column(String(500), nullable=False)
    expense_date: Mapped[date] = mapped_column(Date, nullable=False)
    receipt_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(
        String(50), nullable=False, default="submitted", index=True
    )
    current_tier: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    approval_chain: Mapped[list] = mapped_column(JSON, nullable=False, default=list)  # [{"tier", "approver_role"}]
    escalation_tier: Mapped[int | None] = mapped_column(Integer, nullable=True)
    decided_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    decisions: Mapped[list["ExpenseDecision"]] = relationship(
        "ExpenseDecision",
        back_populates="expense",
        cascade="all, delete-orphan",
        order_by="ExpenseDecision.sequence",
        lazy="selectin",
    )

    # UPDATEs carry WHERE version = <loaded>; a lost race raises StaleDataError.
    __mapper_args__ = {"version_id_col": version}

    @property
    def owner_id(self) -> uuid.UUID:
        return self.submitted_by


class ExpenseDecision(Base, UUIDMixin, TimestampMixin):
    """Append-only decision record for one tier of an expense's approval chain."""

    __tablename__ = "expense_decisions"
    __table_args__ = (
        UniqueConstraint("expense_id", "sequence", name="uq_expense_decisions_expense_sequence"),
    )

    expense_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("expenses.id", ondelete="CASCADE"), nullable=False, index=True
    )
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    tier: Mapped[int] = mapped_column(Integer, nullable=False)
    approver_role: Mapped[str] = mapped_column(String(50), nullable=False)
    approver_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id"), nullable=False
    )
    decision: Mapped[str] = mapped_column(String(20), nullable=False)  # approved, rejected, escalated
    comment: Mapped[str | None] = mapped_column(Text, nullable=True)
    from_tier: Mapped[int] = mapped_column(Integer, nullable=False)
    to_tier: Mapped[int | None] = mapped_column(Integer, nullable=True)
    decided_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    expense: Mapped["Expense"] = relationship("Expense", back_populates="decisions")
