"""Per-company approval workflow definition."""
import uuid
from decimal import Decimal

from sqlalchemy import ForeignKey, Integer, Numeric, String
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from spendflow.db.base import Base, TimestampMixin, UUIDMixin


class WorkflowDefinition(Base, UUIDMixin, TimestampMixin):
    """Ordered approval tiers for a company, plus the escalation target tier."""

    __tablename__ = "workflow_definitions"

    company_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("companies.id"), nullable=False, unique=True, index=True
    )
    escalation_tier: Mapped[int | None] = mapped_column(Integer, nullable=True)  # index into tiers

    tiers: Mapped[list["WorkflowTier"]] = relationship(
        "WorkflowTier",
        back_populates="definition",
        cascade="all, delete-orphan",
        order_by="WorkflowTier.position",
        lazy="selectin",
    )


class WorkflowTier(Base, UUIDMixin, TimestampMixin):
    """One stage of the approval chain. Applies when amount >= min_amount (company currency)."""

    __tablename__ = "workflow_tiers"

    definition_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("workflow_definitions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    approver_role: Mapped[str] = mapped_column(String(50), nullable=False)
    min_amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False, default=Decimal("0"))

    definition: Mapped["WorkflowDefinition"] = relationship("WorkflowDefinition", back_populates="tiers")
