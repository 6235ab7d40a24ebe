"""Pydantic schemas for the company workflow definition."""
import uuid
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, model_validator

from spendflow.core.permissions import APPROVER_ROLES, Role


class WorkflowTierIn(BaseModel):
    position: int = Field(ge=0)
    approver_role: Role
    min_amount: Decimal = Field(default=Decimal("0"), ge=0)

    @model_validator(mode="after")
    def _approver_role(self):
        if self.approver_role not in APPROVER_ROLES:
            raise ValueError("approver_role must be manager or admin")
        return self


class WorkflowDefinitionIn(BaseModel):
    tiers: list[WorkflowTierIn]
    escalation_tier: int | None = None

    @model_validator(mode="after")
    def _consistent(self):
        positions = [t.position for t in self.tiers]
        if len(positions) != len(set(positions)):
            raise ValueError("tier positions must be unique")
        if self.escalation_tier is not None and self.escalation_tier not in positions:
            raise ValueError("escalation_tier must reference an existing tier position")
        return self


class WorkflowTierOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    position: int
    approver_role: str
    min_amount: Decimal


class WorkflowDefinitionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID | None = None
    company_id: uuid.UUID
    escalation_tier: int | None
    tiers: list[WorkflowTierOut]
