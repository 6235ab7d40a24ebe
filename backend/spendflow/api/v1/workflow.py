"""Approval workflow endpoints.

  GET  /workflow/pending                expenses awaiting the caller's role
  POST /workflow/{expense_id}/approve
  POST /workflow/{expense_id}/reject
  POST /workflow/{expense_id}/escalate
  GET  /workflow/{expense_id}/history
"""
import uuid
from typing import Annotated

from fastapi import APIRouter, Depends

from spendflow.core.deps import get_workflow_service, require_operation
from spendflow.core.identity import Identity
from spendflow.core.permissions import Operation
from spendflow.schemas.expense import (
    DecisionOut,
    DecisionRequest,
    ExpenseListResponse,
    ExpenseOut,
)
from spendflow.services.workflow import WorkflowService

router = APIRouter()

Service = Annotated[WorkflowService, Depends(get_workflow_service)]


@router.get("/pending", response_model=ExpenseListResponse)
async def pending_for_me(
    service: Service,
    identity: Annotated[Identity, Depends(require_operation(Operation.WORKFLOW_PENDING))],
):
    expenses = await service.pending_for(identity)
    return ExpenseListResponse(
        items=[ExpenseOut.model_validate(e) for e in expenses],
        total=len(expenses),
    )


@router.post("/{expense_id}/approve", response_model=ExpenseOut)
async def approve(
    expense_id: uuid.UUID,
    service: Service,
    identity: Annotated[Identity, Depends(require_operation(Operation.WORKFLOW_APPROVE))],
    body: DecisionRequest | None = None,
):
    return await service.approve_step(identity, expense_id, body.comment if body else None)


@router.post("/{expense_id}/reject", response_model=ExpenseOut)
async def reject(
    expense_id: uuid.UUID,
    service: Service,
    identity: Annotated[Identity, Depends(require_operation(Operation.WORKFLOW_REJECT))],
    body: DecisionRequest | None = None,
):
    return await service.reject_step(identity, expense_id, body.comment if body else None)


@router.post("/{expense_id}/escalate", response_model=ExpenseOut)
async def escalate(
    expense_id: uuid.UUID,
    service: Service,
    identity: Annotated[Identity, Depends(require_operation(Operation.WORKFLOW_ESCALATE))],
    body: DecisionRequest | None = None,
):
    return await service.escalate(identity, expense_id, body.comment if body else None)


@router.get("/{expense_id}/history", response_model=list[DecisionOut])
async def history(
    expense_id: uuid.UUID,
    service: Service,
    identity: Annotated[Identity, Depends(require_operation(Operation.WORKFLOW_HISTORY))],
):
    return await service.get_history(identity, expense_id)
