"""Expense endpoints.

  POST   /expenses                   submit (routes into approval by default)
  GET    /expenses                   caller's own expenses
  GET    /expenses/company           all company expenses (manager/admin)
  GET    /expenses/users/{user_id}   one user's expenses (manager/admin)
  GET    /expenses/{id}
  PATCH  /expenses/{id}              only while ``submitted``
  DELETE /expenses/{id}              only while ``submitted``
  POST   /expenses/{id}/submit       route a ``submitted`` expense
"""
import uuid
from typing import Annotated

from fastapi import APIRouter, Depends, Query, Response, status

from spendflow.core.deps import get_expense_service, require_operation
from spendflow.core.identity import Identity
from spendflow.core.permissions import Operation
from spendflow.schemas.expense import (
    ExpenseCreate,
    ExpenseListResponse,
    ExpenseOut,
    ExpenseUpdate,
)
from spendflow.services.expenses import ExpenseService

router = APIRouter()

Service = Annotated[ExpenseService, Depends(get_expense_service)]


def _listing(expenses) -> ExpenseListResponse:
    return ExpenseListResponse(
        items=[ExpenseOut.model_validate(e) for e in expenses],
        total=len(expenses),
    )


@router.post("", response_model=ExpenseOut, status_code=status.HTTP_201_CREATED)
async def submit_expense(
    body: ExpenseCreate,
    service: Service,
    identity: Annotated[Identity, Depends(require_operation(Operation.EXPENSE_SUBMIT))],
):
    data = body.model_dump(exclude={"submit_for_approval"})
    return await service.submit(identity, data, submit_for_approval=body.submit_for_approval)


@router.get("", response_model=ExpenseListResponse)
async def list_my_expenses(
    service: Service,
    identity: Annotated[Identity, Depends(require_operation(Operation.EXPENSE_LIST_OWN))],
    status_filter: str | None = Query(default=None, alias="status"),
):
    return _listing(await service.list_mine(identity, status_filter))


@router.get("/company", response_model=ExpenseListResponse)
async def list_company_expenses(
    service: Service,
    identity: Annotated[Identity, Depends(require_operation(Operation.EXPENSE_LIST_COMPANY))],
    status_filter: str | None = Query(default=None, alias="status"),
):
    return _listing(await service.list_company(identity, status_filter))


@router.get("/users/{user_id}", response_model=ExpenseListResponse)
async def user_expense_history(
    user_id: uuid.UUID,
    service: Service,
    identity: Annotated[Identity, Depends(require_operation(Operation.EXPENSE_HISTORY_FOR_USER))],
):
    return _listing(await service.history_for_user(identity, user_id))


@router.get("/{expense_id}", response_model=ExpenseOut)
async def get_expense(
    expense_id: uuid.UUID,
    service: Service,
    identity: Annotated[Identity, Depends(require_operation(Operation.EXPENSE_VIEW))],
):
    return await service.get(identity, expense_id)


@router.patch("/{expense_id}", response_model=ExpenseOut)
async def edit_expense(
    expense_id: uuid.UUID,
    body: ExpenseUpdate,
    service: Service,
    identity: Annotated[Identity, Depends(require_operation(Operation.EXPENSE_EDIT))],
):
    return await service.edit(identity, expense_id, body.model_dump(exclude_unset=True))


@router.delete("/{expense_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_expense(
    expense_id: uuid.UUID,
    service: Service,
    identity: Annotated[Identity, Depends(require_operation(Operation.EXPENSE_DELETE))],
):
    await service.delete(identity, expense_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{expense_id}/submit", response_model=ExpenseOut)
async def route_expense(
    expense_id: uuid.UUID,
    service: Service,
    identity: Annotated[Identity, Depends(require_operation(Operation.EXPENSE_ROUTE))],
):
    return await service.route(identity, expense_id)
