"""Spending dashboard for managers and admins of the caller's company."""
from typing import Annotated

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from spendflow.core.deps import require_operation
from spendflow.core.errors import NotFound
from spendflow.core.identity import Identity
from spendflow.core.permissions import Operation
from spendflow.db.session import get_session
from spendflow.models.company import Company
from spendflow.schemas.analytics import DashboardOut
from spendflow.services import analytics as analytics_svc

router = APIRouter()


@router.get("/dashboard", response_model=DashboardOut, summary="Company spending by status, category, month and spender")
async def get_dashboard(
    db: Annotated[AsyncSession, Depends(get_session)],
    identity: Annotated[Identity, Depends(require_operation(Operation.ANALYTICS_VIEW))],
    months: int = Query(default=12, ge=1, le=24, description="Months covered by by_month"),
):
    company = await db.get(Company, identity.company_id)
    if company is None:
        raise NotFound("Company not found.")
    return await analytics_svc.company_dashboard(
        db, company.id, company.currency, months=months
    )
