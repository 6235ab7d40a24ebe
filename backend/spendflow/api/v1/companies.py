import logging
from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from spendflow.core.deps import require_operation
from spendflow.core.errors import NotFound, ValidationError
from spendflow.core.identity import Identity
from spendflow.core.permissions import Operation
from spendflow.db.session import get_session
from spendflow.models.company import Company
from spendflow.schemas.company import CompanyOut, CompanyUpdate
from spendflow.services import audit as audit_svc
from spendflow.services import fx

logger = logging.getLogger(__name__)

router = APIRouter()


async def _own_company(db: AsyncSession, identity: Identity) -> Company:
    company = await db.get(Company, identity.company_id)
    if company is None:
        raise NotFound("Company not found.")
    return company


@router.get("/me", response_model=CompanyOut)
async def get_my_company(
    db: Annotated[AsyncSession, Depends(get_session)],
    identity: Annotated[Identity, Depends(require_operation(Operation.COMPANY_VIEW))],
):
    return await _own_company(db, identity)


@router.put("/me", response_model=CompanyOut)
async def update_my_company(
    body: CompanyUpdate,
    db: Annotated[AsyncSession, Depends(get_session)],
    identity: Annotated[Identity, Depends(require_operation(Operation.COMPANY_UPDATE))],
):
    """Update company details. Changing the currency affects tier thresholds
    for expenses routed afterwards; existing amounts are never converted."""
    company = await _own_company(db, identity)
    changes = body.model_dump(exclude_unset=True, exclude_none=True)
    if "currency" in changes:
        changes["currency"] = changes["currency"].upper()
        if not fx.is_supported(changes["currency"]):
            raise ValidationError(f"Unsupported currency: {changes['currency']}")

    before = {field: getattr(company, field) for field in changes}
    for field, value in changes.items():
        setattr(company, field, value)

    audit_svc.log(
        db,
        action="company.updated",
        entity_type="company",
        entity_id=company.id,
        company_id=company.id,
        actor_id=identity.user_id,
        actor_email=identity.email,
        before=before,
        after=changes,
    )
    await db.commit()
    logger.info("Company %s updated: %s", company.id, sorted(changes))
    return company
