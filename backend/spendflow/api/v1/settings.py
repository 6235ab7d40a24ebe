"""Company workflow definition settings.

Replacing the definition never touches in-flight expenses: each one carries
the approval chain snapshotted when it was routed.
"""
import logging
import uuid
from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from spendflow.core.deps import require_operation
from spendflow.core.identity import Identity
from spendflow.core.permissions import APPROVER_ROLES, Operation
from spendflow.db.session import get_session
from spendflow.models.notification import Notification
from spendflow.models.user import User
from spendflow.models.workflow import WorkflowDefinition, WorkflowTier
from spendflow.schemas.workflow import WorkflowDefinitionIn, WorkflowDefinitionOut
from spendflow.services import audit as audit_svc
from spendflow.services.expense_store import SqlExpenseStore

logger = logging.getLogger(__name__)

router = APIRouter()


def _tiers_snapshot(definition: WorkflowDefinition) -> dict:
    return {
        "escalation_tier": definition.escalation_tier,
        "tiers": [
            {"position": t.position, "approver_role": t.approver_role, "min_amount": str(t.min_amount)}
            for t in definition.tiers
        ],
    }


@router.get("/workflow", response_model=WorkflowDefinitionOut)
async def get_workflow_definition(
    db: Annotated[AsyncSession, Depends(get_session)],
    identity: Annotated[Identity, Depends(require_operation(Operation.WORKFLOW_DEFINITION_VIEW))],
):
    return await SqlExpenseStore(db).load_workflow_definition(identity.company_id)


@router.put("/workflow", response_model=WorkflowDefinitionOut)
async def replace_workflow_definition(
    body: WorkflowDefinitionIn,
    db: Annotated[AsyncSession, Depends(get_session)],
    identity: Annotated[Identity, Depends(require_operation(Operation.WORKFLOW_DEFINITION_UPDATE))],
):
    result = await db.execute(
        select(WorkflowDefinition)
        .options(selectinload(WorkflowDefinition.tiers))
        .where(WorkflowDefinition.company_id == identity.company_id)
    )
    definition = result.scalars().first()
    before = None
    if definition is None:
        definition = WorkflowDefinition(id=uuid.uuid4(), company_id=identity.company_id, tiers=[])
        db.add(definition)
    else:
        before = _tiers_snapshot(definition)

    definition.escalation_tier = body.escalation_tier
    definition.tiers = [
        WorkflowTier(
            position=tier.position,
            approver_role=tier.approver_role.value,
            min_amount=tier.min_amount,
        )
        for tier in sorted(body.tiers, key=lambda t: t.position)
    ]

    audit_svc.log(
        db,
        action="workflow.updated",
        entity_type="workflow_definition",
        entity_id=definition.id,
        company_id=identity.company_id,
        actor_id=identity.user_id,
        actor_email=identity.email,
        before=before,
        after=_tiers_snapshot(definition),
    )
    approvers = await db.execute(
        select(User.id).where(
            User.company_id == identity.company_id,
            User.role.in_([role.value for role in APPROVER_ROLES]),
            User.id != identity.user_id,
            User.is_active.is_(True),
            User.deleted_at.is_(None),
        )
    )
    for user_id in approvers.scalars().all():
        db.add(Notification(
            company_id=identity.company_id,
            user_id=user_id,
            type="workflow_updated",
            title="Approval Workflow Updated",
            message=f"The approval workflow now has {len(definition.tiers)} tier(s)",
            data={"escalation_tier": definition.escalation_tier},
        ))
    await db.commit()
    logger.info(
        "Workflow definition for company %s replaced: %d tiers, escalation=%s",
        identity.company_id, len(definition.tiers), definition.escalation_tier,
    )
    return definition
