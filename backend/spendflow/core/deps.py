from typing import Annotated

from fastapi import Depends, Request
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.ext.asyncio import AsyncSession

from spendflow.core.config import Settings, get_settings
from spendflow.core.errors import Forbidden
from spendflow.core.identity import Identity, resolve_user
from spendflow.core.permissions import Operation, allowed_roles, is_authorized
from spendflow.db.session import get_session
from spendflow.services.events import EventBus
from spendflow.services.expense_store import SqlExpenseStore
from spendflow.services.expenses import ExpenseService
from spendflow.services.workflow import WorkflowService

# auto_error=False so a missing header is reported by our own Unauthenticated.
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login", auto_error=False)


async def get_current_user(
    token: Annotated[str | None, Depends(oauth2_scheme)],
    db: Annotated[AsyncSession, Depends(get_session)],
):
    """Validate JWT and return the User ORM object."""
    return await resolve_user(db, token)


async def get_identity(user=Depends(get_current_user)) -> Identity:
    return Identity.from_user(user)


def require_operation(operation: Operation):
    """Dependency factory: raises 403 unless the caller's role may perform ``operation``."""
    async def check(identity: Identity = Depends(get_identity)) -> Identity:
        if not is_authorized(identity.role, allowed_roles(operation)):
            raise Forbidden(
                f"Role '{identity.role.value}' is not permitted for {operation.value}."
            )
        return identity
    return check


# ─── Service wiring ───

def get_event_bus(request: Request) -> EventBus | None:
    return getattr(request.app.state, "event_bus", None)


def get_store(db: Annotated[AsyncSession, Depends(get_session)]) -> SqlExpenseStore:
    return SqlExpenseStore(db)


def get_workflow_service(
    store: Annotated[SqlExpenseStore, Depends(get_store)],
    events: Annotated[EventBus | None, Depends(get_event_bus)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> WorkflowService:
    return WorkflowService(store, events, settings)


def get_expense_service(
    store: Annotated[SqlExpenseStore, Depends(get_store)],
    workflow: Annotated[WorkflowService, Depends(get_workflow_service)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> ExpenseService:
    return ExpenseService(store, workflow, settings)
