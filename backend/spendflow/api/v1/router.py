from fastapi import APIRouter

from spendflow.api.v1 import (
    analytics,
    auth,
    companies,
    currency,
    expenses,
    notifications,
    settings,
    users,
    workflow,
)

api_router = APIRouter()

api_router.include_router(auth.router, prefix="/auth", tags=["auth"])
api_router.include_router(companies.router, prefix="/companies", tags=["companies"])
api_router.include_router(users.router, prefix="/users", tags=["users"])
api_router.include_router(expenses.router, prefix="/expenses", tags=["expenses"])
api_router.include_router(workflow.router, prefix="/workflow", tags=["workflow"])
api_router.include_router(settings.router, prefix="/settings", tags=["settings"])
api_router.include_router(notifications.router, prefix="/notifications", tags=["notifications"])
api_router.include_router(currency.router, prefix="/currency", tags=["currency"])
api_router.include_router(analytics.router, prefix="/analytics", tags=["analytics"])
