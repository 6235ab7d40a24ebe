import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Request, status
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from spendflow.core.config import settings
from spendflow.core.deps import get_current_user
from spendflow.core.errors import Conflict, Forbidden, Unauthenticated, ValidationError
from spendflow.core.identity import resolve_user
from spendflow.core.limiter import limiter
from spendflow.core.security import (
    create_access_token,
    create_refresh_token,
    hash_password,
    verify_password,
)
from spendflow.db.session import get_session
from spendflow.models.company import Company, currency_for_country
from spendflow.models.user import User
from spendflow.schemas.auth import RefreshRequest, SignupRequest, Token, UserOut
from spendflow.services import audit as audit_svc
from spendflow.services import fx
from spendflow.services.expense_store import default_workflow_definition

logger = logging.getLogger(__name__)

router = APIRouter()


def _issue_tokens(user: User) -> dict:
    return {
        "access_token": create_access_token(
            subject=str(user.id), role=user.role, company_id=str(user.company_id)
        ),
        "refresh_token": create_refresh_token(subject=str(user.id)),
        "token_type": "bearer",
    }


@router.post("/signup", response_model=Token, status_code=status.HTTP_201_CREATED)
@limiter.limit(settings.LOGIN_RATE_LIMIT)
async def signup(
    request: Request,
    body: SignupRequest,
    db: Annotated[AsyncSession, Depends(get_session)],
):
    """Create a company, its default approval workflow and its first admin."""
    existing = await db.execute(select(User.id).where(User.email == body.email))
    if existing.scalar_one_or_none() is not None:
        raise Conflict("Email already registered")

    currency = (body.currency or currency_for_country(body.country, settings.DEFAULT_COMPANY_CURRENCY)).upper()
    if not fx.is_supported(currency):
        raise ValidationError(f"Unsupported currency: {currency}")

    company = Company(name=body.company_name, country=body.country, currency=currency)
    db.add(company)
    await db.flush()

    db.add(default_workflow_definition(company.id))
    user = User(
        company_id=company.id,
        email=body.email,
        name=body.name,
        password_hash=hash_password(body.password),
        role="admin",
        is_active=True,
    )
    db.add(user)
    await db.flush()

    audit_svc.log(
        db,
        action="company.created",
        entity_type="company",
        entity_id=company.id,
        company_id=company.id,
        actor_id=user.id,
        actor_email=user.email,
        after={"name": company.name, "country": company.country, "currency": company.currency},
    )
    await db.commit()
    logger.info("Company %s created with admin %s", company.id, user.email)
    return _issue_tokens(user)


@router.post("/login", response_model=Token)
@limiter.limit(settings.LOGIN_RATE_LIMIT)
async def login(
    request: Request,
    form: Annotated[OAuth2PasswordRequestForm, Depends()],
    db: Annotated[AsyncSession, Depends(get_session)],
):
    result = await db.execute(
        select(User).where(User.email == form.username, User.deleted_at.is_(None))
    )
    user = result.scalar_one_or_none()
    if not user or not verify_password(form.password, user.password_hash):
        raise Unauthenticated("Invalid credentials")
    if not user.is_active:
        raise Forbidden("Account disabled")

    audit_svc.log(
        db,
        action="user_login",
        entity_type="user",
        entity_id=user.id,
        company_id=user.company_id,
        actor_id=user.id,
        actor_email=user.email,
        after={"email": user.email, "role": user.role},
        notes=f"Login from IP {request.client.host if request.client else 'unknown'}",
    )
    await db.commit()

    return _issue_tokens(user)


@router.post("/refresh", response_model=Token)
async def refresh(
    body: RefreshRequest,
    db: Annotated[AsyncSession, Depends(get_session)],
):
    user = await resolve_user(db, body.refresh_token, token_type="refresh")
    return _issue_tokens(user)


@router.get("/me", response_model=UserOut)
async def me(current_user: Annotated[User, Depends(get_current_user)]):
    return current_user
