"""HTTP-level tests: auth, role table, tenancy and error rendering.

The lifespan does not run under ASGITransport, so sessions and services are
supplied through ``app.dependency_overrides``.
"""
import uuid
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from httpx import AsyncClient, ASGITransport

from spendflow.core.config import Settings
from spendflow.core.deps import get_current_user, get_expense_service, get_workflow_service
from spendflow.db.session import get_session
from spendflow.main import app
from spendflow.services.events import EventBus
from spendflow.services.expenses import ExpenseService
from spendflow.services.workflow import WorkflowService

from fakes import InMemoryStore, make_definition


# ─── Fixtures ─────────────────────────────────────────────────────────────────

def _user(role: str, company_id: uuid.UUID) -> SimpleNamespace:
    return SimpleNamespace(
        id=uuid.uuid4(),
        company_id=company_id,
        email=f"{role}-{uuid.uuid4().hex[:6]}@example.com",
        name=f"{role.title()} User",
        role=role,
        manager_id=None,
        is_active=True,
        deleted_at=None,
        password_hash="$2b$12$placeholder",
    )


def _mock_session(user=None) -> MagicMock:
    result = MagicMock()
    result.scalar_one_or_none.return_value = user
    session = MagicMock()
    session.execute = AsyncMock(return_value=result)
    session.commit = AsyncMock()
    session.flush = AsyncMock()
    session.rollback = AsyncMock()
    return session


class ApiHarness:
    """One company with a manager → admin workflow, served from memory."""

    def __init__(self):
        self.company_id = uuid.uuid4()
        self.store = InMemoryStore(
            self.company_id,
            make_definition(self.company_id, [("manager", "0"), ("admin", "0")]),
        )
        self.bus = EventBus()
        settings = Settings()
        self.workflow = WorkflowService(self.store, self.bus, settings)
        self.expenses = ExpenseService(self.store, self.workflow, settings)
        self.users = {role: _user(role, self.company_id) for role in ("employee", "manager", "admin")}
        self.current = None

        async def override_get_session():
            yield _mock_session()

        app.dependency_overrides[get_session] = override_get_session
        app.dependency_overrides[get_current_user] = lambda: self.current
        app.dependency_overrides[get_workflow_service] = lambda: self.workflow
        app.dependency_overrides[get_expense_service] = lambda: self.expenses

    def act_as(self, user) -> None:
        self.current = user


@pytest.fixture
def harness():
    h = ApiHarness()
    yield h
    app.dependency_overrides.clear()


def _client() -> AsyncClient:
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


EXPENSE = {
    "amount": "100.00",
    "currency": "USD",
    "category": "meals",
    "description": "Team lunch",
}


# ─── Health ───────────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_health_returns_ok():
    async with _client() as client:
        response = await client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"
    assert "X-Request-ID" in response.headers


@pytest.mark.asyncio
async def test_request_id_is_echoed():
    async with _client() as client:
        response = await client.get("/health", headers={"X-Request-ID": "abc123"})
    assert response.headers["X-Request-ID"] == "abc123"


# ─── Authentication ───────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_missing_token_returns_401_with_challenge():
    async def override_get_session():
        yield _mock_session()

    app.dependency_overrides[get_session] = override_get_session
    try:
        async with _client() as client:
            response = await client.get("/api/v1/expenses")
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 401
    assert response.headers["WWW-Authenticate"] == "Bearer"
    assert response.json()["error"] == "unauthenticated"


@pytest.mark.asyncio
async def test_garbage_token_returns_401():
    async def override_get_session():
        yield _mock_session()

    app.dependency_overrides[get_session] = override_get_session
    try:
        async with _client() as client:
            response = await client.get(
                "/api/v1/auth/me", headers={"Authorization": "Bearer not-a-jwt"}
            )
    finally:
        app.dependency_overrides.clear()
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_refresh_token_rejected_as_access_token():
    from spendflow.core.security import create_refresh_token

    user = _user("employee", uuid.uuid4())

    async def override_get_session():
        yield _mock_session(user)

    app.dependency_overrides[get_session] = override_get_session
    try:
        async with _client() as client:
            response = await client.get(
                "/api/v1/auth/me",
                headers={"Authorization": f"Bearer {create_refresh_token(str(user.id))}"},
            )
    finally:
        app.dependency_overrides.clear()
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_me_with_valid_token_reads_role_from_user_row():
    from spendflow.core.security import create_access_token

    user = _user("manager", uuid.uuid4())
    # Token claims admin, but the stored role wins.
    token = create_access_token(str(user.id), role="admin", company_id=str(user.company_id))

    async def override_get_session():
        yield _mock_session(user)

    app.dependency_overrides[get_session] = override_get_session
    try:
        async with _client() as client:
            response = await client.get(
                "/api/v1/auth/me", headers={"Authorization": f"Bearer {token}"}
            )
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 200
    assert response.json()["role"] == "manager"
    assert response.json()["company_id"] == str(user.company_id)


@pytest.mark.asyncio
async def test_login_valid_credentials_returns_tokens():
    user = _user("employee", uuid.uuid4())

    async def override_get_session():
        yield _mock_session(user)

    with patch("spendflow.api.v1.auth.verify_password", return_value=True):
        app.dependency_overrides[get_session] = override_get_session
        try:
            async with _client() as client:
                response = await client.post(
                    "/api/v1/auth/login",
                    data={"username": user.email, "password": "changeme123"},
                )
        finally:
            app.dependency_overrides.clear()

    assert response.status_code == 200
    data = response.json()
    assert data["access_token"]
    assert data["refresh_token"]
    assert data["token_type"] == "bearer"


@pytest.mark.asyncio
async def test_login_unknown_user_returns_401():
    async def override_get_session():
        yield _mock_session(None)

    app.dependency_overrides[get_session] = override_get_session
    try:
        async with _client() as client:
            response = await client.post(
                "/api/v1/auth/login",
                data={"username": "nobody@example.com", "password": "badpass"},
            )
    finally:
        app.dependency_overrides.clear()
    assert response.status_code == 401


# ─── Expense workflow over HTTP ───────────────────────────────────────────────

@pytest.mark.asyncio
async def test_submit_and_approve_through_both_tiers(harness):
    async with _client() as client:
        harness.act_as(harness.users["employee"])
        created = await client.post("/api/v1/expenses", json=EXPENSE)
        assert created.status_code == 201
        expense = created.json()
        assert expense["status"] == "pending_approval"
        assert [t["approver_role"] for t in expense["approval_chain"]] == ["manager", "admin"]

        harness.act_as(harness.users["manager"])
        step = await client.post(f"/api/v1/workflow/{expense['id']}/approve", json={"comment": "ok"})
        assert step.status_code == 200
        assert step.json()["current_tier"] == 1
        assert step.json()["status"] == "pending_approval"

        harness.act_as(harness.users["admin"])
        final = await client.post(f"/api/v1/workflow/{expense['id']}/approve")
        assert final.status_code == 200
        assert final.json()["status"] == "approved"

        history = await client.get(f"/api/v1/workflow/{expense['id']}/history")
    assert [d["decision"] for d in history.json()] == ["approved", "approved"]
    await harness.bus.drain()


@pytest.mark.asyncio
async def test_employee_cannot_approve(harness):
    async with _client() as client:
        harness.act_as(harness.users["employee"])
        expense = (await client.post("/api/v1/expenses", json=EXPENSE)).json()
        response = await client.post(f"/api/v1/workflow/{expense['id']}/approve")
    assert response.status_code == 403
    assert response.json()["error"] == "forbidden"
    await harness.bus.drain()


@pytest.mark.asyncio
async def test_approve_after_reject_returns_400(harness):
    async with _client() as client:
        harness.act_as(harness.users["employee"])
        expense = (await client.post("/api/v1/expenses", json=EXPENSE)).json()

        harness.act_as(harness.users["manager"])
        rejected = await client.post(
            f"/api/v1/workflow/{expense['id']}/reject", json={"comment": "missing receipt"}
        )
        assert rejected.json()["status"] == "rejected"

        harness.act_as(harness.users["admin"])
        response = await client.post(f"/api/v1/workflow/{expense['id']}/approve")
    assert response.status_code == 400
    assert response.json()["error"] == "invalid_state"
    await harness.bus.drain()


@pytest.mark.asyncio
async def test_cross_tenant_expense_returns_404(harness):
    async with _client() as client:
        harness.act_as(harness.users["employee"])
        expense = (await client.post("/api/v1/expenses", json=EXPENSE)).json()

        harness.act_as(_user("admin", uuid.uuid4()))
        read = await client.get(f"/api/v1/expenses/{expense['id']}")
        decide = await client.post(f"/api/v1/workflow/{expense['id']}/approve")
    assert read.status_code == 404
    assert decide.status_code == 404
    assert expense["description"] not in read.text
    await harness.bus.drain()


@pytest.mark.asyncio
async def test_invalid_expense_returns_422(harness):
    async with _client() as client:
        harness.act_as(harness.users["employee"])
        response = await client.post("/api/v1/expenses", json={**EXPENSE, "amount": "0"})
    assert response.status_code == 422
    assert response.json()["error"] == "validation_error"


@pytest.mark.asyncio
async def test_draft_edit_then_submit(harness):
    async with _client() as client:
        harness.act_as(harness.users["employee"])
        draft = (await client.post(
            "/api/v1/expenses", json={**EXPENSE, "submit_for_approval": False}
        )).json()
        assert draft["status"] == "submitted"

        edited = await client.patch(f"/api/v1/expenses/{draft['id']}", json={"amount": "80.00"})
        assert edited.status_code == 200
        assert edited.json()["amount"] == "80.00"

        routed = await client.post(f"/api/v1/expenses/{draft['id']}/submit")
        assert routed.json()["status"] == "pending_approval"

        blocked = await client.delete(f"/api/v1/expenses/{draft['id']}")
    assert blocked.status_code == 400
    await harness.bus.drain()


@pytest.mark.asyncio
async def test_company_list_is_manager_only(harness):
    async with _client() as client:
        harness.act_as(harness.users["employee"])
        await client.post("/api/v1/expenses", json=EXPENSE)
        denied = await client.get("/api/v1/expenses/company")

        harness.act_as(harness.users["manager"])
        allowed = await client.get("/api/v1/expenses/company")
        pending = await client.get("/api/v1/workflow/pending")
    assert denied.status_code == 403
    assert allowed.json()["total"] == 1
    assert pending.json()["total"] == 1
    await harness.bus.drain()


# ─── Settings & currency ──────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_workflow_definition_update_is_admin_only(harness):
    body = {"tiers": [{"position": 0, "approver_role": "manager"}], "escalation_tier": None}
    async with _client() as client:
        harness.act_as(harness.users["manager"])
        response = await client.put("/api/v1/settings/workflow", json=body)
    assert response.status_code == 403


@pytest.mark.asyncio
@pytest.mark.parametrize("body", [
    {"tiers": [{"position": 0, "approver_role": "employee"}]},
    {"tiers": [{"position": 0, "approver_role": "manager"}, {"position": 0, "approver_role": "admin"}]},
    {"tiers": [{"position": 0, "approver_role": "manager"}], "escalation_tier": 3},
])
async def test_workflow_definition_validation(harness, body):
    async with _client() as client:
        harness.act_as(harness.users["admin"])
        response = await client.put("/api/v1/settings/workflow", json=body)
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_currency_convert(harness):
    async with _client() as client:
        harness.act_as(harness.users["employee"])
        ok = await client.get("/api/v1/currency/convert", params={"amount": "100", "from": "EUR", "to": "USD"})
        bad = await client.get("/api/v1/currency/convert", params={"amount": "100", "from": "EUR", "to": "XYZ"})
    assert ok.status_code == 200
    assert ok.json()["converted"] == "108.00"
    assert bad.status_code == 422


@pytest.mark.asyncio
async def test_supported_currencies_is_public():
    async with _client() as client:
        response = await client.get("/api/v1/currency/supported")
    assert response.status_code == 200
    assert {"code": "USD", "symbol": "$"} in response.json()


@pytest.mark.asyncio
async def test_workflow_definition_replace(harness):
    result = MagicMock()
    result.scalars.return_value.first.return_value = None
    result.scalars.return_value.all.return_value = [uuid.uuid4()]
    session = _mock_session()
    session.execute = AsyncMock(return_value=result)

    async def override_get_session():
        yield session

    app.dependency_overrides[get_session] = override_get_session
    body = {
        "tiers": [
            {"position": 0, "approver_role": "manager"},
            {"position": 1, "approver_role": "manager", "min_amount": "1000"},
            {"position": 2, "approver_role": "admin", "min_amount": "5000"},
        ],
        "escalation_tier": 2,
    }
    async with _client() as client:
        harness.act_as(harness.users["admin"])
        response = await client.put("/api/v1/settings/workflow", json=body)

    assert response.status_code == 200
    data = response.json()
    assert data["escalation_tier"] == 2
    assert [t["approver_role"] for t in data["tiers"]] == ["manager", "manager", "admin"]
    added_types = {type(call.args[0]).__name__ for call in session.add.call_args_list}
    assert {"WorkflowDefinition", "AuditLog", "Notification"} <= added_types
    session.commit.assert_awaited_once()
