"""Role-authorization table.

Each protected operation declares its own allowed-role set. There is no
inferred hierarchy: a role is authorized for an operation only if it is listed.
"""
import enum
from collections.abc import Iterable


class Role(str, enum.Enum):
    employee = "employee"
    manager = "manager"
    admin = "admin"


ROLES = tuple(r.value for r in Role)
APPROVER_ROLES = frozenset({Role.manager, Role.admin})


class Operation(str, enum.Enum):
    # Expenses
    EXPENSE_SUBMIT = "expense.submit"
    EXPENSE_VIEW = "expense.view"
    EXPENSE_LIST_OWN = "expense.list_own"
    EXPENSE_LIST_COMPANY = "expense.list_company"
    EXPENSE_HISTORY_FOR_USER = "expense.history_for_user"
    EXPENSE_EDIT = "expense.edit"
    EXPENSE_DELETE = "expense.delete"
    EXPENSE_ROUTE = "expense.route"

    # Workflow
    WORKFLOW_APPROVE = "workflow.approve"
    WORKFLOW_REJECT = "workflow.reject"
    WORKFLOW_ESCALATE = "workflow.escalate"
    WORKFLOW_HISTORY = "workflow.history"
    WORKFLOW_PENDING = "workflow.pending"

    # Settings
    WORKFLOW_DEFINITION_VIEW = "settings.workflow.view"
    WORKFLOW_DEFINITION_UPDATE = "settings.workflow.update"
    COMPANY_VIEW = "company.view"
    COMPANY_UPDATE = "company.update"

    # Users
    USER_CREATE = "user.create"
    USER_LIST = "user.list"
    USER_UPDATE = "user.update"
    USER_DELETE = "user.delete"

    # Misc
    NOTIFICATION_READ = "notification.read"
    CURRENCY_CONVERT = "currency.convert"
    ANALYTICS_VIEW = "analytics.view"


_ALL = frozenset(Role)
_MANAGERS = frozenset({Role.manager, Role.admin})
_ADMIN = frozenset({Role.admin})

OPERATION_ROLES: dict[Operation, frozenset[Role]] = {
    Operation.EXPENSE_SUBMIT: _ALL,
    Operation.EXPENSE_VIEW: _ALL,
    Operation.EXPENSE_LIST_OWN: _ALL,
    Operation.EXPENSE_LIST_COMPANY: _MANAGERS,
    Operation.EXPENSE_HISTORY_FOR_USER: _MANAGERS,
    Operation.EXPENSE_EDIT: _ALL,
    Operation.EXPENSE_DELETE: _ALL,
    Operation.EXPENSE_ROUTE: _ALL,
    Operation.WORKFLOW_APPROVE: _MANAGERS,
    Operation.WORKFLOW_REJECT: _MANAGERS,
    Operation.WORKFLOW_ESCALATE: _MANAGERS,
    Operation.WORKFLOW_HISTORY: _ALL,
    Operation.WORKFLOW_PENDING: _MANAGERS,
    Operation.WORKFLOW_DEFINITION_VIEW: _MANAGERS,
    Operation.WORKFLOW_DEFINITION_UPDATE: _ADMIN,
    Operation.COMPANY_VIEW: _ALL,
    Operation.COMPANY_UPDATE: _ADMIN,
    Operation.USER_CREATE: _ADMIN,
    Operation.USER_LIST: _MANAGERS,
    Operation.USER_UPDATE: _ADMIN,
    Operation.USER_DELETE: _ADMIN,
    Operation.NOTIFICATION_READ: _ALL,
    Operation.CURRENCY_CONVERT: _ALL,
    Operation.ANALYTICS_VIEW: _MANAGERS,
}


def parse_role(value: "str | Role") -> Role | None:
    try:
        return Role(value)
    except ValueError:
        return None


def is_authorized(role: "str | Role", required_roles: Iterable["str | Role"]) -> bool:
    """Pure set-membership check; unknown roles are never authorized."""
    parsed = parse_role(role)
    if parsed is None:
        return False
    return parsed in {Role(r) for r in required_roles}


def allowed_roles(operation: Operation) -> frozenset[Role]:
    return OPERATION_ROLES[operation]
