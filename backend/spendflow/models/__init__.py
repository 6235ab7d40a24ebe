from spendflow.models.company import Company
from spendflow.models.user import User
from spendflow.models.expense import Expense, ExpenseDecision
from spendflow.models.workflow import WorkflowDefinition, WorkflowTier
from spendflow.models.notification import Notification
from spendflow.models.audit import AuditLog

__all__ = [
    "Company",
    "User",
    "Expense", "ExpenseDecision",
    "WorkflowDefinition", "WorkflowTier",
    "Notification",
    "AuditLog",
]
