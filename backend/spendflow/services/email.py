"""Email notification service: console mock for MVP (MAIL_ENABLED=False).

When MAIL_ENABLED is False, email content is printed to logs instead of
being sent via SMTP. Set MAIL_ENABLED=True to wire a real transport.
"""
import logging
from decimal import Decimal

from spendflow.services.fx import format_amount

logger = logging.getLogger(__name__)

SUBJECTS = {
    "pending_approval": "Action Required: expense awaiting {role} approval",
    "escalated": "Escalated: expense awaiting {role} approval",
    "approved": "Your expense was approved",
    "rejected": "Your expense was rejected",
}


# ─── Status change email ───

def send_expense_status_email(event: dict, mail_enabled: bool = False) -> None:
    """Send (or mock-log) the email for an expense status change.

    Args:
        event: ``ExpenseStatusChanged.to_dict()`` payload.
        mail_enabled: ``Settings.MAIL_ENABLED`` of the caller.
    """
    new_status = event["new_status"]
    template = SUBJECTS.get(new_status)
    if template is None:
        logger.debug("No email template for status %s; skipping.", new_status)
        return

    subject = template.format(role=event.get("next_approver_role") or "approver")
    amount_str = format_amount(Decimal(event["amount"]), event["currency"])
    recipient = (
        f"role:{event.get('next_approver_role')}@company:{event['company_id']}"
        if new_status in ("pending_approval", "escalated")
        else f"user:{event['submitted_by']}"
    )

    if not mail_enabled:
        logger.info(
            "\n"
            "=== EXPENSE STATUS EMAIL ===\n"
            "To: %s\n"
            "Subject: %s\n"
            "Expense: %s (%s)\n"
            "Comment: %s\n"
            "============================",
            recipient,
            subject,
            event["expense_id"],
            amount_str,
            event.get("comment") or "-",
        )
        return

    # Real SMTP path (not implemented in MVP)
    logger.warning(
        "MAIL_ENABLED=True but SMTP transport is not configured. "
        "Falling back to console log for expense %s.",
        event["expense_id"],
    )
    logger.info(
        "EXPENSE EMAIL (unsent): to=%s subject=%s amount=%s",
        recipient, subject, amount_str,
    )
