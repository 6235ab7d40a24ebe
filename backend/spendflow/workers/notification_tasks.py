"""Celery tasks for outbound expense notifications."""
import logging

from spendflow.core.config import get_settings
from spendflow.workers.celery_app import celery_app

logger = logging.getLogger(__name__)


@celery_app.task(
    bind=True,
    name="notifications.send_expense_status_email",
    max_retries=3,
    default_retry_delay=30,
)
def send_expense_status_email_task(self, event: dict) -> None:
    """Render and send the status-change email for one ExpenseStatusChanged payload."""
    from spendflow.services.email import send_expense_status_email

    try:
        send_expense_status_email(event, mail_enabled=get_settings().MAIL_ENABLED)
    except Exception as exc:
        logger.warning(
            "send_expense_status_email failed for expense %s: %s",
            event.get("expense_id"), exc,
        )
        raise self.retry(exc=exc)
