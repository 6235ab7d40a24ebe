"""Audit log helper: append-only writes to audit_logs table."""
import json
import logging
import uuid
from typing import Any

from spendflow.models.audit import AuditLog

logger = logging.getLogger(__name__)


def log(
    db,
    action: str,
    entity_type: str,
    entity_id: uuid.UUID | str | None = None,
    company_id: uuid.UUID | str | None = None,
    actor_id: uuid.UUID | str | None = None,
    actor_email: str | None = None,
    before: Any | None = None,
    after: Any | None = None,
    notes: str | None = None,
) -> AuditLog:
    """Add a single audit log entry to the session.

    Args:
        db: Sync or async SQLAlchemy session. The entry is only added; the
            caller controls flush and commit so the audit row lands in the same
            transaction as the change it describes.
        action: Short verb, e.g. 'expense.approved', 'workflow.updated'.
        entity_type: Table/domain name, e.g. 'expense', 'user'.
        entity_id: PK of the affected record.
        company_id: Tenant the record belongs to.
        actor_id: User who performed the action (None for system actions).
        actor_email: Denormalised email (preserved if user is later deleted).
        before: Dict snapshot of state before the action (JSON-serialisable).
        after: Dict snapshot of state after the action.
        notes: Free-text annotation.
    """
    entry = AuditLog(
        company_id=uuid.UUID(str(company_id)) if company_id else None,
        actor_id=uuid.UUID(str(actor_id)) if actor_id else None,
        actor_email=actor_email,
        action=action,
        entity_type=entity_type,
        entity_id=uuid.UUID(str(entity_id)) if entity_id else None,
        before_state=json.dumps(before, default=str) if before is not None else None,
        after_state=json.dumps(after, default=str) if after is not None else None,
        notes=notes,
    )
    db.add(entry)
    logger.debug("Audit: %s %s/%s", action, entity_type, entity_id)
    return entry
