from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from sales_engine.core.id_utils import generate_row_id
from sales_engine.core.observability import log_event
from sales_engine.models.audit_log import AuditLog


def log_audit_event(
    db: Session,
    *,
    actor_id: str | None,
    action: str,
    target_type: str,
    target_id: str | None = None,
    metadata_json: dict[str, Any] | None = None,
) -> AuditLog | None:
    """Record an audit row after the sale writes are committed.

    The sale itself is already durable at this point, so a failed audit
    insert is logged rather than turned into a sale failure.
    """
    event = AuditLog(
        id=generate_row_id(),
        actor_id=actor_id,
        action=action,
        target_type=target_type,
        target_id=target_id,
        metadata_json=metadata_json,
    )
    try:
        db.add(event)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        log_event(
            "audit_write_failed",
            level="warning",
            action=action,
            target_id=target_id,
            error=str(exc),
        )
        return None
    return event
