import logging
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from clinic_billing.models.audit import AuditLog

logger = logging.getLogger(__name__)


def log_audit(
    db: Session,
    *,
    user_id: Optional[int],
    action: str,  # "create" | "update" | "delete"
    table_name: str,
    record_id: Any,
    new_values: Optional[Dict[str, Any]] = None,
) -> None:
    """
    Persist one audit event into audit_logs, in its own commit.
    Never raises.
    """
    try:
        db.add(
            AuditLog(
                user_id=user_id,
                action=action,
                table_name=table_name,
                record_id=str(record_id),
                new_values=new_values,
            ))
        db.commit()
    except Exception:
        db.rollback()
        logger.exception("Failed to log audit for %s %s", table_name,
                         record_id)


class DbAuditSink:
    """Audit sink that writes to the billing database's audit_logs table."""

    def __init__(self, db: Session):
        self.db = db

    def __call__(self, entity_type: str, entity_id: Any,
                 actor_id: Optional[int], payload: Dict[str, Any]) -> None:
        values = dict(payload or {})
        log_audit(
            self.db,
            user_id=actor_id,
            action=str(values.pop("action", "update")),
            table_name=entity_type,
            record_id=entity_id,
            new_values=values,
        )
