import uuid
from datetime import datetime
from typing import Any, Dict, Optional
from loguru import logger
from sqlalchemy.engine import Engine
from sqlmodel import Session

from app.db.schema import ActivityLog, AuditAction


def _perform_audit_log(
    bind: Engine,
    entity_id: uuid.UUID,
    user_id: Optional[uuid.UUID],
    record_type: str,
    record_id: uuid.UUID,
    action: AuditAction,
    changes: Dict[str, Any],
):
    """
    Background worker.
    Creates its OWN session on the given engine, so it never shares the
    (already committed) session of the request that scheduled it.
    """
    try:
        with Session(bind) as session:
            log_entry = ActivityLog(
                entity_id=entity_id,
                actor_user_id=user_id,
                record_type=record_type,
                record_id=record_id,
                action=action,
                changes=changes,
                timestamp=datetime.utcnow()
            )
            session.add(log_entry)
            session.commit()

    except Exception as e:
        # The audited action is already committed; losing the entry is not fatal.
        logger.error(
            f"Activity log failed for {record_type} {record_id} ({action.value}): {e}")
