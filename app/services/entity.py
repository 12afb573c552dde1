import uuid
from typing import Any, Dict, Optional

from fastapi import BackgroundTasks
from sqlmodel import Session

from app.core.audit import _perform_audit_log
from app.core.exceptions import NotFoundError
from app.core.tasks import run_after_commit
from app.db.schema import AuditAction, Entity, EntityStatus


def get_active_entity(session: Session, entity_id: uuid.UUID) -> Entity:
    """
    Resolves the tenant every core operation acts for.
    Unknown and disabled tenants are both reported as missing.
    """
    entity = session.get(Entity, entity_id)
    if not entity or entity.status != EntityStatus.ACTIVE:
        raise NotFoundError("Entity", entity_id)
    return entity


def schedule_audit(
    session: Session,
    background_tasks: Optional[BackgroundTasks],
    entity_id: uuid.UUID,
    user_id: Optional[uuid.UUID],
    record_type: str,
    record_id: uuid.UUID,
    action: AuditAction,
    changes: Dict[str, Any],
) -> None:
    run_after_commit(
        background_tasks,
        _perform_audit_log,
        bind=session.get_bind(),
        entity_id=entity_id,
        user_id=user_id,
        record_type=record_type,
        record_id=record_id,
        action=action,
        changes=changes,
    )
