import uuid
from typing import List, Optional
from sqlmodel import Session, select

from app.db.schema import ActivityLog
from app.models.activity import ActivityLogRead
from app.services.entity import get_active_entity


class ActivityService:
    def __init__(self, session: Session):
        self.session = session

    def list_activity(
        self,
        entity_id: uuid.UUID,
        limit: int = 50,
        record_type: Optional[str] = None
    ) -> List[ActivityLogRead]:
        """Newest entries first, optionally narrowed to one record type."""
        get_active_entity(self.session, entity_id)

        statement = select(ActivityLog).where(ActivityLog.entity_id == entity_id)
        if record_type:
            statement = statement.where(ActivityLog.record_type == record_type)

        statement = statement.order_by(ActivityLog.timestamp.desc()).limit(limit)
        results = self.session.exec(statement).all()

        return [
            ActivityLogRead(
                id=log.id,
                actor_user_id=log.actor_user_id,
                record_type=log.record_type,
                record_id=log.record_id,
                action=log.action,
                changes=log.changes or {},
                timestamp=log.timestamp
            )
            for log in results
        ]
