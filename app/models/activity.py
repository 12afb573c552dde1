from uuid import UUID
from datetime import datetime
from typing import Any, Dict, Optional
from sqlmodel import SQLModel

from app.db.schema import AuditAction


class ActivityLogRead(SQLModel):
    id: UUID
    actor_user_id: Optional[UUID] = None
    record_type: str
    record_id: UUID
    action: AuditAction
    changes: Dict[str, Any] = {}
    timestamp: datetime
