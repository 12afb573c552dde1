import uuid
from typing import Optional
from fastapi import Depends, Header
from sqlmodel import Session
from pydantic import BaseModel

from app.db.core import get_session
from app.services.activity import ActivityService
from app.services.characteristic import CharacteristicService
from app.services.material import MaterialService
from app.services.material_history import MaterialHistoryService
from app.services.tag import TagService
from app.utils.file_storage import LocalBlobStore


class RequestContext(BaseModel):
    """Who a request acts for. Authentication happens upstream."""
    entity_id: uuid.UUID
    user_id: Optional[uuid.UUID] = None


def get_request_context(
    x_entity_id: uuid.UUID = Header(..., description="Tenant the request acts for."),
    x_user_id: Optional[uuid.UUID] = Header(None, description="Acting user, recorded in the activity log."),
) -> RequestContext:
    return RequestContext(entity_id=x_entity_id, user_id=x_user_id)


def get_history_service(session: Session = Depends(get_session)) -> MaterialHistoryService:
    return MaterialHistoryService(session)


def get_blob_store(session: Session = Depends(get_session)) -> LocalBlobStore:
    return LocalBlobStore(session)


def get_characteristic_service(session: Session = Depends(get_session)) -> CharacteristicService:
    return CharacteristicService(session)


def get_tag_service(session: Session = Depends(get_session)) -> TagService:
    return TagService(session)


def get_material_service(session: Session = Depends(get_session)) -> MaterialService:
    return MaterialService(session=session)


def get_activity_service(session: Session = Depends(get_session)) -> ActivityService:
    return ActivityService(session)
