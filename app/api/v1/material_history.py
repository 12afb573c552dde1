from fastapi import APIRouter, Depends, Query, status
from datetime import datetime
from typing import List, Optional
import uuid

from app.core.dependencies import RequestContext, get_request_context, get_history_service
from app.services.material_history import MaterialHistoryService, to_history_read
from app.models.material_history import MaterialHistoryRead

router = APIRouter()


@router.get(
    "/{material_id}/history",
    response_model=List[MaterialHistoryRead],
    status_code=status.HTTP_200_OK,
    summary="Material History",
    description="Snapshots created within [from, to], newest first. Works for deleted materials too."
)
def get_history(
    material_id: uuid.UUID,
    date_from: Optional[datetime] = Query(None, alias="from"),
    date_to: Optional[datetime] = Query(None, alias="to"),
    context: RequestContext = Depends(get_request_context),
    service: MaterialHistoryService = Depends(get_history_service)
):
    results = service.get_history(
        context.entity_id,
        material_id,
        date_from or datetime.min,
        date_to or datetime.utcnow()
    )
    return [to_history_read(h) for h in results]


@router.get(
    "/{material_id}/history/latest",
    response_model=MaterialHistoryRead,
    status_code=status.HTTP_200_OK,
    summary="Latest Snapshot"
)
def get_latest(
    material_id: uuid.UUID,
    context: RequestContext = Depends(get_request_context),
    service: MaterialHistoryService = Depends(get_history_service)
):
    return to_history_read(service.get_latest(context.entity_id, material_id))
