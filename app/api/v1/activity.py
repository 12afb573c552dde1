from fastapi import APIRouter, Depends, Query
from typing import List, Optional

from app.core.dependencies import RequestContext, get_request_context, get_activity_service
from app.services.activity import ActivityService
from app.models.activity import ActivityLogRead

router = APIRouter()


@router.get(
    "/",
    response_model=List[ActivityLogRead],
    summary="Activity Log",
    description="Create, update and delete actions of the tenant, newest first."
)
def list_activity(
    limit: int = Query(50, ge=1, le=500),
    record_type: Optional[str] = Query(None, description="Example: 'Material'"),
    context: RequestContext = Depends(get_request_context),
    service: ActivityService = Depends(get_activity_service)
):
    return service.list_activity(context.entity_id, limit, record_type)
