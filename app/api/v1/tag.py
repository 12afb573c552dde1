from fastapi import APIRouter, Depends, status, BackgroundTasks
from typing import List
import uuid

from app.core.dependencies import RequestContext, get_request_context, get_tag_service
from app.services.tag import TagService
from app.models.tag import TagCreate, TagUpdate, TagRead

router = APIRouter()


@router.get("/", response_model=List[TagRead], summary="List Tags")
def list_tags(
    context: RequestContext = Depends(get_request_context),
    service: TagService = Depends(get_tag_service)
):
    return service.list_tags(context.entity_id)


@router.get("/{tag_id}", response_model=TagRead, summary="Get Tag")
def get_tag(
    tag_id: uuid.UUID,
    context: RequestContext = Depends(get_request_context),
    service: TagService = Depends(get_tag_service)
):
    return service.get_tag(context.entity_id, tag_id)


@router.post(
    "/",
    response_model=TagRead,
    status_code=status.HTTP_201_CREATED,
    summary="Create Tag"
)
def create_tag(
    data: TagCreate,
    background_tasks: BackgroundTasks,
    context: RequestContext = Depends(get_request_context),
    service: TagService = Depends(get_tag_service)
):
    return service.create_tag(context.entity_id, data, context.user_id, background_tasks)


@router.patch(
    "/{tag_id}",
    response_model=TagRead,
    summary="Update Tag",
    description="A rename adds a history snapshot to every live material carrying the tag."
)
def update_tag(
    tag_id: uuid.UUID,
    data: TagUpdate,
    background_tasks: BackgroundTasks,
    context: RequestContext = Depends(get_request_context),
    service: TagService = Depends(get_tag_service)
):
    return service.update_tag(context.entity_id, tag_id, data, context.user_id, background_tasks)


@router.delete("/{tag_id}", summary="Delete Tag")
def delete_tag(
    tag_id: uuid.UUID,
    background_tasks: BackgroundTasks,
    context: RequestContext = Depends(get_request_context),
    service: TagService = Depends(get_tag_service)
):
    return service.delete_tag(context.entity_id, tag_id, context.user_id, background_tasks)
