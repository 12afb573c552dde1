from fastapi import APIRouter, Depends, status, BackgroundTasks
from typing import List
import uuid

from app.core.dependencies import RequestContext, get_request_context, get_characteristic_service
from app.services.characteristic import CharacteristicService
from app.models.characteristic import (
    CharacteristicCreate,
    CharacteristicUpdate,
    CharacteristicRead
)

router = APIRouter()


@router.get(
    "/",
    response_model=List[CharacteristicRead],
    status_code=status.HTTP_200_OK,
    summary="List Characteristics",
    description="All characteristics of the tenant with their live material counts."
)
def list_characteristics(
    context: RequestContext = Depends(get_request_context),
    service: CharacteristicService = Depends(get_characteristic_service)
):
    return service.list_characteristics(context.entity_id)


@router.get(
    "/{characteristic_id}",
    response_model=CharacteristicRead,
    status_code=status.HTTP_200_OK,
    summary="Get Characteristic"
)
def get_characteristic(
    characteristic_id: uuid.UUID,
    context: RequestContext = Depends(get_request_context),
    service: CharacteristicService = Depends(get_characteristic_service)
):
    return service.get_characteristic(context.entity_id, characteristic_id)


@router.post(
    "/",
    response_model=CharacteristicRead,
    status_code=status.HTTP_201_CREATED,
    summary="Create Characteristic",
    description="Define a new typed attribute. Type, options and units cannot be changed later."
)
def create_characteristic(
    data: CharacteristicCreate,
    background_tasks: BackgroundTasks,
    context: RequestContext = Depends(get_request_context),
    service: CharacteristicService = Depends(get_characteristic_service)
):
    return service.create_characteristic(context.entity_id, data, context.user_id, background_tasks)


@router.patch(
    "/{characteristic_id}",
    response_model=CharacteristicRead,
    status_code=status.HTTP_200_OK,
    summary="Update Characteristic",
    description="Rename or re-describe. Materials using it get a new history snapshot."
)
def update_characteristic(
    characteristic_id: uuid.UUID,
    data: CharacteristicUpdate,
    background_tasks: BackgroundTasks,
    context: RequestContext = Depends(get_request_context),
    service: CharacteristicService = Depends(get_characteristic_service)
):
    return service.update_characteristic(
        context.entity_id, characteristic_id, data, context.user_id, background_tasks)


@router.delete(
    "/{characteristic_id}",
    status_code=status.HTTP_200_OK,
    summary="Delete Characteristic",
    description="Blocked while a live material holds a value for it."
)
def delete_characteristic(
    characteristic_id: uuid.UUID,
    background_tasks: BackgroundTasks,
    context: RequestContext = Depends(get_request_context),
    service: CharacteristicService = Depends(get_characteristic_service)
):
    return service.delete_characteristic(
        context.entity_id, characteristic_id, context.user_id, background_tasks)
