from fastapi import APIRouter, Depends, status, BackgroundTasks, Form, File, UploadFile, HTTPException
from typing import Dict, List, Type, TypeVar
from loguru import logger
import json
import uuid

from app.core.dependencies import RequestContext, get_request_context, get_material_service
from app.core.exceptions import ValidationError
from app.services.material import MaterialService
from app.models.material import (
    CharacteristicValueInput,
    FileUpload,
    MaterialBase,
    MaterialCreate,
    MaterialPayload,
    MaterialRead,
    MaterialUpdate,
    MaterialValueRead
)

router = APIRouter()

MaterialInput = TypeVar("MaterialInput", bound=MaterialBase)


def _parse_payload(payload: str, files: List[UploadFile], model: Type[MaterialInput]) -> MaterialInput:
    """
    Turns the multipart request into a service payload.
    File values reference their uploads by filename in `file_to_add`.
    """
    try:
        # Parse the JSON string back to Dict, then validate with Pydantic
        data = MaterialPayload(**json.loads(payload))
    except Exception as e:
        raise HTTPException(
            status_code=422, detail=f"Invalid JSON payload: {str(e)}")

    uploads: Dict[str, FileUpload] = {}
    for upload in files:
        # Upload names are unique per request.
        if upload.filename in uploads:
            raise ValidationError(
                f"File '{upload.filename}' is uploaded more than once.",
                field="files"
            )
        uploads[upload.filename] = FileUpload(
            filename=upload.filename,
            content_type=upload.content_type or "application/octet-stream",
            content=upload.file.read()
        )

    referenced = set()
    values = []
    for item in data.values:
        missing = [name for name in item.file_to_add if name not in uploads]
        if missing:
            raise ValidationError(
                f"Files referenced but not uploaded: {', '.join(missing)}",
                field=str(item.characteristic_id)
            )
        referenced.update(item.file_to_add)

        values.append(CharacteristicValueInput(
            characteristic_id=item.characteristic_id,
            value=item.value,
            file_to_add=[uploads[name] for name in item.file_to_add],
            file_to_delete=item.file_to_delete
        ))

    unused = set(uploads) - referenced
    if unused:
        logger.warning(f"Ignoring {len(unused)} uploaded file(s) not referenced by any value")

    return model(
        name=data.name,
        description=data.description,
        tag_ids=data.tag_ids,
        order=data.order,
        values=values
    )


@router.get(
    "/",
    response_model=List[MaterialRead],
    status_code=status.HTTP_200_OK,
    summary="List Materials",
    description="Live materials of the tenant, most recently updated first."
)
def list_materials(
    context: RequestContext = Depends(get_request_context),
    service: MaterialService = Depends(get_material_service)
):
    return service.list_materials(context.entity_id)


@router.get(
    "/{material_id}",
    response_model=MaterialRead,
    status_code=status.HTTP_200_OK,
    summary="Get Material"
)
def get_material(
    material_id: uuid.UUID,
    context: RequestContext = Depends(get_request_context),
    service: MaterialService = Depends(get_material_service)
):
    return service.get_material(context.entity_id, material_id)


@router.get(
    "/{material_id}/values",
    response_model=List[MaterialValueRead],
    status_code=status.HTTP_200_OK,
    summary="Get Material Values",
    description="Characteristic values in display order, with definitions and files."
)
def get_material_values(
    material_id: uuid.UUID,
    context: RequestContext = Depends(get_request_context),
    service: MaterialService = Depends(get_material_service)
):
    return service.get_values(context.entity_id, material_id)


@router.post(
    "/",
    response_model=MaterialRead,
    status_code=status.HTTP_201_CREATED,
    summary="Create Material",
    description="Multipart/Form-Data: a JSON `payload` plus the files referenced by file values."
)
def create_material(
    background_tasks: BackgroundTasks,
    payload: str = Form(
        ..., description="JSON string matching the MaterialPayload model."),
    files: List[UploadFile] = File(
        default=[], description="Files referenced by name in `file_to_add`."),
    context: RequestContext = Depends(get_request_context),
    service: MaterialService = Depends(get_material_service)
):
    data = _parse_payload(payload, files, MaterialCreate)
    return service.create_material(context.entity_id, data, context.user_id, background_tasks)


@router.put(
    "/{material_id}",
    response_model=MaterialRead,
    status_code=status.HTTP_200_OK,
    summary="Update Material",
    description="Replaces the material's fields and its whole value set. Multipart like create."
)
def update_material(
    material_id: uuid.UUID,
    background_tasks: BackgroundTasks,
    payload: str = Form(
        ..., description="JSON string matching the MaterialPayload model."),
    files: List[UploadFile] = File(
        default=[], description="Files referenced by name in `file_to_add`."),
    context: RequestContext = Depends(get_request_context),
    service: MaterialService = Depends(get_material_service)
):
    data = _parse_payload(payload, files, MaterialUpdate)
    return service.update_material(
        context.entity_id, material_id, data, context.user_id, background_tasks)


@router.delete(
    "/{material_id}",
    status_code=status.HTTP_200_OK,
    summary="Delete Material",
    description="Soft delete. History stays available."
)
def delete_material(
    material_id: uuid.UUID,
    background_tasks: BackgroundTasks,
    context: RequestContext = Depends(get_request_context),
    service: MaterialService = Depends(get_material_service)
):
    return service.delete_material(context.entity_id, material_id, context.user_id, background_tasks)
