from fastapi import APIRouter, Depends, Response
from pathlib import PurePosixPath
import uuid

from app.core.dependencies import get_blob_store
from app.utils.file_storage import LocalBlobStore

router = APIRouter()


@router.get(
    "/path/{path:path}",
    summary="Download File By Path",
    description="Raw content of a stored blob by its storage path, as kept in history snapshots."
)
def download_file_by_path(
    path: str,
    store: LocalBlobStore = Depends(get_blob_store)
):
    mime_type, content = store.open_path(path)
    return Response(
        content=content,
        media_type=mime_type,
        headers={"Content-Disposition": f'inline; filename="{PurePosixPath(path).name}"'}
    )


@router.get(
    "/{file_id}",
    summary="Download File",
    description="Raw content of a stored file with its MIME type."
)
def download_file(
    file_id: uuid.UUID,
    store: LocalBlobStore = Depends(get_blob_store)
):
    record, content = store.open(file_id)
    return Response(
        content=content,
        media_type=record.type,
        headers={"Content-Disposition": f'inline; filename="{record.name}"'}
    )
