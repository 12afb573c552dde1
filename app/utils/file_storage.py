import io
import mimetypes
import os
import time
import uuid
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Iterable, List, Optional, Tuple

from loguru import logger
from PIL import Image, UnidentifiedImageError
from sqlmodel import Session, select

from app.core.config import settings
from app.core.exceptions import NotFoundError
from app.db.schema import FileRecord, MaterialCharacteristicFile
from app.models.material import FileUpload

# Blob writes of one request run in parallel, bounded.
UPLOAD_WORKERS = 4


def sanitize_filename(filename: str) -> str:
    """
    Keeps only the final path component and replaces whitespace with dashes.
    """
    name = Path(filename.replace("\\", "/")).name.strip()
    name = "-".join(name.split())
    return name or "file"


def downscale_image(content: bytes, max_width: int, max_height: int) -> bytes:
    """
    Shrinks an image to fit inside max_width x max_height, keeping its aspect
    ratio. Images already inside the bounds, and content Pillow cannot read,
    are returned unchanged.
    """
    try:
        with Image.open(io.BytesIO(content)) as image:
            if image.width <= max_width and image.height <= max_height:
                return content

            image_format = image.format or "PNG"
            image.thumbnail((max_width, max_height))

            buffer = io.BytesIO()
            image.save(buffer, format=image_format)
            return buffer.getvalue()

    except (UnidentifiedImageError, OSError) as e:
        logger.warning(f"Image could not be processed, storing it verbatim: {e}")
        return content


class LocalBlobStore:
    """
    Blob store backed by the local filesystem.

    Bytes go under `root`, metadata goes into FileRecord rows of the caller's
    session. Nothing here commits: the rows become visible with the caller's
    transaction.
    """

    def __init__(self, session: Session, root: Optional[Path] = None):
        self.session = session
        self.root = Path(root or settings.storage_dir)

    # ==========================================================================
    # WRITE
    # ==========================================================================

    def _write_blob(
        self,
        upload: FileUpload,
        location_hint: str,
        max_width: Optional[int],
        max_height: Optional[int],
    ) -> Tuple[str, int]:
        content = upload.content
        if upload.content_type.startswith("image/") and max_width and max_height:
            content = downscale_image(content, max_width, max_height)

        # 1. Ensure directory exists
        directory = self.root / location_hint
        os.makedirs(directory, exist_ok=True)

        # 2. Generate unique filename
        unique_name = f"{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}-{sanitize_filename(upload.filename)}"
        relative_path = f"{location_hint}/{unique_name}"

        # 3. Write bytes
        with open(self.root / relative_path, "wb") as buffer:
            buffer.write(content)

        return relative_path, len(content)

    def save(
        self,
        content: bytes,
        mime_type: str,
        original_name: str,
        location_hint: str,
        max_width: Optional[int] = None,
        max_height: Optional[int] = None,
    ) -> FileRecord:
        """
        Stores one file and returns its FileRecord (not yet committed).
        """
        upload = FileUpload(filename=original_name, content_type=mime_type, content=content)
        return self.save_many([upload], location_hint, max_width, max_height)[0]

    def save_many(
        self,
        uploads: List[FileUpload],
        location_hint: str,
        max_width: Optional[int] = None,
        max_height: Optional[int] = None,
    ) -> List[FileRecord]:
        """
        Stores several files under the same location hint.

        The blobs are written concurrently; records are created in input
        order once every write has finished. If any write fails, the blobs
        already written by this call are removed and the error propagates.
        """
        if not uploads:
            return []

        with ThreadPoolExecutor(max_workers=min(UPLOAD_WORKERS, len(uploads))) as pool:
            futures = [
                pool.submit(self._write_blob, upload, location_hint, max_width, max_height)
                for upload in uploads
            ]

        written: List[Tuple[str, int]] = []
        errors: List[BaseException] = []
        for future in futures:
            error = future.exception()
            if error is not None:
                errors.append(error)
            else:
                written.append(future.result())

        if errors:
            self._remove_paths(path for path, _ in written)
            logger.error(f"Failed to store {len(errors)} file(s) under {location_hint}: {errors[0]}")
            raise errors[0]

        records = []
        for upload, (path, size) in zip(uploads, written):
            record = FileRecord(
                name=sanitize_filename(upload.filename),
                type=upload.content_type,
                path=path,
                size=size,
            )
            self.session.add(record)
            records.append(record)

        self.session.flush()
        return records

    # ==========================================================================
    # DELETE
    # ==========================================================================

    def _remove_paths(self, paths: Iterable[str]) -> None:
        for path in paths:
            try:
                os.remove(self.root / path)
            except OSError as e:
                # Best effort: the database is the source of truth.
                logger.warning(f"Failed to delete blob {path}: {e}")

    def discard(self, records: Iterable[FileRecord]) -> None:
        """Removes the blobs of records that never got committed."""
        self._remove_paths(record.path for record in records)

    def delete_many(self, file_ids: Iterable[uuid.UUID], db_only: bool = False) -> int:
        """
        Deletes file records (and their value links).

        With `db_only` the blobs stay on disk, which keeps paths stored in
        history snapshots resolvable. Blob removal failures are logged and
        never raised.

        Returns:
            int: number of records deleted.
        """
        ids = list(file_ids)
        if not ids:
            return 0

        records = self.session.exec(
            select(FileRecord).where(FileRecord.id.in_(ids))
        ).all()

        if len(records) != len(set(ids)):
            logger.warning(
                f"delete_many: {len(set(ids)) - len(records)} file id(s) were already gone")

        links = self.session.exec(
            select(MaterialCharacteristicFile).where(
                MaterialCharacteristicFile.file_id.in_(ids))
        ).all()
        for link in links:
            self.session.delete(link)
        self.session.flush()

        for record in records:
            self.session.delete(record)
        self.session.flush()

        if not db_only:
            self._remove_paths(record.path for record in records)

        return len(records)

    # ==========================================================================
    # READ
    # ==========================================================================

    def resolve_path(self, path: str) -> Path:
        """
        Maps a stored path to a file under the storage root.

        Raises:
            NotFoundError: the path escapes the storage root.
        """
        full_path = (self.root / path).resolve()
        if self.root.resolve() not in full_path.parents:
            raise NotFoundError("File", path)
        return full_path

    def open(self, file_id: uuid.UUID) -> Tuple[FileRecord, bytes]:
        """
        Returns a file record with its content.

        Raises:
            NotFoundError: unknown id, or the blob is missing on disk.
        """
        record = self.session.get(FileRecord, file_id)
        if not record:
            raise NotFoundError("File", file_id)

        try:
            with open(self.resolve_path(record.path), "rb") as f:
                return record, f.read()
        except OSError as e:
            logger.error(f"Failed to read file {record.id} at {record.path}: {e}")
            raise NotFoundError("File", file_id)

    def open_path(self, path: str) -> Tuple[str, bytes]:
        """
        Returns the MIME type and content of a blob by its stored path.

        History snapshots keep paths rather than record ids, and blobs
        detached from live values stay on disk, so this works after the
        FileRecord is gone.

        Raises:
            NotFoundError: path outside the storage root, or no such blob.
        """
        full_path = self.resolve_path(path)
        if not full_path.is_file():
            raise NotFoundError("File", path)

        record = self.session.exec(
            select(FileRecord).where(FileRecord.path == path)
        ).first()
        if record:
            mime_type = record.type
        else:
            mime_type, _ = mimetypes.guess_type(full_path.name)

        with open(full_path, "rb") as f:
            return mime_type or "application/octet-stream", f.read()
