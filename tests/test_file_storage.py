import io
import uuid

import pytest
from PIL import Image
from sqlmodel import select

from app.core.exceptions import NotFoundError
from app.db.schema import FileRecord
from app.models.material import FileUpload
from app.utils.file_storage import downscale_image, sanitize_filename


def _png(width, height):
    buffer = io.BytesIO()
    Image.new("RGB", (width, height), color=(200, 120, 40)).save(buffer, format="PNG")
    return buffer.getvalue()


def test_sanitize_filename():
    assert sanitize_filename("spec sheet v2.pdf") == "spec-sheet-v2.pdf"
    assert sanitize_filename("../../etc/passwd") == "passwd"
    assert sanitize_filename("C:\\docs\\a b.txt") == "a-b.txt"
    assert sanitize_filename("   ") == "file"


def test_downscale_keeps_aspect_ratio():
    shrunk = downscale_image(_png(1440, 720), 720, 720)
    with Image.open(io.BytesIO(shrunk)) as image:
        assert image.size == (720, 360)
        assert image.format == "PNG"


def test_small_images_and_non_images_are_untouched():
    small = _png(100, 50)
    assert downscale_image(small, 720, 720) == small
    assert downscale_image(b"%PDF-1.7", 720, 720) == b"%PDF-1.7"


def test_save_writes_blob_and_record(blob_store, session, storage):
    record = blob_store.save(b"hello", "text/plain", "notes.txt", "materials/x")
    session.commit()

    assert record.name == "notes.txt"
    assert record.size == 5
    assert record.path.startswith("materials/x/")
    assert (storage / record.path).read_bytes() == b"hello"


def test_save_many_downscales_images(blob_store, storage):
    records = blob_store.save_many(
        [
            FileUpload(filename="big.png", content_type="image/png", content=_png(2000, 1000)),
            FileUpload(filename="doc.pdf", content_type="application/pdf", content=b"%PDF"),
        ],
        "materials/y",
        max_width=720,
        max_height=720,
    )

    assert [r.name for r in records] == ["big.png", "doc.pdf"]
    with Image.open(storage / records[0].path) as image:
        assert image.size == (720, 360)
    assert (storage / records[1].path).read_bytes() == b"%PDF"


def test_delete_many_db_only_keeps_blob(blob_store, session, storage):
    record = blob_store.save(b"keep", "text/plain", "a.txt", "materials/z")
    session.commit()

    assert blob_store.delete_many([record.id], db_only=True) == 1
    session.commit()

    assert session.exec(select(FileRecord)).all() == []
    assert (storage / record.path).exists()


def test_delete_many_removes_blob(blob_store, session, storage):
    record = blob_store.save(b"drop", "text/plain", "a.txt", "materials/z")
    path = storage / record.path
    session.commit()

    assert blob_store.delete_many([record.id, uuid.uuid4()]) == 1
    assert not path.exists()


def test_failed_blob_removal_is_not_fatal(blob_store, session, storage):
    record = blob_store.save(b"gone", "text/plain", "a.txt", "materials/z")
    (storage / record.path).unlink()
    session.commit()

    assert blob_store.delete_many([record.id]) == 1


def test_open(blob_store, session):
    record = blob_store.save(b"content", "text/plain", "a.txt", "materials/o")
    session.commit()

    found, content = blob_store.open(record.id)
    assert found.id == record.id
    assert content == b"content"

    with pytest.raises(NotFoundError):
        blob_store.open(uuid.uuid4())


def test_open_path_after_record_is_detached(blob_store, session, storage):
    record = blob_store.save(b"%PDF", "application/pdf", "a.pdf", "materials/p")
    session.commit()
    path = record.path

    assert blob_store.open_path(path) == ("application/pdf", b"%PDF")

    blob_store.delete_many([record.id], db_only=True)
    session.commit()

    # no record left, type comes from the file name
    assert blob_store.open_path(path) == ("application/pdf", b"%PDF")


def test_open_path_rejects_escapes(blob_store, storage, tmp_path):
    (tmp_path / "secret.txt").write_bytes(b"secret")

    with pytest.raises(NotFoundError):
        blob_store.open_path("../secret.txt")
    with pytest.raises(NotFoundError):
        blob_store.open_path(str(tmp_path / "secret.txt"))
    with pytest.raises(NotFoundError):
        blob_store.open_path("materials")
