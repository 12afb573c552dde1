import pytest
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from app.core.config import settings
from app.db.schema import Entity, EntityStatus
from app.services.characteristic import CharacteristicService
from app.services.material import MaterialService
from app.services.material_history import MaterialHistoryService
from app.services.tag import TagService
from app.utils.file_storage import LocalBlobStore


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def session(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture
def storage(tmp_path, monkeypatch):
    root = tmp_path / "storage"
    root.mkdir()
    monkeypatch.setattr(settings, "storage_dir", root)
    monkeypatch.setattr(settings, "storage_enabled", True)
    return root


@pytest.fixture
def entity(session):
    entity = Entity(name="Acme Workshop")
    session.add(entity)
    session.commit()
    session.refresh(entity)
    return entity


@pytest.fixture
def other_entity(session):
    entity = Entity(name="Other Workshop")
    session.add(entity)
    session.commit()
    session.refresh(entity)
    return entity


@pytest.fixture
def disabled_entity(session):
    entity = Entity(name="Closed Workshop", status=EntityStatus.DISABLED)
    session.add(entity)
    session.commit()
    session.refresh(entity)
    return entity


@pytest.fixture
def history(session):
    return MaterialHistoryService(session)


@pytest.fixture
def blob_store(session, storage):
    return LocalBlobStore(session, storage)


@pytest.fixture
def characteristics(session, history, blob_store):
    return CharacteristicService(session, history, blob_store)


@pytest.fixture
def tags(session, history):
    return TagService(session, history)


@pytest.fixture
def materials(session, history, blob_store, tags, characteristics):
    return MaterialService(
        session,
        history=history,
        blob_store=blob_store,
        tags=tags,
        characteristics=characteristics,
    )
