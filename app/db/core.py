from app.core.config import settings
from sqlmodel import Session, create_engine


connect_args = {}
if settings.database_url.startswith("sqlite"):
    # Background tasks open their own session from a worker thread.
    connect_args = {"check_same_thread": False}

engine = create_engine(settings.database_url, connect_args=connect_args)


def get_session():
    with Session(engine) as session:
        yield session
