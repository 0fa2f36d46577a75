from pathlib import Path
from typing import Optional

from sqlalchemy import event
from sqlalchemy.engine import make_url
from sqlmodel import Session, SQLModel, create_engine

from brand_studio.core.settings import settings


def sqlite_file(database_url: str) -> Optional[Path]:
    """Return the database file of a file-backed SQLite URL, else None."""
    url = make_url(database_url)
    if url.get_backend_name() != "sqlite" or not url.database or url.database == ":memory:":
        return None
    return Path(url.database)


def build_engine(database_url: str):
    is_sqlite = database_url.startswith("sqlite")
    engine = create_engine(database_url, connect_args={"check_same_thread": False} if is_sqlite else {})
    if is_sqlite:
        # Assets, jobs and images must point at an existing brand.
        @event.listens_for(engine, "connect")
        def _enable_foreign_keys(dbapi_connection, _record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return engine


engine = build_engine(settings.database_url)


def init_db() -> None:
    from brand_studio.models import entities  # noqa: F401

    db_file = sqlite_file(settings.database_url)
    if db_file is not None:
        db_file.parent.mkdir(parents=True, exist_ok=True)
    SQLModel.metadata.create_all(engine)


def get_session():
    with Session(engine) as session:
        yield session
