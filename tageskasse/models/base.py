# tageskasse/models/base.py
from __future__ import annotations

from pathlib import Path
from typing import Iterator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from tageskasse.config import settings as app_settings

Base = declarative_base()


def _sqlite_fk_on(dbapi_conn, _record) -> None:
    # ON DELETE CASCADE greift bei SQLite nur mit foreign_keys=ON
    cur = dbapi_conn.cursor()
    cur.execute("PRAGMA foreign_keys=ON")
    cur.close()


def _build_engine(url: str) -> Engine:
    db_url = make_url(url)
    if db_url.get_backend_name() != "sqlite":
        # Postgres/MySQL
        return create_engine(db_url, future=True, pool_pre_ping=True)

    # relativer Dateipfad (./db/tageskasse.db) -> absolut zum Arbeitsverzeichnis
    if db_url.database and db_url.database != ":memory:":
        db_file = Path(db_url.database)
        if not db_file.is_absolute():
            db_url = db_url.set(database=(Path.cwd() / db_file).as_posix())

    eng = create_engine(
        db_url,
        connect_args={"check_same_thread": False},  # Requests laufen im Threadpool
        future=True,
        pool_pre_ping=True,
    )
    event.listen(eng, "connect", _sqlite_fk_on)
    return eng


engine = _build_engine(app_settings.DATABASE_URL)
SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False, future=True)


def get_db() -> Iterator[Session]:
    """FastAPI-Dependency: eine Session pro Request."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
