# tageskasse/services/db_init.py
from __future__ import annotations

from pathlib import Path
from typing import Optional

import structlog

from tageskasse.models.base import Base, engine
# Alle Modelle registrieren (Side-Effect-Import)
import tageskasse.models.entities  # noqa: F401
import tageskasse.models.user  # noqa: F401

log = structlog.get_logger(__name__)


def _ensure_sqlite_parent_dir() -> None:
    """Erstellt den Ordner fuer die SQLite-Datei, falls noetig."""
    db_file: Optional[str] = engine.url.database
    if engine.url.get_backend_name() == "sqlite" and db_file and db_file != ":memory:":
        Path(db_file).parent.mkdir(parents=True, exist_ok=True)


def init_db() -> None:
    """
    Initialisiert die DB-Struktur.
    Wird beim App-Startup von main.py aufgerufen.
    """
    _ensure_sqlite_parent_dir()
    Base.metadata.create_all(bind=engine)
    log.info("db_initialized", url=engine.url.render_as_string(hide_password=True))
