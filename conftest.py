"""Pytest configuration.

Points the app at a throwaway SQLite file before any project module is
imported, and recreates the schema for every test.
"""

import os
import sys
import tempfile
from functools import partial
from pathlib import Path

import pytest

REPO_ROOT = Path(__file__).resolve().parent
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

_TMP_DIR = tempfile.mkdtemp(prefix="tageskasse-tests-")
os.environ["TAGESKASSE_DATABASE_URL"] = f"sqlite:///{Path(_TMP_DIR, 'test.db').as_posix()}"
os.environ.setdefault("TAGESKASSE_LOG_LEVEL", "WARNING")

from tageskasse.models.base import Base, SessionLocal, engine  # noqa: E402
from tageskasse.services import auth  # noqa: E402
from tageskasse.services.db_init import init_db  # noqa: E402


@pytest.fixture(autouse=True)
def fresh_schema(monkeypatch):
    """Empty database per test; cheap password hashing."""
    monkeypatch.setattr(auth, "hash_password", partial(auth.hash_password, iterations=1_000))
    Base.metadata.drop_all(bind=engine)
    init_db()
    yield


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def make_user(db):
    """Registered user, optionally with a profile (first profile becomes admin)."""
    from tageskasse.services import profiles

    counter = {"n": 0}

    def _make(username=None, *, with_profile=True):
        counter["n"] += 1
        user = auth.register_user(db, f"user{counter['n']}@example.com", "secret123")
        if with_profile:
            profiles.create_profile(db, user, username or f"user{counter['n']}")
        return user

    return _make


@pytest.fixture
def admin_user(make_user):
    return make_user("chef")


@pytest.fixture
def plain_user(admin_user, make_user):
    return make_user("mitarbeiter")


@pytest.fixture
def client_factory():
    from fastapi.testclient import TestClient

    from main import app

    clients = []

    def _make():
        c = TestClient(app)
        clients.append(c)
        return c

    yield _make
    for c in clients:
        c.close()
