from __future__ import annotations

from collections.abc import Callable

import pytest
from fastapi.testclient import TestClient

from app.db import Database
from app.main import create_app
from app.storage import MediaStore


@pytest.fixture
def database(tmp_path) -> Database:
    """Fresh SQLite database per test, schema already created."""
    db = Database(f"sqlite:///{tmp_path / 'test.db'}")
    db.create_schema()
    yield db
    db.dispose()


@pytest.fixture
def store(tmp_path) -> MediaStore:
    return MediaStore(str(tmp_path / "uploads"), use_cloudinary=False)


@pytest.fixture
def client(database: Database, store: MediaStore) -> TestClient:
    app = create_app(database=database, store=store)
    with TestClient(app) as c:
        yield c


@pytest.fixture
def make_user(client: TestClient) -> Callable[[str], str]:
    """Factory: register a user through the API and return its id."""

    def _create(username: str) -> str:
        r = client.post("/api/users", json={"username": username})
        assert r.status_code == 200, r.text
        return r.json()["id"]

    return _create
