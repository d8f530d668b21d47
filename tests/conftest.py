from __future__ import annotations

import sys
from collections.abc import Iterator
from pathlib import Path

import mongomock
import pytest
from fastapi.testclient import TestClient

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import database  # noqa: E402
from database import RecordStore  # noqa: E402
from identity import Member  # noqa: E402


def member_headers(member_id: str, nickname: str | None = None) -> dict[str, str]:
    headers = {"X-Member-Id": member_id}
    if nickname:
        headers["X-Member-Nickname"] = nickname
    return headers


@pytest.fixture
def mongo_db():
    return mongomock.MongoClient(tz_aware=True)["skillswap_test"]


@pytest.fixture
def store(mongo_db) -> RecordStore:
    return RecordStore(mongo_db)


@pytest.fixture
def alice() -> Member:
    return Member(id="member-alice", nickname="Alice")


@pytest.fixture
def bob() -> Member:
    return Member(id="member-bob", nickname="Bob")


@pytest.fixture
def client(store: RecordStore, mongo_db, monkeypatch) -> Iterator[TestClient]:
    """API client wired to an in-memory MongoDB."""
    from main import app

    monkeypatch.setattr(database, "db", mongo_db)
    app.dependency_overrides[database.get_store] = lambda: store
    try:
        with TestClient(app) as test_client:
            yield test_client
    finally:
        app.dependency_overrides.clear()
