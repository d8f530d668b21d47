from datetime import datetime, timedelta, timezone

import pytest

from database import RecordStore, as_utc, get_store
from errors import NotFound, StoreUnavailable, ValidationFailed
from schemas import Review


def test_create_uses_given_id_and_stamps_record(store: RecordStore) -> None:
    record_id = store.create("userprofiles", {"id": "member-1", "full_name": "Ada"})

    assert record_id == "member-1"
    stored = store.get_by_id("userprofiles", "member-1")
    assert stored is not None
    assert stored["id"] == "member-1"
    assert "_id" not in stored
    assert stored["full_name"] == "Ada"
    assert stored["created_at"] is not None
    assert stored["updated_at"] is not None


def test_create_generates_id_for_models(store: RecordStore) -> None:
    record_id = store.create("reviews", Review(reviewer_id="a", reviewee_id="b", rating=4))

    assert record_id
    assert store.get_by_id("reviews", record_id)["rating"] == 4


def test_get_by_id_missing_returns_none(store: RecordStore) -> None:
    assert store.get_by_id("sessions", "nope") is None


def test_unknown_collection_is_rejected(store: RecordStore) -> None:
    with pytest.raises(ValidationFailed):
        store.create("blogposts", {"title": "x"})


@pytest.mark.parametrize(("limit", "skip"), [(0, 0), (-1, 0), (2, -1)])
def test_get_all_rejects_bad_paging(store: RecordStore, limit: int, skip: int) -> None:
    store.create("userprofiles", {"id": "m0", "full_name": "Member 0"})

    with pytest.raises(ValidationFailed):
        store.get_all("userprofiles", limit=limit, skip=skip)


def test_get_all_pages_with_has_next(store: RecordStore) -> None:
    for i in range(5):
        store.create("userprofiles", {"id": f"m{i}", "full_name": f"Member {i}"})

    first = store.get_all("userprofiles", limit=2)
    assert [p["id"] for p in first.items] == ["m0", "m1"]
    assert first.has_next is True

    last = store.get_all("userprofiles", limit=2, skip=4)
    assert [p["id"] for p in last.items] == ["m4"]
    assert last.has_next is False


def test_update_is_partial_and_last_write_wins(store: RecordStore) -> None:
    store.create("sessions", {"id": "s1", "google_meet_link": "a", "session_status": "scheduled"})

    store.update("sessions", {"id": "s1", "google_meet_link": "b"})
    updated = store.update("sessions", {"id": "s1", "google_meet_link": "c"})

    assert updated["google_meet_link"] == "c"
    assert updated["session_status"] == "scheduled"


def test_update_requires_existing_id(store: RecordStore) -> None:
    with pytest.raises(ValidationFailed):
        store.update("sessions", {"google_meet_link": "a"})
    with pytest.raises(NotFound):
        store.update("sessions", {"id": "missing", "google_meet_link": "a"})


def test_delete_removes_record(store: RecordStore) -> None:
    store.create("reviews", {"id": "r1", "rating": 5})
    store.delete("reviews", "r1")

    assert store.get_by_id("reviews", "r1") is None
    with pytest.raises(NotFound):
        store.delete("reviews", "r1")


def test_as_utc_normalizes_inputs() -> None:
    aware = datetime(2024, 6, 1, 14, 0, tzinfo=timezone(timedelta(hours=2)))

    assert as_utc(None) is None
    assert as_utc("2024-06-01T12:00:00Z") == datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)
    assert as_utc(datetime(2024, 6, 1, 12, 0)) == datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)
    assert as_utc(aware) == datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


def test_get_store_without_database(monkeypatch) -> None:
    import database

    monkeypatch.setattr(database, "db", None)
    with pytest.raises(StoreUnavailable):
        get_store()
