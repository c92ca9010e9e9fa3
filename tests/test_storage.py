import pytest

from storage import JsonFileStore, MemoryStore, PersistenceError, RecordNotFound

RECORD_ID = "3f2b9c1e-8d4a-4c3b-9e2f-1a2b3c4d5e6f"
RECORD = {
    "id": RECORD_ID,
    "name": "Dr. Sara",
    "answers": {"q1": "yes", "q15": "Notes — with unicode"},
    "score": {"raw_points": 1.0, "percentage": 10, "band": "Red"},
    "insights": ["one", "two"],
}


@pytest.fixture(params=["file", "memory"])
def store(request, tmp_path):
    if request.param == "file":
        return JsonFileStore(tmp_path / "leads")
    return MemoryStore()


def test_get_after_put_returns_equal_record(store):
    store.put(RECORD_ID, RECORD)
    assert store.get(RECORD_ID) == RECORD
    assert RECORD_ID in store


def test_repeated_get_does_not_mutate(store):
    store.put(RECORD_ID, RECORD)
    first = store.get(RECORD_ID)
    first["insights"].append("mutated")
    assert store.get(RECORD_ID) == RECORD


def test_unknown_id_is_not_found(store):
    with pytest.raises(RecordNotFound):
        store.get("9a9a9a9a-0000-4000-8000-000000000000")
    assert "9a9a9a9a-0000-4000-8000-000000000000" not in store


@pytest.mark.parametrize("bad_id", ["../../etc/passwd", "", "not-a-uuid"])
def test_malformed_ids_are_not_found(store, bad_id):
    with pytest.raises(RecordNotFound):
        store.get(bad_id)
    assert bad_id not in store


def test_put_overwrites_existing(store):
    store.put(RECORD_ID, RECORD)
    store.put(RECORD_ID, {**RECORD, "delivery": {"status": "sent", "reason": None}})
    assert store.get(RECORD_ID)["delivery"] == {"status": "sent", "reason": None}


def test_file_store_writes_json_file(tmp_path):
    store = JsonFileStore(tmp_path / "leads")
    store.put(RECORD_ID, RECORD)
    assert (tmp_path / "leads" / f"{RECORD_ID}.json").exists()


def test_file_store_reports_write_failures(tmp_path):
    blocker = tmp_path / "leads"
    blocker.write_text("not a directory")
    with pytest.raises(PersistenceError):
        JsonFileStore(blocker).put(RECORD_ID, RECORD)


def test_file_store_reports_corrupt_files(tmp_path):
    store = JsonFileStore(tmp_path)
    store.path_for(RECORD_ID).write_text("{broken")
    with pytest.raises(PersistenceError):
        store.get(RECORD_ID)


def test_file_store_cleans_up_after_unserializable_record(tmp_path):
    store = JsonFileStore(tmp_path / "leads")
    with pytest.raises(PersistenceError):
        store.put(RECORD_ID, {**RECORD, "created_at": object()})
    assert list((tmp_path / "leads").iterdir()) == []
    assert RECORD_ID not in store
