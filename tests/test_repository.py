"""
Entity repository load/create/update/delete semantics.
"""
from __future__ import annotations

import pytest

from api.client import RetrievalError
from api.models import ErrorKind, Err, Ok, ValidationError
from storage.database import StoreError

from conftest import write_seed


def _count_store_reads(monkeypatch, store):
    counter = {"reads": 0}
    original = store.get_item

    def counting_get_item(key):
        counter["reads"] += 1
        return original(key)

    monkeypatch.setattr(store, "get_item", counting_get_item)
    return counter


def test_first_load_seeds_the_store(context):
    users = context.users.load()

    assert [u["username"] for u in users] == ["admin", "teacher1", "student1"]
    assert context.store.get_json("users") == users
    assert context.users.last_error is None


def test_second_load_within_ttl_is_served_from_cache(context, monkeypatch):
    first = context.users.load()
    reads = _count_store_reads(monkeypatch, context.store)

    second = context.users.load()

    assert second == first
    assert reads["reads"] == 0
    assert context.seed_loader.retrieval_count == 1


def test_load_after_ttl_goes_back_to_the_store(context, clock, monkeypatch):
    context.users.load()
    reads = _count_store_reads(monkeypatch, context.store)

    clock.advance(301)
    context.users.load()

    assert reads["reads"] == 1


def test_loaded_records_are_copies(context):
    users = context.users.load()
    users[0]["username"] = "mutated"
    users.append({"id": 99})

    again = context.users.load()
    assert again[0]["username"] == "admin"
    assert len(again) == 3


def test_force_refresh_refetches_seed_and_overwrites_store(context):
    context.users.update(1, {"username": "root"})

    refreshed = context.users.load(force_refresh=True)

    assert refreshed[0]["username"] == "admin"
    assert context.seed_loader.retrieval_count == 2


def test_numeric_ids_are_sequential_from_empty(empty_context):
    ids = [empty_context.users.create({"username": f"user{n}"}).value["id"] for n in range(5)]

    assert ids == [1, 2, 3, 4, 5]


def test_numeric_id_follows_max_existing(context):
    context.users.delete(2)
    result = context.users.create({"username": "new"})

    assert result.value["id"] == 4


def test_create_stamps_timestamps_and_keeps_generated_id(empty_context):
    result = empty_context.users.create({"id": 42, "username": "a", "role": "student"})

    assert isinstance(result, Ok)
    record = result.value
    assert record["id"] == 1
    assert record["createdAt"] == record["updatedAt"] == "2026-10-19T12:00:00.000Z"
    assert list(record)[:3] == ["id", "username", "role"]


def test_string_ids_use_kind_prefix_and_epoch_millis(context, clock):
    start_millis = int(clock.now * 1000)
    course = context.courses.create({"title": "Rust"}).value
    clock.advance(2)
    quiz = context.quizzes.create({"title": "Ownership"}).value

    assert course["courseId"] == f"course_{start_millis}"
    assert quiz["id"] == f"quiz_{start_millis + 2000}"
    assert context.courses.load()[-1] == course


def test_update_merges_only_given_fields(context, clock):
    before = context.users.load()
    clock.advance(60)

    result = context.users.update(2, {"fullName": "Tran Lan"})

    assert result.success
    after = context.users.load()
    assert after[1] == {**before[1], "fullName": "Tran Lan", "updatedAt": "2026-10-19T12:01:00.000Z"}
    assert after[0] == before[0]
    assert after[2] == before[2]


def test_update_uses_kind_specific_id_field(context):
    assert context.courses.update("course_2", {"status": "published"}).success
    assert context.courses.get("course_2")["status"] == "published"

    missing = context.courses.update(1, {"status": "published"})
    assert isinstance(missing, Err)
    assert missing.kind == ErrorKind.NOT_FOUND


def test_update_requires_exact_id_match(context):
    result = context.users.update("1", {"role": "teacher"})

    assert result.kind == ErrorKind.NOT_FOUND
    assert result.to_dict() == {"success": False, "error": "User not found: 1"}


def test_delete_missing_id_is_not_found_and_changes_nothing(context):
    result = context.users.delete(404)

    assert result.kind == ErrorKind.NOT_FOUND
    assert len(context.users.load()) == 3


def test_create_create_delete_load_scenario(empty_context):
    empty_context.users.create({"username": "a"})
    empty_context.users.create({"username": "b"})
    assert empty_context.users.delete(1).success

    users = empty_context.users.load()

    assert len(users) == 1
    assert users[0]["username"] == "b"
    assert users[0]["id"] == 2


def test_invalid_payload_is_a_validation_error(context):
    result = context.users.create(["not", "a", "mapping"])

    assert result.kind == ErrorKind.VALIDATION
    assert context.users.update(1, "nope").kind == ErrorKind.VALIDATION


def test_store_failure_during_write_is_reported(context, monkeypatch):
    context.users.load()

    def full_store(key, document):
        raise StoreError("Storage quota exceeded")

    monkeypatch.setattr(context.store, "set_json", full_store)
    result = context.users.create({"username": "x"})

    assert result.to_dict() == {"success": False, "error": "Storage quota exceeded"}
    assert result.kind == ErrorKind.STORE


def test_retrieval_failure_falls_back_to_persisted_snapshot(make_context, tmp_path):
    seed = write_seed(tmp_path / "flaky")
    context = make_context(seed)
    context.users.load()
    (seed / "mock-users.json").unlink()

    users = context.users.load(force_refresh=True)

    assert [u["id"] for u in users] == [1, 2, 3]
    assert isinstance(context.users.last_error, RetrievalError)


def test_retrieval_failure_with_empty_store_yields_empty_list(make_context, tmp_path):
    context = make_context(tmp_path / "does-not-exist")

    assert context.quizzes.load() == []
    assert context.quizzes.last_error.kind == ErrorKind.RETRIEVAL


def test_corrupt_snapshot_degrades_to_empty_list(context):
    context.store.set_item("courses", "{broken")

    assert context.courses.load() == []
    assert context.courses.last_error.kind == ErrorKind.STORE


def test_write_invalidates_cached_snapshot(context):
    context.users.load()
    context.users.update(3, {"goal": "ship it"})

    assert context.users.get(3)["goal"] == "ship it"


def test_other_context_write_invalidates_cache(make_context, seed_dir):
    tab_a = make_context(seed_dir, "shared.db")
    tab_b = make_context(seed_dir, "shared.db")
    tab_a.users.load()

    tab_b.users.update(1, {"fullName": "Changed Elsewhere"})

    assert tab_a.users.get(1)["fullName"] == "Changed Elsewhere"


@pytest.mark.parametrize("collection", ["users", "courses", "quizzes", "logs"])
def test_repository_lookup(context, collection):
    assert context.repository(collection).kind.name == collection


def test_snapshot_with_non_record_elements_degrades(context):
    context.store.set_json("users", [1, 2])

    assert context.users.load() == []
    assert context.users.last_error.kind == ErrorKind.STORE
    assert context.users.get(1) is None
    assert context.users.update(1, {"role": "teacher"}).kind == ErrorKind.NOT_FOUND
    assert context.users.create({"username": "x"}).value["id"] == 1


@pytest.mark.parametrize("records", ["abc", {"id": 1}, [1, 2], None])
def test_replace_rejects_non_record_lists(context, records):
    before = context.users.load()

    with pytest.raises(ValidationError):
        context.users.replace(records)
    assert context.users.load() == before
