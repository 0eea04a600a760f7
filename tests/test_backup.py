"""
Export / import / restore of the whole store.
"""
from __future__ import annotations

import json

import pytest

from api.models import ErrorKind
from utils.backup_recovery import BackupManager


@pytest.fixture()
def manager(context):
    for repository in context.repositories.values():
        repository.load()
    return BackupManager(context)


def _backup_document(**overrides):
    document = {
        "users": [{"id": 7, "username": "imported", "role": "student"}],
        "courses": [],
        "quizzes": [],
        "logs": [],
        "settings": {"theme": "dark", "language": "en"},
        "exportDate": "2026-10-01T00:00:00.000Z",
        "version": "1.0.0",
    }
    document.update(overrides)
    return document


def test_export_contains_every_section(manager, context):
    document = manager.export_data()

    assert set(document) == {"users", "courses", "quizzes", "logs", "settings", "exportDate", "version"}
    assert document["users"] == context.users.load()
    assert document["settings"]["language"] == "vi"
    assert document["exportDate"] == "2026-10-19T12:00:00.000Z"
    assert document["version"] == "1.0.0"


def test_write_export_names_file_by_date(manager, tmp_path):
    path = manager.write_export(tmp_path / "exports")

    assert path.name == "elearning-backup-2026-10-19.json"
    assert json.loads(path.read_text(encoding="utf-8"))["version"] == "1.0.0"


def test_import_replaces_data_and_keeps_safety_snapshot(manager, context):
    previous_users = context.users.load()

    result = manager.import_data(_backup_document())

    assert result.success
    backup_key = result.value
    assert backup_key == "backup_1792411200000"
    assert context.store.get_json(backup_key)["users"] == previous_users
    assert [u["username"] for u in context.users.load()] == ["imported"]
    assert context.get_settings() == {"theme": "dark", "language": "en"}


def test_import_accepts_json_text_and_empty_sections(manager, context):
    result = manager.import_data(json.dumps(_backup_document(users=[], logs=None)).encode("utf-8"))

    assert result.success
    assert context.store.get_json("users") == []


def test_import_missing_users_changes_nothing(manager, context):
    keys_before = context.store.keys()
    users_before = context.users.load()
    document = _backup_document()
    del document["users"]

    result = manager.import_data(document)

    assert result.kind == ErrorKind.INVALID_FORMAT
    assert context.store.keys() == keys_before
    assert context.users.load() == users_before
    assert manager.list_backups() == []


@pytest.mark.parametrize("payload", [b"\xff\xfe not json", "[1, 2, 3]", '{"users": null, "courses": [], "quizzes": []}'])
def test_import_rejects_malformed_documents(manager, payload):
    result = manager.import_data(payload)

    assert result.kind == ErrorKind.INVALID_FORMAT
    assert result.message.startswith("Invalid backup file format")


def test_safety_snapshots_never_overwrite(manager):
    first = manager.import_data(_backup_document()).value
    second = manager.import_data(_backup_document()).value

    assert first != second
    assert manager.list_backups() == [first, second]


def test_restore_brings_back_snapshot(manager, context):
    original = context.users.load()
    backup_key = manager.import_data(_backup_document()).value

    result = manager.restore_backup(backup_key)

    assert result.success
    assert context.users.load() == original
    assert context.store.has(backup_key)


def test_restore_unknown_backup_is_not_found(manager):
    result = manager.restore_backup("backup_1")

    assert result.kind == ErrorKind.NOT_FOUND


@pytest.mark.parametrize("overrides", [
    {"users": 5},
    {"users": "abc"},
    {"users": {"id": 1}},
    {"users": [1, 2]},
    {"courses": [None]},
    {"logs": "recent"},
    {"settings": ["dark"]},
])
def test_import_rejects_malformed_sections_before_writing(manager, context, overrides):
    keys_before = context.store.keys()
    users_before = context.store.get_json("users")

    result = manager.import_data(_backup_document(**overrides))

    assert result.kind == ErrorKind.INVALID_FORMAT
    assert context.store.keys() == keys_before
    assert context.store.get_json("users") == users_before
    assert manager.list_backups() == []


def test_restore_rejects_corrupt_snapshot(manager, context):
    users_before = context.users.load()
    context.store.set_json("backup_5", {"users": "abc", "courses": [], "quizzes": []})

    result = manager.restore_backup("backup_5")

    assert result.kind == ErrorKind.STORE
    assert context.users.load() == users_before
