from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from pystoresync.storage.file import FileStorage
from pystoresync.storage.memory import SharedStorageArea
from pystoresync.store import PersistedStore


class CountingStorage:
    def __init__(self) -> None:
        self.items: dict[str, str] = {}
        self.writes = 0

    def get_item(self, key: str) -> str | None:
        return self.items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self.writes += 1
        self.items[key] = value

    def remove_item(self, key: str) -> None:
        self.items.pop(key, None)


def _store(storage: Any, **kwargs: Any) -> PersistedStore:
    return PersistedStore(
        "store:profile",
        storage,
        initial={"name": "", "email": "", "is_loading": False},
        persisted_keys=["name", "email"],
        **kwargs,
    )


def test_set_state_persists_only_persisted_fields() -> None:
    storage = CountingStorage()
    store = _store(storage)

    store.set_state({"name": "Ana", "is_loading": True})

    assert store.get_state() == {"name": "Ana", "email": "", "is_loading": True}
    stored = json.loads(storage.items["store:profile"])
    assert stored == {"state": {"name": "Ana", "email": ""}, "version": 0}


def test_transient_updates_do_not_write() -> None:
    storage = CountingStorage()
    store = _store(storage)

    store.set_state({"is_loading": True})

    assert storage.writes == 0


def test_identical_serialization_is_not_rewritten() -> None:
    storage = CountingStorage()
    store = _store(storage)

    store.set_state({"name": "Ana"})
    store.set_state({"name": "Ana"})

    assert storage.writes == 1


def test_listeners_receive_state_and_previous() -> None:
    store = _store(CountingStorage())
    seen: list[tuple[str, str]] = []
    unsubscribe = store.subscribe(lambda state, previous: seen.append((previous["name"], state["name"])))

    store.set_state({"name": "Ana"})
    unsubscribe()
    store.set_state({"name": "Bo"})

    assert seen == [("", "Ana")]


def test_rehydrate_applies_stored_fields_without_writing() -> None:
    storage = CountingStorage()
    storage.items["store:profile"] = json.dumps({"state": {"name": "Ana", "secret": "x"}, "version": 0})
    store = _store(storage)

    assert store.rehydrate() is True

    assert store.get_state()["name"] == "Ana"
    assert "secret" not in store.get_state()
    assert storage.writes == 0


def test_rehydrate_ignores_missing_and_undecodable_data() -> None:
    storage = CountingStorage()
    store = _store(storage)
    assert store.rehydrate() is False

    storage.items["store:profile"] = "{broken"
    assert store.rehydrate() is False

    storage.items["store:profile"] = json.dumps({"name": "no state wrapper"})
    assert store.rehydrate() is False
    assert store.get_state()["name"] == ""


def test_rehydrate_migrates_older_versions_and_persists_new_version() -> None:
    storage = CountingStorage()
    storage.items["store:profile"] = json.dumps({"state": {"fullName": "Ana"}, "version": 1})

    def migrate(state: dict[str, Any], from_version: int) -> dict[str, Any]:
        assert from_version == 1
        return {"name": state.pop("fullName")}

    store = _store(storage, version=2, migrate=migrate)

    assert store.rehydrate() is True
    assert store.get_state()["name"] == "Ana"
    assert json.loads(storage.items["store:profile"])["version"] == 2


def test_rehydrate_without_migrator_drops_other_versions() -> None:
    storage = CountingStorage()
    storage.items["store:profile"] = json.dumps({"state": {"name": "Ana"}, "version": 1})
    store = _store(storage, version=2)

    assert store.rehydrate() is False
    assert store.get_state()["name"] == ""


def test_applying_an_update_already_in_shared_storage_does_not_write() -> None:
    area = SharedStorageArea()
    writer_view = area.view()
    writer = _store(writer_view)
    reader_view = area.view()
    reader = _store(reader_view)
    notified: list[Any] = []
    echoed: list[Any] = []
    reader_view.add_change_listener(notified.append)
    writer_view.add_change_listener(echoed.append)

    writer.set_state({"name": "Ana"})
    # What the sync bridge does on the receiving instance.
    reader.set_state({"name": "Ana"})

    assert reader.get_state()["name"] == "Ana"
    assert len(notified) == 1
    assert echoed == []


def test_rehydrate_ignores_non_integer_stored_version() -> None:
    storage = CountingStorage()
    storage.items["store:profile"] = json.dumps({"state": {"name": "Ana"}, "version": "v2"})
    store = _store(storage)

    assert store.rehydrate() is False
    assert store.get_state()["name"] == ""
    assert storage.writes == 0


def test_set_state_survives_storage_directory_removal(tmp_path: Path) -> None:
    directory = tmp_path / "state"
    store = _store(FileStorage(directory))
    directory.rmdir()

    store.set_state({"name": "Ana"})

    assert store.get_state()["name"] == "Ana"


def test_single_string_persisted_key() -> None:
    storage = CountingStorage()
    store = PersistedStore("store:profile", storage, initial={"name": "", "n": 0}, persisted_keys="name")

    store.set_state({"name": "Ana", "n": 1})

    assert store.get_persisted_keys() == ["name"]
    assert json.loads(storage.items["store:profile"])["state"] == {"name": "Ana"}
