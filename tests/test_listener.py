from __future__ import annotations

import logging
from typing import Any

import pytest

from pystoresync.storage.memory import SharedStorageArea
from pystoresync.sync.events import StorageChange
from pystoresync.sync.listener import StorageChangeListener
from pystoresync.sync.registry import KeyRegistry


def _listener_with_calls(key: str = "store:profile") -> tuple[StorageChangeListener, list[Any]]:
    registry = KeyRegistry()
    calls: list[Any] = []
    registry.subscribe(key, calls.append)
    return StorageChangeListener(registry), calls


def test_valid_change_is_parsed_and_dispatched() -> None:
    listener, calls = _listener_with_calls()

    listener.handle(StorageChange(key="store:profile", old_value=None, new_value='{"state":{"name":"Ana"}}'))

    assert calls == [{"state": {"name": "Ana"}}]


def test_deletion_and_clear_are_ignored() -> None:
    listener, calls = _listener_with_calls()

    listener.handle(StorageChange(key="store:profile", old_value='{"state":{}}', new_value=None))
    listener.handle(StorageChange(key=None, old_value=None, new_value=None))
    listener.handle(StorageChange(key="", old_value=None, new_value="{}"))

    assert calls == []


def test_undecodable_value_is_logged_and_dropped(caplog: pytest.LogCaptureFixture) -> None:
    listener, calls = _listener_with_calls()

    with caplog.at_level(logging.DEBUG, logger="pystoresync.sync.listener"):
        listener.handle(StorageChange(key="store:profile", old_value=None, new_value="{not json"))

    assert calls == []
    assert "Dropping undecodable storage change" in caplog.text


def test_attach_routes_notifications_from_other_views() -> None:
    area = SharedStorageArea()
    mine = area.view()
    theirs = area.view()
    listener, calls = _listener_with_calls()

    detach = listener.attach(mine)
    theirs.set_item("store:profile", '{"state":{"name":"Ana"}}')
    mine.set_item("store:profile", '{"state":{"name":"Bo"}}')

    assert calls == [{"state": {"name": "Ana"}}]

    detach()
    detach()
    theirs.set_item("store:profile", '{"state":{"name":"Cy"}}')
    assert len(calls) == 1


def test_attach_accepts_storage_without_notifications() -> None:
    class PlainStorage:
        def get_item(self, key: str) -> str | None:
            return None

        def set_item(self, key: str, value: str) -> None:
            return None

        def remove_item(self, key: str) -> None:
            return None

    listener, _calls = _listener_with_calls()
    detach = listener.attach(PlainStorage())
    detach()
