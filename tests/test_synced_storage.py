from __future__ import annotations

from typing import Any

from pystoresync.sync.broadcast import BroadcastChannel, LocalBroadcastHub
from pystoresync.sync.events import BroadcastMessage
from pystoresync.sync.storage import SyncedStorage


class DictStorage:
    def __init__(self) -> None:
        self.items: dict[str, str] = {}

    def get_item(self, key: str) -> str | None:
        return self.items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self.items[key] = value

    def remove_item(self, key: str) -> None:
        self.items.pop(key, None)


class _ExplodingHandle:
    def post(self, payload: dict[str, Any]) -> None:
        raise ConnectionError("broker went away")

    def close(self) -> None:
        return None


class _ExplodingBackend:
    def open(self, name: str, deliver: Any) -> _ExplodingHandle:
        return _ExplodingHandle()


def _pair() -> tuple[SyncedStorage, DictStorage, list[BroadcastMessage]]:
    hub = LocalBroadcastHub()
    writer = BroadcastChannel("app", hub)
    peer = BroadcastChannel("app", hub)
    received: list[BroadcastMessage] = []
    peer.on_message(received.append)
    writer.init()
    peer.init()
    raw = DictStorage()
    return SyncedStorage(raw, writer), raw, received


def test_set_item_persists_then_publishes_parsed_value() -> None:
    storage, raw, received = _pair()

    storage.set_item("store:profile", '{"state":{"name":"Ana"}}')

    assert raw.items["store:profile"] == '{"state":{"name":"Ana"}}'
    assert storage.get_item("store:profile") == '{"state":{"name":"Ana"}}'
    assert [(m.key, m.value) for m in received] == [("store:profile", {"state": {"name": "Ana"}})]


def test_non_json_write_is_persisted_but_not_published() -> None:
    storage, _raw, received = _pair()

    storage.set_item("k", "not json")

    assert storage.get_item("k") == "not json"
    assert received == []


def test_publish_failure_never_fails_the_write() -> None:
    channel = BroadcastChannel("app", _ExplodingBackend())
    channel.init()
    storage = SyncedStorage(DictStorage(), channel)

    storage.set_item("k", '{"state":{"a":1}}')

    assert storage.get_item("k") == '{"state":{"a":1}}'


def test_write_without_open_channel_is_still_persisted() -> None:
    storage = SyncedStorage(DictStorage(), BroadcastChannel("app"))

    storage.set_item("k", '{"state":{}}')

    assert storage.get_item("k") == '{"state":{}}'


def test_remove_item_is_passthrough_and_not_published() -> None:
    storage, raw, received = _pair()
    raw.items["k"] = '{"state":{}}'

    storage.remove_item("k")

    assert storage.get_item("k") is None
    assert received == []
