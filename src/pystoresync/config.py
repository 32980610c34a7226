"""Synchronization configuration for pystoresync."""

from __future__ import annotations

import dataclasses
import os
from typing import Any

from pystoresync.exceptions import SyncConfigError

#: Channel shared by every synchronized key of one application.
DEFAULT_CHANNEL_NAME = "pystoresync"


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


def _env_int(env_key: str, value: str) -> int:
    try:
        return int(value)
    except ValueError as exc:
        raise SyncConfigError(f"{env_key} must be an integer, got {value!r}") from exc


@dataclasses.dataclass(frozen=True)
class SyncConfig:
    """Sync context configuration.

    Parameters
    ----------
    channel_name : str
        Well-known broadcast channel name shared by all instances of the
        application.  Instances on different channels never see each other.
    mqtt_enabled : bool
        Use an MQTT broker on this host as the broadcast transport.  When
        disabled (the default) and no backend is passed explicitly, the
        context runs without a broadcast transport and relies on native
        storage change notifications only.
    mqtt_host : str
        Broker host.  Expected to be local; the library does not replicate
        across machines.
    mqtt_port : int
        Broker port.
    mqtt_keepalive : int
        MQTT keepalive in seconds.
    mqtt_topic_prefix : str
        Topic prefix; the channel topic is ``<prefix>/<channel_name>``.
    inbox_maxsize : int
        Maximum queued inbound deliveries per context.  ``0`` means
        unbounded.  Deliveries arriving at a full inbox are dropped.
    """

    channel_name: str = DEFAULT_CHANNEL_NAME
    mqtt_enabled: bool = False
    mqtt_host: str = "127.0.0.1"
    mqtt_port: int = 1883
    mqtt_keepalive: int = 60
    mqtt_topic_prefix: str = "pystoresync"
    inbox_maxsize: int = 0

    def __post_init__(self) -> None:
        if not self.channel_name.strip():
            raise SyncConfigError("channel_name must be non-empty")
        if "/" in self.channel_name or "+" in self.channel_name or "#" in self.channel_name:
            raise SyncConfigError(f"channel_name may not contain MQTT topic characters: {self.channel_name!r}")
        if not 0 < self.mqtt_port < 65536:
            raise SyncConfigError(f"mqtt_port out of range: {self.mqtt_port}")
        if self.inbox_maxsize < 0:
            raise SyncConfigError("inbox_maxsize must be >= 0")

    @property
    def mqtt_topic(self) -> str:
        return f"{self.mqtt_topic_prefix.rstrip('/')}/{self.channel_name}"

    @classmethod
    def from_env(cls, **overrides: Any) -> SyncConfig:
        """Create configuration from environment variables.

        Reads optional ``STORESYNC_*`` variables.  Explicit keyword arguments
        override environment values.

        Raises
        ------
        SyncConfigError
            If a numeric variable does not parse or a value is out of range.
        """
        env = os.environ
        config_kwargs: dict[str, Any] = {}

        _ENV_STR_MAP = {
            "STORESYNC_CHANNEL": "channel_name",
            "STORESYNC_MQTT_HOST": "mqtt_host",
            "STORESYNC_MQTT_TOPIC_PREFIX": "mqtt_topic_prefix",
        }
        for env_key, field_name in _ENV_STR_MAP.items():
            val = env.get(env_key)
            if val is not None and field_name not in overrides:
                config_kwargs[field_name] = val

        _ENV_INT_MAP = {
            "STORESYNC_MQTT_PORT": "mqtt_port",
            "STORESYNC_MQTT_KEEPALIVE": "mqtt_keepalive",
            "STORESYNC_INBOX_MAXSIZE": "inbox_maxsize",
        }
        for env_key, field_name in _ENV_INT_MAP.items():
            val = env.get(env_key)
            if val is not None and field_name not in overrides:
                config_kwargs[field_name] = _env_int(env_key, val)

        if "mqtt_enabled" not in overrides:
            config_kwargs["mqtt_enabled"] = _env_bool(env.get("STORESYNC_MQTT_ENABLED"), False)

        config_kwargs.update(overrides)

        return cls(**config_kwargs)
