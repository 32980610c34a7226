"""MQTT broadcast backend.

Instances on one host share a broker (typically ``127.0.0.1:1883``) and one
topic per channel.  Each handle runs a threaded paho-mqtt network loop and
hands decoded payloads to the channel from that thread.
"""

from __future__ import annotations

import json
import logging
import secrets
from typing import Any, cast

import paho.mqtt.client as mqtt
from paho.mqtt.subscribeoptions import SubscribeOptions

from pystoresync.config import SyncConfig
from pystoresync.exceptions import TransportError
from pystoresync.sync.broadcast import ChannelHandle, PayloadSink


def _build_client_id(prefix: str) -> str:
    return f"{prefix}-{secrets.token_hex(6)}"


def decode_mqtt_payload(payload: bytes) -> Any:
    """Decode a channel payload (UTF-8 JSON)."""
    return json.loads(payload.decode("utf-8"))


def encode_mqtt_payload(payload: dict[str, Any]) -> bytes:
    return json.dumps(payload, separators=(",", ":")).encode("utf-8")


class MqttChannelHandle:
    """Threaded paho-mqtt client bound to one channel topic."""

    def __init__(
        self,
        *,
        host: str,
        port: int,
        topic: str,
        deliver: PayloadSink,
        keepalive: int = 60,
        client_id: str | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._host = host
        self._port = port
        self._topic = topic
        self._deliver = deliver
        self._keepalive = keepalive
        self._client_id = client_id or _build_client_id("pystoresync")
        self._logger = logger or logging.getLogger(__name__)
        self._client: mqtt.Client | None = None
        self._connected = False

    @property
    def topic(self) -> str:
        return self._topic

    @property
    def is_connected(self) -> bool:
        return self._connected

    def start(self) -> None:
        """Start connecting in the background and subscribe once connected."""
        self._logger.debug(
            "MQTT channel start host=%s port=%s topic=%s client_id=%s",
            self._host,
            self._port,
            self._topic,
            self._client_id,
        )
        client = mqtt.Client(
            callback_api_version=cast(Any, mqtt).CallbackAPIVersion.VERSION2,
            client_id=self._client_id,
            protocol=mqtt.MQTTv5,
        )
        client.enable_logger(self._logger)

        def on_connect(
            c: mqtt.Client,
            _userdata: Any,
            _flags: Any,
            reason_code: Any,
            _properties: Any,
        ) -> None:
            if reason_code.value != 0:
                self._logger.debug("MQTT connect failed: %s", reason_code)
                return
            self._connected = True
            self._logger.debug("MQTT connected, subscribing topic=%s", self._topic)
            # noLocal: the broker does not echo our own publishes back.
            c.subscribe(self._topic, options=SubscribeOptions(qos=0, noLocal=True))

        def on_message(_c: mqtt.Client, _userdata: Any, msg: mqtt.MQTTMessage) -> None:
            try:
                payload = decode_mqtt_payload(msg.payload)
            except (UnicodeDecodeError, ValueError):
                self._logger.debug("MQTT payload parse failure topic=%s", msg.topic, exc_info=True)
                return
            self._deliver(payload)

        def on_disconnect(
            _client: mqtt.Client,
            _userdata: Any,
            _disconnect_flags: Any,
            reason_code: Any,
            _properties: Any,
        ) -> None:
            self._connected = False
            self._logger.debug("MQTT disconnected: %s", reason_code)

        client.on_connect = on_connect
        client.on_message = on_message
        client.on_disconnect = on_disconnect

        client.connect_async(self._host, self._port, keepalive=self._keepalive)
        client.loop_start()
        self._client = client

    def post(self, payload: dict[str, Any]) -> None:
        client = self._client
        if client is None:
            return
        info = client.publish(self._topic, encode_mqtt_payload(payload), qos=0)
        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            self._logger.debug("MQTT publish not sent rc=%s topic=%s", info.rc, self._topic)

    def close(self) -> None:
        """Disconnect and stop the network loop."""
        client = self._client
        self._client = None
        was_connected = self._connected
        self._connected = False
        if client is None:
            return
        try:
            if was_connected:
                client.disconnect()
        finally:
            client.loop_stop()
            self._logger.debug("MQTT network loop stopped topic=%s", self._topic)


class MqttBroadcastBackend:
    """Broadcast backend over a same-host MQTT broker."""

    def __init__(
        self,
        *,
        host: str = "127.0.0.1",
        port: int = 1883,
        topic_prefix: str = "pystoresync",
        keepalive: int = 60,
        logger: logging.Logger | None = None,
    ) -> None:
        self._host = host
        self._port = port
        self._topic_prefix = topic_prefix.rstrip("/")
        self._keepalive = keepalive
        self._logger = logger

    @classmethod
    def from_config(cls, config: SyncConfig) -> MqttBroadcastBackend:
        return cls(
            host=config.mqtt_host,
            port=config.mqtt_port,
            topic_prefix=config.mqtt_topic_prefix,
            keepalive=config.mqtt_keepalive,
        )

    def topic_for(self, name: str) -> str:
        return f"{self._topic_prefix}/{name}"

    def open(self, name: str, deliver: PayloadSink) -> ChannelHandle:
        handle = MqttChannelHandle(
            host=self._host,
            port=self._port,
            topic=self.topic_for(name),
            deliver=deliver,
            keepalive=self._keepalive,
            logger=self._logger,
        )
        try:
            handle.start()
        except (OSError, ValueError) as exc:
            raise TransportError(f"MQTT channel start failed topic={handle.topic}: {exc}") from exc
        return handle
