#!/usr/bin/env python3
"""Passive probe for the pystoresync MQTT broadcast channel.

Subscribes to ``<prefix>/<channel>`` on the configured broker and prints
every message other instances publish, flagging payloads the sync layer
would drop as malformed.  Connection settings come from ``STORESYNC_*``
environment variables, overridable on the command line.
"""

from __future__ import annotations

import argparse
import json
import logging
import signal
import sys
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any

# Allow running from repo root without installing the package.
_repo = Path(__file__).resolve().parent.parent
_src = _repo / "src"
if _src.is_dir():
    sys.path.insert(0, str(_src))

from pystoresync import BroadcastMessage, SyncConfig  # noqa: E402
from pystoresync._mqtt import decode_mqtt_payload  # noqa: E402
from pystoresync._redact import redact_for_log  # noqa: E402

try:
    import paho.mqtt.client as mqtt
except ImportError as exc:  # pragma: no cover - environment/setup issue
    raise SystemExit(
        "Missing dependency 'paho-mqtt'. Install with: pip install paho-mqtt",
    ) from exc

_LOG = logging.getLogger("channel_probe")


@dataclass
class ProbeStats:
    started_at: float
    total_messages: int = 0
    valid: int = 0
    malformed: int = 0
    keys_seen: set[str] | None = None

    def record(self, message: BroadcastMessage | None) -> None:
        self.total_messages += 1
        if message is None:
            self.malformed += 1
            return
        self.valid += 1
        if self.keys_seen is None:
            self.keys_seen = set()
        self.keys_seen.add(message.key)


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Passive probe for the pystoresync broadcast channel.",
    )
    parser.add_argument("--host", help="Broker host (default: STORESYNC_MQTT_HOST or 127.0.0.1).")
    parser.add_argument("--port", type=int, help="Broker port (default: STORESYNC_MQTT_PORT or 1883).")
    parser.add_argument("--channel", help="Channel name (default: STORESYNC_CHANNEL).")
    parser.add_argument(
        "--duration",
        type=int,
        default=0,
        help="Maximum runtime in seconds (0 = run until Ctrl+C).",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Pretty-print message values.",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable debug logs.",
    )
    return parser.parse_args()


def _print_summary(stats: ProbeStats) -> None:
    runtime = time.time() - stats.started_at
    print("[probe] Summary")
    print(f"[probe]   runtime_s      : {runtime:.1f}")
    print(f"[probe]   total_messages : {stats.total_messages}")
    print(f"[probe]   valid          : {stats.valid}")
    print(f"[probe]   malformed      : {stats.malformed}")
    print(f"[probe]   keys           : {', '.join(sorted(stats.keys_seen or ())) or '-'}")


def _main() -> int:
    args = _parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )

    overrides: dict[str, Any] = {}
    if args.host:
        overrides["mqtt_host"] = args.host
    if args.port:
        overrides["mqtt_port"] = args.port
    if args.channel:
        overrides["channel_name"] = args.channel
    config = SyncConfig.from_env(**overrides)

    stats = ProbeStats(started_at=time.time())
    should_stop = False

    def stop_handler(_signum: int, _frame: Any) -> None:
        nonlocal should_stop
        should_stop = True

    signal.signal(signal.SIGINT, stop_handler)
    signal.signal(signal.SIGTERM, stop_handler)

    client = mqtt.Client(
        callback_api_version=mqtt.CallbackAPIVersion.VERSION2,
        client_id=f"pystoresync-probe-{int(stats.started_at)}",
        protocol=mqtt.MQTTv5,
    )
    client.enable_logger(_LOG)

    def on_connect(
        c: mqtt.Client,
        _userdata: Any,
        _flags: mqtt.ConnectFlags,
        reason_code: mqtt.ReasonCode,
        _properties: mqtt.Properties | None,
    ) -> None:
        if reason_code.value != 0:
            print(f"[probe] MQTT connect failed: {reason_code}", file=sys.stderr)
            c.disconnect()
            return
        print(f"[probe] Connected. Subscribing to {config.mqtt_topic}")
        c.subscribe(config.mqtt_topic, qos=0)

    def on_message(_c: mqtt.Client, _userdata: Any, msg: mqtt.MQTTMessage) -> None:
        ts_text = time.strftime("%H:%M:%S", time.localtime())
        try:
            payload = decode_mqtt_payload(msg.payload)
        except (UnicodeDecodeError, ValueError) as exc:
            stats.record(None)
            print(f"[probe] {ts_text} undecodable bytes={len(msg.payload)}: {exc}")
            return

        message = BroadcastMessage.from_payload(payload)
        stats.record(message)
        if message is None:
            print(f"[probe] {ts_text} malformed payload={redact_for_log(payload)}")
            return

        value = redact_for_log(message.value)
        rendered = json.dumps(value, indent=2 if args.json else None, ensure_ascii=False, sort_keys=True)
        print(f"[probe] {ts_text} key={message.key} origin={message.origin or '-'} value={rendered}")

    client.on_connect = on_connect
    client.on_message = on_message

    print(f"[probe] Connecting to {config.mqtt_host}:{config.mqtt_port}...")
    try:
        client.connect(config.mqtt_host, config.mqtt_port, keepalive=config.mqtt_keepalive)
    except OSError as exc:
        print(f"[probe] Connect failed: {exc}", file=sys.stderr)
        return 2

    client.loop_start()
    try:
        while not should_stop:
            if args.duration > 0 and (time.time() - stats.started_at) >= args.duration:
                print(f"[probe] Reached --duration={args.duration}s, stopping.")
                break
            time.sleep(0.5)
    finally:
        client.disconnect()
        client.loop_stop()
        _print_summary(stats)
    return 0


if __name__ == "__main__":
    raise SystemExit(_main())
