"""MQTT bridge: JSON state on a topic, commands on ``<topic>/set``.

The paho-mqtt network loop runs on its own thread. Everything it
receives is handed to the asyncio loop with ``call_soon_threadsafe`` so
that things are only ever touched from the loop thread.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Mapping
from typing import Any, cast

import paho.mqtt.client as mqtt

from pythings._ids import thing_urn
from pythings._redact import redact_for_log
from pythings.bridge.base import Bridge, PushDone
from pythings.config import ThingsConfig
from pythings.exceptions import BridgeError

_logger = logging.getLogger(__name__)


def decode_state_payload(payload: bytes) -> dict[str, Any]:
    """Parse an MQTT state message into a flat mapping.

    Raises
    ------
    BridgeError
        If the payload is not a JSON object.
    """
    try:
        parsed = json.loads(payload.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise BridgeError(f"MQTT payload is not JSON: {payload[:64]!r}", bridge="mqtt") from exc
    if not isinstance(parsed, dict):
        raise BridgeError("MQTT payload decoded to non-object JSON", bridge="mqtt")
    return parsed


class MqttBridge(Bridge):
    """One device reachable through an MQTT broker.

    ``initd`` keys: ``topic`` (required), ``host``, ``port``,
    ``keepalive``, ``tls``, ``username``, ``password``, ``client_id``,
    ``thing_id``, ``name``, ``qos``. Missing broker settings fall back to
    :class:`~pythings.config.ThingsConfig`.
    """

    def __init__(
        self,
        initd: Mapping[str, Any] | None = None,
        *,
        native: Any = None,
        config: ThingsConfig | None = None,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        super().__init__(initd, native=native)
        self._config = config or ThingsConfig.from_env()
        self._loop = loop
        self._client: mqtt.Client | None = None
        self._connected = False

        self.topic: str = str(self.initd.get("topic") or "").rstrip("/")
        self.host: str | None = self.initd.get("host") or self._config.mqtt_host
        self.port: int = int(self.initd.get("port") or self._config.mqtt_port)
        self.qos: int = int(self.initd.get("qos", 0))

    def discover(self, discoverd: Mapping[str, Any] | None = None) -> None:
        if not self.topic or not self.host:
            _logger.error(
                "MQTT discovery needs a topic and a broker host initd=%s",
                redact_for_log(self.initd),
            )
            return
        self.discovered(
            MqttBridge(self.initd, native=self.topic, config=self._config, loop=self._loop)
        )

    def connect(self, connectd: Mapping[str, Any] | None = None) -> None:
        self._stop()
        if self._loop is None:
            self._loop = asyncio.get_running_loop()

        keepalive = int(self.initd.get("keepalive") or self._config.mqtt_keepalive)
        client = mqtt.Client(
            callback_api_version=cast(Any, mqtt).CallbackAPIVersion.VERSION2,
            client_id=str(self.initd.get("client_id") or ""),
        )
        client.enable_logger(_logger)
        if self.initd.get("username"):
            client.username_pw_set(self.initd["username"], self.initd.get("password"))
        if self.initd.get("tls", self._config.mqtt_tls):
            client.tls_set()

        def on_connect(c: mqtt.Client, _userdata: Any, _flags: Any, reason_code: Any, _properties: Any) -> None:
            if reason_code.value != 0:
                _logger.warning("MQTT connect failed: %s", reason_code)
                return
            _logger.debug("MQTT connected topic=%s", self.topic)
            c.subscribe(self.topic, qos=self.qos)
            self._call_in_loop(self._connection_changed, True)

        def on_message(_c: mqtt.Client, _userdata: Any, msg: mqtt.MQTTMessage) -> None:
            if msg.topic != self.topic:
                return
            try:
                values = decode_state_payload(msg.payload)
            except BridgeError:
                _logger.debug("MQTT payload parse failure topic=%s", msg.topic, exc_info=True)
                return
            self._call_in_loop(self._received, values)

        def on_disconnect(_c: mqtt.Client, _userdata: Any, _flags: Any, reason_code: Any, _properties: Any) -> None:
            _logger.debug("MQTT disconnected: %s", reason_code)
            self._call_in_loop(self._connection_changed, False)

        client.on_connect = on_connect
        client.on_message = on_message
        client.on_disconnect = on_disconnect

        _logger.debug("MQTT connecting host=%s port=%s topic=%s", self.host, self.port, self.topic)
        client.connect_async(self.host, self.port, keepalive=keepalive)
        client.loop_start()
        self._client = client

    def _call_in_loop(self, callback: Any, *args: Any) -> None:
        loop = self._loop
        if loop is None or loop.is_closed():
            return
        loop.call_soon_threadsafe(callback, *args)

    def _received(self, values: dict[str, Any]) -> None:
        _logger.debug("MQTT state topic=%s values=%s", self.topic, redact_for_log(values))
        self.pulled(values)

    def _connection_changed(self, connected: bool) -> None:
        if self._connected == connected:
            return
        self._connected = connected
        self.pulled(None)

    def push(self, values: Mapping[str, Any], done: PushDone) -> None:
        client = self._client
        if client is None:
            done(BridgeError("MQTT client not connected", bridge="mqtt"))
            return
        try:
            payload = json.dumps(dict(values))
        except (TypeError, ValueError) as exc:
            done(BridgeError(f"Cannot encode push for {self.topic}: {exc}", bridge="mqtt"))
            return
        info = client.publish(f"{self.topic}/set", payload, qos=self.qos)
        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            done(BridgeError(f"MQTT publish failed rc={info.rc}", bridge="mqtt"))
            return
        done(None)

    def pull(self) -> None:
        client = self._client
        if client is None:
            return
        client.publish(f"{self.topic}/get", "{}", qos=self.qos)

    def reachable(self) -> bool:
        return self.native is not None and self._connected

    def meta(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "iot:thing-id": self.initd.get("thing_id") or thing_urn("mqtt", self.host or "", self.topic),
        }
        if self.initd.get("name"):
            d["schema:name"] = self.initd["name"]
        return d

    def _stop(self) -> None:
        client = self._client
        self._client = None
        if client is None:
            return
        try:
            client.disconnect()
        finally:
            client.loop_stop()

    def disconnect(self) -> float:
        self._stop()
        self._connected = False
        self.native = None
        return 0.0
