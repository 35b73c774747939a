from __future__ import annotations

from decimal import Decimal
from typing import Any

import pytest

from conftest import make_light_model
from pythings._ids import thing_urn
from pythings.bridge.base import Bridge
from pythings.bridge.mqtt import MqttBridge, decode_state_payload
from pythings.config import ThingsConfig
from pythings.exceptions import BridgeError
from pythings.state.scheduler import Scheduler
from pythings.thing import Thing


class _FakeInfo:
    def __init__(self, rc: int) -> None:
        self.rc = rc


class _FakeClient:
    def __init__(self, rc: int = 0) -> None:
        self.rc = rc
        self.published: list[tuple[str, str, int]] = []

    def publish(self, topic: str, payload: str, qos: int = 0) -> _FakeInfo:
        self.published.append((topic, payload, qos))
        return _FakeInfo(self.rc)


def _bridge(**initd: Any) -> MqttBridge:
    return MqttBridge({"topic": "home/lamp/", "host": "broker", **initd}, native="home/lamp", config=ThingsConfig())


def test_decode_state_payload() -> None:
    assert decode_state_payload(b'{"on": true, "brightness": 40}') == {"on": True, "brightness": 40}


@pytest.mark.parametrize("payload", [b"[1, 2]", b"not json", b"\xff\xfe"])
def test_decode_state_payload_rejects_non_objects(payload: bytes) -> None:
    with pytest.raises(BridgeError):
        decode_state_payload(payload)


def test_push_publishes_to_set_topic() -> None:
    bridge = _bridge(qos=1)
    client = _FakeClient()
    bridge._client = client  # type: ignore[assignment]
    done: list[BaseException | None] = []

    bridge.push({"on": True}, done.append)

    assert client.published == [("home/lamp/set", '{"on": true}', 1)]
    assert done == [None]


def test_push_reports_publish_failure() -> None:
    bridge = _bridge()
    bridge._client = _FakeClient(rc=4)  # type: ignore[assignment]
    done: list[BaseException | None] = []

    bridge.push({"on": True}, done.append)

    assert len(done) == 1
    assert isinstance(done[0], BridgeError)


def test_push_without_client_fails_through_done() -> None:
    done: list[BaseException | None] = []
    _bridge().push({"on": True}, done.append)
    assert isinstance(done[0], BridgeError)


def test_pull_publishes_get_request() -> None:
    bridge = _bridge()
    client = _FakeClient()
    bridge._client = client  # type: ignore[assignment]

    bridge.pull()

    assert client.published == [("home/lamp/get", "{}", 0)]


def test_connection_changes_report_through_pulled() -> None:
    bridge = _bridge()
    pulled: list[Any] = []
    bridge.pulled = pulled.append

    bridge._connection_changed(True)
    bridge._connection_changed(True)
    assert pulled == [None]
    assert bridge.reachable() is True

    bridge._received({"on": False})
    assert pulled == [None, {"on": False}]

    bridge._connection_changed(False)
    assert bridge.reachable() is False


def test_meta_and_discover() -> None:
    bridge = _bridge(name="Lamp")
    assert bridge.meta() == {"iot:thing-id": thing_urn("mqtt", "broker", "home/lamp"), "schema:name": "Lamp"}

    found: list[Bridge] = []
    bridge.discovered = found.append
    bridge.discover()
    assert len(found) == 1
    assert found[0].native == "home/lamp"


def test_discover_without_broker_finds_nothing() -> None:
    bridge = MqttBridge({"topic": "home/lamp"}, config=ThingsConfig())
    found: list[Bridge] = []
    bridge.discovered = found.append

    bridge.discover()

    assert found == []


def test_disconnect() -> None:
    bridge = _bridge()
    bridge._connection_changed(True)
    assert bridge.disconnect() == 0.0
    assert bridge.reachable() is False
    assert bridge.native is None


@pytest.mark.parametrize(
    ("rc", "values"),
    [(4, {"brightness": 10}), (0, {"brightness": Decimal("5")})],
)
def test_failed_publish_settles_the_thing(rc: int, values: dict[str, Any]) -> None:
    scheduler = Scheduler()
    thing = make_light_model().make(scheduler=scheduler)
    bridge = _bridge()
    client = _FakeClient(rc=rc)
    bridge._client = client  # type: ignore[assignment]
    thing.bind_bridge(bridge)
    bridge._connection_changed(True)
    scheduler.drain()
    assert thing.reachable() is True
    ostate_events: list[Thing] = []
    thing.on("ostate", ostate_events.append)

    thing.update("ostate", values, validate=False)
    scheduler.drain()

    assert thing.pushes_in_flight == 0
    assert thing.state("ostate")["brightness"] is None
    assert ostate_events == [thing, thing]
