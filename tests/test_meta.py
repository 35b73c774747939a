from __future__ import annotations

import pytest

from conftest import FakeBridge
from pythings.bridge.base import Binding
from pythings.exceptions import ThingsArgumentError
from pythings.meta import MetaRegistry
from pythings.models import ThingModel
from pythings.state.policy import EPOCH
from pythings.state.scheduler import Scheduler
from pythings.thing import Thing

T1 = "2024-01-01T00:00:00.000Z"
T2 = "2024-01-01T00:00:01.000Z"


def test_initial_timestamp_is_epoch(light_model: ThingModel) -> None:
    thing = light_model.make()
    assert thing.meta.get("@timestamp") == EPOCH
    assert thing.meta.updates() == {}


def test_set_refreshes_timestamp(light_model: ThingModel) -> None:
    meta = light_model.make().meta
    meta.set("key", "value")
    assert meta.get("key") == "value"
    assert meta.get("@timestamp") > EPOCH


def test_reachable_is_never_stored(light_model: ThingModel) -> None:
    meta = light_model.make().meta
    meta.set("iot:reachable", False)
    meta.update({"iot:reachable": False})
    assert "https://iotdb.org/pub/iot#reachable" not in meta.updates()


def test_update_without_options_keeps_epoch(light_model: ThingModel) -> None:
    meta = light_model.make().meta
    assert meta.update({"key": "value"}) is True
    assert meta.get("@timestamp") == EPOCH


@pytest.mark.parametrize(
    ("stored_ts", "incoming_ts", "expected"),
    [
        (None, None, "new-value"),
        (T1, T2, "new-value"),
        (T2, T1, "old-value"),
        (T2, T2, "new-value"),
    ],
)
def test_update_timestamp_conflicts(
    light_model: ThingModel, stored_ts: str | None, incoming_ts: str | None, expected: str
) -> None:
    meta = light_model.make().meta
    first = {"key": "old-value"}
    if stored_ts:
        first["@timestamp"] = stored_ts
    meta.update(first, set_timestamp=stored_ts is not None)

    second = {"key": "new-value"}
    if incoming_ts:
        second["@timestamp"] = incoming_ts
    meta.update(second, check_timestamp=True)

    assert meta.get("key") == expected


def test_timestamped_meta_rejects_untimestamped_update(light_model: ThingModel) -> None:
    thing = light_model.make()

    thing.update("meta", {"key": "A"}, set_timestamp=True)
    thing.update("meta", {"key": "B"}, check_timestamp=True)

    assert thing.meta.get("key") == "A"


def test_untimestamped_meta_accepts_timestamped_update(light_model: ThingModel) -> None:
    meta = light_model.make().meta
    meta.update({"key": "old-value"})
    meta.update({"key": "new-value", "@timestamp": T1}, check_timestamp=True)
    assert meta.get("key") == "new-value"


def test_non_mapping_update_raises(light_model: ThingModel) -> None:
    with pytest.raises(ThingsArgumentError):
        light_model.make().meta.update(["key"])  # type: ignore[arg-type]


def test_binding_metad_overrides_bridge_and_local_overrides_both(
    light_model: ThingModel, scheduler: Scheduler
) -> None:
    bridge = FakeBridge()
    bridge.binding = Binding(bridge=FakeBridge, model=light_model, metad={"schema:name": "Porch"})
    thing = light_model.make(scheduler=scheduler)
    thing.bind_bridge(bridge)
    assert thing.name() == "Porch"

    thing.set_name("Front Door")
    assert thing.name() == "Front Door"
    assert thing.meta.updates()["http://schema.org/name"] == "Front Door"


def test_meta_changes_notify_unless_suppressed(light_model: ThingModel, scheduler: Scheduler) -> None:
    thing = light_model.make(scheduler=scheduler)
    events: list[Thing] = []
    thing.on("meta", events.append)

    thing.update("meta", {"key": "quiet"}, notify=False)
    scheduler.drain()
    assert events == []

    thing.update("meta", {"key": "loud"})
    scheduler.drain()
    assert events == [thing]


def test_registry_shares_meta_across_rebinds(light_model: ThingModel, scheduler: Scheduler) -> None:
    registry = MetaRegistry()
    first = light_model.make(scheduler=scheduler, registry=registry)
    first.bind_bridge(FakeBridge())
    first.set_name("Kitchen")
    assert first.thing_id in registry

    second = light_model.make(scheduler=scheduler, registry=registry)
    second.bind_bridge(FakeBridge())

    assert len(registry) == 1
    assert second.meta is first.meta
    assert second.name() == "Kitchen"

    second.disconnect()
    assert second.thing_id not in registry
