from __future__ import annotations

from typing import Any

from conftest import FakeBridge
from pythings._ids import short_hash, thing_urn
from pythings.bridge import Binding, BridgeWrapper
from pythings.config import ThingsConfig
from pythings.models import ThingModel
from pythings.state.scheduler import Scheduler
from pythings.things import Things


def _binding(model: ThingModel, **fields: Any) -> Binding:
    return Binding(bridge=FakeBridge, model=model, **fields)


def test_wrapper_binds_each_discovery(light_model: ThingModel, scheduler: Scheduler) -> None:
    wrapper = BridgeWrapper(
        _binding(light_model, initd={"discover": ["lamp-1", "lamp-2"]}, connectd={"poll": 1}),
        scheduler=scheduler,
    )
    things: list[Any] = []
    bridges: list[Any] = []
    wrapper.on("thing", things.append)
    wrapper.on("bridge", bridges.append)

    scheduler.drain()

    assert [thing.thing_id for thing in things] == ["lamp-1:hue-light", "lamp-2:hue-light"]
    assert wrapper.things == things
    assert [bridge.connected_with for bridge in bridges] == [{"poll": 1}, {"poll": 1}]
    assert wrapper.thing_for(bridges[1]) is things[1]


def test_wrapper_ignores_discoveries_rejected_by_matchd(light_model: ThingModel, scheduler: Scheduler) -> None:
    wrapper = BridgeWrapper(
        _binding(light_model, initd={"discover": ["lamp-1", "lamp-2"]}, matchd={"iot:vendor.serial": "LAMP-2"}),
        scheduler=scheduler,
    )
    ignored: list[Any] = []
    wrapper.on("ignored", ignored.append)

    scheduler.drain()

    assert [thing.thing_id for thing in wrapper.things] == ["lamp-2:hue-light"]
    assert [bridge.thing_id for bridge in ignored] == ["lamp-1"]


def test_wrapper_relays_pulled_values(light_model: ThingModel, scheduler: Scheduler) -> None:
    wrapper = BridgeWrapper(_binding(light_model), scheduler=scheduler)
    states: list[Any] = []
    wrapper.on("state", lambda bridge, values: states.append(values))
    scheduler.drain()
    thing = wrapper.things[0]

    thing.bridge.pulled({"on": True})  # type: ignore[union-attr]

    assert states == [{"on": True}]
    assert thing.state("istate")["on"] is True


def test_things_connect_returns_live_view(light_model: ThingModel, scheduler: Scheduler) -> None:
    manager = Things(ThingsConfig(), scheduler=scheduler)
    lamps = manager.connect(_binding(light_model, initd={"discover": ["lamp-1", "lamp-2"]}))
    assert len(lamps) == 0

    scheduler.drain()

    assert [thing.thing_id for thing in lamps] == ["lamp-1:hue-light", "lamp-2:hue-light"]
    assert len(manager.things()) == 2


def test_views_from_separate_bindings_stay_separate(light_model: ThingModel, scheduler: Scheduler) -> None:
    manager = Things(ThingsConfig(), scheduler=scheduler)
    kitchen = manager.connect(_binding(light_model, initd={"thing_id": "kitchen"}))
    hall = manager.connect(_binding(light_model, initd={"thing_id": "hall"}))

    scheduler.drain()

    assert [thing.thing_id for thing in kitchen] == ["kitchen:hue-light"]
    assert [thing.thing_id for thing in hall] == ["hall:hue-light"]
    assert len(manager.things()) == 2


def test_unreachable_bridge_removes_thing(light_model: ThingModel, scheduler: Scheduler) -> None:
    manager = Things(ThingsConfig(), scheduler=scheduler)
    lamps = manager.connect(_binding(light_model, initd={"discover": ["lamp-1", "lamp-2"]}))
    scheduler.drain()
    thing = lamps[0]
    bridge = thing.bridge
    assert isinstance(bridge, FakeBridge)

    bridge.online = False
    bridge.pulled(None)

    assert [t.thing_id for t in lamps] == ["lamp-2:hue-light"]
    assert [t.thing_id for t in manager.things()] == ["lamp-2:hue-light"]
    assert thing.bridge is None


def test_runner_id_gives_canonical_ids(light_model: ThingModel, scheduler: Scheduler) -> None:
    manager = Things(ThingsConfig(runner_id="urn:iotdb:runner:abc"), scheduler=scheduler)
    lamps = manager.connect(_binding(light_model))
    scheduler.drain()

    assert lamps[0].thing_id == thing_urn("abc", short_hash("fake-1:hue-light"))


def test_root_commands_replay_on_discovered_things(light_model: ThingModel, scheduler: Scheduler) -> None:
    manager = Things(ThingsConfig(), scheduler=scheduler)
    manager.things().set("on", True)
    lamps = manager.connect(_binding(light_model))

    scheduler.drain()

    bridge = lamps[0].bridge
    assert isinstance(bridge, FakeBridge)
    assert [payload for payload, _ in bridge.pushes] == [{"on": True}]


def test_disconnect_all(light_model: ThingModel, scheduler: Scheduler) -> None:
    manager = Things(ThingsConfig(), scheduler=scheduler)
    lamps = manager.connect(_binding(light_model, initd={"discover": ["lamp-1", "lamp-2"]}))
    scheduler.drain()
    things = list(lamps)

    assert manager.disconnect() == 0.0

    assert len(manager.things()) == 0
    assert len(lamps) == 0
    assert all(thing.bridge is None for thing in things)
