from __future__ import annotations

import pytest

from conftest import FakeBridge
from pythings.collection import ThingArray, reconcile
from pythings.exceptions import ThingsArgumentError
from pythings.models import ThingModel
from pythings.state.scheduler import Scheduler
from pythings.thing import Thing


def _bound(model: ThingModel, scheduler: Scheduler, thing_id: str, **initd: object) -> Thing:
    thing = model.make(scheduler=scheduler)
    thing.bind_bridge(FakeBridge({"thing_id": thing_id, **initd}))
    scheduler.drain()
    return thing


def test_reconcile(light_model: ThingModel, scheduler: Scheduler) -> None:
    a, b, c = (_bound(light_model, scheduler, f"lamp-{i}") for i in range(3))

    assert reconcile([a, b, c], [a, b, c]) == ([], [])
    assert reconcile([a, b], [b, c, c]) == ([c], [a])
    assert reconcile([], [a, a]) == ([a], [])


def test_push_is_idempotent(light_model: ThingModel, scheduler: Scheduler) -> None:
    array = ThingArray()
    added: list[Thing] = []
    array.on("added", added.append)
    thing = _bound(light_model, scheduler, "lamp-1")

    array.push(thing)
    array.push(thing)

    assert len(array) == 1
    assert added == [thing]


def test_same_id_counts_as_same_member(light_model: ThingModel, scheduler: Scheduler) -> None:
    array = ThingArray([_bound(light_model, scheduler, "lamp-1")])
    array.push(_bound(light_model, scheduler, "lamp-1"))
    assert len(array) == 1


def test_unbound_things_are_keyed_by_identity(light_model: ThingModel) -> None:
    array = ThingArray([light_model.make(), light_model.make()])
    assert len(array) == 2


def test_member_that_binds_later_stays_one_member(light_model: ThingModel, scheduler: Scheduler) -> None:
    thing = light_model.make(scheduler=scheduler)
    array = ThingArray([thing])
    thing.bind_bridge(FakeBridge({"thing_id": "lamp-1"}))
    scheduler.drain()

    assert thing in array
    array.push(thing)
    array.push(_bound(light_model, scheduler, "lamp-1"))
    assert list(array) == [thing]

    assert array.remove(thing) is True
    assert len(array) == 0
    assert thing not in array


def test_push_rejects_non_things() -> None:
    with pytest.raises(ThingsArgumentError):
        ThingArray().push("lamp")  # type: ignore[arg-type]


def test_remove(light_model: ThingModel, scheduler: Scheduler) -> None:
    thing = _bound(light_model, scheduler, "lamp-1")
    array = ThingArray([thing])
    removed: list[Thing] = []
    array.on("removed", removed.append)

    assert array.remove(thing) is True
    assert array.remove(thing) is False
    assert removed == [thing]
    assert len(array) == 0


def test_thing_event_covers_existing_and_future_members(light_model: ThingModel, scheduler: Scheduler) -> None:
    first = _bound(light_model, scheduler, "lamp-1")
    second = _bound(light_model, scheduler, "lamp-2")
    array = ThingArray([first])
    seen: list[Thing] = []

    array.on("thing", seen.append)
    array.push(second)

    assert seen == [first, second]


def test_live_filter_tracks_metadata(light_model: ThingModel, scheduler: Scheduler) -> None:
    root = ThingArray(persist=True)
    view = root.with_name("Kitchen")
    added: list[Thing] = []
    removed: list[Thing] = []
    view.on("added", added.append)
    view.on("removed", removed.append)

    thing = _bound(light_model, scheduler, "lamp-1")
    thing.set_name("Kitchen")
    root.push(thing)
    scheduler.drain()

    assert list(view) == [thing]
    assert added == [thing]

    thing.set_name("Hall")
    scheduler.drain()
    assert list(view) == []
    assert removed == [thing]

    thing.set_name("Kitchen")
    scheduler.drain()
    assert list(view) == [thing]
    assert added == [thing, thing]


def test_live_filter_tracks_input_state(bound_light: Thing, scheduler: Scheduler) -> None:
    root = ThingArray([bound_light], persist=True)
    lit = root.filter({"istate:on": True})
    assert len(lit) == 0

    bound_light.update("istate", {"on": True})
    scheduler.drain()

    assert list(lit) == [bound_light]


def test_filter_stops_watching_removed_members(bound_light: Thing, scheduler: Scheduler) -> None:
    root = ThingArray([bound_light], persist=True)
    lit = root.filter({"istate:on": True})
    root.remove(bound_light)

    bound_light.update("istate", {"on": True})
    scheduler.drain()

    assert len(lit) == 0


def test_snapshot_filter_of_plain_array(light_model: ThingModel, scheduler: Scheduler) -> None:
    first = _bound(light_model, scheduler, "lamp-1")
    root = ThingArray([first])
    view = root.filter(lambda thing: True)

    root.push(_bound(light_model, scheduler, "lamp-2"))

    assert list(view) == [first]
    assert not view.persisting


def test_changed_fires_even_without_membership_change(light_model: ThingModel, scheduler: Scheduler) -> None:
    root = ThingArray(persist=True)
    view = root.with_name("Nowhere")
    changes: list[ThingArray] = []
    view.on("changed", changes.append)

    root.push(_bound(light_model, scheduler, "lamp-1"))

    assert len(view) == 0
    assert changes == [view]


def test_malformed_query_never_matches(bound_light: Thing) -> None:
    root = ThingArray([bound_light])
    assert len(root.filter({"bogus": 1})) == 0
    assert len(root.filter({"model:iot:facet": "lighting"})) == 0
    with pytest.raises(ThingsArgumentError):
        root.filter(42)  # type: ignore[arg-type]


def test_with_helpers(bound_light: Thing) -> None:
    bound_light.set_zones(["Office", "Upstairs"]).set_facets("lighting")
    root = ThingArray([bound_light])

    assert list(root.with_id("fake-1:hue-light")) == [bound_light]
    assert list(root.with_code("HueLight")) == [bound_light]
    assert list(root.with_zone("Upstairs")) == [bound_light]
    assert list(root.with_facet("lighting")) == [bound_light]
    assert list(root.with_name("Hue Light")) == [bound_light]
    assert len(root.with_zone("Garage")) == 0


def test_persisted_setters_replay_last_only(light_model: ThingModel, scheduler: Scheduler) -> None:
    root = ThingArray(persist=True)
    root.set("on", True)
    root.set("brightness", 50)
    root.name("Desk")

    thing = _bound(light_model, scheduler, "lamp-1")
    root.push(thing)

    assert thing.state("ostate")["brightness"] == 50
    assert thing.state("ostate")["on"] is None
    assert thing.name() == "Desk"


def test_persisted_tags_apply_before_join(light_model: ThingModel, scheduler: Scheduler) -> None:
    root = ThingArray(persist=True)
    tagged = root.with_tag("kitchen")
    root.tag("kitchen")

    thing = _bound(light_model, scheduler, "lamp-1")
    root.push(thing)

    assert thing.has_tag("kitchen")
    assert list(tagged) == [thing]


def test_tagging_members_updates_views(bound_light: Thing) -> None:
    root = ThingArray([bound_light], persist=True)
    tagged = root.with_tag("upstairs")

    root.tag("upstairs")

    assert list(tagged) == [bound_light]


def test_persisted_listeners_attach_to_new_members(light_model: ThingModel, scheduler: Scheduler) -> None:
    root = ThingArray(persist=True)
    seen: list[Thing] = []
    root.on("istate", seen.append)

    thing = _bound(light_model, scheduler, "lamp-1")
    root.push(thing)
    thing.update("istate", {"on": True})
    scheduler.drain()

    assert seen == [thing]


def test_plain_array_does_not_replay(light_model: ThingModel, scheduler: Scheduler) -> None:
    root = ThingArray()
    root.name("Desk")
    thing = _bound(light_model, scheduler, "lamp-1")
    root.push(thing)
    assert thing.name() == "Hue Light"


def test_merge(light_model: ThingModel, scheduler: Scheduler) -> None:
    left = ThingArray(persist=True)
    right = ThingArray(persist=True)
    merged = left.merge(right)
    first = _bound(light_model, scheduler, "lamp-1")
    second = _bound(light_model, scheduler, "lamp-2")

    left.push(first)
    right.push(second)
    right.push(first)
    assert list(merged) == [first, second]

    left.remove(first)
    assert list(merged) == [first, second]

    right.remove(first)
    assert list(merged) == [second]


def test_bulk_helpers(light_model: ThingModel, scheduler: Scheduler) -> None:
    online = _bound(light_model, scheduler, "lamp-1")
    offline = _bound(light_model, scheduler, "lamp-2", online=False)
    root = ThingArray([online, offline])

    assert root.first() is online
    assert root.reachable() == 1
    assert root.map(lambda thing: thing.thing_id if thing.reachable() else None) == ["lamp-1:hue-light"]

    root.pull()
    assert online.bridge.pulls == 1  # type: ignore[union-attr]

    root.disconnect()
    assert online.bridge is None
    assert offline.bridge is None
