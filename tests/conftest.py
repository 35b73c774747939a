from __future__ import annotations

from collections.abc import Mapping
from typing import Any

import pytest

from pythings.bridge.base import Bridge, PushDone
from pythings.models import ThingModel, make_boolean, make_integer, make_string
from pythings.state.scheduler import Scheduler


class FakeBridge(Bridge):
    """In-memory bridge that records pushes and holds their ``done`` callbacks."""

    def __init__(self, initd: Mapping[str, Any] | None = None, *, native: Any = "fake") -> None:
        super().__init__(initd, native=native)
        self.thing_id = self.initd.get("thing_id", "fake-1")
        self.online = bool(self.initd.get("online", True))
        self.raise_on_push = bool(self.initd.get("raise_on_push", False))
        self.pushes: list[tuple[dict[str, Any], PushDone]] = []
        self.pulls = 0
        self.connected_with: Mapping[str, Any] | None = None

    def discover(self, discoverd: Mapping[str, Any] | None = None) -> None:
        for thing_id in self.initd.get("discover", [self.thing_id]):
            self.discovered(FakeBridge({**self.initd, "thing_id": thing_id}, native=thing_id))

    def connect(self, connectd: Mapping[str, Any] | None = None) -> None:
        self.connected_with = connectd

    def push(self, values: Mapping[str, Any], done: PushDone) -> None:
        self.pushes.append((dict(values), done))
        if self.raise_on_push:
            raise RuntimeError("device exploded")

    def pull(self) -> None:
        self.pulls += 1

    def reachable(self) -> bool:
        return self.native is not None and self.online

    def meta(self) -> dict[str, Any]:
        return {"iot:thing-id": self.thing_id, "iot:vendor.serial": self.thing_id.upper()}


def make_light_model() -> ThingModel:
    return ThingModel(
        code="HueLight",
        name="Hue Light",
        facets=["lighting"],
        attributes=[
            make_boolean("iot-purpose:on", "on"),
            make_string("iot-purpose:color", "color", formats=["color"]),
            make_integer("iot-purpose:brightness", "brightness", minimum=0, maximum=100),
            make_string("iot-purpose:last-seen", "last_seen", formats=["datetime"], writable=False),
        ],
    )


@pytest.fixture
def scheduler() -> Scheduler:
    return Scheduler()


@pytest.fixture
def light_model() -> ThingModel:
    return make_light_model()


@pytest.fixture
def bound_light(light_model: ThingModel, scheduler: Scheduler) -> Any:
    thing = light_model.make(scheduler=scheduler)
    thing.bind_bridge(FakeBridge())
    scheduler.drain()
    return thing
