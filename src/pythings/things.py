"""Top-level manager: bindings in, one live collection of things out."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from pythings.bridge.base import Binding, Bridge
from pythings.bridge.wrapper import BridgeWrapper
from pythings.collection import ThingArray
from pythings.config import ThingsConfig
from pythings.keystore import Keystore
from pythings.meta import MetaRegistry
from pythings.state.scheduler import Scheduler
from pythings.thing import Thing

_logger = logging.getLogger(__name__)


class Things:
    """Owns the root persisting :class:`ThingArray` and every bridge wrapper.

    Parameters
    ----------
    config : ThingsConfig or None
        Defaults to :meth:`ThingsConfig.from_env`.
    keystore : Keystore or None
        Defaults to :meth:`Keystore.from_config` of *config*.
    scheduler : Scheduler or None
        Shared by every thing this manager creates.
    """

    def __init__(
        self,
        config: ThingsConfig | None = None,
        *,
        keystore: Keystore | None = None,
        scheduler: Scheduler | None = None,
    ) -> None:
        self.config = config or ThingsConfig.from_env()
        self.keystore = keystore or Keystore.from_config(self.config)
        self.scheduler = scheduler or Scheduler()
        self.registry = MetaRegistry()
        self._things = ThingArray(persist=True)
        self._wrappers: list[BridgeWrapper] = []

    def things(self) -> ThingArray:
        """Every connected thing (persisting, so bulk commands replay)."""
        return self._things

    def connect(self, binding: Binding, initd: Mapping[str, Any] | None = None) -> ThingArray:
        """Start discovery for *binding*; return a live view of its things."""
        wrapper = BridgeWrapper(
            binding,
            initd,
            scheduler=self.scheduler,
            keystore=self.keystore,
            registry=self.registry,
            validate_pulls=self.config.validate_pulls,
        )
        self._wrappers.append(wrapper)

        def on_thing(thing: Thing) -> None:
            _logger.info("Thing connected thing=%s model=%s", thing.thing_id, thing.code)
            self._things.push(thing)

        def on_disconnected(bridge: Bridge) -> None:
            thing = wrapper.thing_for(bridge)
            if thing is None:
                return
            _logger.info("Thing disconnected thing=%s", thing.thing_id)
            wrapper.forget(thing)
            thing.disconnect()
            self._things.remove(thing)

        wrapper.on("thing", on_thing)
        wrapper.on("disconnected", on_disconnected)

        return self._things.filter(lambda thing: thing in wrapper.things)

    def disconnect(self) -> float:
        """Disconnect every thing; return the longest requested shutdown wait."""
        wait = 0.0
        for thing in list(self._things):
            wait = max(wait, thing.disconnect())
            self._things.remove(thing)
        for wrapper in self._wrappers:
            wrapper.things.clear()
        return wait
