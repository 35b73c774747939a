"""Turn a binding's discoveries into bound things.

:class:`BridgeWrapper` builds an exemplar bridge from a :class:`Binding`,
asks it to discover, and for every accepted discovery makes a thing of
the binding's model and binds it. Events:

- ``thing`` (thing): a new thing is bound
- ``bridge`` (bridge): the bridge behind it is connected
- ``ignored`` (bridge): ``matchd`` rejected a discovery
- ``state`` (bridge, values): the bridge pulled values
- ``meta`` (bridge): the bridge pulled a metadata/reachability change
- ``disconnected`` (bridge): that change made the bridge unreachable
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from pythings import _ld
from pythings._events import EventEmitter
from pythings.bridge.base import Binding, Bridge
from pythings.keystore import Keystore
from pythings.meta import MetaRegistry
from pythings.state.scheduler import Scheduler

if TYPE_CHECKING:
    from pythings.thing import Thing

_logger = logging.getLogger(__name__)


def _contains(d: Mapping[str, Any], required: Mapping[str, Any]) -> bool:
    return all(key in d and d[key] == value for key, value in required.items())


class BridgeWrapper(EventEmitter):
    def __init__(
        self,
        binding: Binding,
        initd: Mapping[str, Any] | None = None,
        *,
        scheduler: Scheduler | None = None,
        keystore: Keystore | None = None,
        registry: MetaRegistry | None = None,
        validate_pulls: bool = False,
    ) -> None:
        super().__init__()
        self.binding = binding
        self._scheduler = scheduler or Scheduler()
        self._keystore = keystore
        self._registry = registry
        self._validate_pulls = validate_pulls
        self.things: list[Thing] = []

        merged_initd = {**binding.initd, **(initd or {})}
        self.exemplar = binding.bridge(merged_initd)
        self.exemplar.binding = binding
        self.exemplar.discovered = self._discovered

        self._scheduler.call_soon(self.exemplar.discover, dict(binding.discoverd))

    def _discovered(self, bridge: Bridge) -> None:
        binding = self.binding
        if binding.matchd:
            bridge_meta = _ld.compact(dict(bridge.meta() or {}))
            if not _contains(bridge_meta, _ld.compact(dict(binding.matchd))):
                _logger.debug("Discovery ignored by matchd bridge=%r", bridge)
                self.exemplar.ignore(bridge)
                self.emit("ignored", bridge)
                return

        bridge.binding = binding
        thing = binding.model.make(
            scheduler=self._scheduler,
            keystore=self._keystore,
            registry=self._registry,
            validate_pulls=self._validate_pulls,
        )
        thing.bind_bridge(bridge)
        self.things.append(thing)
        self.emit("thing", thing)

        thing_pulled = bridge.pulled

        def pulled(values: Mapping[str, Any] | None) -> None:
            thing_pulled(values)
            if values is not None:
                self.emit("state", bridge, values)
            elif bridge.reachable():
                self.emit("meta", bridge)
            else:
                self.emit("meta", bridge)
                self.emit("disconnected", bridge)

        bridge.pulled = pulled
        bridge.connect(dict(binding.connectd))
        self.emit("bridge", bridge)

    def thing_for(self, bridge: Bridge) -> Thing | None:
        for thing in self.things:
            if thing.bridge is bridge:
                return thing
        return None

    def forget(self, thing: Thing) -> None:
        if thing in self.things:
            self.things.remove(thing)
