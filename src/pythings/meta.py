"""Metadata band.

A thing's metadata is layered, later layers winning:

1. ``@timestamp`` (epoch until something sets it)
2. identity: thing id, model id, model name, model facets
3. whatever the bound bridge reports in ``meta()`` (minus its own ids)
4. the binding's static ``metad``
5. local updates made through :meth:`Meta.update` / :meth:`Meta.set`

Only the local updates carry a timestamp of their own, and only they are
checked against incoming timestamps.
"""

from __future__ import annotations

import copy
import logging
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from pythings import _ld
from pythings._constants import (
    IOT_FACET,
    IOT_MODEL_ID,
    IOT_REACHABLE,
    IOT_THING,
    IOT_THING_ID,
    SCHEMA_NAME,
    TIMESTAMP_KEY,
)
from pythings._redact import redact_for_log
from pythings.exceptions import ThingsArgumentError
from pythings.state.policy import EPOCH, make_timestamp, should_apply

if TYPE_CHECKING:
    from pythings.thing import Thing

_logger = logging.getLogger(__name__)


class Meta:
    def __init__(self, thing: Thing) -> None:
        self.thing = thing
        self._updated: dict[str, Any] = {}

    def state(self) -> dict[str, Any]:
        """Expanded metadata, freshly merged from every layer."""
        thing = self.thing
        d: dict[str, Any] = {TIMESTAMP_KEY: EPOCH}
        d[IOT_THING_ID] = thing.thing_id
        d[IOT_MODEL_ID] = thing.code
        d[SCHEMA_NAME] = thing.model.name
        if thing.model.facets:
            d[IOT_FACET] = list(thing.model.facets)

        bridge = thing.bridge
        if bridge is not None:
            bridge_meta = _ld.expand(dict(bridge.meta() or {}))
            bridge_meta.pop(IOT_THING_ID, None)
            bridge_meta.pop(IOT_THING, None)
            d.update(bridge_meta)

            binding = bridge.binding
            if binding is not None and binding.metad:
                d.update(_ld.expand(dict(binding.metad)))

        d.update(copy.deepcopy(self._updated))
        return d

    def get(self, key: str, otherwise: Any = None) -> Any:
        value = self.state().get(_ld.expand(key))
        if value is None:
            return otherwise
        return value

    def set(self, key: str, value: Any) -> None:
        """Set one local value; always refreshes the local timestamp."""
        key = _ld.expand(key)
        if key == IOT_REACHABLE:
            return
        if self._updated.get(key) != value:
            self._updated[key] = copy.deepcopy(value)
            self.thing._meta_changed()
        self._updated[TIMESTAMP_KEY] = make_timestamp(self.thing.clock)

    def update(
        self,
        values: Mapping[str, Any],
        *,
        check_timestamp: bool = False,
        set_timestamp: bool = False,
        notify: bool = True,
    ) -> bool:
        """Merge *values* into the local layer; return whether anything changed."""
        if not isinstance(values, Mapping):
            raise ThingsArgumentError(f"metadata update must be a mapping, not: {values!r}")

        incoming = _ld.expand(dict(values))
        incoming_timestamp = incoming.get(TIMESTAMP_KEY)

        if check_timestamp and not should_apply(self._updated.get(TIMESTAMP_KEY), incoming_timestamp):
            _logger.debug(
                "Metadata update rejected thing=%s stored=%s incoming=%s",
                self.thing.thing_id,
                self._updated.get(TIMESTAMP_KEY),
                incoming_timestamp,
            )
            return False

        current = self.state()
        changed = False
        for key, value in incoming.items():
            if key in (IOT_REACHABLE, TIMESTAMP_KEY):
                continue
            if current.get(key) == value:
                continue
            self._updated[key] = copy.deepcopy(value)
            changed = True

        if not changed:
            return False

        if set_timestamp:
            self._updated[TIMESTAMP_KEY] = incoming_timestamp or make_timestamp(self.thing.clock)

        _logger.debug("Metadata updated thing=%s values=%s", self.thing.thing_id, redact_for_log(incoming))
        if notify:
            self.thing._meta_changed()
        return True

    def updates(self) -> dict[str, Any]:
        """Local updates only (what this process changed)."""
        return copy.deepcopy(self._updated)


class MetaRegistry:
    """Meta objects by thing id.

    A thing that binds under an id already known here adopts the existing
    :class:`Meta` (so local metadata survives a bridge reconnect). Entries
    are created on first bind and removed on disconnect.
    """

    def __init__(self) -> None:
        self._metas: dict[str, Meta] = {}

    def __contains__(self, thing_id: object) -> bool:
        return thing_id in self._metas

    def __len__(self) -> int:
        return len(self._metas)

    def attach(self, thing: Thing) -> Meta:
        thing_id = thing.thing_id
        if thing_id is None:
            return thing.meta
        meta = self._metas.get(thing_id)
        if meta is None:
            meta = thing.meta
            self._metas[thing_id] = meta
        meta.thing = thing
        return meta

    def remove(self, thing_id: str | None) -> None:
        if thing_id is not None:
            self._metas.pop(thing_id, None)
