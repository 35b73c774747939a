"""Things: semantically typed state containers bound to a bridge.

A :class:`Thing` owns four bands:

- ``istate`` (input): what the device last reported;
- ``ostate`` (output): what the application wants the device to become.
  Output values are transient: once every in-flight push has settled
  they are cleared back to ``None``;
- ``meta``: layered metadata (see :mod:`pythings.meta`);
- ``connection``: derived, read-only reachability.

Bands change only through :meth:`Thing.update` (and :meth:`Thing.set`,
which is an output update). Notifications and pushes are deferred onto
the thing's :class:`~pythings.state.scheduler.Scheduler` so that one
``update`` call produces one notification round after it returns.
"""

from __future__ import annotations

import contextlib
import copy
import logging
from collections.abc import Callable, Iterator, Mapping
from datetime import datetime
from typing import Any

from pythings import _ld
from pythings._constants import (
    IOT_FACET,
    IOT_PURPOSE,
    IOT_READ,
    IOT_REACHABLE,
    IOT_THING,
    IOT_THING_ID,
    IOT_WRITE,
    IOT_ZONE,
    RUNNER_KEY_PATH,
    SCHEMA_NAME,
    TIMESTAMP_KEY,
    VALIDATE_KEY,
)
from pythings._events import EventEmitter
from pythings._ids import canonical_thing_id
from pythings._redact import redact_for_log
from pythings.bridge.base import Bridge
from pythings.exceptions import BridgeError, ThingsArgumentError
from pythings.keys import FindKey, FindMode, parse_find_key, resolve
from pythings.keystore import Keystore
from pythings.meta import Meta, MetaRegistry
from pythings.models.attribute import ABSENT, AttributeSchema
from pythings.models.model import ThingModel
from pythings.state.events import Band, ThingEvent
from pythings.state.policy import _utcnow, advance, make_timestamp, should_apply
from pythings.state.scheduler import Scheduler

_logger = logging.getLogger(__name__)

_BAND_EVENTS = frozenset(event.value for event in ThingEvent)

AttributeCallback = Callable[["Thing", AttributeSchema, Any], Any]


def _coerce_band(band: Band | str) -> Band:
    try:
        return Band(band)
    except ValueError as exc:
        raise ThingsArgumentError(f"unknown band: {band!r}") from exc


def _as_tags(tag: Any) -> list[str]:
    if isinstance(tag, str):
        return [tag]
    if isinstance(tag, list | tuple) and all(isinstance(t, str) for t in tag):
        return list(tag)
    raise ThingsArgumentError(f"tag must be a string or a list of strings, not: {tag!r}")


class _Transaction:
    def __init__(self) -> None:
        self.depth = 0
        self.pushes: dict[str, AttributeSchema] = {}
        self.notifies: dict[Band, dict[str, AttributeSchema]] = {}


class Thing:
    """One addressable device (or virtual device) made from a :class:`ThingModel`."""

    def __init__(
        self,
        model: ThingModel,
        *,
        scheduler: Scheduler | None = None,
        keystore: Keystore | None = None,
        registry: MetaRegistry | None = None,
        clock: Callable[[], datetime] = _utcnow,
        validate_pulls: bool = False,
    ) -> None:
        self._model = model
        self._scheduler = scheduler or Scheduler()
        self._keystore = keystore or Keystore()
        self._registry = registry
        self.clock = clock
        self._validate_pulls = validate_pulls

        self._emitter = EventEmitter()
        self._callbacks: dict[str | None, list[AttributeCallback]] = {}
        self._vocabulary = model.vocabulary()

        self._thing_id: str | None = None
        self._bridge: Bridge | None = None

        self._istate: dict[str, Any] = {a.code: None for a in model.attributes}
        self._ostate: dict[str, Any] = {a.code: None for a in model.attributes}
        self._itimestamp: str | None = None
        self._otimestamp: str | None = None
        self._ctimestamp: str | None = None
        self._reachable: bool | None = None
        self._pushes = 0

        self._meta = Meta(self)
        self._tags: list[str] = []
        self._transaction: _Transaction | None = None

    def __repr__(self) -> str:
        return f"<Thing {self._model.code} id={self._thing_id!r}>"

    # ------------------------------------------------------------------
    # Identity
    # ------------------------------------------------------------------

    @property
    def thing_id(self) -> str | None:
        return self._thing_id

    @property
    def code(self) -> str:
        return self._model.code

    @property
    def model(self) -> ThingModel:
        return self._model

    @property
    def attributes(self) -> tuple[AttributeSchema, ...]:
        return self._model.attributes

    @property
    def scheduler(self) -> Scheduler:
        return self._scheduler

    @property
    def bridge(self) -> Bridge | None:
        return self._bridge

    @property
    def meta(self) -> Meta:
        return self._meta

    @property
    def pushes_in_flight(self) -> int:
        """Pushes handed to (or queued for) the bridge and not yet settled."""
        return self._pushes

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    def state(self, band: Band | str) -> dict[str, Any]:
        """A copy of one band.

        ``istate`` holds readable attributes only; ``meta`` and
        ``connection`` come back with compact keys.
        """
        band = _coerce_band(band)
        if band is Band.INPUT:
            d = {a.code: copy.deepcopy(self._istate[a.code]) for a in self.attributes if a.readable}
            if self._itimestamp:
                d[TIMESTAMP_KEY] = self._itimestamp
            return d
        if band is Band.OUTPUT:
            d = {a.code: copy.deepcopy(self._ostate[a.code]) for a in self.attributes}
            if self._otimestamp:
                d[TIMESTAMP_KEY] = self._otimestamp
            return d
        if band is Band.META:
            return _ld.compact(self._meta.state())
        if band is Band.MODEL:
            return self._model.to_document()
        d = {}
        if self._ctimestamp:
            d[TIMESTAMP_KEY] = self._ctimestamp
        d[IOT_REACHABLE] = self.reachable()
        return _ld.compact(d)

    def update(
        self,
        band: Band | str,
        values: Mapping[str, Any],
        *,
        check_timestamp: bool | None = None,
        set_timestamp: bool | None = None,
        notify: bool | None = None,
        validate: bool | None = None,
        immediate: bool = False,
    ) -> bool:
        """Merge *values* into *band*; return whether anything changed.

        Options left as ``None`` take the band's default:

        ========  ===============  =============  ======  ========
        band      check_timestamp  set_timestamp  notify  validate
        ========  ===============  =============  ======  ========
        istate    True             True           True    False
        ostate    True             True           True    True
        meta      False            True           True    n/a
        ========  ===============  =============  ======  ========

        Output updates get a timestamp added when *values* carry none.
        ``connection`` and ``model`` are read-only.
        """
        band = _coerce_band(band)
        if not isinstance(values, Mapping):
            raise ThingsArgumentError(f"update values must be a mapping, not: {values!r}")

        if band is Band.INPUT:
            return self._update_band(
                Band.INPUT,
                values,
                check_timestamp=True if check_timestamp is None else check_timestamp,
                set_timestamp=True if set_timestamp is None else set_timestamp,
                notify=True if notify is None else notify,
                validate=False if validate is None else validate,
                immediate=immediate,
            )
        if band is Band.OUTPUT:
            if TIMESTAMP_KEY not in values:
                values = {**values, TIMESTAMP_KEY: make_timestamp(self.clock)}
            return self._update_band(
                Band.OUTPUT,
                values,
                check_timestamp=True if check_timestamp is None else check_timestamp,
                set_timestamp=True if set_timestamp is None else set_timestamp,
                notify=True if notify is None else notify,
                validate=True if validate is None else validate,
                immediate=immediate,
            )
        if band is Band.META:
            return self._meta.update(
                values,
                check_timestamp=False if check_timestamp is None else check_timestamp,
                set_timestamp=True if set_timestamp is None else set_timestamp,
                notify=True if notify is None else notify,
            )

        _logger.warning("Band %s is read-only; update ignored thing=%s", band, self._thing_id)
        return False

    def _update_band(
        self,
        band: Band,
        values: Mapping[str, Any],
        *,
        check_timestamp: bool,
        set_timestamp: bool,
        notify: bool,
        validate: bool,
        immediate: bool,
    ) -> bool:
        stored = self._istate if band is Band.INPUT else self._ostate
        stored_timestamp = self._itimestamp if band is Band.INPUT else self._otimestamp
        incoming_timestamp = values.get(TIMESTAMP_KEY)

        if check_timestamp and not should_apply(stored_timestamp, incoming_timestamp):
            _logger.debug(
                "Stale %s update rejected thing=%s stored=%s incoming=%s",
                band,
                self._thing_id,
                stored_timestamp,
                incoming_timestamp,
            )
            return False

        changed: dict[str, AttributeSchema] = {}
        for code, value in values.items():
            if not isinstance(code, str) or code.startswith("@"):
                continue
            attribute = self._model.attribute(code)
            if attribute is None:
                if band is Band.OUTPUT:
                    _logger.warning("Unknown attribute %r for model %s", code, self.code)
                continue

            if validate:
                value = attribute.validate_value(value)
                if value is ABSENT:
                    _logger.warning(
                        "Dropped invalid %s value thing=%s attribute=%s", band, self._thing_id, code
                    )
                    continue

            if attribute.values_equal(stored[code], value):
                continue

            stored[code] = value
            changed[code] = attribute

        if not changed:
            return False

        if set_timestamp:
            timestamp = incoming_timestamp or make_timestamp(self.clock)
            if band is Band.INPUT:
                self._itimestamp = timestamp
            else:
                self._otimestamp = timestamp

        transaction = self._transaction
        if band is Band.OUTPUT:
            if transaction is not None and not immediate:
                transaction.pushes.update(changed)
            else:
                self._push_attributes(list(changed.values()))

        if notify:
            if transaction is not None and not immediate:
                transaction.notifies.setdefault(band, {}).update(changed)
            else:
                self._scheduler.call_soon(self._notify, band, changed)

        return True

    def _notify(self, band: Band, changed: Mapping[str, AttributeSchema]) -> None:
        if band is Band.INPUT:
            everything = self._callbacks.get(None, [])
            for code, attribute in changed.items():
                value = self._istate[code]
                for callback in [*self._callbacks.get(code, []), *everything]:
                    try:
                        callback(self, attribute, value)
                    except Exception:
                        _logger.exception("Attribute callback failed thing=%s attribute=%s", self._thing_id, code)

        self._emitter.emit(ThingEvent.STATE, self)
        self._emitter.emit(band.value, self)

    @contextlib.contextmanager
    def transaction(self) -> Iterator[Thing]:
        """Group output updates into one push and one notification round.

        Updates made with ``immediate=True`` bypass the grouping.
        Transactions nest; the outermost exit flushes.
        """
        if self._transaction is None:
            self._transaction = _Transaction()
        transaction = self._transaction
        transaction.depth += 1
        try:
            yield self
        finally:
            transaction.depth -= 1
            if transaction.depth == 0:
                self._transaction = None
                if transaction.pushes:
                    self._push_attributes(list(transaction.pushes.values()))
                for band, changed in transaction.notifies.items():
                    self._scheduler.call_soon(self._notify, band, changed)

    # ------------------------------------------------------------------
    # get / set / on / find
    # ------------------------------------------------------------------

    def find(self, key: Any, mode: FindMode | str = FindMode.GET) -> AttributeSchema | None:
        """Resolve *key* to an attribute of this thing.

        Raises
        ------
        InvalidKeyError
            If *key* is neither a string nor a mapping.
        """
        parsed: FindKey = parse_find_key(key)
        return resolve(parsed, self.attributes, FindMode(mode), vocabulary=self._vocabulary)

    def get(self, key: Any) -> Any:
        """Input value when known, else the pending output value, else ``None``."""
        attribute = self.find(key, FindMode.GET)
        if attribute is None:
            _logger.warning("Cannot find attribute for key=%r model=%s", key, self.code)
            return None
        value = self._istate[attribute.code]
        if value is not None:
            return value
        return self._ostate[attribute.code]

    def set(self, key: Any, value: Any) -> Thing:
        """Ask the device to take *value* for the attribute named by *key*."""
        attribute = self.find(key, FindMode.SET)
        if attribute is None:
            _logger.warning("Cannot find attribute for key=%r model=%s", key, self.code)
            return self
        self.update(
            Band.OUTPUT,
            {attribute.code: value, TIMESTAMP_KEY: make_timestamp(self.clock)},
            check_timestamp=False,
        )
        return self

    def on(self, key: Any, callback: Callable[..., Any]) -> Thing:
        """Subscribe to changes.

        - a band event name (``state``, ``istate``, ``ostate``, ``meta``,
          ``connection``): ``callback(thing)``;
        - ``None``: every input attribute change, ``callback(thing, attribute, value)``;
        - anything else is resolved as a find key, same callback signature.
        """
        if not callable(callback):
            raise ThingsArgumentError("callback must be callable")
        if isinstance(key, str) and key in _BAND_EVENTS:
            self._emitter.on(key, callback)
            return self
        if key is None:
            self._callbacks.setdefault(None, []).append(callback)
            return self

        attribute = self.find(key, FindMode.ON)
        if attribute is None:
            _logger.warning("Cannot find attribute for key=%r model=%s", key, self.code)
            return self
        self._callbacks.setdefault(attribute.code, []).append(callback)
        return self

    def off(self, key: Any, callback: Callable[..., Any]) -> None:
        """Remove a subscription made with :meth:`on`."""
        if isinstance(key, str) and key in _BAND_EVENTS:
            self._emitter.off(key, callback)
            return
        code = None
        if key is not None:
            attribute = self.find(key, FindMode.ON)
            if attribute is None:
                return
            code = attribute.code
        callbacks = self._callbacks.get(code, [])
        if callback in callbacks:
            callbacks.remove(callback)

    def on_change(self, callback: Callable[[Thing, list[Any]], Any]) -> Thing:
        self._emitter.on(ThingEvent.STATE, lambda thing: callback(thing, []))
        return self

    def on_meta(self, callback: Callable[[Thing, list[Any]], Any]) -> Thing:
        self._emitter.on(ThingEvent.META, lambda thing: callback(thing, []))
        return self

    def _meta_changed(self) -> None:
        self._scheduler.call_soon(self._emitter.emit, ThingEvent.META, self)

    def _reachable_changed(self, reachable: bool) -> None:
        if self._reachable is reachable:
            return
        self._reachable = reachable
        self._ctimestamp = make_timestamp(self.clock)
        self._scheduler.call_soon(self._emitter.emit, ThingEvent.CONNECTION, self)

    # ------------------------------------------------------------------
    # Push
    # ------------------------------------------------------------------

    def _push_attributes(self, attributes: list[AttributeSchema]) -> None:
        bridge = self._bridge
        if bridge is None:
            _logger.error("No bridge bound; clearing output thing=%s model=%s", self._thing_id, self.code)
            self._clear_ostate()
            return
        if not bridge.reachable():
            _logger.error("Bridge not reachable; clearing output thing=%s", self._thing_id)
            self._clear_ostate()
            return

        mapping = bridge.binding.mapping if bridge.binding is not None else {}
        payload: dict[str, Any] = {}
        for attribute in attributes:
            value = self._ostate[attribute.code]
            table = mapping.get(attribute.code)
            if table:
                wire = _lookup(table, value)
                if wire is ABSENT:
                    wire = _lookup(table, _ld.compact(value))
                if wire is not ABSENT:
                    value = wire
            payload[attribute.code] = value
            if attribute.clear_value:
                self._ostate[attribute.code] = None

        if not payload:
            return

        self._pushes += 1
        self._scheduler.call_soon(self._dispatch_push, payload)

    def _dispatch_push(self, payload: dict[str, Any]) -> None:
        bridge = self._bridge
        if bridge is None:
            _logger.debug("Bridge went away before push thing=%s", self._thing_id)
            self._push_settled()
            return

        settled = False

        def done(error: BaseException | None = None) -> None:
            nonlocal settled
            if settled:
                _logger.warning("Push completion reported twice thing=%s", self._thing_id)
                return
            settled = True
            if error is not None:
                _logger.error("Push failed thing=%s error=%s", self._thing_id, error)
            self._push_settled()

        _logger.debug("Pushing thing=%s payload=%s", self._thing_id, redact_for_log(payload))
        try:
            bridge.push(payload, done)
        except Exception:
            _logger.error("Bridge raised while pushing thing=%s", self._thing_id, exc_info=True)
            if not settled:
                done(BridgeError("bridge raised while pushing"))

    def _push_settled(self) -> None:
        self._pushes -= 1
        if self._pushes < 0:
            _logger.error("Push counter went negative thing=%s", self._thing_id)
            self._pushes = 0
        if self._pushes == 0:
            self._clear_ostate()

    def _clear_ostate(self) -> None:
        if all(value is None for value in self._ostate.values()):
            return
        for code in self._ostate:
            self._ostate[code] = None
        self._otimestamp = advance(self._otimestamp, self.clock)
        self._scheduler.call_soon(self._emitter.emit, ThingEvent.OUTPUT, self)

    # ------------------------------------------------------------------
    # Bridge binding / pull
    # ------------------------------------------------------------------

    def bind_bridge(self, bridge: Bridge) -> Thing:
        """Bind (or rebind) *bridge*; assigns the canonical thing id."""
        if not isinstance(bridge, Bridge):
            raise ThingsArgumentError(f"bind_bridge needs a Bridge, not: {bridge!r}")

        self._bridge = bridge
        bridge.pulled = self._pulled

        bridge_meta = _ld.expand(dict(bridge.meta() or {}))
        bridge_thing_id = bridge_meta.get(IOT_THING_ID) or bridge_meta.get(IOT_THING)
        runner_id = self._keystore.get(RUNNER_KEY_PATH)
        self._thing_id = canonical_thing_id(str(bridge_thing_id), self.code, runner_id)

        if self._registry is not None:
            self._meta = self._registry.attach(self)

        _logger.debug("Bound thing=%s bridge=%r", self._thing_id, bridge)
        self._reachable_changed(bool(bridge.reachable()))
        self._meta_changed()
        return self

    def _pulled(self, values: Mapping[str, Any] | None) -> None:
        bridge = self._bridge
        self._reachable_changed(bool(bridge is not None and bridge.reachable()))

        if values is None:
            self._meta_changed()
            return

        pulled = copy.deepcopy(dict(values))
        mapping = bridge.binding.mapping if bridge is not None and bridge.binding is not None else {}
        for code, value in pulled.items():
            table = mapping.get(code)
            if not table:
                continue
            compacted = _ld.compact(value)
            for local, wire in table.items():
                if wire == value or wire == compacted:
                    pulled[code] = local
                    break

        if not pulled.get(TIMESTAMP_KEY):
            pulled[TIMESTAMP_KEY] = make_timestamp(self.clock)
        validate = bool(pulled.pop(VALIDATE_KEY, False)) or self._validate_pulls

        self.update(Band.INPUT, pulled, validate=validate)

    def pull(self) -> Thing:
        if self._bridge is not None:
            self._bridge.pull()
        return self

    def reachable(self) -> bool:
        return self._bridge is not None and bool(self._bridge.reachable())

    def disconnect(self) -> float:
        """Drop the bridge; return the seconds it asks to wait for shutdown."""
        bridge = self._bridge
        if bridge is None:
            return 0.0
        wait = bridge.disconnect() or 0.0
        self._bridge = None
        if self._registry is not None:
            self._registry.remove(self._thing_id)
        return wait

    # ------------------------------------------------------------------
    # Metadata helpers
    # ------------------------------------------------------------------

    def name(self) -> str | None:
        return _ld.first(self._meta.state(), SCHEMA_NAME)

    def set_name(self, name: str) -> Thing:
        self.update(Band.META, {SCHEMA_NAME: name})
        return self

    def zones(self) -> list[Any]:
        return _ld.as_list(self._meta.state(), IOT_ZONE, [])

    def set_zones(self, zones: str | list[str]) -> Thing:
        self.update(Band.META, {IOT_ZONE: [zones] if isinstance(zones, str) else list(zones)})
        return self

    def facets(self) -> list[Any]:
        return _ld.compact(_ld.as_list(self._meta.state(), IOT_FACET, []))

    def set_facets(self, facets: str | list[str]) -> Thing:
        facets = [facets] if isinstance(facets, str) else list(facets)
        self.update(Band.META, {IOT_FACET: [_ld.expand(f, "iot-facet:") for f in facets]})
        return self

    def tag(self, tag: str | list[str]) -> Thing:
        """Add transient tags (never written into metadata)."""
        for item in _as_tags(tag):
            if item not in self._tags:
                self._tags.append(item)
        return self

    def tags(self) -> list[str]:
        return list(self._tags)

    def has_tag(self, tag: str | list[str]) -> bool:
        return _ld.intersects(self._tags, _as_tags(tag))

    def explain(self, key: Any = None, *, read: bool = True, write: bool = True, by_code: bool = False) -> Any:
        """Describe one attribute, or all of them keyed by purpose (``:on``) or code."""
        if key is not None:
            attribute = self.find(key, FindMode.SET if write else FindMode.GET)
            return None if attribute is None else attribute.to_document()

        d: dict[str, Any] = {}
        for attribute in self.attributes:
            ad = attribute.to_document()
            if write and not ad.get(_ld.compact(IOT_WRITE)):
                continue
            if read and not ad.get(_ld.compact(IOT_READ)):
                continue
            if by_code:
                name = attribute.code
            else:
                purpose = ad.get(_ld.compact(IOT_PURPOSE))
                if not purpose:
                    continue
                name = purpose.replace("iot-purpose:", ":", 1)
            d.setdefault(name, []).append(ad)
        return {name: docs[0] if len(docs) == 1 else docs for name, docs in d.items()}


def _lookup(table: Mapping[Any, Any], value: Any) -> Any:
    try:
        return table.get(value, ABSENT)
    except TypeError:
        return ABSENT
