"""Observable, ordered collections of things.

:class:`ThingArray` holds each thing at most once. Membership is keyed by
``thing_id`` (object identity while a thing is still unbound). Keys are
worked out on every lookup, so a member that binds later stays the same
member.

Derived views (:meth:`ThingArray.filter`, :meth:`ThingArray.merge`) are
kept in sync with their sources by :func:`reconcile`. A *persisting*
array also records bulk commands (``set``, ``tag``, ``on`` ...) and
replays them on every thing that joins later.

Events: ``thing`` (existing members now, then every new one), ``added``,
``removed`` and ``changed``. ``changed`` fires on every source change,
even when this array's own membership did not move, because views
further downstream may still be affected.
"""

from __future__ import annotations

import dataclasses
import enum
import itertools
import logging
import re
from collections.abc import Callable, Iterable, Iterator, Mapping
from typing import Any

from pythings import _ld
from pythings._events import EventEmitter
from pythings._ids import to_dash_case
from pythings.exceptions import ThingsArgumentError
from pythings.state.events import Band, CollectionEvent, ThingEvent
from pythings.thing import Thing

_logger = logging.getLogger(__name__)

_QUERY_KEY_RE = re.compile(r"^(meta|model|istate|ostate|transient):(.+)$")
_array_ids = itertools.count()

Predicate = Callable[[Thing], bool]


def membership_key(thing: Thing) -> Any:
    thing_id = thing.thing_id
    if thing_id is not None:
        return thing_id
    return ("unbound", id(thing))


def reconcile(current: Iterable[Thing], proposed: Iterable[Thing]) -> tuple[list[Thing], list[Thing]]:
    """Diff two memberships.

    Returns ``(to_add, to_remove)``: things in *proposed* but not in
    *current* (in proposed order, duplicates dropped), and things in
    *current* that *proposed* does not confirm (in current order).
    ``reconcile(a, a)`` is always ``([], [])``.
    """
    current = list(current)
    present = {membership_key(thing) for thing in current}
    confirmed: set[Any] = set()
    to_add: list[Thing] = []
    for thing in proposed:
        key = membership_key(thing)
        if key in confirmed:
            continue
        confirmed.add(key)
        if key not in present:
            to_add.append(thing)
    to_remove = [thing for thing in current if membership_key(thing) not in confirmed]
    return to_add, to_remove


class _CommandKind(enum.Enum):
    PLAIN = "plain"
    SETTER = "setter"
    TAG = "tag"


@dataclasses.dataclass(frozen=True)
class _Command:
    method: str
    args: tuple[Any, ...]
    kwargs: Mapping[str, Any]
    kind: _CommandKind = _CommandKind.PLAIN

    def apply(self, thing: Thing) -> None:
        getattr(thing, self.method)(*self.args, **self.kwargs)


def _query_test(query: Mapping[str, Any]) -> Predicate:
    """Compile a ``{"<band>:<key>": value(s)}`` query into a predicate.

    ``meta:<key>`` matches when any wanted value is among the thing's
    metadata values for ``<key>``; ``transient:tag`` matches on tags;
    ``istate:<code>`` / ``ostate:<code>`` match on current band values.
    A malformed query key never matches.
    """
    clauses: list[tuple[str, str, list[Any]]] = []
    for query_key in query:
        match = _QUERY_KEY_RE.match(str(query_key))
        if match is None:
            _logger.error("Bad filter query key %r", query_key)
            return lambda thing: False
        band, inner = match.groups()
        clauses.append((band, inner, _ld.as_list(query, query_key, [])))

    def test(thing: Thing) -> bool:
        for band, inner, wanted in clauses:
            if band == "meta":
                have = _ld.expand(_ld.as_list(thing.meta.state(), _ld.expand(inner), []))
                if not _ld.intersects(_ld.expand(wanted), have):
                    return False
            elif band == "transient":
                if inner != "tag" or not thing.has_tag(wanted):
                    return False
            elif band in (Band.INPUT.value, Band.OUTPUT.value):
                if thing.state(band).get(inner) not in wanted:
                    return False
            else:
                _logger.error("Filtering on band %s is not supported", band)
                return False
        return True

    return test


def _query_events(query: Mapping[str, Any] | Predicate) -> tuple[str, ...]:
    if callable(query):
        return (ThingEvent.META.value, ThingEvent.STATE.value)
    events = []
    for query_key in query:
        band = str(query_key).split(":", 1)[0]
        if band == "meta" and ThingEvent.META.value not in events:
            events.append(ThingEvent.META.value)
        elif band in (Band.INPUT.value, Band.OUTPUT.value) and band not in events:
            events.append(band)
    return tuple(events)


class ThingArray:
    """Ordered set of things with bulk commands and live views."""

    def __init__(self, things: Iterable[Thing] = (), *, persist: bool = False) -> None:
        self.array_id = f"thing-array-{next(_array_ids)}"
        self._things: list[Thing] = []
        self._emitter = EventEmitter()
        self._persisted: list[_Command] | None = [] if persist else None
        for thing in things:
            self.push(thing)

    def __repr__(self) -> str:
        return f"<ThingArray {self.array_id} len={len(self._things)} persist={self.persisting}>"

    def __len__(self) -> int:
        return len(self._things)

    def __iter__(self) -> Iterator[Thing]:
        return iter(list(self._things))

    def __getitem__(self, index: int) -> Thing:
        return self._things[index]

    def __contains__(self, thing: object) -> bool:
        return isinstance(thing, Thing) and self._index(thing) is not None

    def _index(self, thing: Thing) -> int | None:
        key = membership_key(thing)
        for index, member in enumerate(self._things):
            if member is thing or membership_key(member) == key:
                return index
        return None

    @property
    def persisting(self) -> bool:
        return self._persisted is not None

    def first(self) -> Thing | None:
        return self._things[0] if self._things else None

    def map(self, f: Callable[[Thing], Any]) -> list[Any]:
        """Apply *f* to every member; ``None`` results are dropped."""
        return [result for result in (f(thing) for thing in list(self._things)) if result is not None]

    def reachable(self) -> int:
        """Number of members whose bridge is reachable."""
        return sum(1 for thing in self._things if thing.reachable())

    # ------------------------------------------------------------------
    # Membership
    # ------------------------------------------------------------------

    def push(self, thing: Thing) -> ThingArray:
        if not isinstance(thing, Thing):
            raise ThingsArgumentError(f"only Things can be pushed onto a ThingArray, not: {thing!r}")
        if thing in self:
            _logger.error("Preventing the same thing from being pushed twice thing=%s", thing.thing_id)
            return self
        self._add(thing)
        self.things_changed()
        return self

    def remove(self, thing: Thing) -> bool:
        """Remove *thing*; return whether it was a member."""
        if thing not in self:
            return False
        self._discard(thing)
        self.things_changed()
        return True

    def _add(self, thing: Thing) -> None:
        self._replay(thing, pre=True)
        self._things.append(thing)
        self._emitter.emit(CollectionEvent.ADDED, thing)
        self._emitter.emit(CollectionEvent.THING, thing)
        self._replay(thing, pre=False)

    def _discard(self, thing: Thing) -> None:
        key = membership_key(thing)
        self._things = [t for t in self._things if t is not thing and membership_key(t) != key]
        self._emitter.emit(CollectionEvent.REMOVED, thing)

    def _reconcile(self, proposed: Iterable[Thing]) -> None:
        to_add, to_remove = reconcile(self._things, proposed)
        for thing in to_remove:
            self._discard(thing)
        for thing in to_add:
            self._add(thing)
        self.things_changed()

    def things_changed(self) -> None:
        """Tell downstream views to recompute."""
        self._emitter.emit(CollectionEvent.CHANGED, self)

    # ------------------------------------------------------------------
    # Persisted commands
    # ------------------------------------------------------------------

    def _replay(self, thing: Thing, *, pre: bool) -> None:
        if not self._persisted:
            return
        for command in list(self._persisted):
            if (command.kind is _CommandKind.TAG) is pre:
                command.apply(thing)

    def _command(self, method: str, *args: Any, kind: _CommandKind = _CommandKind.PLAIN, **kwargs: Any) -> ThingArray:
        command = _Command(method, args, kwargs, kind)
        for thing in list(self._things):
            command.apply(thing)
        if self._persisted is not None:
            if kind is _CommandKind.SETTER:
                self._persisted = [c for c in self._persisted if c.kind is not _CommandKind.SETTER]
            self._persisted.append(command)
        return self

    def disconnect(self) -> ThingArray:
        return self._command("disconnect")

    def name(self, name: str) -> ThingArray:
        if not isinstance(name, str):
            raise ThingsArgumentError(f"name must be a string, not: {name!r}")
        return self._command("set_name", name)

    def zones(self, zones: str | list[str]) -> ThingArray:
        return self._command("set_zones", zones)

    def facets(self, facets: str | list[str]) -> ThingArray:
        return self._command("set_facets", facets)

    def set(self, key: Any, value: Any) -> ThingArray:
        return self._command("set", key, value, kind=_CommandKind.SETTER)

    def update(self, band: Band | str, values: Mapping[str, Any], **options: Any) -> ThingArray:
        return self._command("update", band, values, kind=_CommandKind.SETTER, **options)

    def pull(self) -> ThingArray:
        return self._command("pull")

    def tag(self, tag: str | list[str]) -> ThingArray:
        self._command("tag", tag, kind=_CommandKind.TAG)
        self.things_changed()
        return self

    def on(self, what: Any, callback: Callable[..., Any]) -> ThingArray:
        """Subscribe to collection events, or to every member's thing events.

        ``thing`` calls back for current members right away and for every
        future one; ``added``/``removed``/``changed`` are collection events.
        Anything else is forwarded to :meth:`Thing.on` on each member (and
        recorded when persisting).
        """
        if what == CollectionEvent.THING:
            for thing in list(self._things):
                callback(thing)
            self._emitter.on(CollectionEvent.THING, callback)
            return self
        if what in (CollectionEvent.ADDED, CollectionEvent.REMOVED, CollectionEvent.CHANGED):
            self._emitter.on(what, callback)
            return self
        return self._command("on", what, callback)

    def off(self, what: str, callback: Callable[..., Any]) -> None:
        self._emitter.off(what, callback)

    def on_change(self, callback: Callable[..., Any]) -> ThingArray:
        return self._command("on_change", callback)

    def on_meta(self, callback: Callable[..., Any]) -> ThingArray:
        return self._command("on_meta", callback)

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    def filter(self, query: Mapping[str, Any] | Predicate) -> ThingArray:
        """A view of the members matching *query*.

        *query* is a ``{"<band>:<key>": value}`` mapping or a predicate.
        Views of a persisting array stay live: they recompute when this
        array changes and when a member's relevant band changes.
        """
        if callable(query):
            test: Predicate = query
        elif isinstance(query, Mapping):
            test = _query_test(query)
        else:
            raise ThingsArgumentError(f"filter needs a mapping or a callable, not: {query!r}")

        view = ThingArray(persist=self.persisting)
        view._reconcile([thing for thing in self._things if test(thing)])
        if not self.persisting:
            return view

        def recompute(*_: Any) -> None:
            view._reconcile([thing for thing in self._things if test(thing)])

        events = _query_events(query)

        def watch(thing: Thing) -> None:
            for event in events:
                thing.on(event, recompute)

        def unwatch(thing: Thing) -> None:
            for event in events:
                thing.off(event, recompute)

        for thing in self._things:
            watch(thing)
        self._emitter.on(CollectionEvent.ADDED, watch)
        self._emitter.on(CollectionEvent.REMOVED, unwatch)
        self._emitter.on(CollectionEvent.CHANGED, recompute)
        return view

    def merge(self, other: ThingArray) -> ThingArray:
        """A persisting view holding the union of this array and *other*."""
        if not isinstance(other, ThingArray):
            raise ThingsArgumentError(f"can only merge a ThingArray, not: {other!r}")
        sources = (self, other)
        view = ThingArray(persist=True)

        def merger(*_: Any) -> None:
            view._reconcile([thing for source in sources for thing in source._things])

        merger()
        for source in sources:
            if source.persisting:
                source._emitter.on(CollectionEvent.CHANGED, merger)
        _logger.debug("Merged %s and %s into %s", self.array_id, other.array_id, view.array_id)
        return view

    def with_id(self, thing_id: str) -> ThingArray:
        return self.filter({"meta:iot:thing-id": thing_id})

    def with_code(self, code: str) -> ThingArray:
        return self.filter({"meta:iot:model-id": to_dash_case(code)})

    def with_name(self, name: str) -> ThingArray:
        return self.filter({"meta:schema:name": name})

    def with_zone(self, zone: str) -> ThingArray:
        return self.filter({"meta:iot:zone": zone})

    def with_number(self, number: int | str) -> ThingArray:
        return self.filter({"meta:iot:thing-number": int(number)})

    def with_tag(self, tag: str) -> ThingArray:
        return self.filter({"transient:tag": tag})

    def with_facet(self, facet: str) -> ThingArray:
        return self.filter({"meta:iot:facet": _ld.expand(facet, "iot-facet:")})
