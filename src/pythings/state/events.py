"""Band and event names.

Every thing owns the same set of bands. Listeners subscribe by event
name through :meth:`pythings.thing.Thing.on` and
:meth:`pythings.collection.ThingArray.on`.
"""

from __future__ import annotations

from enum import StrEnum


class Band(StrEnum):
    INPUT = "istate"
    OUTPUT = "ostate"
    META = "meta"
    CONNECTION = "connection"
    MODEL = "model"


class ThingEvent(StrEnum):
    STATE = "state"
    INPUT = "istate"
    OUTPUT = "ostate"
    META = "meta"
    CONNECTION = "connection"


class CollectionEvent(StrEnum):
    THING = "thing"
    ADDED = "added"
    REMOVED = "removed"
    CHANGED = "changed"

