"""Bridge boundary.

A :class:`Bridge` translates between a thing's abstract state and one
concrete device or service. The core only ever calls the methods defined
here; bridges report back through the two hooks the core installs:

- ``discovered(bridge)`` when :meth:`Bridge.discover` finds an instance;
- ``pulled(values_or_none)`` when the device reports state (a mapping)
  or only a reachability/metadata change (``None``).

A :class:`Binding` ties a bridge class to a :class:`~pythings.models.ThingModel`
plus the per-binding tables (value mapping, static metadata, discovery
filter and option dicts).
"""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Callable, Mapping
from typing import Any

from pythings.models.model import ThingModel

_logger = logging.getLogger(__name__)

PushDone = Callable[[BaseException | None], None]
"""Completion callback handed to :meth:`Bridge.push`; ``None`` means success."""


@dataclasses.dataclass(frozen=True)
class Binding:
    """How a bridge class becomes things of one model.

    ``mapping`` is ``{attribute_code: {value: wire_value}}``. Pushed values
    are translated forward through it, pulled values in reverse.
    ``matchd`` filters discoveries: a discovered bridge is used only when
    its ``meta()`` contains every key/value in ``matchd``.
    """

    bridge: Callable[..., Bridge]
    model: ThingModel
    mapping: Mapping[str, Mapping[Any, Any]] = dataclasses.field(default_factory=dict)
    metad: Mapping[str, Any] = dataclasses.field(default_factory=dict)
    matchd: Mapping[str, Any] = dataclasses.field(default_factory=dict)
    initd: Mapping[str, Any] = dataclasses.field(default_factory=dict)
    discoverd: Mapping[str, Any] = dataclasses.field(default_factory=dict)
    connectd: Mapping[str, Any] = dataclasses.field(default_factory=dict)


class Bridge:
    """Base class for bridges.

    Subclasses override :meth:`discover`, :meth:`push` and usually
    :meth:`connect`, :meth:`pull`, :meth:`meta` and :meth:`reachable`.
    """

    def __init__(self, initd: Mapping[str, Any] | None = None, *, native: Any = None) -> None:
        self.initd: dict[str, Any] = dict(initd or {})
        self.native = native
        self.binding: Binding | None = None
        self.discovered: Callable[[Bridge], None] = self._discovered_unhandled
        self.pulled: Callable[[Mapping[str, Any] | None], None] = self._pulled_unhandled

    def __repr__(self) -> str:
        return f"<{type(self).__name__} native={self.native!r}>"

    def _discovered_unhandled(self, bridge: Bridge) -> None:
        _logger.debug("Discovered %r with no listener installed", bridge)

    def _pulled_unhandled(self, values: Mapping[str, Any] | None) -> None:
        _logger.debug("Pulled values on %r with no thing bound", self)

    def discover(self, discoverd: Mapping[str, Any] | None = None) -> None:
        """Find instances and report each through ``self.discovered``."""
        raise NotImplementedError

    def connect(self, connectd: Mapping[str, Any] | None = None) -> None:
        """Start talking to the instance. Called once, after binding."""

    def disconnect(self) -> float:
        """Stop talking to the instance; return seconds to wait for shutdown."""
        self.native = None
        return 0.0

    def push(self, values: Mapping[str, Any], done: PushDone) -> None:
        """Send *values* to the device and call ``done(error)`` when settled."""
        raise NotImplementedError

    def pull(self) -> None:
        """Ask the device for its state; it arrives through ``self.pulled``."""

    def reachable(self) -> bool:
        return self.native is not None

    def meta(self) -> dict[str, Any]:
        """Flat metadata; ``iot:thing-id`` identifies the instance."""
        return {}

    def ignore(self, bridge: Bridge) -> None:
        """Called for discoveries the binding's ``matchd`` rejected."""
