"""Bridges: the boundary between things and concrete devices."""

from pythings.bridge.base import Binding, Bridge, PushDone
from pythings.bridge.wrapper import BridgeWrapper

__all__ = ["Binding", "Bridge", "BridgeWrapper", "PushDone"]
