"""In-memory keystore.

The core only ever reads one value from it: the runner key used to build
canonical thing ids. Paths are slash-separated and normalized, so
``homestar/runner`` and ``/homestar/runner/`` name the same node.
"""

from __future__ import annotations

import copy
from typing import Any

from pythings._constants import RUNNER_KEY_PATH
from pythings.config import ThingsConfig


def _normalize_key(key: str, root: str = "/") -> list[str]:
    if not key.startswith("/"):
        key = root.rstrip("/") + "/" + key
    return [part for part in key.split("/") if part]


class Keystore:
    def __init__(self, data: dict[str, Any] | None = None, *, root: str = "/") -> None:
        self._root = root
        self._d: dict[str, Any] = copy.deepcopy(data) if data else {}

    @classmethod
    def from_config(cls, config: ThingsConfig) -> Keystore:
        keystore = cls()
        if config.runner_id:
            keystore.set(RUNNER_KEY_PATH, config.runner_id)
        return keystore

    def get(self, key: str, default: Any = None) -> Any:
        node: Any = self._d
        for part in _normalize_key(key, self._root):
            if not isinstance(node, dict) or part not in node:
                return default
            node = node[part]
        return copy.deepcopy(node)

    def set(self, key: str, value: Any) -> None:
        parts = _normalize_key(key, self._root)
        if not parts:
            raise ValueError("keystore key must not be empty")
        node = self._d
        for part in parts[:-1]:
            child = node.get(part)
            if not isinstance(child, dict):
                child = {}
                node[part] = child
            node = child
        node[parts[-1]] = copy.deepcopy(value)
