"""Compact/expanded IRI helpers.

Semantic keys travel in two shapes: compact (``iot:purpose``,
``iot-purpose:on``) and expanded (``https://iotdb.org/pub/iot#purpose``).
Stored data is always expanded; these helpers convert at the edges.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from typing import Any

from pythings._constants import NAMESPACES

_ABSOLUTE_RE = re.compile(r"^(?:[A-Za-z][A-Za-z0-9+.\-]*://\S+|urn:\S+)$")


def is_absolute_iri(value: Any) -> bool:
    """Return ``True`` for ``scheme://...`` and ``urn:...`` strings."""
    return isinstance(value, str) and bool(_ABSOLUTE_RE.match(value))


def expand(value: Any, default_prefix: str | None = None) -> Any:
    """Expand compact IRIs in *value*.

    Strings, lists and mapping keys are expanded; anything else is
    returned unchanged. Strings without a colon are prefixed with
    *default_prefix* first when one is given.
    """
    if isinstance(value, str):
        return _expand_string(value, default_prefix)
    if isinstance(value, list | tuple):
        return [expand(item, default_prefix) for item in value]
    if isinstance(value, Mapping):
        return {_expand_string(key, None) if isinstance(key, str) else key: item for key, item in value.items()}
    return value


def _expand_string(value: str, default_prefix: str | None) -> str:
    if is_absolute_iri(value) or value.startswith("@"):
        return value
    if ":" not in value:
        if default_prefix is None:
            return value
        value = default_prefix + value
    prefix, _, rest = value.partition(":")
    namespace = NAMESPACES.get(prefix)
    if namespace is None:
        return value
    return namespace + rest


def compact(value: Any) -> Any:
    """Inverse of :func:`expand` for the known namespaces."""
    if isinstance(value, str):
        for prefix, namespace in NAMESPACES.items():
            if value.startswith(namespace) and len(value) > len(namespace):
                return f"{prefix}:{value[len(namespace):]}"
        return value
    if isinstance(value, list | tuple):
        return [compact(item) for item in value]
    if isinstance(value, Mapping):
        return {compact(key): compact(item) for key, item in value.items()}
    return value


def as_list(d: Mapping[str, Any], key: str, otherwise: Any = None) -> Any:
    """Return ``d[key]`` as a list, or *otherwise* when missing."""
    value = d.get(key)
    if value is None:
        return otherwise
    if isinstance(value, list | tuple | set | frozenset):
        return list(value)
    return [value]


def first(d: Mapping[str, Any], key: str, otherwise: Any = None) -> Any:
    """Return the first value stored under *key*, or *otherwise*."""
    values = as_list(d, key)
    if not values:
        return otherwise
    return values[0]


def intersects(values: Iterable[Any], others: Iterable[Any]) -> bool:
    wanted = list(others)
    return any(value in wanted for value in values)
