"""Find keys: how callers name an attribute.

A key is decided once, at the call boundary, into one of two shapes:

- :class:`ByCode` names an attribute by its code (``"on"``);
- :class:`BySemanticMatch` carries expanded predicate/value constraints
  (``{"iot:purpose": "iot-purpose:on"}``). Purpose strings such as
  ``":on"``, ``"iot-purpose:on"`` or the full IRI become a match on
  ``iot:purpose``.

:func:`resolve` then picks the attribute for a given access mode.
"""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Iterable, Mapping
from enum import StrEnum
from typing import Any

from pythings import _ld
from pythings._constants import IOT_PURPOSE, SCHEMA_NAME
from pythings.exceptions import InvalidKeyError
from pythings.models.attribute import AttributeSchema, expand_purpose

_logger = logging.getLogger(__name__)


class FindMode(StrEnum):
    GET = "get"
    SET = "set"
    ON = "on"


@dataclasses.dataclass(frozen=True)
class ByCode:
    code: str


@dataclasses.dataclass(frozen=True)
class BySemanticMatch:
    match: Mapping[str, Any]
    """Expanded predicate -> required value (or list of required values)."""

    @classmethod
    def purpose(cls, purpose: str) -> BySemanticMatch:
        return cls({IOT_PURPOSE: expand_purpose(purpose)})


FindKey = ByCode | BySemanticMatch


def _expand_match_value(value: Any) -> Any:
    if isinstance(value, str):
        return _ld.expand(value)
    if isinstance(value, list | tuple):
        return [_expand_match_value(item) for item in value]
    return value


def parse_find_key(key: Any) -> FindKey:
    """Turn a caller-supplied key into a :data:`FindKey`.

    Raises
    ------
    InvalidKeyError
        If *key* is neither a non-empty string nor a mapping with string keys.
    """
    if isinstance(key, ByCode | BySemanticMatch):
        return key

    if isinstance(key, str):
        if _ld.is_absolute_iri(key):
            return BySemanticMatch({IOT_PURPOSE: key})
        last = key.strip("/").rsplit("/", 1)[-1]
        if not last:
            raise InvalidKeyError(f"find key must not be empty: {key!r}")
        if last.startswith(":"):
            return BySemanticMatch.purpose("iot-purpose:" + last[1:])
        if ":" in last:
            return BySemanticMatch({IOT_PURPOSE: _ld.expand(last)})
        return ByCode(last)

    if isinstance(key, Mapping):
        match: dict[str, Any] = {}
        for predicate, value in key.items():
            if not isinstance(predicate, str):
                raise InvalidKeyError(f"match keys must be strings, not: {predicate!r}")
            match[_ld.expand(predicate)] = _expand_match_value(value)
        return BySemanticMatch(match)

    raise InvalidKeyError(f"find key must be a string or a mapping, not: {key!r}")


def _satisfies(declared: Any, wanted: Any) -> bool:
    if isinstance(declared, list):
        wanted_values = wanted if isinstance(wanted, list) else [wanted]
        return all(value in declared for value in wanted_values)
    if isinstance(declared, bool) or isinstance(wanted, bool):
        return type(declared) is type(wanted) and declared == wanted
    return declared == wanted


def semantic_matches(
    key: BySemanticMatch,
    attributes: Iterable[AttributeSchema],
    vocabulary: frozenset[str],
) -> list[AttributeSchema]:
    """Attributes satisfying every constraint that is in *vocabulary*."""
    constraints = {
        predicate: value
        for predicate, value in key.match.items()
        if not predicate.startswith("@") and predicate != SCHEMA_NAME and predicate in vocabulary
    }

    matches = []
    for attribute in attributes:
        declared = attribute.vocabulary()
        if all(
            predicate in declared and _satisfies(declared[predicate], value)
            for predicate, value in constraints.items()
        ):
            matches.append(attribute)
    return matches


def choose(matches: list[AttributeSchema], mode: FindMode) -> AttributeSchema | None:
    """Disambiguate several matches by access mode."""
    if not matches:
        return None
    if len(matches) == 1:
        return matches[0]

    sensor = next((a for a in matches if a.is_sensor()), None)
    actuator = next((a for a in matches if a.is_actuator()), None)
    if mode is FindMode.SET and actuator is not None:
        return actuator
    if mode in (FindMode.GET, FindMode.ON) and sensor is not None:
        return sensor
    return matches[0]


def resolve(
    key: FindKey,
    attributes: Iterable[AttributeSchema],
    mode: FindMode = FindMode.GET,
    *,
    vocabulary: frozenset[str] | None = None,
) -> AttributeSchema | None:
    """Resolve *key* against *attributes*; ``None`` when nothing matches."""
    attributes = list(attributes)

    if isinstance(key, ByCode):
        for attribute in attributes:
            if attribute.code == key.code:
                return attribute
        return None

    if vocabulary is None:
        keys: set[str] = set()
        for attribute in attributes:
            keys.update(attribute.vocabulary())
        vocabulary = frozenset(keys)

    return choose(semantic_matches(key, attributes, vocabulary), FindMode(mode))
