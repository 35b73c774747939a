"""Attribute schema: the typed description of one thing value.

An :class:`AttributeSchema` says what a value means (``purpose``), what
shapes it may take (``types``, ``formats``, bounds, ``multiplicity``,
``enumeration``) and whether it can be observed and/or commanded.

:meth:`AttributeSchema.validate_value` turns arbitrary incoming data
into a value of that shape. It never raises on data: values that cannot
be coerced come back as :data:`ABSENT`, which callers treat as "leave
this field alone".
"""

from __future__ import annotations

import enum
import logging
import math
import re
from datetime import date, datetime, time
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from pythings import _ld
from pythings._constants import (
    IOT,
    IOT_ACTUATOR,
    IOT_CLEAR_VALUE,
    IOT_ENUMERATION,
    IOT_FORMAT,
    IOT_MAXIMUM,
    IOT_MINIMUM,
    IOT_PURPOSE,
    IOT_READ,
    IOT_SENSOR,
    IOT_TYPE,
    IOT_UNIT,
    IOT_WRITE,
    SCHEMA_DESCRIPTION,
    SCHEMA_NAME,
)
from pythings.exceptions import SchemaError
from pythings.models.formats import FORMATTERS
from pythings.state.policy import format_timestamp

_logger = logging.getLogger(__name__)

_FALSE_STRINGS = frozenset({"", "0", "off", "false", "no"})
_LEADING_NUMBER_RE = re.compile(r"^\s*[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")


class _Absent(enum.Enum):
    ABSENT = "ABSENT"

    def __repr__(self) -> str:
        return "ABSENT"

    def __bool__(self) -> bool:
        return False


ABSENT = _Absent.ABSENT
"""Marker for "no usable value" (distinct from ``None``, the null value)."""


class AttributeType(StrEnum):
    BOOLEAN = "boolean"
    INTEGER = "integer"
    NUMBER = "number"
    STRING = "string"
    NULL = "null"

    @property
    def iri(self) -> str:
        return f"{IOT}type.{self.value}"


class AttributeFormat(StrEnum):
    COLOR = "color"
    DATETIME = "datetime"
    DATE = "date"
    TIME = "time"
    URI = "uri"

    @property
    def iri(self) -> str:
        return f"{IOT}format.{self.value}"


class Multiplicity(StrEnum):
    SCALAR = "scalar"
    LIST = "list"
    SET = "set"

    @property
    def iri(self) -> str | None:
        if self is Multiplicity.SCALAR:
            return None
        return f"{IOT}type.{self.value}"


_FORMAT_ALIASES = {"rgb": "color", "colour": "color", "iri": "uri", "url": "uri"}


def expand_purpose(value: str) -> str:
    """``:on``, ``on`` and ``iot-purpose:on`` all expand to the same IRI."""
    if value.startswith(":"):
        value = "iot-purpose:" + value[1:]
    return _ld.expand(value, "iot-purpose:")


def _local_name(value: str, marker: str) -> str:
    """``https://.../iot#type.boolean`` -> ``boolean`` for marker ``type.``."""
    text = _ld.expand(value, "iot:" + marker)
    if text.startswith(IOT + marker):
        return text[len(IOT + marker):]
    return value


def _is_number(value: Any) -> bool:
    return isinstance(value, int | float) and not isinstance(value, bool)


def _parse_number(text: str) -> float | None:
    match = _LEADING_NUMBER_RE.match(text)
    if match is None:
        return None
    return float(match.group(0))


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _number_text(value: int | float) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


class AttributeSchema(BaseModel):
    """Declarative description of one controllable and/or observable value."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    code: str
    purpose: str | None = None
    types: tuple[AttributeType, ...] = ()
    minimum: int | float | None = None
    maximum: int | float | None = None
    formats: tuple[AttributeFormat, ...] = ()
    multiplicity: Multiplicity = Multiplicity.SCALAR
    readable: bool = True
    writable: bool = True
    enumeration: tuple[Any, ...] | None = None
    unit: str | None = None
    name: str | None = None
    description: str | None = None
    clear_value: bool = False
    properties: dict[str, Any] = Field(default_factory=dict)
    """Extra expanded predicate -> value pairs (semantic vocabulary)."""

    @field_validator("code", mode="before")
    @classmethod
    def _check_code(cls, value: Any) -> str:
        if not isinstance(value, str):
            raise SchemaError(f"attribute code must be a string, not: {value!r}", field="code")
        code = value.rsplit("#", 1)[-1].lstrip(":")
        if not code:
            raise SchemaError("attribute code must not be empty", field="code")
        return code

    @field_validator("purpose", mode="before")
    @classmethod
    def _check_purpose(cls, value: Any) -> str | None:
        if value is None:
            return None
        if not isinstance(value, str):
            raise SchemaError(f"purpose must be a string, not: {value!r}", field="purpose")
        expanded = expand_purpose(value)
        if not _ld.is_absolute_iri(expanded):
            raise SchemaError(f"purpose must expand to an IRI, not: {value!r}", field="purpose")
        return expanded

    @field_validator("unit", mode="before")
    @classmethod
    def _check_unit(cls, value: Any) -> str | None:
        if value is None:
            return None
        expanded = _ld.expand(value, "iot-unit:") if isinstance(value, str) else value
        if not _ld.is_absolute_iri(expanded):
            raise SchemaError(f"unit must expand to an IRI, not: {value!r}", field="unit")
        return expanded

    @field_validator("types", mode="before")
    @classmethod
    def _check_types(cls, value: Any) -> tuple[AttributeType, ...]:
        if value is None:
            return ()
        if isinstance(value, str | AttributeType):
            value = [value]
        result: list[AttributeType] = []
        for item in value:
            name = _local_name(str(item), "type.")
            try:
                attribute_type = AttributeType(name)
            except ValueError as exc:
                raise SchemaError(f"unknown attribute type: {item!r}", field="types") from exc
            if attribute_type not in result:
                result.append(attribute_type)
        return tuple(result)

    @field_validator("formats", mode="before")
    @classmethod
    def _check_formats(cls, value: Any) -> tuple[AttributeFormat, ...]:
        if value is None:
            return ()
        if isinstance(value, str | AttributeFormat):
            value = [value]
        result: list[AttributeFormat] = []
        for item in value:
            name = _local_name(str(item), "format.")
            name = _FORMAT_ALIASES.get(name, name)
            try:
                attribute_format = AttributeFormat(name)
            except ValueError as exc:
                raise SchemaError(f"unknown attribute format: {item!r}", field="formats") from exc
            if attribute_format not in result:
                result.append(attribute_format)
        return tuple(result)

    @field_validator("minimum", "maximum", mode="before")
    @classmethod
    def _check_bound(cls, value: Any) -> int | float | None:
        if value is None:
            return None
        if not _is_number(value):
            raise SchemaError(f"bounds must be numbers, not: {value!r}", field="bounds")
        return value

    @field_validator("enumeration", mode="before")
    @classmethod
    def _check_enumeration(cls, value: Any) -> tuple[Any, ...] | None:
        if value is None:
            return None
        if isinstance(value, str) or not hasattr(value, "__iter__"):
            raise SchemaError(f"enumeration must be a sequence, not: {value!r}", field="enumeration")
        return tuple(value)

    @field_validator("properties", mode="before")
    @classmethod
    def _check_properties(cls, value: Any) -> dict[str, Any]:
        if value is None:
            return {}
        if not isinstance(value, dict):
            raise SchemaError("properties must be a mapping", field="properties")
        expanded: dict[str, Any] = {}
        for key, item in value.items():
            full = _ld.expand(key) if isinstance(key, str) else key
            if not _ld.is_absolute_iri(full):
                raise SchemaError(f"property key must expand to an IRI, not: {key!r}", field="properties")
            expanded[full] = item
        return expanded

    @model_validator(mode="after")
    def _check_bounds_order(self) -> AttributeSchema:
        if self.minimum is not None and self.maximum is not None and self.minimum > self.maximum:
            raise SchemaError(f"minimum {self.minimum} exceeds maximum {self.maximum}", field="bounds")
        return self

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def is_type_null(self) -> bool:
        return AttributeType.NULL in self.types

    def is_sensor(self) -> bool:
        return self.readable

    def is_actuator(self) -> bool:
        return self.writable

    def vocabulary(self) -> dict[str, Any]:
        """The attribute's declared properties, keyed by expanded predicate.

        This is what semantic find keys are matched against.
        """
        d: dict[str, Any] = {}
        if self.purpose is not None:
            d[IOT_PURPOSE] = self.purpose
        type_iris = [t.iri for t in self.types]
        if self.multiplicity.iri is not None:
            type_iris.append(self.multiplicity.iri)
        if type_iris:
            d[IOT_TYPE] = type_iris if len(type_iris) > 1 else type_iris[0]
        if self.formats:
            format_iris = [f.iri for f in self.formats]
            d[IOT_FORMAT] = format_iris if len(format_iris) > 1 else format_iris[0]
        if self.unit is not None:
            d[IOT_UNIT] = self.unit
        if self.minimum is not None:
            d[IOT_MINIMUM] = self.minimum
        if self.maximum is not None:
            d[IOT_MAXIMUM] = self.maximum
        if self.enumeration is not None:
            d[IOT_ENUMERATION] = list(self.enumeration)
        d[IOT_READ] = self.readable
        d[IOT_WRITE] = self.writable
        d[IOT_SENSOR] = self.readable
        d[IOT_ACTUATOR] = self.writable
        if self.clear_value:
            d[IOT_CLEAR_VALUE] = True
        if self.name is not None:
            d[SCHEMA_NAME] = self.name
        if self.description is not None:
            d[SCHEMA_DESCRIPTION] = self.description
        d.update(self.properties)
        return d

    def to_document(self) -> dict[str, Any]:
        """Compact JSON-LD style description of this attribute."""
        d: dict[str, Any] = {"@type": "iot:Attribute", "@id": f"#{self.code}"}
        d.update(_ld.compact(self.vocabulary()))
        return d

    # ------------------------------------------------------------------
    # Validation / coercion
    # ------------------------------------------------------------------

    def validate_value(self, value: Any) -> Any:
        """Coerce *value* to this attribute's shape, or return :data:`ABSENT`."""
        if self.multiplicity is Multiplicity.SCALAR:
            if isinstance(value, list | tuple):
                value = value[0] if value else None
            return self._validate_one(value)

        if value is ABSENT or value is None:
            items: list[Any] = []
        elif isinstance(value, list | tuple | set | frozenset):
            items = list(value)
        else:
            items = [value]

        result: list[Any] = []
        for item in items:
            coerced = self._validate_one(item)
            if coerced is ABSENT:
                continue
            if self.multiplicity is Multiplicity.SET and coerced in result:
                continue
            result.append(coerced)
        return result

    def _validate_one(self, value: Any) -> Any:
        if isinstance(value, datetime):
            value = format_timestamp(value)
        elif isinstance(value, date | time):
            value = value.isoformat()

        value = self._convert(value)
        if value is ABSENT:
            return ABSENT

        if _is_number(value):
            value = self._bounded(value)

        if isinstance(value, str) and self.formats:
            formatted = self._format(value)
            if formatted is None:
                _logger.warning(
                    "Format coercion failed code=%s value=%r formats=%s",
                    self.code,
                    value,
                    [f.value for f in self.formats],
                )
                return ABSENT
            value = formatted

        if self.enumeration is not None and value is not None and not self._in_enumeration(value):
            _logger.debug("Value %r not in enumeration of %s", value, self.code)
            return ABSENT

        return value

    def _in_enumeration(self, value: Any) -> bool:
        assert self.enumeration is not None
        if value in self.enumeration:
            return True
        return _ld.compact(value) in self.enumeration or _ld.expand(value) in self.enumeration

    def _convert(self, value: Any) -> Any:
        if value is ABSENT:
            return self._default()
        if isinstance(value, bool):
            return self._convert_boolean(value)
        if isinstance(value, int):
            return self._convert_integer(value)
        if isinstance(value, float):
            return self._convert_number(value)
        if isinstance(value, str):
            return self._convert_string(value)
        return value

    def _default(self) -> Any:
        types = self.types
        if AttributeType.BOOLEAN in types:
            return False
        if AttributeType.INTEGER in types:
            return 0
        if AttributeType.NUMBER in types:
            return 0.0
        if AttributeType.STRING in types:
            return ""
        return None

    def _convert_boolean(self, value: bool) -> Any:
        # Booleans map onto the ends of a ranged numeric attribute.
        types = self.types
        minimum = self.minimum or 0
        maximum = self.maximum or 1
        if AttributeType.BOOLEAN in types:
            return value
        if AttributeType.INTEGER in types or AttributeType.NUMBER in types:
            return maximum if value else minimum
        if AttributeType.STRING in types:
            return "1" if value else "0"
        return value

    def _convert_integer(self, value: int) -> Any:
        types = self.types
        if AttributeType.BOOLEAN in types:
            return value != 0
        if AttributeType.INTEGER in types or AttributeType.NUMBER in types:
            return value
        if AttributeType.STRING in types:
            return str(value)
        return value

    def _convert_number(self, value: float) -> Any:
        types = self.types
        if AttributeType.BOOLEAN in types:
            return value != 0
        if AttributeType.NUMBER in types:
            return value
        if AttributeType.INTEGER in types:
            return _round_half_up(value)
        if AttributeType.STRING in types:
            return _number_text(value)
        return value

    def _convert_string(self, value: str) -> Any:
        types = self.types
        if AttributeType.STRING in types:
            return value
        if AttributeType.BOOLEAN in types:
            return value.lower() not in _FALSE_STRINGS
        if AttributeType.INTEGER in types:
            parsed = _parse_number(value)
            return ABSENT if parsed is None else _round_half_up(parsed)
        if AttributeType.NUMBER in types:
            parsed = _parse_number(value)
            return ABSENT if parsed is None else parsed
        return value

    def _bounded(self, value: int | float) -> int | float:
        if self.minimum is not None and value < self.minimum:
            value = self.minimum
        if self.maximum is not None and value > self.maximum:
            value = self.maximum
        return value

    def _format(self, value: str) -> str | None:
        for attribute_format in self.formats:
            formatted = FORMATTERS[attribute_format.value](value)
            if formatted is not None:
                return formatted
        return None

    def values_equal(self, old: Any, new: Any) -> bool:
        """Schema-aware equality used to detect changes.

        Null-typed attributes are momentary (e.g. "press button") and never
        compare equal, so every write to them counts as a change.
        """
        if self.is_type_null():
            return False
        return type(old) is type(new) and old == new


# ----------------------------------------------------------------------
# Factories
# ----------------------------------------------------------------------


def _default_code(purpose: str) -> str:
    local = _ld.compact(expand_purpose(purpose))
    local = local.rsplit(":", 1)[-1]
    return local.rsplit(".", 1)[-1]


def make_attribute(purpose: str, code: str | None = None, **fields: Any) -> AttributeSchema:
    """Make an attribute whose code defaults to the purpose's last segment.

    >>> make_attribute("iot-purpose:sensor.temperature", types=["number"]).code
    'temperature'
    """
    if not isinstance(purpose, str):
        raise SchemaError(f"purpose must be a string, not: {purpose!r}", field="purpose")
    if code is None:
        code = _default_code(purpose)
    fields.setdefault("name", code.lstrip(":") if isinstance(code, str) else None)
    return AttributeSchema(code=code, purpose=purpose, **fields)


def make_boolean(purpose: str, code: str | None = None, **fields: Any) -> AttributeSchema:
    return make_attribute(purpose, code, types=[AttributeType.BOOLEAN], **fields)


def make_integer(purpose: str, code: str | None = None, **fields: Any) -> AttributeSchema:
    return make_attribute(purpose, code, types=[AttributeType.INTEGER], **fields)


def make_number(purpose: str, code: str | None = None, **fields: Any) -> AttributeSchema:
    return make_attribute(purpose, code, types=[AttributeType.NUMBER], **fields)


def make_string(purpose: str, code: str | None = None, **fields: Any) -> AttributeSchema:
    return make_attribute(purpose, code, types=[AttributeType.STRING], **fields)


def make_null(purpose: str, code: str | None = None, **fields: Any) -> AttributeSchema:
    """Momentary attribute with no value (buttons, one-shot commands)."""
    return make_attribute(purpose, code, types=[AttributeType.NULL], **fields)
