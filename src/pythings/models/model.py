"""Thing models: an ordered, immutable set of attribute schemas.

A :class:`ThingModel` is the template a :class:`pythings.thing.Thing` is
made from. Models are built in code (``ThingModel(code=..., attributes=[...])``)
or from a flattened, expanded semantic document with
:func:`model_from_document`.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any
from urllib.parse import urlsplit

from pydantic import BaseModel, ConfigDict, Field, field_validator

from pythings import _ld
from pythings._constants import (
    IOT_ACTUATOR,
    IOT_ATTRIBUTE,
    IOT_ATTRIBUTE_TYPE,
    IOT_CLEAR_VALUE,
    IOT_ENUMERATION,
    IOT_FACET,
    IOT_FORMAT,
    IOT_MAXIMUM,
    IOT_MINIMUM,
    IOT_MODEL,
    IOT_PURPOSE,
    IOT_READ,
    IOT_SENSOR,
    IOT_TYPE,
    IOT_UNIT,
    IOT_WRITE,
    SCHEMA_DESCRIPTION,
    SCHEMA_NAME,
)
from pythings._ids import to_dash_case
from pythings.exceptions import SchemaError
from pythings.models.attribute import AttributeSchema, Multiplicity

if TYPE_CHECKING:
    from pythings.thing import Thing

_logger = logging.getLogger(__name__)


class ThingModel(BaseModel):
    """Immutable description of a kind of thing."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    code: str
    attributes: tuple[AttributeSchema, ...] = ()
    name: str | None = None
    description: str | None = None
    facets: tuple[str, ...] = ()
    properties: dict[str, Any] = Field(default_factory=dict)

    @field_validator("code", mode="before")
    @classmethod
    def _check_code(cls, value: Any) -> str:
        if not isinstance(value, str) or not value.strip():
            raise SchemaError(f"model code must be a non-empty string, not: {value!r}", field="code")
        return to_dash_case(value) or value

    @field_validator("attributes")
    @classmethod
    def _check_unique_codes(cls, value: tuple[AttributeSchema, ...]) -> tuple[AttributeSchema, ...]:
        seen: set[str] = set()
        for attribute in value:
            if attribute.code in seen:
                raise SchemaError(f"duplicate attribute code: {attribute.code}", field="attributes")
            seen.add(attribute.code)
        return value

    @field_validator("facets", mode="before")
    @classmethod
    def _expand_facets(cls, value: Any) -> tuple[str, ...]:
        if value is None:
            return ()
        if isinstance(value, str):
            value = [value]
        return tuple(_ld.expand(facet, "iot-facet:") for facet in value)

    @field_validator("properties", mode="before")
    @classmethod
    def _expand_properties(cls, value: Any) -> dict[str, Any]:
        if value is None:
            return {}
        if not isinstance(value, Mapping):
            raise SchemaError("model properties must be a mapping", field="properties")
        return _ld.expand(value)

    def attribute(self, code: str) -> AttributeSchema | None:
        for attribute in self.attributes:
            if attribute.code == code:
                return attribute
        return None

    def first(self, key: str, otherwise: Any = None) -> Any:
        """First value of a model-level property (compact or expanded key)."""
        return _ld.first(self.properties, _ld.expand(key), otherwise)

    def as_list(self, key: str, otherwise: Any = None) -> Any:
        return _ld.as_list(self.properties, _ld.expand(key), otherwise)

    def vocabulary(self) -> frozenset[str]:
        """Every expanded predicate declared by at least one attribute."""
        keys: set[str] = set()
        for attribute in self.attributes:
            keys.update(attribute.vocabulary())
        return frozenset(keys)

    def to_document(self, *, base: str | None = None) -> dict[str, Any]:
        """Compact JSON-LD style description of the model."""
        base = base or f"file:///{self.code}"
        d: dict[str, Any] = {
            "@context": {"@base": base, "@vocab": base + "#"},
            "@id": "",
            "@type": "iot:Model",
        }
        if self.name:
            d["schema:name"] = self.name
        if self.description:
            d["schema:description"] = self.description
        if self.facets:
            d["iot:facet"] = _ld.compact(list(self.facets))
        d.update(_ld.compact(self.properties))
        if self.attributes:
            d["iot:attribute"] = [attribute.to_document() for attribute in self.attributes]
        return d

    def make(self, **kwargs: Any) -> Thing:
        """Create a new, unbound :class:`~pythings.thing.Thing` of this model."""
        from pythings.thing import Thing

        return Thing(self, **kwargs)


_ATTRIBUTE_FIELD_KEYS = frozenset(
    {
        IOT_PURPOSE,
        IOT_TYPE,
        IOT_FORMAT,
        IOT_UNIT,
        IOT_MINIMUM,
        IOT_MAXIMUM,
        IOT_READ,
        IOT_WRITE,
        IOT_SENSOR,
        IOT_ACTUATOR,
        IOT_ENUMERATION,
        IOT_CLEAR_VALUE,
        SCHEMA_NAME,
        SCHEMA_DESCRIPTION,
    }
)


def _code_from_document(d: Mapping[str, Any]) -> str | None:
    context = d.get("@context")
    candidates = []
    if isinstance(context, Mapping):
        candidates.append(context.get("@base"))
    candidates.append(d.get("@id"))
    for candidate in candidates:
        if not isinstance(candidate, str) or not candidate:
            continue
        path = urlsplit(candidate).path or candidate
        code = path.rstrip("/").rsplit("/", 1)[-1].rsplit(":", 1)[-1].lstrip("#")
        if code:
            return code
    return None


def _attribute_from_document(ad: Mapping[str, Any]) -> AttributeSchema | None:
    ad = _ld.expand(ad)
    if _ld.expand(ad.get("@type")) != IOT_ATTRIBUTE_TYPE:
        return None

    attribute_id = ad.get("@id")
    if not isinstance(attribute_id, str):
        raise SchemaError(f"attribute without @id: {ad!r}", field="code")

    fields: dict[str, Any] = {"code": attribute_id.rsplit("#", 1)[-1]}

    purpose = _ld.first(ad, IOT_PURPOSE)
    if purpose is not None:
        fields["purpose"] = purpose

    types = [_ld.expand(t, "iot:type.") for t in _ld.as_list(ad, IOT_TYPE, [])]
    for multiplicity in (Multiplicity.LIST, Multiplicity.SET):
        if multiplicity.iri in types:
            types.remove(multiplicity.iri)
            fields["multiplicity"] = multiplicity
    fields["types"] = types
    fields["formats"] = _ld.as_list(ad, IOT_FORMAT, [])

    for key, field in ((IOT_MINIMUM, "minimum"), (IOT_MAXIMUM, "maximum"), (IOT_UNIT, "unit")):
        value = _ld.first(ad, key)
        if value is not None:
            fields[field] = value

    readable = _ld.first(ad, IOT_READ, _ld.first(ad, IOT_SENSOR))
    writable = _ld.first(ad, IOT_WRITE, _ld.first(ad, IOT_ACTUATOR))
    if readable is not None:
        fields["readable"] = bool(readable)
    if writable is not None:
        fields["writable"] = bool(writable)

    enumeration = _ld.as_list(ad, IOT_ENUMERATION)
    if enumeration is not None:
        fields["enumeration"] = enumeration
    if _ld.first(ad, IOT_CLEAR_VALUE, False):
        fields["clear_value"] = True

    name = _ld.first(ad, SCHEMA_NAME)
    if name is not None:
        fields["name"] = name
    description = _ld.first(ad, SCHEMA_DESCRIPTION)
    if description is not None:
        fields["description"] = description

    fields["properties"] = {
        key: value
        for key, value in ad.items()
        if not key.startswith("@") and ":" in key and key not in _ATTRIBUTE_FIELD_KEYS
    }
    return AttributeSchema(**fields)


def model_from_document(d: Mapping[str, Any]) -> ThingModel | None:
    """Build a model from a flattened semantic document.

    Returns ``None`` when *d* does not describe an ``iot:Model``. Keys may
    be compact or expanded; attribute entries whose ``@type`` is not
    ``iot:Attribute`` are skipped.
    """
    if not isinstance(d, Mapping):
        raise SchemaError("model document must be a mapping")

    expanded = _ld.expand(d)
    if _ld.expand(expanded.get("@type")) != IOT_MODEL:
        _logger.debug("Document is not an iot:Model type=%r", expanded.get("@type"))
        return None

    code = _code_from_document(expanded)
    if code is None:
        raise SchemaError("model document has neither @context.@base nor @id", field="code")

    attributes = []
    for ad in _ld.as_list(expanded, IOT_ATTRIBUTE, []):
        if not isinstance(ad, Mapping):
            continue
        attribute = _attribute_from_document(ad)
        if attribute is not None:
            attributes.append(attribute)

    properties = {
        key: value
        for key, value in expanded.items()
        if not key.startswith("@")
        and ":" in key
        and key not in (IOT_ATTRIBUTE, SCHEMA_NAME, SCHEMA_DESCRIPTION, IOT_FACET)
        and key.startswith(("http", "urn:"))
    }

    return ThingModel(
        code=code,
        attributes=attributes,
        name=_ld.first(expanded, SCHEMA_NAME),
        description=_ld.first(expanded, SCHEMA_DESCRIPTION),
        facets=_ld.as_list(expanded, IOT_FACET, []),
        properties=properties,
    )


