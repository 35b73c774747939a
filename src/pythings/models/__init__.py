"""Attribute schemas and thing models."""

from pythings.models.attribute import (
    ABSENT,
    AttributeFormat,
    AttributeSchema,
    AttributeType,
    Multiplicity,
    make_attribute,
    make_boolean,
    make_integer,
    make_null,
    make_number,
    make_string,
)
from pythings.models.model import ThingModel, model_from_document

__all__ = [
    "ABSENT",
    "AttributeFormat",
    "AttributeSchema",
    "AttributeType",
    "Multiplicity",
    "ThingModel",
    "make_attribute",
    "make_boolean",
    "make_integer",
    "make_null",
    "make_number",
    "make_string",
    "model_from_document",
]
