"""pythings - semantically typed things with bridge push/pull and live collections."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("pythings")
except PackageNotFoundError:
    __version__ = "0+local"
from pythings.bridge import Binding, Bridge, BridgeWrapper
from pythings.collection import ThingArray, reconcile
from pythings.config import ThingsConfig
from pythings.exceptions import (
    BridgeError,
    InvalidKeyError,
    SchemaError,
    ThingsArgumentError,
    ThingsConfigError,
    ThingsError,
)
from pythings.keys import ByCode, BySemanticMatch, FindMode, parse_find_key
from pythings.keystore import Keystore
from pythings.models import (
    ABSENT,
    AttributeFormat,
    AttributeSchema,
    AttributeType,
    Multiplicity,
    ThingModel,
    make_attribute,
    make_boolean,
    make_integer,
    make_null,
    make_number,
    make_string,
    model_from_document,
)
from pythings.state.events import Band, CollectionEvent, ThingEvent
from pythings.state.policy import should_apply
from pythings.state.scheduler import Scheduler
from pythings.thing import Thing
from pythings.things import Things

__all__ = [
    "__version__",
    "ABSENT",
    "AttributeFormat",
    "AttributeSchema",
    "AttributeType",
    "Band",
    "Binding",
    "Bridge",
    "BridgeError",
    "BridgeWrapper",
    "ByCode",
    "BySemanticMatch",
    "CollectionEvent",
    "FindMode",
    "InvalidKeyError",
    "Keystore",
    "Multiplicity",
    "Scheduler",
    "SchemaError",
    "Thing",
    "ThingArray",
    "ThingEvent",
    "ThingModel",
    "Things",
    "ThingsArgumentError",
    "ThingsConfig",
    "ThingsConfigError",
    "ThingsError",
    "make_attribute",
    "make_boolean",
    "make_integer",
    "make_null",
    "make_number",
    "make_string",
    "model_from_document",
    "parse_find_key",
    "reconcile",
    "should_apply",
]
