"""Internal constants shared across the library."""

# ------------------------------------------------------------------
# Namespaces used to expand compact IRIs
# ------------------------------------------------------------------

NAMESPACES: dict[str, str] = {
    "iot": "https://iotdb.org/pub/iot#",
    "iot-purpose": "https://iotdb.org/pub/iot-purpose#",
    "iot-unit": "https://iotdb.org/pub/iot-unit#",
    "iot-facet": "https://iotdb.org/pub/iot-facet#",
    "schema": "http://schema.org/",
}

IOT = NAMESPACES["iot"]
SCHEMA = NAMESPACES["schema"]

IOT_PURPOSE = IOT + "purpose"
IOT_TYPE = IOT + "type"
IOT_FORMAT = IOT + "format"
IOT_UNIT = IOT + "unit"
IOT_MINIMUM = IOT + "minimum"
IOT_MAXIMUM = IOT + "maximum"
IOT_READ = IOT + "read"
IOT_WRITE = IOT + "write"
IOT_SENSOR = IOT + "sensor"
IOT_ACTUATOR = IOT + "actuator"
IOT_ENUMERATION = IOT + "enumeration"
IOT_CLEAR_VALUE = IOT + "clear-value"
IOT_ATTRIBUTE = IOT + "attribute"
IOT_MODEL = IOT + "Model"
IOT_ATTRIBUTE_TYPE = IOT + "Attribute"

IOT_THING_ID = IOT + "thing-id"
IOT_THING = IOT + "thing"
IOT_MODEL_ID = IOT + "model-id"
IOT_REACHABLE = IOT + "reachable"
IOT_FACET = IOT + "facet"
IOT_ZONE = IOT + "zone"

SCHEMA_NAME = SCHEMA + "name"
SCHEMA_DESCRIPTION = SCHEMA + "description"

TIMESTAMP_KEY = "@timestamp"
VALIDATE_KEY = "@__validate"

# ------------------------------------------------------------------
# Keystore
# ------------------------------------------------------------------

RUNNER_KEY_PATH = "/homestar/runner/keys/homestar/key"
