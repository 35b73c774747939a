"""Custom exception hierarchy for pythings.

Only programmer errors are raised. Data faults (unknown attribute codes,
unparsable values, bridge failures, timestamp conflicts) are logged and
absorbed by the core instead.
"""

from __future__ import annotations


class ThingsError(Exception):
    """Base exception for all pythings errors."""


class ThingsConfigError(ThingsError):
    """Invalid or missing configuration."""


class SchemaError(ThingsError):
    """Malformed attribute or model declaration."""

    def __init__(self, message: str, *, field: str = "") -> None:
        self.field = field
        super().__init__(message)


class InvalidKeyError(ThingsError):
    """A find key that is neither a code, a purpose IRI nor a match mapping."""


class ThingsArgumentError(ThingsError, TypeError):
    """Structurally invalid argument passed to a public operation.

    Covers non-mapping ``update`` payloads, unknown band names and
    non-Thing objects pushed onto a collection.
    """


class BridgeError(ThingsError):
    """Bridge-level failure (transport, malformed payload).

    Bridges hand these to the ``done`` callback of a push; the core logs
    them and never lets them escape to the caller.
    """

    def __init__(self, message: str, *, bridge: str = "") -> None:
        self.bridge = bridge
        super().__init__(message)
