"""Redaction for DEBUG payload logs.

Bridge ``initd`` dictionaries, pushed values and metadata are logged at
DEBUG. Broker passwords, API tokens and auth headers can ride along in
any of them, keyed by plain names (``password``), header names
(``Authorization``) or IRIs (``...#api-token``).
"""

from __future__ import annotations

import re
from collections.abc import Mapping, Sequence
from typing import Any

REDACTED = "<redacted>"

_MAX_DEPTH = 20
_SEPARATORS_RE = re.compile(r"[-_.\s]")

# Matched against the key's local name with separators removed.
_SECRET_NAMES = frozenset({"authorization", "cookie", "setcookie", "psk"})
_SECRET_SUFFIXES = ("password", "passwd", "secret", "token", "apikey", "privatekey", "credentials")


def is_sensitive_key(key: Any) -> bool:
    """Whether the value stored under *key* must stay out of logs.

    ``api_key``, ``x-auth-token`` and ``iot:broker.password`` are
    sensitive; a bare ``key`` (metadata and keystore paths use it) is not.
    """
    local = str(key).lower().rsplit("#", 1)[-1].rsplit(":", 1)[-1]
    name = _SEPARATORS_RE.sub("", local)
    return name in _SECRET_NAMES or name.endswith(_SECRET_SUFFIXES)


def redact_for_log(value: Any, *, max_string: int = 512, _depth: int = 0) -> Any:
    """Copy *value* for logging: secrets masked, long strings cut, bytes summarised."""
    if _depth > _MAX_DEPTH:
        return "<max-depth>"
    if value is None or isinstance(value, (bool, int, float)):
        return value
    if isinstance(value, str):
        return value if len(value) <= max_string else f"{value[:max_string]}…<truncated>"
    if isinstance(value, (bytes, bytearray)):
        return f"<bytes:{len(value)}b>"

    def inner(item: Any) -> Any:
        return redact_for_log(item, max_string=max_string, _depth=_depth + 1)

    if isinstance(value, Mapping):
        return {str(k): REDACTED if is_sensitive_key(k) else inner(v) for k, v in value.items()}
    if isinstance(value, Sequence):
        return [inner(item) for item in value]
    return repr(value)
