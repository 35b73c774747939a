"""Canonical identifiers and identifier case helpers."""

from __future__ import annotations

import hashlib
import re
from urllib.parse import quote

_PARTS_RE = re.compile(r"[A-Z]?[a-z0-9]+|[A-Z]+(?![a-z])")


def md5_hex(value: str) -> str:
    """MD5 of a UTF-8 string as lowercase hex."""
    return hashlib.md5(value.encode("utf-8")).hexdigest()


def short_hash(value: str) -> str:
    """First 8 hex characters of the MD5 of *value*."""
    return md5_hex(value)[:8]


def _safe(component: str) -> str:
    return quote(component, safe="").replace("%", "$")


def thing_urn(*components: str) -> str:
    """Build ``urn:iotdb:thing:<c1>:<c2>...`` with URL-safe components."""
    return ":".join(["urn", "iotdb", "thing", *(_safe(c) for c in components)])


def canonical_thing_id(bridge_thing_id: str, model_code: str, runner_id: str | None) -> str:
    """Thing id assigned when a bridge binds.

    With a runner id the result is stable per runner and independent of
    how the bridge spells its own id; without one the bridge id and model
    code are joined.
    """
    if runner_id:
        runner = runner_id.rsplit(":", 1)[-1]
        return thing_urn(runner, short_hash(f"{bridge_thing_id}:{model_code}"))
    return f"{bridge_thing_id}:{model_code}"


def _identifier_parts(identifier: str) -> list[str]:
    return [part.lower() for part in _PARTS_RE.findall(identifier.replace("-", " ").replace("_", " "))]


def to_dash_case(identifier: str) -> str:
    """``HueLight`` / ``hue_light`` -> ``hue-light``."""
    return "-".join(_identifier_parts(identifier))


def to_underscore_case(identifier: str) -> str:
    return "_".join(_identifier_parts(identifier))


def to_camel_case(identifier: str) -> str:
    """``hue-light`` -> ``HueLight``."""
    return "".join(part.capitalize() for part in _identifier_parts(identifier))
