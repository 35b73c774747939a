"""Deterministic timestamp merge policy.

This is the single conflict-resolution rule in the library. The input,
output and metadata bands all call :func:`should_apply` when a caller
asks for ``check_timestamp``.

Timestamps are ISO-8601 UTC strings in the ``YYYY-MM-DDTHH:MM:SS.mmmZ``
shape, so plain string comparison orders them.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime, timedelta

EPOCH = "1970-01-01T00:00:00.000Z"


def _utcnow() -> datetime:
    return datetime.now(UTC)


def format_timestamp(value: datetime) -> str:
    """Render *value* as a millisecond-precision UTC ISO string."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    value = value.astimezone(UTC)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


def make_timestamp(clock: Callable[[], datetime] = _utcnow) -> str:
    """Current time as a timestamp string."""
    return format_timestamp(clock())


def advance(timestamp: str | None, clock: Callable[[], datetime] = _utcnow) -> str:
    """Return a timestamp strictly later than *timestamp*.

    Used when the core itself changes a band (e.g. clearing the output
    band) so that the change sorts after whatever caused it.
    """
    now = make_timestamp(clock)
    if timestamp is None or now > timestamp:
        return now
    try:
        parsed = datetime.fromisoformat(timestamp.replace("Z", "+00:00"))
    except ValueError:
        return now
    return format_timestamp(parsed + timedelta(milliseconds=1))


def should_apply(stored: str | None, incoming: str | None) -> bool:
    """Decide whether an incoming timestamped update wins over stored state.

    Policy:
    - nothing to compare (both missing): apply
    - only the incoming update carries a timestamp: apply
    - only the stored state carries a timestamp: reject
    - both present: apply when ``incoming >= stored`` (ties go to the newcomer)
    """
    if stored is None:
        return True
    if incoming is None:
        return False
    return incoming >= stored
