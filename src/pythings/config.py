"""Library configuration for pythings."""

from __future__ import annotations

import dataclasses
import os
from typing import Any

from pythings.exceptions import ThingsConfigError


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


@dataclasses.dataclass(frozen=True)
class ThingsConfig:
    """Library configuration.

    Parameters
    ----------
    runner_id : str or None
        Stable identifier of this machine/runner. When set, bound things
        get canonical ids derived from it (see :mod:`pythings._ids`).
    mqtt_host : str or None
        Default broker host for :class:`pythings.bridge.mqtt.MqttBridge`.
    mqtt_port : int
        Default broker port.
    mqtt_keepalive : int
        MQTT keepalive in seconds.
    mqtt_tls : bool
        Enable TLS on MQTT connections.
    http_timeout : float
        Total request timeout in seconds for
        :class:`pythings.bridge.http.HttpJsonBridge`.
    http_poll_interval : float
        Seconds between HTTP pulls. ``0`` disables polling.
    validate_pulls : bool
        Validate/coerce values reported by bridges before they enter the
        input band.
    """

    runner_id: str | None = None
    mqtt_host: str | None = None
    mqtt_port: int = 1883
    mqtt_keepalive: int = 60
    mqtt_tls: bool = False
    http_timeout: float = 10.0
    http_poll_interval: float = 0.0
    validate_pulls: bool = False

    def __post_init__(self) -> None:
        if not 0 < self.mqtt_port < 65536:
            raise ThingsConfigError(f"mqtt_port out of range: {self.mqtt_port}")
        if self.http_timeout <= 0:
            raise ThingsConfigError(f"http_timeout must be positive, got {self.http_timeout}")
        if self.http_poll_interval < 0:
            raise ThingsConfigError(f"http_poll_interval must not be negative, got {self.http_poll_interval}")

    @classmethod
    def from_env(cls, **overrides: Any) -> ThingsConfig:
        """Create configuration from ``THINGS_*`` environment variables.

        Explicit keyword arguments override environment values.

        Parameters
        ----------
        **overrides
            Explicit field values that take precedence over env vars.

        Returns
        -------
        ThingsConfig
            Populated configuration.
        """
        env = os.environ
        config_kwargs: dict[str, Any] = {}

        _ENV_STR_MAP = {
            "THINGS_RUNNER_ID": "runner_id",
            "THINGS_MQTT_HOST": "mqtt_host",
        }
        for env_key, field_name in _ENV_STR_MAP.items():
            val = env.get(env_key)
            if val is not None:
                config_kwargs[field_name] = val

        try:
            port_env = env.get("THINGS_MQTT_PORT")
            if port_env is not None:
                config_kwargs["mqtt_port"] = int(port_env)

            keepalive_env = env.get("THINGS_MQTT_KEEPALIVE")
            if keepalive_env is not None:
                config_kwargs["mqtt_keepalive"] = int(keepalive_env)

            timeout_env = env.get("THINGS_HTTP_TIMEOUT")
            if timeout_env is not None:
                config_kwargs["http_timeout"] = float(timeout_env)

            poll_env = env.get("THINGS_HTTP_POLL_INTERVAL")
            if poll_env is not None:
                config_kwargs["http_poll_interval"] = float(poll_env)
        except ValueError as exc:
            raise ThingsConfigError(f"Invalid numeric THINGS_* variable: {exc}") from exc

        config_kwargs["mqtt_tls"] = _env_bool(env.get("THINGS_MQTT_TLS"), False)
        config_kwargs["validate_pulls"] = _env_bool(env.get("THINGS_VALIDATE_PULLS"), False)

        config_kwargs.update(overrides)

        return cls(**config_kwargs)
