"""Client configuration for pyvtrack."""

from __future__ import annotations

import dataclasses
import os
from typing import Any

from pyvtrack._backoff import ReconnectPolicy
from pyvtrack._constants import (
    CONNECTION_TIMEOUT,
    ENDPOINT_URL,
    REPORT_INTERVAL,
    STATUS_POLL_INTERVAL,
)
from pyvtrack.exceptions import TrackerConfigError


def _env_float(value: str | None, name: str) -> float | None:
    if value is None or not value.strip():
        return None
    try:
        return float(value)
    except ValueError as exc:
        raise TrackerConfigError(f"{name} must be a number, got {value!r}") from exc


def _env_int(value: str | None, name: str) -> int | None:
    if value is None or not value.strip():
        return None
    try:
        return int(value)
    except ValueError as exc:
        raise TrackerConfigError(f"{name} must be an integer, got {value!r}") from exc


@dataclasses.dataclass(frozen=True)
class TrackerConfig:
    """Tracker configuration.

    Parameters
    ----------
    endpoint_url : str
        WebSocket endpoint receiving location reports (``ws://`` or
        ``wss://``).
    report_interval : float
        Seconds between scheduled report cycles.
    status_poll_interval : float
        Seconds between connection-status polls while tracking.
    connection_timeout : float
        Upper bound in seconds for a single connection attempt, and for
        how long a send waits on a connection that is still opening.
    reconnect : ReconnectPolicy
        Backoff applied after an unexpected disconnect.
    ws_heartbeat : float or None
        WebSocket ping interval in seconds. ``None`` disables pings.
    """

    endpoint_url: str = ENDPOINT_URL
    report_interval: float = REPORT_INTERVAL
    status_poll_interval: float = STATUS_POLL_INTERVAL
    connection_timeout: float = CONNECTION_TIMEOUT
    reconnect: ReconnectPolicy = dataclasses.field(default_factory=ReconnectPolicy)
    ws_heartbeat: float | None = None

    def __post_init__(self) -> None:
        if not self.endpoint_url.startswith(("ws://", "wss://")):
            raise TrackerConfigError(f"endpoint_url must be a ws:// or wss:// URL, got {self.endpoint_url!r}")
        for name in ("report_interval", "status_poll_interval", "connection_timeout"):
            if getattr(self, name) <= 0:
                raise TrackerConfigError(f"{name} must be positive")
        if self.ws_heartbeat is not None and self.ws_heartbeat <= 0:
            raise TrackerConfigError("ws_heartbeat must be positive or None")
        if self.reconnect.max_retries < 0:
            raise TrackerConfigError("reconnect.max_retries must not be negative")
        if self.reconnect.min_uptime < 0:
            raise TrackerConfigError("reconnect.min_uptime must not be negative")

    @classmethod
    def from_env(cls, **overrides: Any) -> TrackerConfig:
        """Create configuration from environment variables.

        Reads the optional ``VTRACK_*`` variables. Explicit keyword
        arguments override environment values.

        Parameters
        ----------
        **overrides
            Explicit field values that take precedence over env vars.

        Returns
        -------
        TrackerConfig
            Populated configuration.
        """
        env = os.environ

        reconnect_kwargs: dict[str, Any] = {}
        _ENV_RECONNECT_MAP = {
            "VTRACK_MIN_RECONNECT_DELAY": "min_delay",
            "VTRACK_MAX_RECONNECT_DELAY": "max_delay",
            "VTRACK_RECONNECT_GROW_FACTOR": "grow_factor",
            "VTRACK_MIN_UPTIME": "min_uptime",
        }
        for env_key, field_name in _ENV_RECONNECT_MAP.items():
            val = _env_float(env.get(env_key), env_key)
            if val is not None:
                reconnect_kwargs[field_name] = val

        retries = _env_int(env.get("VTRACK_MAX_RETRIES"), "VTRACK_MAX_RETRIES")
        if retries is not None:
            reconnect_kwargs["max_retries"] = retries

        # Allow overriding the policy via a nested dict
        reconnect_overrides = overrides.pop("reconnect", None)
        if isinstance(reconnect_overrides, dict):
            reconnect_kwargs.update(reconnect_overrides)
        elif isinstance(reconnect_overrides, ReconnectPolicy):
            reconnect_kwargs = dataclasses.asdict(reconnect_overrides)

        config_kwargs: dict[str, Any] = {"reconnect": ReconnectPolicy(**reconnect_kwargs)}

        url = env.get("VTRACK_ENDPOINT_URL")
        if url:
            config_kwargs["endpoint_url"] = url.strip()

        _ENV_FLOAT_MAP = {
            "VTRACK_REPORT_INTERVAL": "report_interval",
            "VTRACK_STATUS_POLL_INTERVAL": "status_poll_interval",
            "VTRACK_CONNECTION_TIMEOUT": "connection_timeout",
            "VTRACK_WS_HEARTBEAT": "ws_heartbeat",
        }
        for env_key, field_name in _ENV_FLOAT_MAP.items():
            if field_name in overrides:
                continue
            val = _env_float(env.get(env_key), env_key)
            if val is not None:
                config_kwargs[field_name] = val

        config_kwargs.update(overrides)

        return cls(**config_kwargs)
