"""Configuration for the gateway service-discovery poller."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import Field, dataclass, fields, replace
from pathlib import Path
from typing import Mapping
from urllib.parse import urlparse

logger = logging.getLogger(__name__)

ENV_PREFIX = "GATEWAY_SD_"

_TRUTHY = {"1", "true", "yes", "on"}
_FALSY = {"0", "false", "no", "off", ""}


class ConfigError(ValueError):
    """Raised when the poller cannot start with the given configuration."""


@dataclass
class DiscoveryConfig:
    """Poller configuration: loaded from env vars and/or a JSON file."""

    gateway_url: str = "http://host.docker.internal:8091/gateway"
    targets_file: str = "/etc/prometheus/targets/rest-servers.json"
    poll_interval_ms: int = 10000
    fetch_timeout_ms: int = 10000

    # Replaces localhost / 127.0.0.1 so Prometheus can reach the host from its container
    host_alias: str = "host.docker.internal"
    job: str = "rest-servers"

    allow_overlap: bool = False

    @classmethod
    def load(cls, path: str | Path) -> DiscoveryConfig:
        path = Path(path)
        if path.exists():
            try:
                with open(path) as f:
                    data = json.load(f)
            except json.JSONDecodeError as exc:
                raise ConfigError(f"Config file {path} is not valid JSON: {exc}") from exc
            if not isinstance(data, dict):
                raise ConfigError(f"Config file {path} must contain a JSON object")
            values = {
                f.name: _coerce(f"{path}: {f.name}", data[f.name], _kind(f))
                for f in fields(cls)
                if f.name in data
            }
            return cls(**values)
        logger.warning("Config not found at %s, using defaults", path)
        return cls()

    @classmethod
    def from_env(
        cls,
        environ: Mapping[str, str] | None = None,
        base: DiscoveryConfig | None = None,
    ) -> DiscoveryConfig:
        """Build a config from ``GATEWAY_SD_*`` variables.

        Args:
            environ: Mapping to read instead of :data:`os.environ`.
            base:    Config whose values are kept for unset variables.

        Raises:
            ConfigError: A numeric or boolean variable could not be parsed.
        """
        env = os.environ if environ is None else environ
        config = replace(base) if base is not None else cls()
        for f in fields(cls):
            label = ENV_PREFIX + f.name.upper()
            raw = env.get(label)
            if raw is None:
                continue
            setattr(config, f.name, _coerce(label, raw, _kind(f)))
        return config

    def validate(self) -> None:
        """Raise :class:`ConfigError` if the poller cannot run with these values."""
        for f in fields(self):
            value = getattr(self, f.name)
            kind = _kind(f)
            if not isinstance(value, kind) or (kind is int and isinstance(value, bool)):
                raise ConfigError(f"{f.name} must be {kind.__name__}, got {value!r}")

        parsed = urlparse(self.gateway_url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ConfigError(f"gateway_url must be an http(s) URL, got {self.gateway_url!r}")
        if not self.targets_file:
            raise ConfigError("targets_file must not be empty")
        if not self.host_alias:
            raise ConfigError("host_alias must not be empty")
        if not self.job:
            raise ConfigError("job must not be empty")
        if self.poll_interval_ms <= 0:
            raise ConfigError(f"poll_interval_ms must be positive, got {self.poll_interval_ms}")
        if self.fetch_timeout_ms <= 0:
            raise ConfigError(f"fetch_timeout_ms must be positive, got {self.fetch_timeout_ms}")

    @property
    def status_url(self) -> str:
        """Full URL of the gateway's server-status endpoint."""
        return f"{self.gateway_url.rstrip('/')}/api/servers/status"

    @property
    def poll_interval(self) -> float:
        """Poll interval in seconds."""
        return self.poll_interval_ms / 1000

    @property
    def fetch_timeout(self) -> float:
        """Upstream fetch timeout in seconds."""
        return self.fetch_timeout_ms / 1000


def _kind(f: Field) -> type:
    """Declared type of *f*, read from its default (every field has one)."""
    return type(f.default)


def _coerce(label: str, raw: object, kind: type) -> object:
    """Convert *raw* (a string from the env, or any JSON value) to *kind*."""
    if kind is bool:
        if isinstance(raw, bool):
            return raw
        if isinstance(raw, str):
            value = raw.strip().lower()
            if value in _TRUTHY:
                return True
            if value in _FALSY:
                return False
        raise ConfigError(f"{label} must be a boolean, got {raw!r}")
    if kind is int:
        if isinstance(raw, int) and not isinstance(raw, bool):
            return raw
        if isinstance(raw, str):
            try:
                return int(raw)
            except ValueError as exc:
                raise ConfigError(f"{label} must be an integer, got {raw!r}") from exc
        raise ConfigError(f"{label} must be an integer, got {raw!r}")
    if not isinstance(raw, str):
        raise ConfigError(f"{label} must be a string, got {raw!r}")
    return raw
