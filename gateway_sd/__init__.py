"""gateway_sd — Prometheus file-based service discovery for the API gateway.

Exports:
    DiscoveryConfig  — poller settings (env / JSON file)
    RegistryClient   — httpx client for ``/api/servers/status``
    ScrapeTarget     — one file_sd entry
    build_manifest   — registry snapshot → scrape targets
    ManifestWriter   — change-detecting targets-file writer
    DiscoveryPoller  — the periodic fetch → build → write loop
"""

from __future__ import annotations

from gateway_sd.config import ConfigError, DiscoveryConfig
from gateway_sd.manifest import ScrapeTarget, build_manifest, normalize_host
from gateway_sd.poller import CycleResult, DiscoveryPoller
from gateway_sd.registry import (
    DecodeError,
    HttpStatusError,
    NetworkError,
    RegistryClient,
    RegistryError,
    RegistryReportedFailure,
    RegistryResponse,
    RegistryTimeoutError,
    ServerConfig,
    ServerRecord,
)
from gateway_sd.writer import FilesystemError, ManifestWriter, WriteOutcome

__all__ = [
    "ConfigError",
    "CycleResult",
    "DecodeError",
    "DiscoveryConfig",
    "DiscoveryPoller",
    "FilesystemError",
    "HttpStatusError",
    "ManifestWriter",
    "NetworkError",
    "RegistryClient",
    "RegistryError",
    "RegistryReportedFailure",
    "RegistryResponse",
    "RegistryTimeoutError",
    "ScrapeTarget",
    "ServerConfig",
    "ServerRecord",
    "WriteOutcome",
    "build_manifest",
    "normalize_host",
]
