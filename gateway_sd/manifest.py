"""Scrape-target manifest — turns a registry snapshot into Prometheus file_sd entries."""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass
from typing import Any

from gateway_sd.registry import RegistryResponse

DEFAULT_JOB = "rest-servers"
DEFAULT_HOST_ALIAS = "host.docker.internal"

LOOPBACK_HOSTS = frozenset({"localhost", "127.0.0.1"})


@dataclass(frozen=True)
class ScrapeTarget:
    address: str
    job: str
    server_id: str
    server_name: str
    instance: str

    def to_dict(self) -> dict[str, Any]:
        # Key order is part of the fingerprint; keep it fixed.
        return {
            "targets": [self.address],
            "labels": {
                "job": self.job,
                "server_id": self.server_id,
                "server_name": self.server_name,
                "instance": self.instance,
            },
        }


def normalize_host(host: str, alias: str = DEFAULT_HOST_ALIAS) -> str:
    """Swap loopback hosts for *alias* so they are reachable from a container."""
    if host in LOOPBACK_HOSTS:
        return alias
    return host


def build_manifest(
    response: RegistryResponse,
    host_alias: str = DEFAULT_HOST_ALIAS,
    job: str = DEFAULT_JOB,
) -> list[ScrapeTarget]:
    """Build one :class:`ScrapeTarget` per eligible server.

    ``address`` carries the reachable (normalized) host while the
    ``instance`` label keeps the host the gateway reported.

    Args:
        response:   A snapshot with ``success`` already checked.
        host_alias: Replacement for ``localhost`` / ``127.0.0.1``.
        job:        Value of the ``job`` label.

    Returns:
        Targets in the snapshot's server order; empty if nothing is active.
    """
    targets: list[ScrapeTarget] = []
    for server_id, record in response.servers.items():
        if not record.is_eligible:
            continue
        cfg = record.config
        targets.append(
            ScrapeTarget(
                address=f"{normalize_host(cfg.host, host_alias)}:{cfg.port}",
                job=job,
                server_id=server_id,
                server_name=cfg.name or server_id,
                instance=f"{cfg.host}:{cfg.port}",
            )
        )
    return targets


def serialize_manifest(targets: list[ScrapeTarget]) -> str:
    """Render *targets* as the file_sd JSON array (stable for equal input)."""
    return json.dumps([t.to_dict() for t in targets], indent=2)


def fingerprint(content: str) -> str:
    """SHA-256 hex digest of *content*."""
    return hashlib.sha256(content.encode("utf-8")).hexdigest()
