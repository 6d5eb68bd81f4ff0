"""pytest configuration for gateway_sd tests."""

from __future__ import annotations

import pytest

from gateway_sd.config import DiscoveryConfig


@pytest.fixture
def targets_file(tmp_path):
    return tmp_path / "targets" / "rest-servers.json"


@pytest.fixture
def config(targets_file):
    return DiscoveryConfig(
        gateway_url="http://gateway.test:8091/gateway",
        targets_file=str(targets_file),
        poll_interval_ms=20,
        fetch_timeout_ms=1000,
        host_alias="host-alias",
    )
