"""Tests for manifest building, normalization and serialization."""

from __future__ import annotations

import json

from gateway_sd.manifest import (
    ScrapeTarget,
    build_manifest,
    fingerprint,
    normalize_host,
    serialize_manifest,
)
from gateway_sd.registry import RegistryResponse


def _response(servers: dict) -> RegistryResponse:
    return RegistryResponse.from_dict({"success": True, "servers": servers})


class TestNormalizeHost:
    def test_localhost(self):
        assert normalize_host("localhost", "host-alias") == "host-alias"

    def test_loopback_ip(self):
        assert normalize_host("127.0.0.1", "host-alias") == "host-alias"

    def test_other_hosts_unchanged(self):
        assert normalize_host("10.0.0.5", "host-alias") == "10.0.0.5"
        assert normalize_host("api.internal", "host-alias") == "api.internal"

    def test_default_alias(self):
        assert normalize_host("localhost") == "host.docker.internal"


class TestBuildManifest:
    def test_localhost_target_and_instance(self):
        targets = build_manifest(
            _response({"s1": {"status": "ACTIVE", "config": {"host": "localhost", "port": 9100}}}),
            host_alias="host-alias",
        )
        assert len(targets) == 1
        assert targets[0].address == "host-alias:9100"
        assert targets[0].instance == "localhost:9100"

    def test_inactive_excluded(self):
        targets = build_manifest(
            _response(
                {
                    "s1": {"status": "INACTIVE", "config": {"host": "a", "port": 1, "name": "x"}},
                    "s2": {"status": "ACTIVE", "config": {"host": "b", "port": 2}},
                }
            )
        )
        assert [t.server_id for t in targets] == ["s2"]

    def test_missing_config_excluded(self):
        targets = build_manifest(_response({"s1": {"status": "ACTIVE"}}))
        assert targets == []

    def test_empty_servers(self):
        assert build_manifest(_response({})) == []

    def test_name_fallback(self):
        targets = build_manifest(
            _response({"rest-7": {"status": "ACTIVE", "config": {"host": "h", "port": 80}}})
        )
        assert targets[0].server_name == "rest-7"

    def test_labels(self):
        targets = build_manifest(
            _response({"s1": {"status": "ACTIVE", "config": {"host": "h", "port": 80, "name": "api"}}}),
            job="custom-job",
        )
        assert targets[0].to_dict()["labels"] == {
            "job": "custom-job",
            "server_id": "s1",
            "server_name": "api",
            "instance": "h:80",
        }

    def test_preserves_server_order(self):
        servers = {
            sid: {"status": "ACTIVE", "config": {"host": "h", "port": port}}
            for sid, port in (("c", 3), ("a", 1), ("b", 2))
        }
        targets = build_manifest(_response(servers))
        assert [t.server_id for t in targets] == ["c", "a", "b"]


class TestSerializeManifest:
    def test_empty_is_bare_array(self):
        assert serialize_manifest([]) == "[]"

    def test_file_sd_shape(self):
        target = ScrapeTarget(
            address="host-alias:8080",
            job="rest-servers",
            server_id="s1",
            server_name="api",
            instance="127.0.0.1:8080",
        )
        data = json.loads(serialize_manifest([target]))
        assert data == [
            {
                "targets": ["host-alias:8080"],
                "labels": {
                    "job": "rest-servers",
                    "server_id": "s1",
                    "server_name": "api",
                    "instance": "127.0.0.1:8080",
                },
            }
        ]
        assert list(data[0]) == ["targets", "labels"]
        assert list(data[0]["labels"]) == ["job", "server_id", "server_name", "instance"]

    def test_equal_content_serializes_identically(self):
        first = build_manifest(
            _response({"s1": {"status": "ACTIVE", "config": {"name": "api", "port": 1, "host": "h"}}})
        )
        second = build_manifest(
            _response({"s1": {"config": {"host": "h", "port": 1, "name": "api"}, "status": "ACTIVE"}})
        )
        assert serialize_manifest(first) == serialize_manifest(second)
        assert fingerprint(serialize_manifest(first)) == fingerprint(serialize_manifest(second))


class TestFingerprint:
    def test_sha256_hex(self):
        digest = fingerprint("[]")
        assert len(digest) == 64
        assert digest == fingerprint("[]")
        assert digest != fingerprint("[ ]")
