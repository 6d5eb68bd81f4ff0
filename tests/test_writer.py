"""Tests for ManifestWriter — change detection and the emergency empty write."""

from __future__ import annotations

import json

import pytest

from gateway_sd.manifest import ScrapeTarget, fingerprint, serialize_manifest
from gateway_sd.writer import FilesystemError, ManifestWriter


def _target(server_id="s1", port=8080) -> ScrapeTarget:
    return ScrapeTarget(
        address=f"host-alias:{port}",
        job="rest-servers",
        server_id=server_id,
        server_name=server_id,
        instance=f"localhost:{port}",
    )


class TestPersistManifest:
    def test_first_write_creates_directory(self, targets_file):
        writer = ManifestWriter(targets_file)
        assert writer.last_fingerprint is None

        outcome = writer.persist_manifest([_target()])

        assert outcome.written is True
        assert outcome.count == 1
        assert targets_file.exists()
        assert json.loads(targets_file.read_text())[0]["targets"] == ["host-alias:8080"]
        assert writer.last_fingerprint == outcome.fingerprint

    def test_unchanged_content_skips_write(self, targets_file):
        writer = ManifestWriter(targets_file)
        writer.persist_manifest([_target()])
        # Tamper with the file so a rewrite would be visible
        targets_file.write_text("sentinel")

        outcome = writer.persist_manifest([_target()])

        assert outcome.skipped is True
        assert outcome.count == 1
        assert targets_file.read_text() == "sentinel"

    def test_changed_content_rewrites(self, targets_file):
        writer = ManifestWriter(targets_file)
        writer.persist_manifest([_target()])
        outcome = writer.persist_manifest([_target(), _target("s2", 8081)])
        assert outcome.written is True
        assert outcome.count == 2
        assert len(json.loads(targets_file.read_text())) == 2

    def test_replaces_not_appends(self, targets_file):
        targets_file.parent.mkdir(parents=True)
        targets_file.write_text("x" * 4096)
        ManifestWriter(targets_file).persist_manifest([])
        assert targets_file.read_text() == "[]"

    def test_file_is_world_readable(self, targets_file):
        ManifestWriter(targets_file).persist_manifest([_target()])
        assert targets_file.stat().st_mode & 0o444 == 0o444

    def test_no_temp_files_left(self, targets_file):
        ManifestWriter(targets_file).persist_manifest([_target()])
        assert [p.name for p in targets_file.parent.iterdir()] == [targets_file.name]

    def test_restart_forces_rewrite(self, targets_file):
        ManifestWriter(targets_file).persist_manifest([_target()])
        outcome = ManifestWriter(targets_file).persist_manifest([_target()])
        assert outcome.written is True

    def test_write_failure_keeps_fingerprint(self, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory")
        writer = ManifestWriter(blocker / "rest-servers.json")

        with pytest.raises(FilesystemError):
            writer.persist_manifest([_target()])
        assert writer.last_fingerprint is None

    def test_retry_after_failure(self, tmp_path):
        blocker = tmp_path / "targets"
        blocker.write_text("not a directory")
        writer = ManifestWriter(blocker / "rest-servers.json")
        with pytest.raises(FilesystemError):
            writer.persist_manifest([_target()])

        blocker.unlink()
        outcome = writer.persist_manifest([_target()])
        assert outcome.written is True


class TestWriteEmpty:
    def test_writes_empty_array(self, targets_file):
        outcome = ManifestWriter(targets_file).write_empty()
        assert targets_file.read_text() == "[]"
        assert outcome.written is True
        assert outcome.count == 0

    def test_bypasses_fingerprint(self, targets_file):
        writer = ManifestWriter(targets_file)
        writer.persist_manifest([])
        targets_file.write_text("stale")
        writer.write_empty()
        assert targets_file.read_text() == "[]"

    def test_updates_fingerprint_to_empty(self, targets_file):
        writer = ManifestWriter(targets_file)
        writer.persist_manifest([_target()])
        writer.write_empty()

        assert writer.last_fingerprint == fingerprint(serialize_manifest([]))
        assert writer.persist_manifest([]).skipped is True
        assert writer.persist_manifest([_target()]).written is True

    def test_failure_raises(self, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("")
        writer = ManifestWriter(blocker / "rest-servers.json")
        with pytest.raises(FilesystemError):
            writer.write_empty()
