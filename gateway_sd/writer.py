"""Targets-file writer — persists the manifest only when its content changes."""

from __future__ import annotations

import logging
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path

from gateway_sd.manifest import ScrapeTarget, fingerprint, serialize_manifest

logger = logging.getLogger(__name__)

EMPTY_MANIFEST = "[]"


class FilesystemError(Exception):
    """The targets directory or file could not be written."""


@dataclass(frozen=True)
class WriteOutcome:
    written: bool
    count: int
    fingerprint: str

    @property
    def skipped(self) -> bool:
        return not self.written


class ManifestWriter:
    """Writes the file_sd targets file and remembers what it last wrote.

    The retained fingerprint lives on the instance, so independent writers
    (and tests) never share change-detection state.

    Args:
        path: Destination file watched by Prometheus.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._last_fingerprint: str | None = None

    @property
    def last_fingerprint(self) -> str | None:
        """Fingerprint of the last successful write, or None before the first."""
        return self._last_fingerprint

    def persist_manifest(self, targets: list[ScrapeTarget]) -> WriteOutcome:
        """Write *targets* unless the file already holds the same content.

        Raises:
            FilesystemError: Directory creation or the write failed; the
                retained fingerprint is left as it was.
        """
        content = serialize_manifest(targets)
        digest = fingerprint(content)
        if digest == self._last_fingerprint:
            return WriteOutcome(written=False, count=len(targets), fingerprint=digest)

        self._write(content)
        self._last_fingerprint = digest
        return WriteOutcome(written=True, count=len(targets), fingerprint=digest)

    def write_empty(self) -> WriteOutcome:
        """Unconditionally replace the file with ``[]``.

        Used when the gateway is unreachable so Prometheus drops its targets
        instead of scraping a stale list. On success the retained fingerprint
        becomes that of the empty manifest.
        """
        digest = fingerprint(EMPTY_MANIFEST)
        self._write(EMPTY_MANIFEST)
        self._last_fingerprint = digest
        return WriteOutcome(written=True, count=0, fingerprint=digest)

    # ------------------------------------------------------------------ #
    # Internal helpers                                                     #
    # ------------------------------------------------------------------ #

    def _write(self, content: str) -> None:
        """Replace the file atomically: temp file in the same dir, then rename."""
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise FilesystemError(f"Cannot create {self.path.parent}: {exc}") from exc

        tmp_name: str | None = None
        try:
            fd, tmp_name = tempfile.mkstemp(
                dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp"
            )
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(content)
            # mkstemp creates 0600; Prometheus usually runs as another user
            os.chmod(tmp_name, 0o644)
            os.replace(tmp_name, self.path)
            tmp_name = None
        except OSError as exc:
            raise FilesystemError(f"Cannot write {self.path}: {exc}") from exc
        finally:
            if tmp_name is not None:
                try:
                    os.unlink(tmp_name)
                except OSError:
                    pass
        logger.debug("Wrote %d bytes to %s", len(content), self.path)
