"""Discovery poller — periodic gateway → Prometheus targets-file sync.

Each cycle fetches the gateway's server status, builds the scrape-target
manifest and writes it only when it changed. If the gateway can't be read,
the targets file is reset to ``[]`` so Prometheus never scrapes a stale list.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone

from gateway_sd.config import DiscoveryConfig
from gateway_sd.manifest import ScrapeTarget, build_manifest
from gateway_sd.registry import (
    DEFAULT_FAILURE_MESSAGE,
    RegistryClient,
    RegistryError,
    RegistryReportedFailure,
)
from gateway_sd.writer import FilesystemError, ManifestWriter, WriteOutcome

logger = logging.getLogger(__name__)


@dataclass
class CycleResult:
    ok: bool
    targets: list[ScrapeTarget] = field(default_factory=list)
    outcome: WriteOutcome | None = None
    error: str | None = None


class DiscoveryPoller:
    """Polls the gateway on a fixed interval and maintains the targets file.

    Args:
        config: Poller settings.
        client: Registry client; built from *config* when omitted.
        writer: Targets-file writer; built from *config* when omitted.
    """

    def __init__(
        self,
        config: DiscoveryConfig,
        client: RegistryClient | None = None,
        writer: ManifestWriter | None = None,
    ) -> None:
        self.config = config
        self.client = client or RegistryClient(config.status_url, timeout=config.fetch_timeout)
        self.writer = writer or ManifestWriter(config.targets_file)

        self._running = False
        self._task: asyncio.Task | None = None
        self._cycle_task: asyncio.Task | None = None
        self._in_flight: set[asyncio.Task] = set()
        self._stopped = asyncio.Event()

        self._cycles = 0
        self._consecutive_failures = 0
        self._skipped_ticks = 0
        self._last_cycle: str | None = None

    # ------------------------------------------------------------------ #
    # Public API                                                           #
    # ------------------------------------------------------------------ #

    async def run_cycle(self) -> CycleResult:
        """Run one fetch → build → persist cycle.

        Never raises for gateway or filesystem failures; they are logged and
        reported through the returned :class:`CycleResult`.
        """
        logger.info("Polling gateway for active servers...")
        try:
            response = await self.client.fetch_registry()
            if not response.success:
                raise RegistryReportedFailure(response.message or DEFAULT_FAILURE_MESSAGE)
        except RegistryError as exc:
            logger.error("Error during service discovery: %s", exc)
            self._write_empty()
            return self._finish(CycleResult(ok=False, error=str(exc)))

        targets = build_manifest(response, self.config.host_alias, self.config.job)
        for target in targets:
            logger.debug("Server: %s (instance %s)", target.server_id, target.instance)

        try:
            outcome = self.writer.persist_manifest(targets)
        except FilesystemError as exc:
            logger.error("Failed to write targets file: %s", exc)
            return self._finish(CycleResult(ok=False, targets=targets, error=str(exc)))

        self._log_summary(targets, outcome)
        return self._finish(CycleResult(ok=True, targets=targets, outcome=outcome))

    async def start(self) -> None:
        """Start the background poll loop (first cycle runs immediately)."""
        if self._running:
            logger.warning("Discovery poller is already running")
            return

        self._running = True
        self._stopped.clear()
        self._task = asyncio.create_task(self._loop())
        logger.info(
            "Discovery poller started (interval=%gs, overlap=%s)",
            self.config.poll_interval,
            "allowed" if self.config.allow_overlap else "skipped",
        )

    async def stop(self) -> None:
        """Stop the loop, abandon in-flight cycles and close the HTTP client."""
        was_running = self._running
        self._running = False

        tasks = list(self._in_flight)
        if self._task is not None:
            tasks.append(self._task)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._task = None
        self._cycle_task = None
        self._in_flight.clear()

        await self.client.aclose()
        self._stopped.set()
        if was_running:
            logger.info("Discovery poller stopped")

    async def run_forever(self) -> None:
        """Start the poller and block until :meth:`stop` is called."""
        await self.start()
        await self._stopped.wait()

    @property
    def running(self) -> bool:
        return self._running

    @property
    def cycles(self) -> int:
        """Number of completed cycles."""
        return self._cycles

    @property
    def consecutive_failures(self) -> int:
        return self._consecutive_failures

    @property
    def skipped_ticks(self) -> int:
        """Ticks dropped because the previous cycle was still running."""
        return self._skipped_ticks

    @property
    def last_cycle(self) -> str | None:
        """ISO timestamp of the last completed cycle, or None."""
        return self._last_cycle

    # ------------------------------------------------------------------ #
    # Private helpers                                                      #
    # ------------------------------------------------------------------ #

    async def _loop(self) -> None:
        while self._running:
            self._tick()
            await asyncio.sleep(self.config.poll_interval)

    def _tick(self) -> None:
        if (
            not self.config.allow_overlap
            and self._cycle_task is not None
            and not self._cycle_task.done()
        ):
            self._skipped_ticks += 1
            logger.warning("Previous discovery cycle still running, skipping this tick")
            return

        task = asyncio.create_task(self._guarded_cycle())
        self._cycle_task = task
        self._in_flight.add(task)
        task.add_done_callback(self._in_flight.discard)

    async def _guarded_cycle(self) -> None:
        try:
            await self.run_cycle()
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Discovery cycle failed unexpectedly")

    def _write_empty(self) -> None:
        try:
            self.writer.write_empty()
        except FilesystemError as exc:
            logger.error("Failed to write empty targets file: %s", exc)
            return
        logger.info("Empty targets file written to prevent Prometheus errors")

    def _finish(self, result: CycleResult) -> CycleResult:
        self._cycles += 1
        if result.ok:
            self._consecutive_failures = 0
        else:
            self._consecutive_failures += 1
        self._last_cycle = datetime.now(timezone.utc).isoformat()
        return result

    def _log_summary(self, targets: list[ScrapeTarget], outcome: WriteOutcome) -> None:
        if outcome.written:
            logger.info(
                "Discovery completed: %d active servers written to %s",
                len(targets),
                self.writer.path,
            )
        else:
            logger.info("No changes detected, skipping file write (%d servers)", len(targets))

        if not targets:
            logger.warning("No active servers found in gateway")
            return
        logger.info("Targets generated for Prometheus scraping:")
        for target in targets:
            logger.info("  - %s (%s)", target.address, target.server_name)
