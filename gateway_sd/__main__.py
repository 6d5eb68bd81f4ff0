"""Gateway service discovery entry point.

Usage::

    python -m gateway_sd [--config PATH] [--gateway-url URL] [--once] [--debug]
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys

from gateway_sd.config import ConfigError, DiscoveryConfig
from gateway_sd.poller import DiscoveryPoller

logger = logging.getLogger("gateway_sd")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="python -m gateway_sd",
        description="Prometheus file_sd targets from the API gateway's server status",
    )
    parser.add_argument(
        "--config", "-c",
        default=None,
        help="Path to a JSON config file (GATEWAY_SD_* env vars override it)",
    )
    parser.add_argument("--gateway-url", default=None, help="Gateway base URL")
    parser.add_argument("--targets-file", default=None, help="Output file_sd JSON path")
    parser.add_argument("--interval-ms", type=int, default=None, help="Poll interval in ms")
    parser.add_argument("--timeout-ms", type=int, default=None, help="Fetch timeout in ms")
    parser.add_argument(
        "--host-alias",
        default=None,
        help="Host that replaces localhost/127.0.0.1 in target addresses",
    )
    parser.add_argument(
        "--allow-overlap",
        action="store_true",
        help="Start a new cycle even if the previous one is still running",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single discovery cycle and exit",
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    return parser


def load_config(args: argparse.Namespace) -> DiscoveryConfig:
    """File → environment → CLI flags, later sources winning."""
    base = DiscoveryConfig.load(args.config) if args.config else None
    config = DiscoveryConfig.from_env(base=base)

    if args.gateway_url:
        config.gateway_url = args.gateway_url
    if args.targets_file:
        config.targets_file = args.targets_file
    if args.interval_ms is not None:
        config.poll_interval_ms = args.interval_ms
    if args.timeout_ms is not None:
        config.fetch_timeout_ms = args.timeout_ms
    if args.host_alias:
        config.host_alias = args.host_alias
    if args.allow_overlap:
        config.allow_overlap = True

    config.validate()
    return config


async def _run(config: DiscoveryConfig, once: bool) -> int:
    poller = DiscoveryPoller(config)
    if once:
        try:
            result = await poller.run_cycle()
        finally:
            await poller.client.aclose()
        return 0 if result.ok else 1

    loop = asyncio.get_running_loop()
    stop_requested = asyncio.Event()

    def _shutdown(sig: int) -> None:
        logger.info("Received signal %d, service discovery stopping", sig)
        stop_requested.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, _shutdown, sig)

    try:
        await poller.start()
        await stop_requested.wait()
    finally:
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.remove_signal_handler(sig)
        await poller.stop()
    return 0


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    level = logging.DEBUG if args.debug else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )

    try:
        config = load_config(args)
    except ConfigError as exc:
        logger.error("Invalid configuration: %s", exc)
        return 2

    logger.info("Starting service discovery for Prometheus")
    logger.info("Gateway URL: %s", config.status_url)
    logger.info("Targets file: %s", config.targets_file)
    logger.info("Poll interval: %dms (%gs)", config.poll_interval_ms, config.poll_interval)

    try:
        return asyncio.run(_run(config, once=args.once))
    except KeyboardInterrupt:
        return 0


if __name__ == "__main__":
    sys.exit(main())
