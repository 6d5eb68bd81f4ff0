"""Gateway registry client — fetches the server-status snapshot over HTTP.

The gateway answers ``GET /api/servers/status`` with::

    {"success": true, "message": "...",
     "servers": {"<id>": {"status": "ACTIVE", "config": {"host": "...", "port": 8089, "name": "..."}}}}

Only records whose ``status`` is ``ACTIVE`` and that carry a ``config`` are
eligible scrape targets.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any

import httpx

logger = logging.getLogger(__name__)

STATUS_ACTIVE = "ACTIVE"
DEFAULT_FAILURE_MESSAGE = "Gateway returned error"


class RegistryError(Exception):
    """Base error for a failed registry fetch."""


class NetworkError(RegistryError):
    """The gateway could not be reached (connect refused, DNS, reset)."""


class RegistryTimeoutError(RegistryError):
    """The gateway did not answer within the fetch timeout."""


class HttpStatusError(RegistryError):
    """The gateway answered with a non-200 status."""

    def __init__(self, status_code: int, reason: str = "") -> None:
        self.status_code = status_code
        detail = f"HTTP {status_code}"
        if reason:
            detail += f": {reason}"
        super().__init__(detail)


class DecodeError(RegistryError):
    """The response body was not a usable JSON document."""


class RegistryReportedFailure(RegistryError):
    """The gateway answered but reported ``success: false``."""


@dataclass
class ServerConfig:
    host: str
    port: int
    name: str | None = None


@dataclass
class ServerRecord:
    status: str
    config: ServerConfig | None = None

    @property
    def is_eligible(self) -> bool:
        return self.status == STATUS_ACTIVE and self.config is not None


@dataclass
class RegistryResponse:
    success: bool
    servers: dict[str, ServerRecord] = field(default_factory=dict)
    message: str | None = None

    @classmethod
    def from_dict(cls, data: Any) -> RegistryResponse:
        """Build a response from a decoded JSON body.

        Malformed server records are dropped rather than failing the whole
        snapshot; a body that is not an object raises :class:`DecodeError`.
        """
        if not isinstance(data, dict):
            raise DecodeError(f"Expected a JSON object, got {type(data).__name__}")

        raw_servers = data.get("servers") or {}
        if not isinstance(raw_servers, dict):
            raise DecodeError(
                f"Expected 'servers' to be an object, got {type(raw_servers).__name__}"
            )

        servers: dict[str, ServerRecord] = {}
        for server_id, raw in raw_servers.items():
            record = _parse_record(str(server_id), raw)
            if record is not None:
                servers[str(server_id)] = record

        message = data.get("message")
        return cls(
            success=bool(data.get("success", False)),
            servers=servers,
            message=str(message) if message is not None else None,
        )


def _parse_record(server_id: str, raw: Any) -> ServerRecord | None:
    if not isinstance(raw, dict):
        logger.debug("Skipping server %s: record is not an object", server_id)
        return None

    status = str(raw.get("status", ""))
    cfg = raw.get("config")
    if not isinstance(cfg, dict):
        return ServerRecord(status=status)

    host = cfg.get("host")
    port = cfg.get("port")
    if not host or isinstance(port, bool):
        logger.debug("Skipping server %s: config without a usable host/port", server_id)
        return None
    try:
        port = int(port)
    except (TypeError, ValueError):
        logger.debug("Skipping server %s: invalid port %r", server_id, port)
        return None

    name = cfg.get("name")
    return ServerRecord(
        status=status,
        config=ServerConfig(host=str(host), port=port, name=str(name) if name else None),
    )


class RegistryClient:
    """Reads the active-server snapshot from the API gateway.

    Args:
        url:     Full status endpoint URL (``<gateway>/api/servers/status``).
        timeout: Request timeout in seconds.
    """

    def __init__(self, url: str, timeout: float = 10.0) -> None:
        self.url = url
        self.timeout = timeout
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def aclose(self) -> None:
        """Close the underlying HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    async def fetch_registry(self) -> RegistryResponse:
        """GET the status endpoint and decode it.

        Raises:
            RegistryTimeoutError: No answer within :attr:`timeout`.
            NetworkError:         Transport-level or other request failure.
            HttpStatusError:      Any status other than 200.
            DecodeError:          Body could not be decompressed or is not a JSON object.
        """
        client = await self._get_client()
        try:
            response = await client.get(self.url)
        except httpx.TimeoutException as exc:
            raise RegistryTimeoutError(
                f"Request timeout after {self.timeout:g} seconds"
            ) from exc
        except httpx.DecodingError as exc:
            raise DecodeError(f"Error decoding response body: {exc}") from exc
        except httpx.HTTPError as exc:
            # Transport failures, redirect loops and any other request error
            raise NetworkError(f"Cannot reach gateway at {self.url}: {exc}") from exc

        if response.status_code != 200:
            raise HttpStatusError(response.status_code, response.reason_phrase)

        try:
            data = json.loads(response.text)
        except json.JSONDecodeError as exc:
            raise DecodeError(f"Error parsing JSON: {exc}") from exc

        registry = RegistryResponse.from_dict(data)
        logger.debug(
            "Fetched %d server record(s) from %s", len(registry.servers), self.url
        )
        return registry
