"""HTTP transport for the coordination service."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Mapping
from typing import Any, Protocol

import aiohttp

from racesync._constants import USER_AGENT
from racesync._redact import redact_for_log
from racesync.config import RaceSyncConfig
from racesync.exceptions import (
    RaceSyncAuthenticationError,
    RaceSyncAuthExpiredError,
    RaceSyncConnectionError,
    RaceSyncTimeoutError,
    RaceSyncTransportError,
)
from racesync.session import CredentialStore

_logger = logging.getLogger(__name__)


class Transport(Protocol):
    """Structural transport interface used by the endpoint modules.

    Tests pass small fakes implementing this; production code uses
    :class:`HttpTransport`.
    """

    async def request(
        self,
        method: str,
        path: str,
        *,
        params: Mapping[str, str] | None = None,
        json_body: Mapping[str, Any] | None = None,
    ) -> dict[str, Any]:
        ...


def _parse_body(text: str) -> Any:
    if not text:
        return {}
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        return None


class HttpTransport:
    """JSON-over-HTTP transport carrying the bearer credential.

    Failures are raised as the :mod:`racesync.exceptions` hierarchy:

    * connection-level failures -> :class:`RaceSyncConnectionError`
    * timeouts -> :class:`RaceSyncTimeoutError`
    * 401 with ``{"expired": true}`` -> :class:`RaceSyncAuthExpiredError`
    * other 401 -> :class:`RaceSyncAuthenticationError`
    * any other non-2xx or a non-JSON body -> :class:`RaceSyncTransportError`
    """

    def __init__(
        self,
        config: RaceSyncConfig,
        http_session: aiohttp.ClientSession,
        credentials: CredentialStore | None = None,
    ) -> None:
        self._config = config
        self._http = http_session
        self._credentials = credentials

    async def request(
        self,
        method: str,
        path: str,
        *,
        params: Mapping[str, str] | None = None,
        json_body: Mapping[str, Any] | None = None,
    ) -> dict[str, Any]:
        headers: dict[str, str] = {
            "accept": "application/json",
            "accept-encoding": "gzip, deflate",
            "user-agent": USER_AGENT,
        }
        if self._credentials is not None:
            headers.update(self._credentials.auth_headers())

        url = f"{self._config.base_url}{path}"
        timeout = aiohttp.ClientTimeout(total=self._config.request_timeout)

        _logger.debug("%s %s params=%s", method, url, dict(params or {}))
        if self._config.trace_requests and json_body is not None:
            _logger.debug("Request body: %s", redact_for_log(dict(json_body)))

        try:
            async with self._http.request(
                method,
                url,
                params=dict(params or {}),
                json=dict(json_body) if json_body is not None else None,
                headers=headers,
                timeout=timeout,
            ) as resp:
                status = resp.status
                text = await resp.text()
        except (asyncio.TimeoutError, aiohttp.ServerTimeoutError) as exc:
            raise RaceSyncTimeoutError(f"Request to {path} timed out", endpoint=path) from exc
        except aiohttp.ClientConnectionError as exc:
            raise RaceSyncConnectionError(f"Request to {path} failed: {exc}", endpoint=path) from exc
        except aiohttp.ClientError as exc:
            raise RaceSyncTransportError(f"Request to {path} failed: {exc}", endpoint=path) from exc

        body = _parse_body(text)
        if self._config.trace_requests:
            _logger.debug("Response %d from %s: %s", status, path, redact_for_log(body))

        if status == 401:
            payload = body if isinstance(body, dict) else {}
            if payload.get("expired") is True:
                raise RaceSyncAuthExpiredError(f"Credential expired ({path})", code="401", endpoint=path)
            raise RaceSyncAuthenticationError(
                f"HTTP 401 from {path}: {payload.get('error', 'Unauthorized')}",
                code="401",
                endpoint=path,
            )

        if not 200 <= status < 300:
            raise RaceSyncTransportError(
                f"HTTP {status} from {path}: {text[:200]}",
                status_code=status,
                endpoint=path,
                payload=body if isinstance(body, dict) else None,
            )

        if not isinstance(body, dict):
            raise RaceSyncTransportError(
                f"Invalid JSON from {path}: {text[:200]}",
                status_code=status,
                endpoint=path,
            )
        return body
