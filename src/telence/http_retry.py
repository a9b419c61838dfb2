"""Outbound HTTP with a fixed number of attempts and a fixed pause between them.

Callers are expected to only send idempotent requests through here: a
request that timed out after reaching the server will be sent again.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

import aiohttp

from telence.errors import ResponseDecodeError, TransportError

_LOG = logging.getLogger(__name__)

DEFAULT_RETRIES = 3
DEFAULT_DELAY = 1.0  # seconds
DEFAULT_TIMEOUT = 30.0  # seconds, per attempt
_MAX_ERROR_BODY = 2000


class HttpTransport:
    """Owns one ``aiohttp`` session and retries failed POSTs."""

    def __init__(
        self,
        *,
        retries: int = DEFAULT_RETRIES,
        delay: float = DEFAULT_DELAY,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        if retries < 1:
            raise ValueError("retries must be at least 1")
        self.retries = retries
        self.delay = delay
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self._session: aiohttp.ClientSession | None = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self.timeout)
        return self._session

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    async def post_json(
        self,
        url: str,
        payload: dict[str, Any],
        *,
        headers: dict[str, str] | None = None,
    ) -> Any:
        return await self.send("POST", url, json=payload, headers=headers)

    async def post_form(
        self,
        url: str,
        data: dict[str, str],
        *,
        headers: dict[str, str] | None = None,
    ) -> Any:
        return await self.send("POST", url, data=data, headers=headers)

    async def send(self, method: str, url: str, **kwargs: Any) -> Any:
        """Perform the request, retrying transport failures; return the decoded JSON body.

        Raises:
            TransportError: the last failure once every attempt has failed.
            ResponseDecodeError: a successful status with a non-JSON body
                (not retried).
        """
        for attempt in range(1, self.retries + 1):
            try:
                return await self._attempt(method, url, **kwargs)
            except TransportError as exc:
                if attempt == self.retries:
                    _LOG.error(
                        "%s %s failed after %d attempts: %s",
                        method,
                        _redact(url),
                        self.retries,
                        exc,
                    )
                    raise
                _LOG.warning(
                    "Retrying %s %s (%d/%d) in %.1fs: %s",
                    method,
                    _redact(url),
                    attempt,
                    self.retries,
                    self.delay,
                    exc,
                )
                await asyncio.sleep(self.delay)
        raise AssertionError("unreachable")  # pragma: no cover

    async def _attempt(self, method: str, url: str, **kwargs: Any) -> Any:
        session = self._get_session()
        try:
            async with session.request(method, url, **kwargs) as response:
                body = await response.text()
                if response.status >= 400:
                    raise TransportError(
                        f"HTTP {response.status}: {body[:_MAX_ERROR_BODY]}",
                        status=response.status,
                        body=body,
                    )
        except asyncio.TimeoutError as exc:
            raise TransportError(f"timed out after {self.timeout.total}s") from exc
        except aiohttp.ClientError as exc:
            raise TransportError(f"{type(exc).__name__}: {exc}") from exc

        try:
            return json.loads(body)
        except ValueError as exc:
            raise ResponseDecodeError(f"non-JSON response from {_redact(url)}") from exc


def _redact(url: str) -> str:
    """Drop the query string, which may carry an API key."""
    return url.split("?", 1)[0]
