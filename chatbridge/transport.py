"""
Transport boundary - the only place chatbridge touches HTTP.

Adapters depend on the Transport protocol, not on httpx. HttpxTransport is
the default implementation; tests and host applications can supply their
own (e.g. an in-memory transport that delivers hand-cut chunks).
"""

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncContextManager, AsyncIterator, Optional, Protocol

import httpx

from chatbridge.cancellation import CancellationToken, race
from chatbridge.config import get_timeout_seconds
from chatbridge.errors import TransportError

logger = logging.getLogger(__name__)


@dataclass
class TransportResponse:
    """Status plus a streamed body. body is None when the transport got none."""
    ok: bool
    status_code: int
    body: Optional[AsyncIterator[bytes]]


class Transport(Protocol):
    """
    Contract for performing one HTTP request with a streamed response body.

    The returned context manager must release the connection on exit,
    including when the caller leaves early after a cancellation.
    """

    def stream(
        self,
        method: str,
        url: str,
        *,
        headers: Optional[dict[str, str]] = None,
        json: Any = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> AsyncContextManager[TransportResponse]:
        ...


class HttpxTransport:
    """Transport backed by httpx.AsyncClient streaming requests."""

    def __init__(self, timeout_seconds: Optional[float] = None):
        self._timeout = timeout_seconds if timeout_seconds is not None else get_timeout_seconds()

    @asynccontextmanager
    async def stream(
        self,
        method: str,
        url: str,
        *,
        headers: Optional[dict[str, str]] = None,
        json: Any = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> AsyncIterator[TransportResponse]:
        logger.debug(f"{method} {url}")
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            request = client.build_request(method, url, headers=headers, json=json)
            try:
                response = await race(client.send(request, stream=True), cancel_token)
            except httpx.HTTPError as e:
                raise TransportError(f"{method} {url} failed: {e}") from e

            try:
                yield TransportResponse(
                    ok=response.is_success,
                    status_code=response.status_code,
                    body=_wrap_body(response, url),
                )
            finally:
                await response.aclose()


async def _wrap_body(response: httpx.Response, url: str) -> AsyncIterator[bytes]:
    """Yield raw body bytes, mapping httpx read failures to TransportError."""
    try:
        async for chunk in response.aiter_bytes():
            yield chunk
    except httpx.HTTPError as e:
        raise TransportError(f"Reading response from {url} failed: {e}") from e
