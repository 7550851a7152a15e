"""
SURFACESCAN - Transport Resolver

Fetches a URL directly and, when that fails, through an ordered list of
relays. The relay that last worked is tried first on the next call.
"""

import asyncio
import time
from typing import Optional, Sequence
from urllib.parse import quote

import httpx
import structlog

from surfacescan.core.cancellation import CancelToken
from surfacescan.core.errors import RequestTimeout, TransportError
from surfacescan.utils.http import AttemptMetadata, HTTPResponse

logger = structlog.get_logger(__name__)


class _StrategyTimeout(Exception):
    """One strategy ran past its time bound."""


class TransportResolver:
    """
    Multi-strategy fetch: direct first, then relays.

    - Direct success means HTTP 200-399.
    - A relay succeeds on any HTTP response and fails only on transport
      errors or timeouts.
    - Relays are walked once per call, starting at the sticky index.
    - If every relay fails but the direct attempt did get an HTTP response,
      that response is returned as-is.
    """

    def __init__(self, client: httpx.AsyncClient, relays: Sequence[str] = ()):
        self.client = client
        self.relays: tuple[str, ...] = tuple(r for r in relays if r)
        self._relay_index = 0

    @property
    def relay_index(self) -> int:
        """Index of the relay that will be tried first."""
        return self._relay_index

    @staticmethod
    def build_relay_url(relay: str, url: str) -> str:
        """
        Route url through relay.

        Templates containing '{url}' get the percent-encoded target;
        anything else is treated as a prefix and gets the raw URL appended.
        """
        if "{url}" in relay:
            return relay.replace("{url}", quote(url, safe=""))
        return f"{relay.rstrip('/')}/{url}"

    async def resolve(
        self,
        url: str,
        method: str = "GET",
        headers: Optional[dict] = None,
        body: Optional[str] = None,
        timeout: float = 10.0,
        cancel: Optional[CancelToken] = None,
    ) -> HTTPResponse:
        """
        Fetch url using the first strategy that works.

        Args:
            url: Absolute target URL
            method: HTTP method
            headers: Extra request headers
            body: Request body
            timeout: Time bound applied to each strategy separately
            cancel: Token that stops resolution immediately when fired

        Returns:
            HTTPResponse with its transport field describing the strategy used

        Raises:
            OperationCancelled: cancel fired mid-resolution
            RequestTimeout: every strategy timed out
            TransportError: no strategy produced an HTTP response
        """
        meta = AttemptMetadata(attempts_direct=1)
        reasons: list[str] = []
        timeouts = 0
        direct_response: Optional[HTTPResponse] = None

        try:
            response = await self._fetch(url, method, headers, body, timeout, cancel)
            if 200 <= response.status_code < 400:
                response.transport = meta
                return response
            direct_response = response
            reason = f"HTTP {response.status_code}"
        except _StrategyTimeout:
            timeouts += 1
            reason = f"timed out after {timeout:g}s"
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            reason = _describe(e)

        meta.direct_error = reason
        reasons.append(f"Direct: {reason}")
        logger.debug("direct_attempt_failed", url=url, reason=reason)

        count = len(self.relays)
        for offset in range(count):
            index = (self._relay_index + offset) % count
            relay = self.relays[index]
            meta.attempts_via_proxy += 1

            try:
                response = await self._fetch(
                    self.build_relay_url(relay, url), method, headers, body, timeout, cancel
                )
            except _StrategyTimeout:
                timeouts += 1
                reasons.append(f"Relay #{index + 1} ({relay}): timed out after {timeout:g}s")
                continue
            except (httpx.HTTPError, httpx.InvalidURL) as e:
                reasons.append(f"Relay #{index + 1} ({relay}): {_describe(e)}")
                continue

            self._relay_index = index
            meta.used_proxy = True
            meta.proxy_url = relay
            meta.proxy_index = index
            response.transport = meta
            logger.debug("relay_succeeded", url=url, relay=relay, index=index)
            return response

        if direct_response is not None:
            direct_response.transport = meta
            return direct_response

        message = "All attempts failed. Errors: " + " | ".join(reasons)
        if timeouts == len(reasons):
            raise RequestTimeout(message, reasons)
        raise TransportError(message, reasons)

    async def _fetch(
        self,
        url: str,
        method: str,
        headers: Optional[dict],
        body: Optional[str],
        timeout: float,
        cancel: Optional[CancelToken],
    ) -> HTTPResponse:
        request = self._send(url, method, headers, body, timeout)
        if cancel is not None:
            return await cancel.guard(request)
        return await request

    async def _send(
        self,
        url: str,
        method: str,
        headers: Optional[dict],
        body: Optional[str],
        timeout: float,
    ) -> HTTPResponse:
        start = time.monotonic()
        try:
            response = await asyncio.wait_for(
                self.client.request(
                    method.upper(),
                    url,
                    headers=headers,
                    content=body,
                    timeout=httpx.Timeout(timeout),
                ),
                timeout,
            )
        except (asyncio.TimeoutError, httpx.TimeoutException) as e:
            raise _StrategyTimeout() from e
        return HTTPResponse.from_httpx(response, (time.monotonic() - start) * 1000)


def _describe(error: Exception) -> str:
    text = str(error)
    if text:
        return f"{type(error).__name__}: {text}"
    return type(error).__name__
