"""
SURFACESCAN - Resilient Request Executor

Wraps the transport resolver with per-call timeouts, linear-backoff retry,
per-origin rate limiting and scan-wide cancellation.
"""

import asyncio
import time
from collections import deque
from dataclasses import asdict, dataclass
from typing import Any, Awaitable, Optional

import structlog

from surfacescan.core.cancellation import CancelToken
from surfacescan.core.errors import (
    OperationCancelled,
    RequestTimeout,
    ScanAborted,
    TransportError,
)
from surfacescan.core.resolver import TransportResolver
from surfacescan.utils.helpers import origin_of
from surfacescan.utils.http import HTTPResponse

logger = structlog.get_logger(__name__)


@dataclass
class RequestMetrics:
    """Timing and outcome of one executed call."""
    url: str
    start: float
    end: Optional[float] = None
    duration_ms: Optional[float] = None
    status: Optional[int] = None
    attempts: int = 0
    error: Optional[str] = None
    transport: Optional[dict] = None
    is_error: bool = False

    def to_dict(self) -> dict:
        return asdict(self)


class RequestExecutor:
    """
    Every network call a module makes goes through execute().

    Features:
    - Scan-wide token merged with a call-local deadline; first to fire wins
    - Retries on transport failure with delay retry_delay * attempt
    - Minimum interval between requests to the same origin
    - Bounded buffer of recent call metrics
    """

    METRICS_BUFFER = 50

    def __init__(
        self,
        resolver: TransportResolver,
        token: Optional[CancelToken] = None,
        threads: int = 20,
        timeout: float = 10.0,
        retries: int = 2,
        retry_delay: float = 1.0,
    ):
        self.resolver = resolver
        self.timeout = timeout
        self.retries = retries
        self.retry_delay = retry_delay
        self.min_interval = 1.0 / max(threads, 1)

        self._token = token or CancelToken(name="scan")
        self._last_slot: dict[str, float] = {}
        self._rate_lock = asyncio.Lock()
        self.metrics: deque[RequestMetrics] = deque(maxlen=self.METRICS_BUFFER)

    @property
    def token(self) -> CancelToken:
        return self._token

    def bind(self, token: CancelToken) -> None:
        """Attach a fresh scan-wide token (used on resume)."""
        self._token = token

    def raise_if_aborted(self) -> None:
        if self._token.cancelled:
            raise ScanAborted(self._token.reason or "scan aborted")

    async def sleep(self, seconds: float) -> None:
        """Pacing delay that aborts with ScanAborted when the scan token fires."""
        try:
            await self._token.sleep(seconds)
        except OperationCancelled as e:
            raise ScanAborted(e.reason) from e

    async def guard(self, awaitable: Awaitable[Any]) -> Any:
        """Await non-HTTP work (raw sockets) under the scan token."""
        try:
            return await self._token.guard(awaitable)
        except OperationCancelled as e:
            raise ScanAborted(e.reason) from e

    async def _throttle(self, origin: str) -> None:
        async with self._rate_lock:
            now = time.monotonic()
            last = self._last_slot.get(origin)
            slot = now if last is None else max(now, last + self.min_interval)
            self._last_slot[origin] = slot
        await self.sleep(slot - now)

    async def execute(
        self,
        url: str,
        method: str = "GET",
        headers: Optional[dict] = None,
        body: Optional[str] = None,
        timeout: Optional[float] = None,
        retries: Optional[int] = None,
        retry_delay: Optional[float] = None,
    ) -> HTTPResponse:
        """
        Fetch url through the resolver.

        Args:
            url: Absolute URL
            method: HTTP method
            headers: Extra request headers
            body: Request body
            timeout: Per-strategy timeout in seconds (defaults to the executor's)
            retries: Retries after the first attempt (defaults to the executor's)
            retry_delay: Base backoff delay (defaults to the executor's)

        Returns:
            The first HTTP response obtained, whatever its status

        Raises:
            ScanAborted: the scan-wide token fired
            TransportError: every attempt failed; the last error is raised
        """
        timeout = self.timeout if timeout is None else timeout
        retries = self.retries if retries is None else retries
        retry_delay = self.retry_delay if retry_delay is None else retry_delay

        # The call-local deadline spans direct plus every relay strategy
        deadline_seconds = timeout * (1 + len(self.resolver.relays))
        origin = origin_of(url)
        metric = RequestMetrics(url=url, start=time.time())
        last_error: Optional[TransportError] = None

        try:
            for attempt in range(retries + 1):
                self.raise_if_aborted()
                await self._throttle(origin)
                metric.attempts += 1

                deadline = CancelToken.after(deadline_seconds, reason=f"timed out after {deadline_seconds:g}s")
                merged = CancelToken.first_of(self._token, deadline, name="request")
                try:
                    response = await self.resolver.resolve(
                        url, method=method, headers=headers, body=body,
                        timeout=timeout, cancel=merged,
                    )
                except OperationCancelled as e:
                    if self._token.cancelled:
                        raise ScanAborted(self._token.reason or e.reason) from e
                    last_error = RequestTimeout(f"Request to {url} {e.reason}", [e.reason])
                except TransportError as e:
                    last_error = e
                else:
                    metric.status = response.status_code
                    metric.transport = response.transport.to_dict()
                    return response
                finally:
                    merged.release()
                    deadline.release()

                if attempt < retries:
                    delay = retry_delay * (attempt + 1)
                    logger.debug(
                        "request_retry",
                        url=url,
                        attempt=attempt + 1,
                        delay=delay,
                        error=str(last_error),
                    )
                    await self.sleep(delay)

            metric.is_error = True
            metric.error = str(last_error)
            raise last_error
        except ScanAborted as e:
            metric.is_error = True
            metric.error = f"aborted: {e.reason}"
            raise
        finally:
            metric.end = time.time()
            metric.duration_ms = (metric.end - metric.start) * 1000
            self.metrics.append(metric)

    def performance_metrics(self) -> dict:
        """Average response time (ms), error rate (%) and sample count of recent calls."""
        samples = list(self.metrics)
        if not samples:
            return {"avg_response_time": 0.0, "error_rate": 0.0, "total_requests": 0}

        durations = [m.duration_ms or 0.0 for m in samples]
        errors = sum(1 for m in samples if m.is_error)
        return {
            "avg_response_time": sum(durations) / len(durations),
            "error_rate": errors / len(samples) * 100,
            "total_requests": len(samples),
        }
