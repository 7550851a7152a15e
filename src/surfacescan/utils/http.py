"""
SURFACESCAN - HTTP Primitives

Response wrapper, transport metadata and the shared httpx client factory.
"""

import json
from dataclasses import asdict, dataclass, field
from typing import Any, Optional

import httpx


DEFAULT_HEADERS = {
    "User-Agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.5",
    "Accept-Encoding": "gzip, deflate",
    "Cache-Control": "no-cache",
    "Pragma": "no-cache",
}


@dataclass
class AttemptMetadata:
    """Which strategy produced a response, and how many tries it took."""
    used_proxy: bool = False
    proxy_url: Optional[str] = None
    proxy_index: Optional[int] = None
    attempts_direct: int = 0
    attempts_via_proxy: int = 0
    direct_error: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class HTTPResponse:
    """Wrapper for HTTP responses with security-relevant metadata."""
    url: str
    status_code: int
    headers: dict
    body: str
    elapsed_ms: float

    server: Optional[str] = None
    content_type: Optional[str] = None
    content_length: int = 0

    # How the response was obtained
    transport: AttemptMetadata = field(default_factory=AttemptMetadata)

    @classmethod
    def from_httpx(cls, response: httpx.Response, elapsed_ms: float) -> "HTTPResponse":
        headers = {k.lower(): v for k, v in response.headers.items()}
        return cls(
            url=str(response.url),
            status_code=response.status_code,
            headers=headers,
            body=response.text,
            elapsed_ms=elapsed_ms,
            server=headers.get("server"),
            content_type=headers.get("content-type"),
            content_length=len(response.content),
        )

    @property
    def via_relay(self) -> bool:
        return self.transport.used_proxy

    def header(self, name: str) -> Optional[str]:
        """Get header value (case-insensitive)."""
        return self.headers.get(name.lower())

    def json(self) -> Any:
        """Decode the body as JSON."""
        return json.loads(self.body)


def create_client(
    timeout: float = 30.0,
    verify_ssl: bool = True,
    follow_redirects: bool = True,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> httpx.AsyncClient:
    """
    Build the httpx client a scan's resolver sends through.

    Args:
        timeout: Upper bound for any single request; the executor applies
            tighter per-call limits on top.
        verify_ssl: Verify TLS certificates
        follow_redirects: Follow HTTP redirects
        transport: Optional transport override (mock transports in tests)

    Returns:
        Configured httpx.AsyncClient
    """
    return httpx.AsyncClient(
        timeout=httpx.Timeout(timeout),
        follow_redirects=follow_redirects,
        verify=verify_ssl,
        headers=DEFAULT_HEADERS.copy(),
        transport=transport,
    )
