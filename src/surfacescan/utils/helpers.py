"""
SURFACESCAN - Helper Utilities

URL and string helpers shared across the engine.
"""

import uuid
from typing import Optional
from urllib.parse import parse_qsl, urlencode, urlparse, urlunparse


def generate_id(prefix: str = "") -> str:
    """Generate a unique ID."""
    uid = uuid.uuid4().hex[:12]
    if prefix:
        return f"{prefix}-{uid}"
    return uid


def normalize_url(url: str) -> str:
    """
    Normalize a scan target into an absolute URL.

    - Adds https:// if no scheme is present
    - Drops the fragment
    - Keeps the query string untouched
    """
    url = url.strip()

    if url.startswith('//'):
        url = 'https:' + url
    elif not url.startswith(('http://', 'https://')):
        url = 'https://' + url

    parsed = urlparse(url)
    path = parsed.path or '/'

    return urlunparse((
        parsed.scheme,
        parsed.netloc,
        path,
        parsed.params,
        parsed.query,
        '',
    ))


def extract_domain(url: str) -> str:
    """Extract the bare hostname (no port, no credentials) from a URL or host."""
    if '://' not in url:
        url = 'https://' + url.strip()
    parsed = urlparse(url)
    return (parsed.hostname or '').lower()


def origin_of(url: str) -> str:
    """Return scheme://host[:port] for a URL."""
    parsed = urlparse(url)
    return f"{parsed.scheme}://{parsed.netloc}".lower()


def get_url_params(url: str) -> list[tuple[str, str]]:
    """Extract query parameters in order, keeping blank values."""
    return parse_qsl(urlparse(url).query, keep_blank_values=True)


def replace_url_params(url: str, params: list[tuple[str, str]]) -> str:
    """Return url with its query string replaced by params."""
    parsed = urlparse(url)
    return urlunparse((
        parsed.scheme,
        parsed.netloc,
        parsed.path,
        parsed.params,
        urlencode(params),
        parsed.fragment,
    ))


def is_subdomain_of(subdomain: str, domain: str) -> bool:
    """Check if subdomain is a subdomain of domain."""
    subdomain = subdomain.lower().rstrip('.')
    domain = domain.lower().rstrip('.')

    if subdomain == domain:
        return True

    return subdomain.endswith('.' + domain)


def truncate(text: Optional[str], length: int = 200) -> str:
    """Truncate text for evidence snippets."""
    if not text:
        return ""
    if len(text) <= length:
        return text
    return text[:length] + "..."
