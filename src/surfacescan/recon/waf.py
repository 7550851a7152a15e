"""
SURFACESCAN - WAF / DDoS Protection Fingerprinting

A short burst of sequential requests, inspected for protection-layer
headers, block pages and block status codes.

Responses that arrive through a relay carry the relay's own edge headers,
so they are counted but never fingerprinted.
"""

import re
from dataclasses import dataclass, field
from typing import Optional

import structlog

from surfacescan.core.errors import ScanAborted, TransportError
from surfacescan.core.models import ModuleKind
from surfacescan.modules.base import ModuleResult, ScanModule

logger = structlog.get_logger(__name__)

# header -> substrings identifying a vendor; an empty tuple means presence is enough
WAF_HEADERS = {
    "server": ("cloudflare", "sucuri", "akamai", "incapsula", "barracuda", "mod_security"),
    "x-waf-rule": (),
    "x-sucuri-id": (),
    "x-cdn": ("cloudflare", "akamai", "sucuri", "incapsula"),
    "cf-ray": (),
    "cf-cache-status": (),
    "x-protected-by": (),
    "x-iinfo": (),
    "x-amz-cf-id": (),
}

HEADER_VENDORS = {
    "x-sucuri-id": "Sucuri",
    "x-protected-by": "Sucuri",
    "cf-ray": "Cloudflare",
    "cf-cache-status": "Cloudflare",
    "x-iinfo": "Imperva Incapsula",
    "x-amz-cf-id": "AWS CloudFront",
    "x-waf-rule": "Generic WAF",
}

VENDOR_NAMES = {
    "cloudflare": "Cloudflare",
    "sucuri": "Sucuri",
    "akamai": "Akamai",
    "incapsula": "Imperva Incapsula",
    "barracuda": "Barracuda",
    "mod_security": "ModSecurity",
}

BLOCK_STATUS_CODES = (403, 429, 503, 504)

BODY_PATTERNS = [re.compile(p, re.IGNORECASE) for p in (
    r"access denied",
    r"rate limit exceeded",
    r"captcha",
    r"checking your browser",
    r"ddos protection by",
    r"bot management",
    r"request blocked",
)]


@dataclass
class StatusSummary:
    status: int
    count: int
    avg_response_time: float


@dataclass
class WafResult(ModuleResult):
    target: str
    tested: bool = False
    firewall_detected: bool = False
    detected_wafs: list[str] = field(default_factory=list)
    indicators: list[str] = field(default_factory=list)
    response_summary: list[StatusSummary] = field(default_factory=list)
    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    rate_limited: bool = False
    relayed_requests: int = 0
    proxy_url: Optional[str] = None


class WafModule(ScanModule):
    kind = ModuleKind.WAF
    name = "WAF / DDoS Protection"
    description = "Burst requests and fingerprint protection layers"

    REQUEST_COUNT = 20
    REQUEST_INTERVAL = 0.1
    REQUEST_TIMEOUT = 5.0

    async def run(self) -> WafResult:
        target = self.context.target
        result = WafResult(target=target, tested=True, total_requests=self.REQUEST_COUNT)
        timings: dict[int, list[float]] = {}
        indicators: dict[str, None] = {}
        vendors: dict[str, None] = {}

        for index in range(self.REQUEST_COUNT):
            if index:
                await self.executor.sleep(self.REQUEST_INTERVAL)
            try:
                response = await self.fetch(
                    target,
                    timeout=min(self.config.timeout, self.REQUEST_TIMEOUT),
                    retries=0,
                )
            except ScanAborted:
                raise
            except TransportError as e:
                result.failed_requests += 1
                logger.debug("waf_request_failed", target=target, error=str(e))
                continue

            result.successful_requests += 1
            if response.via_relay:
                result.relayed_requests += 1
                result.proxy_url = response.transport.proxy_url
                continue

            timings.setdefault(response.status_code, []).append(response.elapsed_ms)

            for header, patterns in WAF_HEADERS.items():
                value = response.header(header)
                if not value:
                    continue
                lowered = value.lower()
                matched = [p for p in patterns if p in lowered]
                if patterns and not matched:
                    continue
                indicators[f"Header '{header}': {value}"] = None
                for pattern in matched:
                    vendors[VENDOR_NAMES[pattern]] = None
                if header in HEADER_VENDORS:
                    vendors[HEADER_VENDORS[header]] = None

            for pattern in BODY_PATTERNS:
                if pattern.search(response.body):
                    indicators[f"Body pattern matched: '{pattern.pattern}'"] = None

        for status in sorted(timings):
            durations = timings[status]
            result.response_summary.append(StatusSummary(
                status=status,
                count=len(durations),
                avg_response_time=sum(durations) / len(durations),
            ))
            if status in BLOCK_STATUS_CODES:
                indicators[f"HTTP status {status} detected"] = None
            if status == 429:
                result.rate_limited = True

        result.indicators = list(indicators)
        result.detected_wafs = list(vendors)
        result.firewall_detected = bool(result.indicators)

        logger.info(
            "waf_complete",
            target=target,
            detected=result.detected_wafs,
            blocked=result.rate_limited,
            relayed=result.relayed_requests,
        )
        return result
