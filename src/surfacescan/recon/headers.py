"""
SURFACESCAN - Security Header Analysis

Present/missing security headers and technology hints from response headers.
"""

from dataclasses import dataclass, field
from typing import Optional

import structlog

from surfacescan.core.models import ModuleKind, Severity
from surfacescan.modules.base import ModuleResult, ScanModule

logger = structlog.get_logger(__name__)

# header -> severity of its absence
SECURITY_HEADERS = {
    "strict-transport-security": Severity.HIGH,
    "content-security-policy": Severity.HIGH,
    "x-frame-options": Severity.MEDIUM,
    "x-content-type-options": Severity.MEDIUM,
    "referrer-policy": Severity.LOW,
    "permissions-policy": Severity.LOW,
    "x-xss-protection": Severity.INFO,
}

TECHNOLOGY_HEADERS = ("server", "x-powered-by", "x-aspnet-version", "x-generator")


@dataclass
class MissingHeader:
    header: str
    severity: Severity


@dataclass
class HeaderResult(ModuleResult):
    url: str
    status_code: int
    server: Optional[str] = None
    headers: dict[str, str] = field(default_factory=dict)
    present: list[str] = field(default_factory=list)
    missing: list[MissingHeader] = field(default_factory=list)
    technologies: list[str] = field(default_factory=list)
    score: int = 0
    via_relay: bool = False
    transport: dict = field(default_factory=dict)


class HeaderModule(ScanModule):
    kind = ModuleKind.HEADERS
    name = "Security Headers"
    description = "Security header coverage and technology disclosure"

    async def run(self) -> HeaderResult:
        response = await self.fetch(self.context.target)
        headers = dict(response.headers)

        result = HeaderResult(
            url=response.url,
            status_code=response.status_code,
            server=response.server,
            headers=headers,
            via_relay=response.via_relay,
            transport=response.transport.to_dict(),
        )

        for header, severity in SECURITY_HEADERS.items():
            if header in headers:
                result.present.append(header)
            else:
                result.missing.append(MissingHeader(header=header, severity=severity))

        for header in TECHNOLOGY_HEADERS:
            value = headers.get(header)
            if not value:
                continue
            if header == "x-aspnet-version":
                value = f"ASP.NET {value}"
            result.technologies.append(value)

        result.score = round(len(result.present) / len(SECURITY_HEADERS) * 100)
        logger.info(
            "headers_complete",
            url=result.url,
            score=result.score,
            missing=[m.header for m in result.missing],
        )
        return result
