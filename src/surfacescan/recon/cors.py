"""
SURFACESCAN - CORS Misconfiguration

Sends crafted Origin headers and inspects Access-Control-Allow-Origin.
"""

from dataclasses import dataclass, field
from typing import Optional

import structlog

from surfacescan.core.errors import ScanAborted, TransportError
from surfacescan.core.models import ModuleKind, Severity
from surfacescan.modules.base import ModuleResult, ScanModule

logger = structlog.get_logger(__name__)


@dataclass
class CorsFinding:
    type: str
    severity: Severity
    origin: str
    allow_origin: str
    allow_credentials: bool
    description: str


@dataclass
class CorsResult(ModuleResult):
    target: str
    tested: bool = False
    vulnerable: bool = False
    tested_origins: list[str] = field(default_factory=list)
    findings: list[CorsFinding] = field(default_factory=list)
    skipped_relayed: int = 0


class CorsModule(ScanModule):
    """
    CORS policy checks.

    Responses that came through a relay are skipped: relays add their own
    Access-Control-* headers.
    """

    kind = ModuleKind.CORS
    name = "CORS Misconfiguration"
    description = "Wildcard, reflected, null and look-alike origin checks"

    REQUEST_DELAY = 0.2
    ARBITRARY_ORIGIN = "https://arbitrary.com"

    def test_origins(self, domain: str) -> list[str]:
        return [
            "https://evil.com",
            "http://null.evil.com",
            f"https://{domain}.evil.com",
            f"https://evil{domain}",
            "null",
        ]

    async def run(self) -> CorsResult:
        target = self.context.target
        domain = self.context.domain
        result = CorsResult(target=target, tested=True)

        origins = [self.ARBITRARY_ORIGIN] + self.test_origins(domain)
        for index, origin in enumerate(origins):
            if index:
                await self.executor.sleep(self.REQUEST_DELAY)
            result.tested_origins.append(origin)

            try:
                response = await self.fetch(target, headers={"Origin": origin})
            except ScanAborted:
                raise
            except TransportError as e:
                logger.debug("cors_request_failed", origin=origin, error=str(e))
                continue

            if response.via_relay:
                result.skipped_relayed += 1
                continue

            allow_origin = response.header("access-control-allow-origin") or ""
            allow_credentials = (response.header("access-control-allow-credentials") or "").lower() == "true"
            finding = self.evaluate(origin, domain, allow_origin, allow_credentials)
            if finding is not None and not any(f.type == finding.type for f in result.findings):
                result.findings.append(finding)

        result.vulnerable = bool(result.findings)
        logger.info("cors_complete", target=target, findings=len(result.findings))
        return result

    def evaluate(
        self,
        origin: str,
        domain: str,
        allow_origin: str,
        allow_credentials: bool,
    ) -> Optional[CorsFinding]:
        if not allow_origin:
            return None

        if allow_origin == "*":
            return CorsFinding(
                type="wildcard_origin",
                severity=Severity.HIGH,
                origin=origin,
                allow_origin=allow_origin,
                allow_credentials=allow_credentials,
                description="CORS policy allows all origins (Access-Control-Allow-Origin: *)",
            )

        if allow_origin.lower() != origin.lower():
            return None

        if origin == "null":
            return CorsFinding(
                type="null_origin_allowed",
                severity=Severity.CRITICAL,
                origin=origin,
                allow_origin=allow_origin,
                allow_credentials=allow_credentials,
                description="CORS policy allows the 'null' origin (sandboxed iframes, local files)",
            )

        if domain and domain in origin:
            return CorsFinding(
                type="trusted_domain_bypass",
                severity=Severity.CRITICAL,
                origin=origin,
                allow_origin=allow_origin,
                allow_credentials=allow_credentials,
                description=f"CORS policy trusts a look-alike origin ({origin})",
            )

        return CorsFinding(
            type="dynamic_origin_reflection",
            severity=Severity.CRITICAL if allow_credentials else Severity.HIGH,
            origin=origin,
            allow_origin=allow_origin,
            allow_credentials=allow_credentials,
            description="CORS policy reflects arbitrary Origin headers",
        )
