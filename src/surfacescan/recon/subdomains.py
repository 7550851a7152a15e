"""
SURFACESCAN - Subdomain Enumeration

Certificate transparency (crt.sh), DoH brute force of common names, and
VirusTotal when an API key is configured.
"""

import asyncio
from dataclasses import dataclass, field
from urllib.parse import quote

import structlog

from surfacescan.core.errors import ScanAborted, TransportError
from surfacescan.core.models import ModuleKind
from surfacescan.modules.base import ModuleResult, ScanModule
from surfacescan.recon.dns import doh_query
from surfacescan.utils.helpers import is_subdomain_of

logger = structlog.get_logger(__name__)

CRTSH_ENDPOINT = "https://crt.sh/?q={query}&output=json"
VIRUSTOTAL_ENDPOINT = "https://www.virustotal.com/api/v3/domains/{domain}/subdomains?limit=40"


@dataclass
class Subdomain:
    name: str
    ips: list[str] = field(default_factory=list)
    sources: list[str] = field(default_factory=list)


@dataclass
class SubdomainResult(ModuleResult):
    domain: str
    subdomains: list[Subdomain] = field(default_factory=list)
    sources: dict[str, int] = field(default_factory=dict)
    failed_sources: list[str] = field(default_factory=list)
    total: int = 0


class SubdomainModule(ScanModule):
    """Merges every source into one de-duplicated subdomain list."""

    kind = ModuleKind.SUBDOMAINS
    name = "Subdomains"
    description = "Certificate transparency, DNS brute force and VirusTotal"

    WORDLIST = (
        "www", "mail", "ftp", "webmail", "smtp", "pop", "ns1", "ns2",
        "mx", "blog", "dev", "staging", "stage", "test", "api", "app",
        "admin", "beta", "demo", "shop", "store", "m", "mobile", "secure",
        "vpn", "remote", "portal", "support", "cdn", "static", "assets",
        "img", "media", "files", "backup", "old", "new", "internal",
        "intranet", "qa", "uat", "prod", "auth", "login", "sso", "id",
        "accounts", "billing", "dashboard", "panel", "cpanel", "jenkins",
        "ci", "status", "monitor", "grafana", "docs", "wiki", "help",
        "forum", "community", "chat", "git", "gitlab", "jira",
    )

    async def run(self) -> SubdomainResult:
        domain = self.context.domain
        result = SubdomainResult(domain=domain)
        found: dict[str, Subdomain] = {}

        def add(name: str, source: str, ips: list[str] = ()) -> None:
            name = name.lower().strip().rstrip(".")
            if name.startswith("*."):
                name = name[2:]
            if not name or name == domain or not is_subdomain_of(name, domain):
                return
            entry = found.setdefault(name, Subdomain(name=name))
            if source not in entry.sources:
                entry.sources.append(source)
            for ip in ips:
                if ip not in entry.ips:
                    entry.ips.append(ip)

        sources = [("crtsh", self._from_crtsh), ("bruteforce", self._from_bruteforce)]
        if self.context.api_key("virustotal"):
            sources.append(("virustotal", self._from_virustotal))

        for source, collect in sources:
            try:
                names = await collect(domain)
            except ScanAborted:
                raise
            except (TransportError, ValueError) as e:
                logger.warning("subdomain_source_failed", source=source, domain=domain, error=str(e))
                result.failed_sources.append(source)
                result.sources[source] = 0
                continue

            for name, ips in names:
                add(name, source, ips)
            result.sources[source] = len(names)

        result.subdomains = sorted(found.values(), key=lambda s: s.name)
        result.total = len(result.subdomains)
        logger.info("subdomains_complete", domain=domain, total=result.total, sources=result.sources)
        return result

    async def _from_crtsh(self, domain: str) -> list[tuple[str, list[str]]]:
        response = await self.fetch(
            CRTSH_ENDPOINT.format(query=quote(f"%.{domain}")),
            timeout=max(self.config.timeout, 30.0),
        )
        if response.status_code != 200:
            raise TransportError(f"crt.sh returned HTTP {response.status_code}")

        names = set()
        for entry in response.json():
            for name in str(entry.get("name_value", "")).splitlines():
                names.add(name.strip().lower())
        return [(name, []) for name in sorted(names)]

    async def _from_bruteforce(self, domain: str) -> list[tuple[str, list[str]]]:
        semaphore = asyncio.Semaphore(self.config.threads)

        async def probe(word: str) -> tuple[str, list[str]]:
            name = f"{word}.{domain}"
            async with semaphore:
                try:
                    records = await doh_query(self.executor, name, "A", timeout=self.config.timeout, retries=0)
                except ScanAborted:
                    raise
                except (TransportError, ValueError):
                    return name, []
            return name, [r.value for r in records]

        results = await asyncio.gather(*(probe(word) for word in self.WORDLIST))
        return [(name, ips) for name, ips in results if ips]

    async def _from_virustotal(self, domain: str) -> list[tuple[str, list[str]]]:
        response = await self.fetch(
            VIRUSTOTAL_ENDPOINT.format(domain=domain),
            headers={"x-apikey": self.context.api_key("virustotal")},
        )
        if response.status_code != 200:
            raise TransportError(f"VirusTotal returned HTTP {response.status_code}")
        return [(item["id"], []) for item in response.json().get("data") or [] if item.get("id")]
