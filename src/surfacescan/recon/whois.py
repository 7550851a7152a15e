"""
SURFACESCAN - WHOIS via RDAP

Registration data from rdap.org plus authoritative nameservers over DoH.
"""

from dataclasses import dataclass, field
from typing import Optional

import structlog

from surfacescan.core.errors import ScanAborted, TransportError
from surfacescan.core.models import ModuleKind
from surfacescan.modules.base import ModuleResult, ScanModule
from surfacescan.recon.dns import doh_query

logger = structlog.get_logger(__name__)

RDAP_ENDPOINT = "https://rdap.org/domain/{domain}"

# Second-level suffixes where the registrable domain has three labels
MULTI_LABEL_SUFFIXES = {
    "co.uk", "org.uk", "ac.uk", "gov.uk", "com.au", "net.au", "org.au",
    "co.jp", "co.nz", "com.br", "co.in", "co.za", "com.mx", "com.tr",
}


@dataclass
class WhoisResult(ModuleResult):
    domain: str
    found: bool = False
    registrar: Optional[str] = None
    created: Optional[str] = None
    expires: Optional[str] = None
    updated: Optional[str] = None
    status: list[str] = field(default_factory=list)
    nameservers: list[str] = field(default_factory=list)
    dnssec: Optional[bool] = None


def registrable_domain(domain: str) -> str:
    """Strip subdomain labels: www.shop.example.co.uk -> example.co.uk."""
    labels = domain.lower().rstrip(".").split(".")
    if len(labels) <= 2:
        return ".".join(labels)
    if ".".join(labels[-2:]) in MULTI_LABEL_SUFFIXES:
        return ".".join(labels[-3:])
    return ".".join(labels[-2:])


def parse_rdap(data: dict, result: WhoisResult) -> None:
    """Fill result from an RDAP domain object."""
    for entity in data.get("entities") or []:
        if "registrar" not in (entity.get("roles") or []):
            continue
        vcard = entity.get("vcardArray") or []
        if len(vcard) > 1:
            for item in vcard[1]:
                if item and item[0] == "fn":
                    result.registrar = item[3]
                    break
        break

    events = {e.get("eventAction"): e.get("eventDate") for e in data.get("events") or []}
    result.created = events.get("registration")
    result.expires = events.get("expiration")
    result.updated = events.get("last changed") or events.get("last update of RDAP database")

    result.status = list(data.get("status") or [])

    secure = data.get("secureDNS")
    if isinstance(secure, dict):
        result.dnssec = bool(secure.get("delegationSigned"))

    if not result.nameservers:
        result.nameservers = sorted(
            ns["ldhName"].lower().rstrip(".")
            for ns in data.get("nameservers") or []
            if ns.get("ldhName")
        )


class WhoisModule(ScanModule):
    kind = ModuleKind.WHOIS
    name = "WHOIS"
    description = "Registrar, dates and status via RDAP"

    async def run(self) -> WhoisResult:
        domain = registrable_domain(self.context.domain)
        result = WhoisResult(domain=domain)

        try:
            records = await doh_query(self.executor, domain, "NS", timeout=self.config.timeout)
            result.nameservers = sorted(r.value.lower() for r in records)
        except ScanAborted:
            raise
        except (TransportError, ValueError) as e:
            logger.debug("whois_ns_lookup_failed", domain=domain, error=str(e))

        response = await self.fetch(
            RDAP_ENDPOINT.format(domain=domain),
            headers={"Accept": "application/rdap+json"},
        )
        if response.status_code == 404:
            logger.info("whois_not_found", domain=domain)
            return result
        if response.status_code != 200:
            raise TransportError(f"RDAP lookup for {domain} returned HTTP {response.status_code}")

        parse_rdap(response.json(), result)
        result.found = True
        logger.info("whois_complete", domain=domain, registrar=result.registrar)
        return result
