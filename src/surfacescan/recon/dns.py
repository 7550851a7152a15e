"""
SURFACESCAN - DNS Enumeration

DNS-over-HTTPS lookups. Used directly by the DNS module and by the WHOIS and
subdomain modules for NS/A resolution.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Optional
from urllib.parse import quote

import structlog

from surfacescan.core.errors import ScanAborted, TransportError
from surfacescan.core.executor import RequestExecutor
from surfacescan.core.models import ModuleKind
from surfacescan.modules.base import ModuleResult, ScanModule

logger = structlog.get_logger(__name__)

DOH_ENDPOINT = "https://dns.google/resolve"

# DNS RR type codes as they appear in DoH JSON answers
RECORD_TYPES = {
    "A": 1,
    "AAAA": 28,
    "MX": 15,
    "NS": 2,
    "TXT": 16,
    "CNAME": 5,
    "SOA": 6,
}


@dataclass
class DNSRecord:
    """A DNS record."""
    record_type: str
    name: str
    value: str
    ttl: int = 0


@dataclass
class DNSResult(ModuleResult):
    domain: str
    records: dict[str, list[DNSRecord]] = field(default_factory=dict)
    failed_types: list[str] = field(default_factory=list)
    total_records: int = 0


async def doh_query(
    executor: RequestExecutor,
    name: str,
    record_type: str,
    timeout: Optional[float] = None,
    retries: Optional[int] = None,
) -> list[DNSRecord]:
    """
    Resolve one record type over DNS-over-HTTPS.

    Returns:
        Matching records; empty when the name has none (NXDOMAIN included)

    Raises:
        TransportError: the resolver endpoint could not be reached
        ValueError: the endpoint answered with something other than DoH JSON
    """
    url = f"{DOH_ENDPOINT}?name={quote(name)}&type={record_type}"
    response = await executor.execute(
        url,
        headers={"Accept": "application/dns-json"},
        timeout=timeout,
        retries=retries,
    )
    if response.status_code != 200:
        raise TransportError(f"DoH lookup {name}/{record_type} returned HTTP {response.status_code}")

    data = response.json()
    type_code = RECORD_TYPES[record_type]
    records = []
    for answer in data.get("Answer") or []:
        if answer.get("type") != type_code:
            continue
        value = str(answer.get("data", "")).strip()
        if record_type == "TXT":
            value = value.strip('"')
        records.append(DNSRecord(
            record_type=record_type,
            name=str(answer.get("name", name)).rstrip("."),
            value=value.rstrip(".") if record_type != "TXT" else value,
            ttl=int(answer.get("TTL", 0)),
        ))
    return records


class DNSModule(ScanModule):
    """Queries every record type concurrently; a failed type yields no records."""

    kind = ModuleKind.DNS
    name = "DNS Records"
    description = "A, AAAA, MX, NS, TXT, CNAME and SOA records over DoH"

    async def run(self) -> DNSResult:
        domain = self.context.domain
        result = DNSResult(domain=domain)

        async def lookup(record_type: str) -> tuple[str, Optional[list[DNSRecord]]]:
            try:
                return record_type, await doh_query(
                    self.executor, domain, record_type,
                    timeout=self.config.timeout, retries=self.config.retries,
                )
            except ScanAborted:
                raise
            except (TransportError, ValueError) as e:
                logger.debug("dns_lookup_failed", domain=domain, record_type=record_type, error=str(e))
                return record_type, None

        answers = await asyncio.gather(*(lookup(t) for t in RECORD_TYPES))

        for record_type, records in answers:
            if records is None:
                result.failed_types.append(record_type)
                records = []
            result.records[record_type] = records
            result.total_records += len(records)

        logger.info("dns_complete", domain=domain, records=result.total_records)
        return result
