"""
SURFACESCAN - Port Scanner

TCP connect checks of common ports with banner grabbing.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Optional

import structlog

from surfacescan.core.models import ModuleKind, Severity
from surfacescan.modules.base import ModuleResult, ScanModule

logger = structlog.get_logger(__name__)


@dataclass
class PortInfo:
    """An open port."""
    port: int
    service: str = "unknown"
    banner: str = ""


@dataclass
class ExposedService:
    port: int
    service: str
    severity: Severity
    description: str


@dataclass
class PortScanResult(ModuleResult):
    host: str
    scanned: int = 0
    open_ports: list[PortInfo] = field(default_factory=list)
    exposed_services: list[ExposedService] = field(default_factory=list)


class PortScanModule(ScanModule):
    """
    Asynchronous port scanner with service detection.

    Connections are raw TCP, so they run under executor.guard() rather than
    the HTTP path; the scan token still aborts them.
    """

    kind = ModuleKind.PORTS
    name = "Open Ports"
    description = "TCP connect scan of common service ports"

    # Common ports to scan (covers most web and database services)
    PORTS = (
        21, 22, 23, 25, 53, 80, 110, 111, 135, 139, 143, 443, 445, 993, 995,
        1433, 1521, 2049, 3306, 3389, 5432, 5900, 6379, 8000, 8080, 8443,
        8888, 9090, 9200, 9300, 11211, 27017,
    )

    PORT_SERVICES = {
        21: "ftp",
        22: "ssh",
        23: "telnet",
        25: "smtp",
        53: "dns",
        80: "http",
        110: "pop3",
        111: "rpcbind",
        135: "msrpc",
        139: "netbios-ssn",
        143: "imap",
        443: "https",
        445: "microsoft-ds",
        993: "imaps",
        995: "pop3s",
        1433: "mssql",
        1521: "oracle",
        2049: "nfs",
        3306: "mysql",
        3389: "rdp",
        5432: "postgresql",
        5900: "vnc",
        6379: "redis",
        8080: "http-proxy",
        8443: "https-alt",
        9200: "elasticsearch",
        11211: "memcached",
        27017: "mongodb",
    }

    # Services that should never face the internet
    DANGEROUS_PORTS = {
        23: ("Telnet", Severity.HIGH),
        445: ("SMB", Severity.HIGH),
        1433: ("MSSQL", Severity.CRITICAL),
        3306: ("MySQL", Severity.CRITICAL),
        3389: ("RDP", Severity.HIGH),
        5432: ("PostgreSQL", Severity.CRITICAL),
        5900: ("VNC", Severity.HIGH),
        6379: ("Redis", Severity.CRITICAL),
        9200: ("Elasticsearch", Severity.HIGH),
        11211: ("Memcached", Severity.HIGH),
        27017: ("MongoDB", Severity.CRITICAL),
    }

    CONNECT_TIMEOUT = 3.0
    BANNER_TIMEOUT = 1.0

    async def run(self) -> PortScanResult:
        host = self.context.domain
        result = PortScanResult(host=host, scanned=len(self.PORTS))
        semaphore = asyncio.Semaphore(self.config.threads)

        async def scan_with_semaphore(port: int) -> Optional[PortInfo]:
            async with semaphore:
                self.executor.raise_if_aborted()
                return await self.executor.guard(self.scan_port(host, port))

        results = await asyncio.gather(*(scan_with_semaphore(port) for port in self.PORTS))

        for info in results:
            if info is None:
                continue
            result.open_ports.append(info)
            if info.port in self.DANGEROUS_PORTS:
                service, severity = self.DANGEROUS_PORTS[info.port]
                result.exposed_services.append(ExposedService(
                    port=info.port,
                    service=service,
                    severity=severity,
                    description=f"{service} service exposed on port {info.port}",
                ))

        logger.info("ports_complete", host=host, open=[p.port for p in result.open_ports])
        return result

    async def scan_port(self, host: str, port: int) -> Optional[PortInfo]:
        """
        Scan a single port.

        Returns:
            PortInfo if the port accepts connections, None otherwise
        """
        timeout = min(self.config.timeout, self.CONNECT_TIMEOUT)
        try:
            reader, writer = await asyncio.wait_for(asyncio.open_connection(host, port), timeout=timeout)
        except (asyncio.TimeoutError, OSError):
            return None

        banner = ""
        try:
            writer.write(b"\r\n")
            await writer.drain()
            data = await asyncio.wait_for(reader.read(1024), timeout=self.BANNER_TIMEOUT)
            banner = data.decode("utf-8", errors="ignore").strip()
        except (asyncio.TimeoutError, OSError):
            pass
        finally:
            writer.close()
            try:
                await writer.wait_closed()
            except OSError:
                pass

        return PortInfo(
            port=port,
            service=self.PORT_SERVICES.get(port, "unknown"),
            banner=banner[:200],
        )
