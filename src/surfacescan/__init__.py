"""
SURFACESCAN - Attack Surface Reconnaissance Engine
===================================================

Fans out independent reconnaissance and vulnerability probes against a
target and aggregates them into one persisted scan record.

Modules:
--------
- core: Transport resolver, request executor, cancellation, scan orchestrator
- attacks: Payload-injection probes (SQLi, XSS, LFI)
- recon: Reconnaissance modules (headers, DNS, WHOIS, subdomains, ports, CORS, WAF)
- modules: Module registry and pipeline contract
- utils: HTTP response wrapper, helpers, logging

Quick Start:
------------
    from surfacescan import ScanConfig, ScanOrchestrator, MemoryScanStore

    orchestrator = ScanOrchestrator(MemoryScanStore())
    scan_id = await orchestrator.start(ScanConfig.from_settings("example.com"))
    scan = await orchestrator.wait(scan_id)
"""

__version__ = "1.0.0"
__author__ = "SURFACESCAN"

from surfacescan.core.errors import (
    InvalidTransition,
    PersistenceError,
    RequestTimeout,
    ScanAborted,
    ScanNotFound,
    SurfaceScanError,
    TransportError,
)
from surfacescan.core.models import ModuleKind, Scan, ScanConfig, ScanStatus
from surfacescan.core.orchestrator import ScanOrchestrator
from surfacescan.core.storage import MemoryScanStore, SQLScanStore

__all__ = [
    "__version__",
    "InvalidTransition",
    "MemoryScanStore",
    "ModuleKind",
    "PersistenceError",
    "RequestTimeout",
    "SQLScanStore",
    "Scan",
    "ScanAborted",
    "ScanConfig",
    "ScanNotFound",
    "ScanOrchestrator",
    "ScanStatus",
    "SurfaceScanError",
    "TransportError",
]
