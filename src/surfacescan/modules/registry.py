"""
SURFACESCAN - Module Registry

Maps every ModuleKind to exactly one module class. Import fails if a kind
has no module, so a new kind cannot be added without wiring it up.
"""

from typing import Type

from surfacescan.attacks.lfi import LFIProbe
from surfacescan.attacks.sqli import SQLiProbe
from surfacescan.attacks.xss import XSSProbe
from surfacescan.core.models import ModuleKind
from surfacescan.modules.base import ScanModule
from surfacescan.recon.cors import CorsModule
from surfacescan.recon.dns import DNSModule
from surfacescan.recon.headers import HeaderModule
from surfacescan.recon.ports import PortScanModule
from surfacescan.recon.subdomains import SubdomainModule
from surfacescan.recon.waf import WafModule
from surfacescan.recon.whois import WhoisModule

ModuleRegistry = dict[ModuleKind, Type[ScanModule]]


def build_registry(*modules: Type[ScanModule]) -> ModuleRegistry:
    """Index module classes by kind, rejecting duplicates and gaps."""
    registry: ModuleRegistry = {}
    for module in modules:
        if module.kind in registry:
            raise ValueError(f"Duplicate module for {module.kind.value}: {module.__name__}")
        registry[module.kind] = module

    missing = [kind.value for kind in ModuleKind if kind not in registry]
    if missing:
        raise ValueError(f"No module registered for: {', '.join(missing)}")
    return registry


MODULE_REGISTRY: ModuleRegistry = build_registry(
    HeaderModule,
    DNSModule,
    WhoisModule,
    SubdomainModule,
    PortScanModule,
    CorsModule,
    WafModule,
    SQLiProbe,
    XSSProbe,
    LFIProbe,
)
