"""
SURFACESCAN - Reconnaissance Modules
"""

from surfacescan.recon.cors import CorsModule
from surfacescan.recon.dns import DNSModule, doh_query
from surfacescan.recon.headers import HeaderModule
from surfacescan.recon.ports import PortScanModule
from surfacescan.recon.subdomains import SubdomainModule
from surfacescan.recon.waf import WafModule
from surfacescan.recon.whois import WhoisModule

__all__ = [
    "CorsModule",
    "DNSModule",
    "HeaderModule",
    "PortScanModule",
    "SubdomainModule",
    "WafModule",
    "WhoisModule",
    "doh_query",
]
