"""
SURFACESCAN - Vulnerability Probes

Payload-injection probes sharing one baseline/classify/score protocol.
"""

from surfacescan.attacks.base import (
    CONFIDENCE_FLOOR,
    Finding,
    Payload,
    ProbeResult,
    Signal,
    VulnerabilityProbe,
)
from surfacescan.attacks.lfi import LFIProbe
from surfacescan.attacks.sqli import SQLiProbe
from surfacescan.attacks.xss import XSSProbe

__all__ = [
    "CONFIDENCE_FLOOR",
    "Finding",
    "LFIProbe",
    "Payload",
    "ProbeResult",
    "SQLiProbe",
    "Signal",
    "VulnerabilityProbe",
    "XSSProbe",
]
