"""
SURFACESCAN - Vulnerability Probe Base

Shared algorithm for payload-injection probes (SQLi, XSS, LFI):

1. Baseline fetch of the untouched target
2. Parameter discovery (query string, or class-specific defaults)
3. Payload iteration per parameter through the executor
4. Classification into signature / timing / differential findings
5. Dedup per (parameter, payload, type), keeping the highest confidence
6. Confidence floor
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

import structlog

from surfacescan.core.errors import RequestTimeout, ScanAborted, TransportError
from surfacescan.core.models import Severity
from surfacescan.modules.base import ModuleResult, ScanModule
from surfacescan.utils.helpers import get_url_params, replace_url_params, truncate
from surfacescan.utils.http import HTTPResponse

logger = structlog.get_logger(__name__)

CONFIDENCE_FLOOR = 0.7


class Signal(str, Enum):
    """What kind of evidence produced a finding."""
    SIGNATURE = "signature"
    TIMING = "timing"
    DIFFERENTIAL = "differential"


@dataclass(frozen=True)
class Payload:
    """A single injection payload. Catalogs are loaded once per probe class."""
    value: str
    type: str
    severity: Severity = Severity.HIGH
    # Score given to a content match that has no calibrated pattern of its own
    confidence: float = 0.8
    delay_seconds: Optional[float] = None
    indicators: tuple[str, ...] = ()

    @property
    def is_timed(self) -> bool:
        return self.delay_seconds is not None


@dataclass
class Finding:
    """A single reported vulnerability instance."""
    parameter: str
    payload: str
    type: str
    signal: Signal
    severity: Severity
    confidence: float
    indicator: str = ""
    evidence: str = ""
    status_code: Optional[int] = None
    response_time_ms: Optional[float] = None
    via_relay: bool = False
    relay_url: Optional[str] = None

    def __post_init__(self):
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError(f"confidence out of range: {self.confidence}")
        self.confidence = round(self.confidence, 4)

    @property
    def key(self) -> tuple[str, str, str]:
        return (self.parameter, self.payload, self.type)


@dataclass
class Baseline:
    """The untouched target's response profile."""
    status_code: int
    length: int
    elapsed_ms: float
    body: str = ""


@dataclass
class Signature:
    """A body pattern hit."""
    indicator: str
    confidence: float
    evidence: str = ""


@dataclass
class ProbeResult(ModuleResult):
    """Outcome of one probe run."""
    probe: str
    target: str
    tested: bool = False
    vulnerable: bool = False
    tested_payloads: int = 0
    parameters: list[str] = field(default_factory=list)
    findings: list[Finding] = field(default_factory=list)
    baseline_status: Optional[int] = None
    baseline_length: Optional[int] = None
    relayed_requests: int = 0
    errors: int = 0


class VulnerabilityProbe(ScanModule):
    """
    Base class for payload-injection probes.

    Subclasses provide:
    - PAYLOADS: the payload catalog
    - DEFAULT_PARAMETERS: used when the target has no query string
    - match_signature(): class-specific body patterns
    """

    PAYLOADS: tuple[Payload, ...] = ()
    DEFAULT_PARAMETERS: tuple[tuple[str, str], ...] = ()

    REQUEST_DELAY = 0.3
    SIZE_CHANGE_THRESHOLD = 0.3
    DIFFERENTIAL_STATUS_CONFIDENCE = 0.7
    DIFFERENTIAL_SIZE_CONFIDENCE = 0.6
    DIFFERENTIAL_BOTH_CONFIDENCE = 0.75
    CORROBORATION_BONUS = 0.05

    async def run(self) -> ProbeResult:
        target = self.context.target
        result = ProbeResult(probe=self.name, target=target)

        baseline = await self.fetch_baseline(target)
        if baseline is not None:
            result.baseline_status = baseline.status_code
            result.baseline_length = baseline.length

        parameters = self.discover_parameters(target)
        payloads = self.select_payloads()
        result.parameters = [name for name, _ in parameters]
        result.tested = True

        logger.info(
            "probe_started",
            probe=self.name,
            target=target,
            parameters=result.parameters,
            payloads=len(payloads),
        )

        kept: dict[tuple[str, str, str], Finding] = {}
        first = True

        for name, _ in parameters:
            for payload in payloads:
                if not first:
                    await self.executor.sleep(self.REQUEST_DELAY)
                first = False

                test_url = self.build_test_url(target, parameters, name, payload)
                try:
                    response = await self.send_payload(test_url, payload)
                except ScanAborted:
                    raise
                except RequestTimeout as e:
                    result.tested_payloads += 1
                    findings = self.classify_timeout(name, payload, e)
                except TransportError as e:
                    result.errors += 1
                    logger.debug("payload_failed", probe=self.name, parameter=name, error=str(e))
                    continue
                else:
                    result.tested_payloads += 1
                    if response.via_relay:
                        result.relayed_requests += 1
                    findings = self.classify(name, payload, response, baseline)

                for finding in findings:
                    current = kept.get(finding.key)
                    if current is None or finding.confidence > current.confidence:
                        kept[finding.key] = finding

        result.findings = [f for f in kept.values() if f.confidence >= CONFIDENCE_FLOOR]
        result.vulnerable = bool(result.findings)

        logger.info(
            "probe_complete",
            probe=self.name,
            tested=result.tested_payloads,
            findings=len(result.findings),
        )
        return result

    async def fetch_baseline(self, target: str) -> Optional[Baseline]:
        """Fetch the unmodified target. Failure disables differential checks."""
        try:
            response = await self.fetch(target)
        except TransportError as e:
            logger.warning("baseline_failed", probe=self.name, target=target, error=str(e))
            return None
        return Baseline(
            status_code=response.status_code,
            length=len(response.body),
            elapsed_ms=response.elapsed_ms,
            body=response.body,
        )

    def discover_parameters(self, target: str) -> list[tuple[str, str]]:
        params = get_url_params(target)
        if params:
            return params
        return list(self.DEFAULT_PARAMETERS)

    def select_payloads(self) -> tuple[Payload, ...]:
        return self.PAYLOADS[:self.config.payload_limit]

    def build_test_url(
        self,
        target: str,
        parameters: list[tuple[str, str]],
        name: str,
        payload: Payload,
    ) -> str:
        """Append the payload to the named parameter's original value."""
        injected = [
            (key, value + payload.value if key == name else value)
            for key, value in parameters
        ]
        return replace_url_params(target, injected)

    async def send_payload(self, url: str, payload: Payload) -> HTTPResponse:
        return await self.fetch(url)

    # ------------------------------------------------------------------
    # Classification
    # ------------------------------------------------------------------

    def classify(
        self,
        parameter: str,
        payload: Payload,
        response: HTTPResponse,
        baseline: Optional[Baseline],
    ) -> list[Finding]:
        """Turn one response into zero or more findings."""
        findings = []
        differential = self.differential(response, baseline)

        signature = self.match_signature(payload, response, baseline)
        if signature is not None:
            confidence = signature.confidence
            if differential is not None:
                confidence = min(1.0, confidence + self.CORROBORATION_BONUS)
            findings.append(self._finding(
                parameter, payload, response, Signal.SIGNATURE,
                confidence, signature.indicator, signature.evidence,
            ))

        timing = self.check_timing(payload, response, baseline)
        if timing is not None:
            findings.append(self._finding(
                parameter, payload, response, Signal.TIMING,
                timing.confidence, timing.indicator, timing.evidence,
            ))

        if differential is not None and not findings:
            indicator, confidence = differential
            findings.append(self._finding(
                parameter, payload, response, Signal.DIFFERENTIAL,
                confidence, indicator, truncate(response.body),
            ))

        return findings

    def match_signature(
        self,
        payload: Payload,
        response: HTTPResponse,
        baseline: Optional[Baseline],
    ) -> Optional[Signature]:
        return None

    def check_timing(
        self,
        payload: Payload,
        response: HTTPResponse,
        baseline: Optional[Baseline],
    ) -> Optional[Signature]:
        return None

    def classify_timeout(self, parameter: str, payload: Payload, error: RequestTimeout) -> list[Finding]:
        return []

    def size_changed(self, response: HTTPResponse, baseline: Baseline) -> bool:
        if baseline.length == 0:
            return False
        delta = abs(len(response.body) - baseline.length) / baseline.length
        return delta > self.SIZE_CHANGE_THRESHOLD

    def differential(
        self,
        response: HTTPResponse,
        baseline: Optional[Baseline],
    ) -> Optional[tuple[str, float]]:
        """Status/size divergence from the baseline. Never above 0.75 on its own."""
        if baseline is None:
            return None

        server_error = response.status_code >= 500 and baseline.status_code < 500
        size_changed = self.size_changed(response, baseline)

        if server_error and size_changed:
            return (
                f"HTTP {response.status_code} (baseline {baseline.status_code}), "
                f"size {baseline.length} -> {len(response.body)}",
                self.DIFFERENTIAL_BOTH_CONFIDENCE,
            )
        if server_error:
            return (
                f"HTTP {response.status_code} (baseline {baseline.status_code})",
                self.DIFFERENTIAL_STATUS_CONFIDENCE,
            )
        if size_changed:
            return (
                f"size {baseline.length} -> {len(response.body)}",
                self.DIFFERENTIAL_SIZE_CONFIDENCE,
            )
        return None

    def _finding(
        self,
        parameter: str,
        payload: Payload,
        response: Optional[HTTPResponse],
        signal: Signal,
        confidence: float,
        indicator: str,
        evidence: str = "",
    ) -> Finding:
        return Finding(
            parameter=parameter,
            payload=payload.value,
            type=payload.type,
            signal=signal,
            severity=payload.severity,
            confidence=confidence,
            indicator=indicator,
            evidence=evidence,
            status_code=response.status_code if response else None,
            response_time_ms=response.elapsed_ms if response else None,
            via_relay=response.via_relay if response else False,
            relay_url=response.transport.proxy_url if response else None,
        )
