"""
SURFACESCAN Cross-Site Scripting Probe Tests
"""

import html

import httpx
import pytest

from surfacescan.attacks.base import Baseline, Payload, Signal
from surfacescan.attacks.xss import XSSProbe
from surfacescan.utils.http import HTTPResponse


class FastXSSProbe(XSSProbe):
    REQUEST_DELAY = 0


def response_with(body: str) -> HTTPResponse:
    return HTTPResponse(url="https://target.test/", status_code=200, headers={}, body=body, elapsed_ms=5.0)


class TestReflection:
    """Test end-to-end reflected XSS detection."""

    @pytest.mark.asyncio
    async def test_unescaped_reflection(self, make_context):
        """Test raw reflection of a script tag is reported with high confidence."""
        def handler(request):
            query = request.url.params.get("q", "")
            return httpx.Response(200, text=f"<html><body>Results for {query}</body></html>")

        result = await FastXSSProbe(make_context(handler, payload_limit=1)).run()

        assert result.parameters == ["q"]
        assert len(result.findings) == 1
        finding = result.findings[0]
        assert finding.type == "script_tag"
        assert finding.signal == Signal.SIGNATURE
        assert finding.confidence >= 0.95
        assert "<script>alert(1)</script>" in finding.evidence

    @pytest.mark.asyncio
    async def test_escaped_reflection_is_safe(self, make_context):
        """Test HTML-escaped reflection produces no findings."""
        def handler(request):
            query = html.escape(request.url.params.get("q", ""))
            return httpx.Response(200, text=f"<html><body>Results for {query}</body></html>")

        result = await FastXSSProbe(make_context(handler)).run()
        assert result.findings == []


class TestSignature:
    """Test context-aware signature matching."""

    def make_probe(self, make_context) -> XSSProbe:
        return XSSProbe(make_context(lambda request: httpx.Response(200)))

    def test_javascript_url_in_attribute(self, make_context):
        """Test javascript: counts only inside a URL-bearing attribute."""
        probe = self.make_probe(make_context)
        payload = Payload("javascript:alert(1)", "javascript_url")

        in_attr = probe.match_signature(payload, response_with('<a href="javascript:alert(1)">x</a>'), None)
        in_text = probe.match_signature(payload, response_with("<p>javascript:alert(1)</p>"), None)

        assert in_attr is not None
        assert in_attr.confidence == XSSProbe.JS_URL_CONFIDENCE
        assert in_text is None

    def test_attribute_breakout(self, make_context):
        """Test an injected event handler without a tag is an attribute breakout."""
        probe = self.make_probe(make_context)
        payload = Payload('" onmouseover="alert(1)', "attribute_injection")
        body = '<input value="" onmouseover="alert(1)">'

        signature = probe.match_signature(payload, response_with(body), None)
        assert signature.confidence == XSSProbe.ATTRIBUTE_CONFIDENCE

    def test_url_encoded_payload_decoded_by_server(self, make_context):
        """Test a decoded reflection of an encoded payload is caught."""
        probe = self.make_probe(make_context)
        payload = Payload("%3Cscript%3Ealert(1)%3C/script%3E", "url_encoded")

        signature = probe.match_signature(payload, response_with("<div><script>alert(1)</script></div>"), None)
        assert signature.confidence == XSSProbe.EXECUTABLE_CONFIDENCE

    def test_reflection_already_in_baseline(self, make_context):
        """Test content the page always contains is not a reflection."""
        probe = self.make_probe(make_context)
        page = "<script>alert(1)</script>"
        baseline = Baseline(status_code=200, length=len(page), elapsed_ms=5, body=page)

        signature = probe.match_signature(Payload(page, "script_tag"), response_with(page), baseline)
        assert signature is None

    def test_partial_reflection(self, make_context):
        """Test a surviving fragment scores lower than full reflection."""
        probe = self.make_probe(make_context)
        payload = Payload('"><img src=x onerror=alert(1)>', "attribute_break")

        # Quote stripped by the server, injected tag intact
        body = "<p>><img src=x onerror=alert(1)></p>"
        signature = probe.match_signature(payload, response_with(body), None)
        assert signature.confidence == XSSProbe.PARTIAL_CONFIDENCE

    def test_escaped_handler_text_is_not_partial(self, make_context):
        """Test escaped output mentioning a handler is not a reflection."""
        probe = self.make_probe(make_context)
        payload = Payload("<svg onload=alert(1)>", "svg_event")

        body = "<p>" + html.escape(payload.value) + "</p>"
        assert probe.match_signature(payload, response_with(body), None) is None
