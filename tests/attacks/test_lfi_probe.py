"""
SURFACESCAN Local File Inclusion Probe Tests
"""

import httpx
import pytest

from surfacescan.attacks.base import Signal
from surfacescan.attacks.lfi import LFIProbe, check_lfi_signature

PASSWD = (
    "root:x:0:0:root:/root:/bin/bash\n"
    "daemon:x:1:1:daemon:/usr/sbin:/usr/sbin/nologin\n"
)
PAGE = "<html><body>" + "Document viewer. " * 20 + "</body></html>"


class FastLFIProbe(LFIProbe):
    REQUEST_DELAY = 0


class TestLFIProbe:
    """Test LFI detection end to end."""

    @pytest.mark.asyncio
    async def test_passwd_disclosure_on_error_status(self, make_context):
        """Test passwd contents are reported at 0.99 even on a 404."""
        def handler(request):
            if "passwd" in request.url.params.get("file", ""):
                return httpx.Response(404, text=PASSWD)
            return httpx.Response(200, text=PAGE)

        context = make_context(handler, target="https://files.test/view?file=report.pdf")
        result = await FastLFIProbe(context).run()

        assert result.parameters == ["file"]
        assert result.vulnerable is True
        finding = result.findings[0]
        assert finding.signal == Signal.SIGNATURE
        assert finding.confidence == 0.99
        assert finding.status_code == 404
        assert finding.indicator == "Unix password file format detected"

    @pytest.mark.asyncio
    async def test_default_parameters(self, make_context):
        """Test file-like default parameters are probed when the URL has none."""
        result = await FastLFIProbe(
            make_context(lambda request: httpx.Response(200, text=PAGE), payload_limit=1)
        ).run()

        assert result.parameters == ["file", "page", "include", "path"]
        assert result.tested_payloads == 4
        assert result.findings == []


class TestLFISignature:
    """Test file-content signatures."""

    def test_passwd_requires_shell(self):
        """Test a passwd-like line without a login shell is not the 0.99 signature."""
        signature = check_lfi_signature("root:x:0:0:root:/root:/usr/sbin/nologin")
        assert signature is None or signature.confidence < 0.99

    def test_passwd_with_shell(self):
        """Test passwd lines with /bin/bash match."""
        assert check_lfi_signature(PASSWD).confidence == 0.99

    def test_win_ini(self):
        """Test Windows INI structure."""
        body = "; for 16-bit app support comment\n[fonts]\n[extensions]\n"
        assert check_lfi_signature(body).confidence == 0.95

    def test_include_error_not_in_baseline(self):
        """Test a PHP include warning counts only when it is new."""
        warning = "Warning: include(../../etc/passwd): failed to open stream"
        assert check_lfi_signature(warning).confidence == 0.8
        assert check_lfi_signature(warning, baseline_body=warning) is None

    def test_plain_page(self):
        """Test ordinary HTML matches nothing."""
        assert check_lfi_signature(PAGE) is None
