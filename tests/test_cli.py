"""
SURFACESCAN CLI Tests
"""

import asyncio
from dataclasses import dataclass, field

import httpx
import pytest
from typer.testing import CliRunner

from surfacescan import __version__, cli
from surfacescan.cli import app
from surfacescan.core.models import ModuleKind
from surfacescan.core.orchestrator import ScanOrchestrator
from surfacescan.core.storage import SQLScanStore
from surfacescan.modules.base import ModuleResult, ScanModule


runner = CliRunner()


@dataclass
class CannedResult(ModuleResult):
    vulnerable: bool = False
    findings: list = field(default_factory=list)


class CleanModule(ScanModule):
    kind = ModuleKind.HEADERS
    name = "clean"

    async def run(self) -> CannedResult:
        return CannedResult()


class VulnerableModule(ScanModule):
    kind = ModuleKind.SQLI
    name = "vulnerable"

    async def run(self) -> CannedResult:
        return CannedResult(vulnerable=True, findings=[{
            "type": "error_based",
            "severity": "high",
            "parameter": "id",
            "evidence": "HTTP 500 (baseline 200)",
        }])


@pytest.fixture(autouse=True)
def offline(monkeypatch):
    """No real network or global logging reconfiguration from CLI runs."""
    def make_orchestrator(store):
        return ScanOrchestrator(
            store,
            modules={ModuleKind.HEADERS: CleanModule, ModuleKind.SQLI: VulnerableModule},
            client_factory=lambda config: httpx.AsyncClient(
                transport=httpx.MockTransport(lambda request: httpx.Response(200))
            ),
        )

    monkeypatch.setattr(cli, "_make_orchestrator", make_orchestrator)
    monkeypatch.setattr(cli, "_setup_logging", lambda json_logs=False: None)


@pytest.fixture
def db(tmp_path) -> str:
    return f"sqlite+aiosqlite:///{tmp_path / 'scans.db'}"


async def stored_ids(database_url: str) -> list[str]:
    store = SQLScanStore(database_url)
    try:
        return [scan.id for scan in await store.list_scans()]
    finally:
        await store.close()


class TestCLIBasics:
    """Test basic CLI functionality."""

    def test_version_command(self):
        """Test version command outputs version."""
        result = runner.invoke(app, ["version"])
        assert result.exit_code == 0
        assert __version__ in result.stdout

    def test_help_command(self):
        """Test help output."""
        result = runner.invoke(app, ["--help"])
        assert result.exit_code == 0
        assert "scan" in result.stdout

    def test_modules_command(self):
        """Test every module kind is listed."""
        result = runner.invoke(app, ["modules"])
        assert result.exit_code == 0
        for kind in ModuleKind:
            assert kind.value in result.stdout


class TestScanCommand:
    """Test running scans from the CLI."""

    def test_clean_scan_exits_zero(self, db):
        """Test a scan without findings exits 0."""
        result = runner.invoke(app, ["scan", "target.test", "-m", "headers", "--db", db])
        assert result.exit_code == 0, result.stdout
        assert "completed" in result.stdout

    def test_findings_exit_one(self, db):
        """Test a scan with vulnerabilities exits 1 and prints them."""
        result = runner.invoke(app, ["scan", "target.test", "-m", "headers", "-m", "sqli", "--db", db])
        assert result.exit_code == 1
        assert "error_based" in result.stdout

    def test_unknown_module_rejected(self, db):
        """Test module names are validated."""
        result = runner.invoke(app, ["scan", "target.test", "-m", "nope", "--db", db])
        assert result.exit_code != 0

    def test_invalid_target(self, db):
        """Test an unusable target exits 2."""
        result = runner.invoke(app, ["scan", "   ", "--db", db])
        assert result.exit_code == 2


class TestRecordCommands:
    """Test list / show / delete."""

    def test_list_empty(self, db):
        """Test listing an empty database."""
        result = runner.invoke(app, ["list", "--db", db])
        assert result.exit_code == 0
        assert "No scans" in result.stdout

    def test_list_show_delete(self, db):
        """Test a stored scan can be listed, shown and deleted."""
        runner.invoke(app, ["scan", "target.test", "-m", "headers", "--db", db])

        listed = runner.invoke(app, ["list", "--db", db])
        assert listed.exit_code == 0
        scan_id = asyncio.run(stored_ids(db))[0]
        assert scan_id[:10] in listed.stdout

        shown = runner.invoke(app, ["show", scan_id, "--json", "--db", db])
        assert shown.exit_code == 0
        assert scan_id in shown.stdout

        deleted = runner.invoke(app, ["delete", scan_id, "--db", db])
        assert deleted.exit_code == 0
        assert runner.invoke(app, ["show", scan_id, "--db", db]).exit_code == 1

    def test_show_missing(self, db):
        """Test showing an unknown scan exits 1."""
        result = runner.invoke(app, ["show", "scan-missing", "--db", db])
        assert result.exit_code == 1
