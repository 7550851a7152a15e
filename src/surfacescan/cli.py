#!/usr/bin/env python3
"""
SURFACESCAN CLI
===============

Attack-surface scanner for targets you are authorized to test.

Usage:
    surfacescan scan <target>                  # All modules
    surfacescan scan <target> -m headers -m sqli
    surfacescan list                           # Stored scans
    surfacescan show <scan-id>                 # One scan in detail

Examples:
    surfacescan scan https://example.com --relay "https://relay.example/?url={url}"
    surfacescan scan example.com --threads 5 --timeout 15
"""

import asyncio
import json
from typing import List, Optional

import typer
from rich import box
from rich.panel import Panel
from rich.table import Table

from surfacescan import __version__
from surfacescan.config import get_settings
from surfacescan.core.errors import InvalidTransition, ScanNotFound, SurfaceScanError
from surfacescan.core.models import ModuleKind, Scan, ScanConfig, ScanStatus
from surfacescan.core.orchestrator import ScanOrchestrator
from surfacescan.core.storage import ScanStore, SQLScanStore
from surfacescan.utils.logger import configure_logging, console, print_finding

app = typer.Typer(
    name="surfacescan",
    help="SURFACESCAN - Attack-surface and vulnerability scanner",
    add_completion=False,
    rich_markup_mode="rich",
)

STATUS_STYLES = {
    ScanStatus.RUNNING: "cyan",
    ScanStatus.PAUSED: "yellow",
    ScanStatus.COMPLETED: "green",
    ScanStatus.FAILED: "red",
}


def _make_orchestrator(store: ScanStore) -> ScanOrchestrator:
    return ScanOrchestrator(store)


def _setup_logging(json_logs: bool = False) -> None:
    settings = get_settings()
    configure_logging(
        debug=settings.debug,
        json_output=json_logs or settings.log_json,
        level=settings.log_level,
    )


def _vulnerable_modules(scan: Scan) -> list[str]:
    """Modules whose stored result reports vulnerable=True."""
    return [
        name for name, result in scan.results.items()
        if isinstance(result, dict) and result.get("vulnerable")
    ]


def _status_text(status: ScanStatus) -> str:
    style = STATUS_STYLES.get(status, "white")
    return f"[{style}]{status.value}[/]"


def print_summary(scan: Scan) -> None:
    """Render a finished scan as a summary table plus its findings."""
    table = Table(title=f"Scan {scan.id}", box=box.ROUNDED)
    table.add_column("Module", style="cyan")
    table.add_column("Outcome")
    table.add_column("Findings", justify="right")

    failed = {error.split(":", 1)[0] for error in scan.errors}
    for kind in scan.config.modules:
        result = scan.results.get(kind.value)
        if result is not None:
            findings = len(result.get("findings") or [])
            outcome = "[red]vulnerable[/]" if result.get("vulnerable") else "[green]done[/]"
            table.add_row(kind.value, outcome, str(findings))
        elif kind.value in failed:
            table.add_row(kind.value, "[red]error[/]", "-")
        else:
            table.add_row(kind.value, "[dim]not run[/]", "-")

    console.print(table)
    console.print(
        f"Status: {_status_text(scan.status)}  "
        f"Progress: {scan.progress.current}/{scan.progress.total}  "
        f"Duration: {scan.duration_seconds or 0:.1f}s"
    )

    for name in _vulnerable_modules(scan):
        for finding in scan.results[name].get("findings") or []:
            title = f"{name}: {finding.get('type', 'finding')}"
            if finding.get("parameter"):
                title += f" in '{finding['parameter']}'"
            details = finding.get("evidence") or finding.get("description") or ""
            print_finding(finding.get("severity", "info"), title, details)

    for error in scan.errors:
        console.print(f"[warning]! {error}[/]")


# ============== SCAN COMMAND ==============

@app.command()
def scan(
    target: str = typer.Argument(..., help="Target URL or host to scan"),
    module: Optional[List[ModuleKind]] = typer.Option(
        None, "--module", "-m",
        help="Module to run (repeatable). Default: all modules",
    ),
    threads: Optional[int] = typer.Option(None, "--threads", "-t", help="Concurrency / requests per second"),
    timeout: Optional[float] = typer.Option(None, "--timeout", help="Per-request timeout in seconds"),
    retries: Optional[int] = typer.Option(None, "--retries", help="Retries after the first attempt"),
    relay: Optional[List[str]] = typer.Option(
        None, "--relay", "-r",
        help="Relay endpoint (repeatable, tried in order). '{url}' is replaced by the encoded target",
    ),
    payload_limit: Optional[int] = typer.Option(None, "--payload-limit", help="Max payloads per probe"),
    db: Optional[str] = typer.Option(None, "--db", help="Database URL for scan records"),
    json_logs: bool = typer.Option(False, "--json-logs", help="Emit JSON log lines"),
):
    """
    Run a scan to completion and print a summary.

    Exit code 1 means at least one module reported a vulnerability.
    """
    _setup_logging(json_logs)
    settings = get_settings()

    try:
        config = ScanConfig.from_settings(
            target,
            modules=module or None,
            settings=settings,
            threads=threads,
            timeout=timeout,
            retries=retries,
            relays=tuple(relay) if relay else None,
            payload_limit=payload_limit,
        )
    except ValueError as e:
        console.print(f"[error][!] Invalid scan configuration: {e}[/]")
        raise typer.Exit(code=2)

    console.print(Panel.fit(
        f"[bold]{config.target}[/bold]\n"
        f"[dim]modules: {', '.join(k.value for k in config.modules)}[/dim]",
        title=f"SURFACESCAN v{__version__}",
    ))

    try:
        result = asyncio.run(_run_scan(config, db or settings.database_url))
    except KeyboardInterrupt:
        console.print("\n[warning][!] Interrupted[/]")
        raise typer.Exit(code=130)
    except SurfaceScanError as e:
        console.print(f"\n[error][!] Error: {e}[/]")
        raise typer.Exit(code=2)

    print_summary(result)
    if _vulnerable_modules(result):
        raise typer.Exit(code=1)
    raise typer.Exit(code=0)


async def _run_scan(config: ScanConfig, database_url: str) -> Scan:
    store = SQLScanStore(database_url)
    orchestrator = _make_orchestrator(store)
    try:
        with console.status("[info]Scanning...[/]"):
            scan_id = await orchestrator.start(config)
            return await orchestrator.wait(scan_id)
    finally:
        await orchestrator.shutdown()
        await store.close()


# ============== RECORD COMMANDS ==============

async def _with_store(database_url: str, action):
    store = SQLScanStore(database_url)
    try:
        return await action(_make_orchestrator(store))
    finally:
        await store.close()


@app.command("list")
def list_scans(
    db: Optional[str] = typer.Option(None, "--db", help="Database URL for scan records"),
):
    """List stored scans, newest first."""
    _setup_logging()
    scans = asyncio.run(_with_store(db or get_settings().database_url, lambda o: o.list_scans()))

    if not scans:
        console.print("[dim]No scans recorded.[/dim]")
        return

    table = Table(title="Scans", box=box.SIMPLE)
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Target")
    table.add_column("Status")
    table.add_column("Progress", justify="right")
    table.add_column("Created")
    for item in scans:
        table.add_row(
            item.id,
            item.target,
            _status_text(item.status),
            f"{item.progress.current}/{item.progress.total}",
            item.created_at.strftime("%Y-%m-%d %H:%M:%S"),
        )
    console.print(table)


@app.command()
def show(
    scan_id: str = typer.Argument(..., help="Scan id"),
    db: Optional[str] = typer.Option(None, "--db", help="Database URL for scan records"),
    raw: bool = typer.Option(False, "--json", help="Print the stored record as JSON"),
):
    """Show one scan."""
    _setup_logging()
    try:
        record = asyncio.run(_with_store(db or get_settings().database_url, lambda o: o.get(scan_id)))
    except ScanNotFound as e:
        console.print(f"[error][!] {e}[/]")
        raise typer.Exit(code=1)

    if raw:
        console.print_json(json.dumps(record.model_dump(mode="json")))
        return
    print_summary(record)


@app.command()
def delete(
    scan_id: str = typer.Argument(..., help="Scan id"),
    db: Optional[str] = typer.Option(None, "--db", help="Database URL for scan records"),
):
    """Delete a stored scan."""
    _setup_logging()
    try:
        asyncio.run(_with_store(db or get_settings().database_url, lambda o: o.delete(scan_id)))
    except (ScanNotFound, InvalidTransition) as e:
        console.print(f"[error][!] {e}[/]")
        raise typer.Exit(code=1)
    console.print(f"[success]Deleted {scan_id}[/]")


# ============== UTILITY COMMANDS ==============

@app.command()
def modules():
    """List available modules in pipeline order."""
    from surfacescan.modules.registry import MODULE_REGISTRY

    table = Table(title="Modules", box=box.SIMPLE)
    table.add_column("Kind", style="cyan")
    table.add_column("Name")
    table.add_column("Description", style="dim")
    for kind in ModuleKind:
        module_cls = MODULE_REGISTRY[kind]
        table.add_row(kind.value, module_cls.name, module_cls.description)
    console.print(table)


@app.command()
def version():
    """Show version information."""
    console.print(f"[bold]SURFACESCAN[/bold] v{__version__}")


# ============== ENTRY POINT ==============

def main():
    """Main entry point."""
    app()


if __name__ == "__main__":
    main()
