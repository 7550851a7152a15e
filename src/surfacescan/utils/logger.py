"""
SURFACESCAN - Logging System

Structured logging via structlog, plus a themed Rich console for terminal output.
"""

import logging
import sys

import structlog
from rich.console import Console
from rich.theme import Theme

SURFACESCAN_THEME = Theme({
    "info": "cyan",
    "warning": "yellow",
    "error": "red bold",
    "critical": "red bold reverse",
    "success": "green bold",
    "finding": "magenta bold",
    "attack": "blue",
    "recon": "cyan dim",
})

console = Console(theme=SURFACESCAN_THEME)

SEVERITY_STYLES = {
    "critical": "[red bold]CRITICAL[/]",
    "high": "[yellow bold]HIGH[/]",
    "medium": "[blue]MEDIUM[/]",
    "low": "[green]LOW[/]",
    "info": "[dim]INFO[/]",
}


def configure_logging(debug: bool = False, json_output: bool = False, level: str = "INFO") -> None:
    """
    Configure structlog for the engine.

    Development output is pretty-printed to stderr; json_output switches to
    one JSON object per line through the stdlib logging pipeline.
    """
    log_level = logging.DEBUG if debug else getattr(logging, level.upper(), logging.INFO)

    shared_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if json_output:
        structlog.configure(
            processors=shared_processors + [
                structlog.processors.format_exc_info,
                structlog.processors.JSONRenderer(),
            ],
            wrapper_class=structlog.stdlib.BoundLogger,
            context_class=dict,
            logger_factory=structlog.stdlib.LoggerFactory(),
            cache_logger_on_first_use=True,
        )
    else:
        structlog.configure(
            processors=shared_processors + [
                structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()),
            ],
            wrapper_class=structlog.stdlib.BoundLogger,
            context_class=dict,
            logger_factory=structlog.stdlib.LoggerFactory(),
            cache_logger_on_first_use=True,
        )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=log_level,
        force=True,
    )

    # Quiet noisy third-party loggers
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


def print_finding(severity: str, title: str, details: str = "") -> None:
    """Print a security finding to the console."""
    sev_display = SEVERITY_STYLES.get(severity.lower(), severity)
    console.print(f"[finding]FINDING[/] {sev_display} {title}")
    if details:
        console.print(f"  [dim]{details}[/]")
