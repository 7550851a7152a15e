"""
SURFACESCAN - Scan Data Model

The scan record, its immutable configuration snapshot and the enums
that drive the pipeline.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Iterable, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from surfacescan.config import Settings, get_settings
from surfacescan.utils.helpers import extract_domain, generate_id, normalize_url


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ScanStatus(str, Enum):
    """Lifecycle states of a scan."""
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (ScanStatus.COMPLETED, ScanStatus.FAILED)


class ModuleKind(str, Enum):
    """Every module the pipeline knows. Declaration order is pipeline order."""
    HEADERS = "headers"
    DNS = "dns"
    WHOIS = "whois"
    SUBDOMAINS = "subdomains"
    PORTS = "ports"
    CORS = "cors"
    WAF = "waf"
    SQLI = "sqli"
    XSS = "xss"
    LFI = "lfi"

    @classmethod
    def canonical(cls, kinds: Iterable["ModuleKind"]) -> tuple["ModuleKind", ...]:
        """De-duplicate kinds and sort them into pipeline order."""
        wanted = {cls(kind) for kind in kinds}
        return tuple(kind for kind in cls if kind in wanted)


class Severity(Enum):
    """Vulnerability severity levels."""
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    INFO = "info"

    def __lt__(self, other):
        order = [Severity.INFO, Severity.LOW, Severity.MEDIUM, Severity.HIGH, Severity.CRITICAL]
        return order.index(self) < order.index(other)

    def __gt__(self, other):
        return not self.__lt__(other) and self != other


class ScanConfig(BaseModel):
    """Immutable snapshot of everything a scan needs; reused verbatim on resume."""

    model_config = ConfigDict(frozen=True)

    target: str
    modules: tuple[ModuleKind, ...] = tuple(ModuleKind)
    threads: int = Field(default=20, ge=1, le=200)
    timeout: float = Field(default=10.0, gt=0)
    retries: int = Field(default=2, ge=0)
    retry_delay: float = Field(default=1.0, ge=0)
    relays: tuple[str, ...] = ()
    payload_limit: int = Field(default=20, ge=1)
    verify_ssl: bool = True
    # Credentials stay in memory; they are never part of the stored record
    api_keys: dict[str, str] = Field(default_factory=dict, exclude=True, repr=False)

    @field_validator("target")
    @classmethod
    def normalize_target(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("target must not be empty")
        url = normalize_url(value)
        if not extract_domain(url):
            raise ValueError(f"target has no host: {value!r}")
        return url

    @field_validator("modules")
    @classmethod
    def order_modules(cls, value: tuple[ModuleKind, ...]) -> tuple[ModuleKind, ...]:
        modules = ModuleKind.canonical(value)
        if not modules:
            raise ValueError("at least one module must be enabled")
        return modules

    @property
    def domain(self) -> str:
        return extract_domain(self.target)

    @classmethod
    def from_settings(
        cls,
        target: str,
        modules: Optional[Iterable[ModuleKind]] = None,
        settings: Optional[Settings] = None,
        **overrides: Any,
    ) -> "ScanConfig":
        """Capture settings plus caller overrides into a frozen snapshot."""
        settings = settings or get_settings()
        values = {
            "target": target,
            "modules": tuple(modules) if modules is not None else tuple(ModuleKind),
            "threads": settings.scan_threads,
            "timeout": settings.scan_timeout,
            "retries": settings.scan_retries,
            "retry_delay": settings.scan_retry_delay,
            "relays": tuple(settings.scan_relays),
            "payload_limit": settings.scan_payload_limit,
            "verify_ssl": settings.scan_verify_ssl,
            "api_keys": settings.api_keys,
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)


class ScanProgress(BaseModel):
    """Pipeline position. current never decreases and never exceeds total."""
    current: int = 0
    total: int = 0
    stage: Optional[str] = None

    @model_validator(mode="after")
    def check_bounds(self) -> "ScanProgress":
        if self.current < 0 or self.current > self.total:
            raise ValueError(f"progress {self.current}/{self.total} out of range")
        return self

    def advance(self, to: int, stage: Optional[str] = None) -> None:
        self.current = min(max(self.current, to), self.total)
        if stage is not None:
            self.stage = stage


class Scan(BaseModel):
    """A persisted scan record. Mutated only by the orchestrator."""

    id: str = Field(default_factory=lambda: generate_id("scan"))
    target: str
    config: ScanConfig
    status: ScanStatus = ScanStatus.RUNNING
    progress: ScanProgress = Field(default_factory=ScanProgress)
    results: dict[str, Any] = Field(default_factory=dict)
    errors: list[str] = Field(default_factory=list)
    completed_modules: list[ModuleKind] = Field(default_factory=list)

    created_at: datetime = Field(default_factory=utcnow)
    started_at: Optional[datetime] = None
    updated_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = None
    duration_seconds: Optional[float] = None

    @classmethod
    def create(cls, config: ScanConfig) -> "Scan":
        now = utcnow()
        return cls(
            target=config.target,
            config=config,
            progress=ScanProgress(current=0, total=len(config.modules)),
            started_at=now,
            updated_at=now,
        )

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def pending_modules(self) -> list[ModuleKind]:
        done = set(self.completed_modules)
        return [kind for kind in self.config.modules if kind not in done]

    @property
    def finding_count(self) -> int:
        total = 0
        for result in self.results.values():
            if isinstance(result, dict):
                total += len(result.get("findings") or [])
        return total

    def touch(self) -> None:
        self.updated_at = utcnow()

    def add_error(self, source: str, message: str) -> None:
        self.errors.append(f"{source}: {message}")

    def record_result(self, kind: ModuleKind, result: Optional[dict]) -> None:
        """Checkpoint a finished module. A failed module has no result but still counts."""
        if result is not None:
            self.results[kind.value] = result
        if kind not in self.completed_modules:
            self.completed_modules.append(kind)
        self.progress.advance(len(self.completed_modules))

    def finish(self, status: ScanStatus) -> None:
        self.status = status
        self.completed_at = utcnow()
        if self.started_at:
            self.duration_seconds = (self.completed_at - self.started_at).total_seconds()
