"""
SURFACESCAN - Module Base

Every pipeline step inherits from ScanModule. Modules never touch the scan
record; they return a result and the orchestrator merges it.
"""

from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Optional

from surfacescan.core.executor import RequestExecutor
from surfacescan.core.models import ModuleKind, ScanConfig
from surfacescan.utils.helpers import extract_domain
from surfacescan.utils.http import HTTPResponse


def _plain(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {k: _plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    return value


@dataclass
class ModuleResult:
    """Base for module results. to_dict() output is stored on the scan."""

    def to_dict(self) -> dict:
        return _plain(asdict(self))


@dataclass
class ModuleContext:
    """What a module gets to work with."""
    target: str
    config: ScanConfig
    executor: RequestExecutor

    @property
    def domain(self) -> str:
        return extract_domain(self.target)

    def api_key(self, name: str) -> Optional[str]:
        return self.config.api_keys.get(name)


class ScanModule(ABC):
    """
    Base class for all pipeline modules.

    Subclasses set kind/name and implement run(). Network I/O goes through
    self.fetch(), which routes every call through the scan's executor.
    """

    kind: ModuleKind
    name: str = "Base Module"
    description: str = ""

    def __init__(self, context: ModuleContext):
        self.context = context
        self.executor = context.executor
        self.config = context.config

    @abstractmethod
    async def run(self) -> ModuleResult:
        """
        Run the module against context.target.

        Raises:
            ScanAborted: the scan-wide token fired; must propagate
        """
        pass

    async def fetch(self, url: str, **kwargs) -> HTTPResponse:
        """Executor call with the scan's timeout/retry settings as defaults."""
        kwargs.setdefault("timeout", self.config.timeout)
        kwargs.setdefault("retries", self.config.retries)
        kwargs.setdefault("retry_delay", self.config.retry_delay)
        return await self.executor.execute(url, **kwargs)
