"""
SURFACESCAN - Test Configuration
================================
Shared fixtures: mock-transport clients, executors and module contexts.
"""

import os

import httpx
import pytest
import pytest_asyncio

# Keep settings deterministic regardless of the developer's environment
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["LOG_JSON"] = "false"

from surfacescan.config import get_settings
from surfacescan.core.executor import RequestExecutor
from surfacescan.core.models import ScanConfig
from surfacescan.core.resolver import TransportResolver
from surfacescan.core.storage import MemoryScanStore, SQLScanStore
from surfacescan.modules.base import ModuleContext
from surfacescan.utils.http import create_client


SETTINGS_ENV = (
    "SCAN_THREADS",
    "SCAN_TIMEOUT",
    "SCAN_RETRIES",
    "SCAN_RETRY_DELAY",
    "SCAN_PAYLOAD_LIMIT",
    "SCAN_RELAYS",
    "SCAN_VERIFY_SSL",
    "VIRUSTOTAL_API_KEY",
)


@pytest.fixture(autouse=True)
def clean_settings(monkeypatch):
    """Fresh settings per test, unaffected by the host environment."""
    for name in SETTINGS_ENV:
        monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


# ===========================================
# HTTP Fixtures
# ===========================================

def mock_client(handler) -> httpx.AsyncClient:
    """httpx client whose requests are answered by handler(request)."""
    return create_client(transport=httpx.MockTransport(handler))


@pytest.fixture
def make_resolver():
    """Factory: make_resolver(handler, relays=()) -> TransportResolver."""
    def factory(handler, relays=()):
        return TransportResolver(mock_client(handler), relays)
    return factory


@pytest.fixture
def make_executor(make_resolver):
    """Factory: make_executor(handler, relays=(), **executor_kwargs) -> RequestExecutor."""
    def factory(handler, relays=(), **kwargs):
        kwargs.setdefault("threads", 200)
        kwargs.setdefault("retry_delay", 0.0)
        return RequestExecutor(make_resolver(handler, relays), **kwargs)
    return factory


@pytest.fixture
def make_context(make_executor):
    """
    Factory: make_context(handler, target, **config) -> ModuleContext.

    Defaults favour fast tests: high rate limit, no retries.
    """
    def factory(handler, target="https://target.test/", relays=(), **config):
        config.setdefault("threads", 200)
        config.setdefault("retries", 0)
        config.setdefault("retry_delay", 0.0)
        scan_config = ScanConfig(target=target, relays=tuple(relays), **config)
        executor = make_executor(
            handler,
            relays=scan_config.relays,
            threads=scan_config.threads,
            timeout=scan_config.timeout,
            retries=scan_config.retries,
            retry_delay=scan_config.retry_delay,
        )
        return ModuleContext(target=scan_config.target, config=scan_config, executor=executor)
    return factory


# ===========================================
# Store Fixtures
# ===========================================

@pytest.fixture
def memory_store():
    return MemoryScanStore()


@pytest_asyncio.fixture
async def sql_store():
    """SQL store on an in-memory SQLite database."""
    store = SQLScanStore("sqlite+aiosqlite:///:memory:")
    await store.initialize()
    yield store
    await store.close()
