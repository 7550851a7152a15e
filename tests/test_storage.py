"""
SURFACESCAN Scan Store Tests
"""

import pytest

from surfacescan.core.errors import PersistenceError
from surfacescan.core.models import ModuleKind, Scan, ScanConfig, ScanStatus
from surfacescan.core.storage import SQLScanStore


def new_scan(target: str = "https://target.test") -> Scan:
    return Scan.create(ScanConfig(target=target, modules=(ModuleKind.HEADERS, ModuleKind.SQLI)))


class StoreContract:
    """Behaviour every ScanStore backend must share."""

    @pytest.fixture
    def store(self):
        raise NotImplementedError

    @pytest.mark.asyncio
    async def test_write_then_read(self, store):
        """Test a written scan reads back equal."""
        scan = new_scan()
        await store.write(scan)
        loaded = await store.read(scan.id)

        assert loaded.model_dump() == scan.model_dump()
        assert loaded.config.modules == (ModuleKind.HEADERS, ModuleKind.SQLI)

    @pytest.mark.asyncio
    async def test_overwrite(self, store):
        """Test writing again replaces the record."""
        scan = new_scan()
        await store.write(scan)

        scan.record_result(ModuleKind.HEADERS, {"score": 42})
        scan.finish(ScanStatus.COMPLETED)
        await store.write(scan)

        loaded = await store.read(scan.id)
        assert loaded.status == ScanStatus.COMPLETED
        assert loaded.results == {"headers": {"score": 42}}
        assert loaded.progress.current == 1

    @pytest.mark.asyncio
    async def test_read_is_a_copy(self, store):
        """Test mutating a loaded scan does not touch the stored record."""
        scan = new_scan()
        await store.write(scan)

        loaded = await store.read(scan.id)
        loaded.errors.append("sqli: local edit")
        assert (await store.read(scan.id)).errors == []

    @pytest.mark.asyncio
    async def test_api_keys_not_stored(self, store):
        """Test a stored scan comes back without its credentials."""
        scan = Scan.create(ScanConfig(target="a.test", api_keys={"virustotal": "SECRET-KEY"}))
        await store.write(scan)

        loaded = await store.read(scan.id)
        assert loaded.config.api_keys == {}
        assert "SECRET-KEY" not in loaded.model_dump_json()

    @pytest.mark.asyncio
    async def test_missing(self, store):
        """Test reading and deleting unknown ids."""
        assert await store.read("scan-nope") is None
        assert await store.delete("scan-nope") is False

    @pytest.mark.asyncio
    async def test_list_and_delete(self, store):
        """Test listing is newest first and delete removes."""
        first, second = new_scan("a.test"), new_scan("b.test")
        await store.write(first)
        await store.write(second)

        assert [s.id for s in await store.list_scans()] == [second.id, first.id]
        assert await store.delete(first.id) is True
        assert [s.id for s in await store.list_scans()] == [second.id]


class TestMemoryScanStore(StoreContract):
    """In-memory backend."""

    @pytest.fixture
    def store(self, memory_store):
        return memory_store


class TestSQLScanStore(StoreContract):
    """SQLAlchemy backend on in-memory SQLite."""

    @pytest.fixture
    def store(self, sql_store):
        return sql_store

    @pytest.mark.asyncio
    async def test_file_database_survives_reopen(self, tmp_path):
        """Test records persist across store instances."""
        url = f"sqlite+aiosqlite:///{tmp_path / 'scans.db'}"
        scan = new_scan()

        store = SQLScanStore(url)
        await store.write(scan)
        await store.close()

        reopened = SQLScanStore(url)
        try:
            assert (await reopened.read(scan.id)).id == scan.id
        finally:
            await reopened.close()

    @pytest.mark.asyncio
    async def test_unreachable_database(self, tmp_path):
        """Test driver failures surface as PersistenceError."""
        store = SQLScanStore(f"sqlite+aiosqlite:///{tmp_path / 'missing' / 'scans.db'}")
        try:
            with pytest.raises(PersistenceError):
                await store.write(new_scan())
        finally:
            await store.close()
