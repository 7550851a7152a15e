"""
SURFACESCAN - Scan Persistence

ScanStore is the seam between the orchestrator and whatever keeps scan
records. Two backends ship: an in-memory one and a SQLAlchemy async one.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional

import structlog
from sqlalchemy import JSON, DateTime, String, delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.pool import StaticPool

from surfacescan.core.errors import PersistenceError
from surfacescan.core.models import Scan, utcnow

logger = structlog.get_logger(__name__)


class ScanStore(ABC):
    """Read/write access to scan records by id."""

    @abstractmethod
    async def read(self, scan_id: str) -> Optional[Scan]:
        """Return the stored scan or None."""

    @abstractmethod
    async def write(self, scan: Scan) -> None:
        """Insert or replace a scan record."""

    @abstractmethod
    async def list_scans(self) -> list[Scan]:
        """All stored scans, newest first."""

    @abstractmethod
    async def delete(self, scan_id: str) -> bool:
        """Remove a scan record. Returns False if it did not exist."""

    async def close(self) -> None:
        return None


class MemoryScanStore(ScanStore):
    """Keeps JSON snapshots so callers never share mutable state with the store."""

    def __init__(self):
        self._records: dict[str, str] = {}

    async def read(self, scan_id: str) -> Optional[Scan]:
        raw = self._records.get(scan_id)
        if raw is None:
            return None
        return Scan.model_validate_json(raw)

    async def write(self, scan: Scan) -> None:
        self._records[scan.id] = scan.model_dump_json()

    async def list_scans(self) -> list[Scan]:
        scans = [Scan.model_validate_json(raw) for raw in self._records.values()]
        return sorted(scans, key=lambda s: s.created_at, reverse=True)

    async def delete(self, scan_id: str) -> bool:
        return self._records.pop(scan_id, None) is not None


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


class ScanRecord(Base):
    """One row per scan; the full record lives in the data column."""
    __tablename__ = "scans"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    target: Mapped[str] = mapped_column(String(500), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    data: Mapped[dict] = mapped_column(JSON, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class SQLScanStore(ScanStore):
    """
    Scan store on SQLAlchemy async.

    SQLite (via aiosqlite) by default; any async driver URL works.
    """

    def __init__(self, database_url: str, echo: bool = False):
        self.database_url = database_url
        engine_kwargs: dict = {"echo": echo}

        if database_url.startswith("sqlite") and ":memory:" in database_url:
            # One shared connection, otherwise every session sees an empty database
            engine_kwargs.update({
                "poolclass": StaticPool,
                "connect_args": {"check_same_thread": False},
            })

        self.engine: AsyncEngine = create_async_engine(database_url, **engine_kwargs)
        self._sessions = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )
        self._initialized = False

    async def initialize(self) -> None:
        """Create tables if they don't exist."""
        if self._initialized:
            return
        try:
            async with self.engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Could not initialize scan store: {e}") from e
        self._initialized = True

    async def read(self, scan_id: str) -> Optional[Scan]:
        await self.initialize()
        try:
            async with self._sessions() as session:
                record = await session.get(ScanRecord, scan_id)
                if record is None:
                    return None
                return Scan.model_validate(record.data)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Could not read scan {scan_id}: {e}") from e

    async def write(self, scan: Scan) -> None:
        await self.initialize()
        data = scan.model_dump(mode="json")
        try:
            async with self._sessions() as session:
                async with session.begin():
                    record = await session.get(ScanRecord, scan.id)
                    if record is None:
                        session.add(ScanRecord(
                            id=scan.id,
                            target=scan.target,
                            status=scan.status.value,
                            data=data,
                            created_at=scan.created_at,
                        ))
                    else:
                        record.status = scan.status.value
                        record.data = data
                        record.updated_at = scan.updated_at
        except SQLAlchemyError as e:
            raise PersistenceError(f"Could not write scan {scan.id}: {e}") from e

    async def list_scans(self) -> list[Scan]:
        await self.initialize()
        try:
            async with self._sessions() as session:
                rows = await session.scalars(
                    select(ScanRecord).order_by(ScanRecord.created_at.desc())
                )
                return [Scan.model_validate(row.data) for row in rows]
        except SQLAlchemyError as e:
            raise PersistenceError(f"Could not list scans: {e}") from e

    async def delete(self, scan_id: str) -> bool:
        await self.initialize()
        try:
            async with self._sessions() as session:
                async with session.begin():
                    result = await session.execute(delete(ScanRecord).where(ScanRecord.id == scan_id))
                    return result.rowcount > 0
        except SQLAlchemyError as e:
            raise PersistenceError(f"Could not delete scan {scan_id}: {e}") from e

    async def close(self) -> None:
        await self.engine.dispose()
        logger.debug("scan_store_closed", url=self.database_url)
