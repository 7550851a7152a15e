"""
SURFACESCAN - Scan Orchestrator

Owns the scan lifecycle:

    running -> paused -> running -> ... -> completed | failed

Modules run one at a time in pipeline order. Every mutation of the scan
record is persisted before the pipeline moves on, and each module's
failure is recorded without stopping the scan.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Callable, Mapping, Optional, Type

import httpx
import structlog

from surfacescan.core.cancellation import CancelToken
from surfacescan.core.errors import (
    InvalidTransition,
    PersistenceError,
    ScanAborted,
    ScanNotFound,
)
from surfacescan.core.executor import RequestExecutor
from surfacescan.core.models import ModuleKind, Scan, ScanConfig, ScanStatus
from surfacescan.core.resolver import TransportResolver
from surfacescan.core.storage import ScanStore
from surfacescan.modules.base import ModuleContext, ScanModule
from surfacescan.utils.http import create_client

logger = structlog.get_logger(__name__)

ClientFactory = Callable[[ScanConfig], httpx.AsyncClient]


def default_client_factory(config: ScanConfig) -> httpx.AsyncClient:
    return create_client(timeout=config.timeout, verify_ssl=config.verify_ssl)


@dataclass
class ScanSession:
    """Live state of one scan: its token, executor, client and pipeline task."""
    scan: Scan
    client: httpx.AsyncClient
    executor: RequestExecutor
    token: CancelToken
    task: Optional[asyncio.Task] = None
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)


class ScanOrchestrator:
    """
    Starts, pauses, resumes and stops scans.

    Sessions are keyed by scan id and dropped once the scan is terminal.
    """

    def __init__(
        self,
        store: ScanStore,
        modules: Optional[Mapping[ModuleKind, Type[ScanModule]]] = None,
        client_factory: Optional[ClientFactory] = None,
    ):
        if modules is None:
            from surfacescan.modules.registry import MODULE_REGISTRY
            modules = MODULE_REGISTRY
        self.store = store
        self.modules = dict(modules)
        self.client_factory = client_factory or default_client_factory
        self._sessions: dict[str, ScanSession] = {}

    @property
    def active_scans(self) -> list[str]:
        return list(self._sessions)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self, config: ScanConfig) -> str:
        """
        Create a scan in the running state and launch its pipeline.

        Returns:
            The new scan's id; the pipeline keeps running in the background
        """
        missing = [kind.value for kind in config.modules if kind not in self.modules]
        if missing:
            raise ValueError(f"No module available for: {', '.join(missing)}")

        scan = Scan.create(config)
        await self.store.write(scan)

        session = self._open_session(scan)
        self._launch(session)
        logger.info(
            "scan_started",
            scan_id=scan.id,
            target=scan.target,
            modules=[kind.value for kind in config.modules],
        )
        return scan.id

    async def pause(self, scan_id: str) -> Scan:
        """Suspend a running scan. In-flight requests abort; results so far are kept."""
        session = self._sessions.get(scan_id)
        if session is None:
            scan = await self.get(scan_id)
            raise InvalidTransition(scan_id, scan.status.value, "pause")

        async with session.lock:
            scan = session.scan
            if scan.status != ScanStatus.RUNNING:
                raise InvalidTransition(scan_id, scan.status.value, "pause")
            scan.status = ScanStatus.PAUSED
            scan.touch()
            await self.store.write(scan)

        session.token.cancel("paused")
        logger.info("scan_paused", scan_id=scan_id, progress=scan.progress.current)
        return scan.model_copy(deep=True)

    async def resume(self, scan_id: str) -> Scan:
        """
        Continue a paused scan from its last checkpoint.

        Modules already recorded as completed are skipped; the module that was
        interrupted runs again from the start.
        """
        session = self._sessions.get(scan_id)
        if session is None:
            # Paused in an earlier process: rebuild the session from the store
            scan = await self.get(scan_id)
            if scan.status != ScanStatus.PAUSED:
                raise InvalidTransition(scan_id, scan.status.value, "resume")
            session = self._open_session(scan)

        if session.scan.status != ScanStatus.PAUSED:
            raise InvalidTransition(scan_id, session.scan.status.value, "resume")
        if session.task is not None and not session.task.done():
            await asyncio.gather(session.task, return_exceptions=True)

        async with session.lock:
            scan = session.scan
            if scan.status != ScanStatus.PAUSED:
                raise InvalidTransition(scan_id, scan.status.value, "resume")

            token = CancelToken(name="scan")
            session.token = token
            session.executor.bind(token)

            scan.status = ScanStatus.RUNNING
            scan.touch()
            await self.store.write(scan)

        self._launch(session)
        logger.info("scan_resumed", scan_id=scan_id, pending=[k.value for k in scan.pending_modules])
        return scan.model_copy(deep=True)

    async def stop(self, scan_id: str) -> Scan:
        """Terminate a running or paused scan. It cannot be resumed afterwards."""
        session = self._sessions.get(scan_id)
        if session is None:
            # Paused in an earlier process, or left running by one that died
            scan = await self.get(scan_id)
            if scan.is_terminal:
                raise InvalidTransition(scan_id, scan.status.value, "stop")
            scan.add_error("scan", "stopped by user")
            scan.finish(ScanStatus.FAILED)
            scan.touch()
            await self.store.write(scan)
            logger.info("scan_stopped", scan_id=scan_id)
            return scan

        async with session.lock:
            scan = session.scan
            if scan.is_terminal:
                raise InvalidTransition(scan_id, scan.status.value, "stop")
            scan.add_error("scan", "stopped by user")
            scan.finish(ScanStatus.FAILED)
            scan.touch()
            await self.store.write(scan)

        session.token.cancel("stopped")
        if session.task is None or session.task.done():
            await self._close_session(scan_id)
        logger.info("scan_stopped", scan_id=scan_id)
        return scan.model_copy(deep=True)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get(self, scan_id: str) -> Scan:
        """The persisted record for scan_id."""
        scan = await self.store.read(scan_id)
        if scan is None:
            raise ScanNotFound(scan_id)
        return scan

    async def list_scans(self) -> list[Scan]:
        return await self.store.list_scans()

    async def delete(self, scan_id: str) -> None:
        """Remove a scan record, stopping it first if it is still active."""
        session = self._sessions.get(scan_id)
        if session is not None and not session.scan.is_terminal:
            await self.stop(scan_id)
            if session.task is not None:
                await asyncio.gather(session.task, return_exceptions=True)

        if not await self.store.delete(scan_id):
            raise ScanNotFound(scan_id)
        logger.info("scan_deleted", scan_id=scan_id)

    async def wait(self, scan_id: str, timeout: Optional[float] = None) -> Scan:
        """Wait for the current pipeline run to end (terminal or paused) and return the record."""
        session = self._sessions.get(scan_id)
        if session is not None and session.task is not None:
            await asyncio.wait_for(asyncio.shield(session.task), timeout)
        return await self.get(scan_id)

    async def shutdown(self) -> None:
        """Abort every active pipeline and release clients."""
        sessions = list(self._sessions.values())
        for session in sessions:
            session.token.cancel("shutdown")
        tasks = [s.task for s in sessions if s.task is not None]
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        for session in sessions:
            await self._close_session(session.scan.id)

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    def _open_session(self, scan: Scan) -> ScanSession:
        config = scan.config
        client = self.client_factory(config)
        token = CancelToken(name="scan")
        executor = RequestExecutor(
            TransportResolver(client, config.relays),
            token=token,
            threads=config.threads,
            timeout=config.timeout,
            retries=config.retries,
            retry_delay=config.retry_delay,
        )
        session = ScanSession(scan=scan, client=client, executor=executor, token=token)
        self._sessions[scan.id] = session
        return session

    def _launch(self, session: ScanSession) -> None:
        session.task = asyncio.create_task(
            self._run_pipeline(session, session.token),
            name=f"scan-{session.scan.id}",
        )

    async def _close_session(self, scan_id: str) -> None:
        session = self._sessions.pop(scan_id, None)
        if session is not None:
            await session.client.aclose()

    async def _checkpoint(
        self,
        session: ScanSession,
        token: CancelToken,
        mutate: Callable[[Scan], None],
    ) -> None:
        """Apply mutate and persist, unless this run has been paused, stopped or aborted."""
        async with session.lock:
            if token.cancelled:
                raise ScanAborted(token.reason or "scan aborted")
            if session.scan.status != ScanStatus.RUNNING:
                raise ScanAborted(session.scan.status.value)
            mutate(session.scan)
            session.scan.touch()
            await self.store.write(session.scan)

    async def _run_pipeline(self, session: ScanSession, token: CancelToken) -> None:
        scan = session.scan
        structlog.contextvars.bind_contextvars(scan_id=scan.id)

        try:
            for kind in scan.pending_modules:
                await self._run_module(session, token, kind)

            def complete(s: Scan) -> None:
                s.progress.advance(s.progress.total, stage="done")
                s.finish(ScanStatus.COMPLETED)

            await self._checkpoint(session, token, complete)
            logger.info(
                "scan_completed",
                duration=scan.duration_seconds,
                errors=len(scan.errors),
                findings=scan.finding_count,
            )

        except ScanAborted as e:
            async with session.lock:
                if scan.status == ScanStatus.RUNNING:
                    # Cancelled by something other than pause/stop
                    scan.add_error("scan", f"aborted ({e.reason})")
                    scan.finish(ScanStatus.FAILED)
                    scan.touch()
                    await self._write_best_effort(scan)
            logger.info("scan_interrupted", status=scan.status.value, reason=e.reason)

        except PersistenceError as e:
            logger.error("scan_persistence_failed", error=str(e))
            async with session.lock:
                scan.add_error("scan", f"persistence failure: {e}")
                scan.finish(ScanStatus.FAILED)
                scan.touch()
                await self._write_best_effort(scan)

        except Exception as e:
            message = str(e) or type(e).__name__
            logger.error("scan_pipeline_failed", error=message, exc_info=True)
            async with session.lock:
                if not scan.is_terminal:
                    scan.add_error("scan", message)
                    scan.finish(ScanStatus.FAILED)
                    scan.touch()
                    await self._write_best_effort(scan)

        finally:
            if scan.is_terminal:
                await self._close_session(scan.id)

    async def _run_module(self, session: ScanSession, token: CancelToken, kind: ModuleKind) -> None:
        index = len(session.scan.completed_modules)
        await self._checkpoint(
            session, token,
            lambda s: s.progress.advance(index, stage=kind.value),
        )

        logger.info("module_started", module=kind.value, index=index + 1, total=session.scan.progress.total)

        try:
            module = self.modules[kind](ModuleContext(
                target=session.scan.target,
                config=session.scan.config,
                executor=session.executor,
            ))
            result = await module.run()
            data = result.to_dict()
        except ScanAborted:
            raise
        except Exception as e:
            message = str(e) or type(e).__name__
            logger.warning("module_failed", module=kind.value, error=message, exc_info=True)

            def record_failure(s: Scan) -> None:
                s.add_error(kind.value, message)
                s.record_result(kind, None)

            await self._checkpoint(session, token, record_failure)
            return

        await self._checkpoint(session, token, lambda s: s.record_result(kind, data))
        logger.info("module_completed", module=kind.value)

    async def _write_best_effort(self, scan: Scan) -> None:
        try:
            await self.store.write(scan)
        except PersistenceError as e:
            logger.error("scan_final_write_failed", error=str(e))
