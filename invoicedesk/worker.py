"""Background ingestion worker.

One cycle = settings snapshot -> scan both folders -> process pending
documents. Cycles run every SCAN_INTERVAL_SECONDS and immediately when
woken (reprocess requests, settings saves). Cycles never overlap.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from invoicedesk.config import settings
from invoicedesk.db.engine import async_session_factory
from invoicedesk.ingestion.scanner import ScanReport, scan_all
from invoicedesk.llm.client import OpenAIClient
from invoicedesk.notifications.events import subscribe, unsubscribe
from invoicedesk.pipeline.processor import ProcessReport, process_pending
from invoicedesk.repository import documents as documents_repo
from invoicedesk.repository.settings_store import load_settings
from invoicedesk.schemas.events import EventType, SystemEvent

logger = logging.getLogger(__name__)

WAKE_EVENTS = [EventType.REPROCESS_REQUESTED, EventType.SETTINGS_SAVED]


@dataclass
class CycleReport:
    scan: ScanReport
    processing: ProcessReport


class IngestionWorker:
    """Periodic scan and extraction loop."""

    def __init__(self, interval: float | None = None, client: OpenAIClient | None = None) -> None:
        self._interval = settings.scan.scan_interval_seconds if interval is None else interval
        self._client = client
        self._cycle_lock = asyncio.Lock()
        self._wake = asyncio.Event()
        self._task: asyncio.Task[None] | None = None
        self._stopping = False

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run_cycle(self) -> CycleReport:
        """Run one full cycle; concurrent callers wait for each other."""
        async with self._cycle_lock:
            async with async_session_factory() as db:
                app_settings = await load_settings(db)

            scan_report = await scan_all(app_settings)
            process_report = await process_pending(app_settings, client=self._client)

            # Reprocess queued during an attempt: go again right away
            if process_report.requeued:
                self.wake()
            return CycleReport(scan=scan_report, processing=process_report)

    def wake(self) -> None:
        """Trigger a cycle as soon as the current one (if any) finishes."""
        self._wake.set()

    async def on_event(self, event: SystemEvent) -> None:
        """Event bus handler: wake on reprocess requests and settings saves."""
        logger.debug("Worker woken by %s", event.event_type.value)
        self.wake()

    async def start(self) -> None:
        """Recover interrupted attempts and start the loop."""
        if self.running:
            return
        async with async_session_factory() as db:
            await documents_repo.recover_interrupted(db)
            await db.commit()

        self._stopping = False
        subscribe(self.on_event, event_types=WAKE_EVENTS)
        self._task = asyncio.create_task(self._run_loop())
        logger.info("Ingestion worker started (interval=%.0fs)", self._interval)

    async def stop(self) -> None:
        """Stop the loop, letting no new cycle begin."""
        self._stopping = True
        unsubscribe(self.on_event)
        if self._task is not None and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None
        logger.info("Ingestion worker stopped")

    async def _run_loop(self) -> None:
        while not self._stopping:
            self._wake.clear()
            try:
                await self.run_cycle()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Ingestion cycle failed")

            try:
                await asyncio.wait_for(self._wake.wait(), timeout=self._interval)
            except TimeoutError:
                pass
