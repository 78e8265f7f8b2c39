"""Folder scanner — discovers invoice files and registers them for extraction.

Decision table for a file found at ``path``:

    known path, same hash      -> no-op
    known path, new hash       -> new hash/mtime, back to pending (fields kept)
    new path, hash known in    -> file was moved if the old file is gone,
      the same category           otherwise a duplicate copy (skipped)
    new path, new hash         -> new pending document

Files that disappear from a folder are never removed from the repository.
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Iterator
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path

from invoicedesk.config import settings
from invoicedesk.db.engine import async_session_factory
from invoicedesk.errors import ScanError
from invoicedesk.ingestion.hasher import hash_file
from invoicedesk.models.enums import DocumentCategory, IngestionStatus, LogStatus, ProcessType
from invoicedesk.notifications.events import emit, notify_document_updated
from invoicedesk.repository import documents as documents_repo
from invoicedesk.repository.processing_log import append_log
from invoicedesk.schemas.events import EventType, SystemEvent
from invoicedesk.schemas.settings import AppSettings

logger = logging.getLogger(__name__)


class IngestOutcome(str, Enum):
    """What a scan did with one file."""

    CREATED = "created"
    CHANGED = "changed"
    UNCHANGED = "unchanged"
    MOVED = "moved"
    DUPLICATE = "duplicate"


@dataclass
class ScanReport:
    """Counts of one scan over one or both folders."""

    created: int = 0
    changed: int = 0
    unchanged: int = 0
    moved: int = 0
    duplicates: int = 0
    errors: int = 0

    def record(self, outcome: IngestOutcome) -> None:
        if outcome is IngestOutcome.DUPLICATE:
            self.duplicates += 1
        else:
            setattr(self, outcome.value, getattr(self, outcome.value) + 1)

    def merge(self, other: ScanReport) -> ScanReport:
        return ScanReport(
            created=self.created + other.created,
            changed=self.changed + other.changed,
            unchanged=self.unchanged + other.unchanged,
            moved=self.moved + other.moved,
            duplicates=self.duplicates + other.duplicates,
            errors=self.errors + other.errors,
        )

    @property
    def enqueued(self) -> int:
        """Documents that now wait for an extraction attempt."""
        return self.created + self.changed


def iter_candidate_files(
    folder: str | Path,
    extensions: frozenset[str] | None = None,
) -> Iterator[tuple[Path, datetime]]:
    """Lazily yield (path, mtime) of supported files directly inside ``folder``.

    Non-recursive. Calling it again restarts the enumeration. A missing or
    non-directory folder yields nothing.
    """
    extensions = extensions if extensions is not None else settings.scan.extensions
    root = Path(folder)
    if not root.is_dir():
        logger.warning("Watched folder %s does not exist or is not a directory", root)
        return

    with os.scandir(root) as entries:
        for entry in entries:
            if Path(entry.name).suffix.lower() not in extensions:
                continue
            try:
                if not entry.is_file():
                    continue
                mtime = datetime.fromtimestamp(entry.stat().st_mtime, UTC)
            except OSError as exc:
                # Vanished between listing and stat
                logger.debug("Skipping %s: %s", entry.path, exc)
                continue
            yield Path(entry.path), mtime


async def ingest_file(path: Path, file_modified_at: datetime, category: str) -> IngestOutcome:
    """Apply the decision table to one file.

    Raises:
        ScanError: If the file cannot be read.
    """
    file_hash = await asyncio.to_thread(hash_file, path)
    file_path = str(path)

    async with async_session_factory() as db:
        existing = await documents_repo.get_by_path(db, file_path)

        if existing is not None:
            if existing.file_hash == file_hash:
                return IngestOutcome.UNCHANGED
            await documents_repo.mark_changed(db, existing.id, file_hash, file_modified_at)
            await db.commit()
            if existing.ingestion_status == IngestionStatus.PROCESSING.value:
                logger.info("Content of %s changed during an attempt; reprocess queued", file_path)
            else:
                logger.info("Content of %s changed; document %s back to pending", file_path, existing.id)
            await notify_document_updated(existing.id, "ingestion.scanner", reason="content_changed")
            return IngestOutcome.CHANGED

        twins = await documents_repo.find_by_hash(db, file_hash, category)
        for twin in twins:
            if twin.file_path is None or not Path(twin.file_path).exists():
                await documents_repo.relocate(db, twin.id, file_path, file_modified_at)
                await db.commit()
                logger.info("Document %s moved from %s to %s", twin.id, twin.file_path, file_path)
                await notify_document_updated(twin.id, "ingestion.scanner", reason="moved")
                return IngestOutcome.MOVED

        if twins:
            original = twins[0]
            logger.info("Skipping %s: same content as %s", file_path, original.file_path)
            await append_log(
                ProcessType.SCAN,
                LogStatus.OK,
                f"Duplicate of {Path(original.file_path).name} skipped: {path.name}",
                document_id=original.id,
                file_hash=file_hash,
            )
            return IngestOutcome.DUPLICATE

        document = await documents_repo.create_pending(
            db, category, file_path, file_hash, file_modified_at, currency=settings.base_currency
        )
        await db.commit()

    await notify_document_updated(document.id, "ingestion.scanner", reason="created")
    return IngestOutcome.CREATED


async def scan_folder(folder: str | Path | None, category: str) -> ScanReport:
    """Scan one watched folder. A failing file is logged and skipped."""
    report = ScanReport()
    if not folder:
        return report
    category = DocumentCategory(category).value

    for path, mtime in iter_candidate_files(folder):
        try:
            report.record(await ingest_file(path, mtime, category))
        except ScanError as exc:
            report.errors += 1
            await append_log(ProcessType.SCAN, LogStatus.ERROR, exc.user_message)
        except Exception as exc:
            report.errors += 1
            logger.exception("Unexpected error while scanning %s", path)
            await append_log(ProcessType.SCAN, LogStatus.ERROR, f"Cannot register {path.name}: {exc}")
    return report


async def scan_all(app_settings: AppSettings) -> ScanReport:
    """Scan the revenue and payable folders concurrently."""
    revenue, payable = await asyncio.gather(
        scan_folder(app_settings.revenue_folder, DocumentCategory.REVENUE.value),
        scan_folder(app_settings.payable_folder, DocumentCategory.PAYABLE.value),
    )
    report = revenue.merge(payable)
    logger.info(
        "Scan finished: created=%d changed=%d unchanged=%d moved=%d duplicates=%d errors=%d",
        report.created,
        report.changed,
        report.unchanged,
        report.moved,
        report.duplicates,
        report.errors,
    )
    await emit(SystemEvent(
        event_type=EventType.SCAN_COMPLETED,
        data={
            "created": report.created,
            "changed": report.changed,
            "moved": report.moved,
            "duplicates": report.duplicates,
            "errors": report.errors,
        },
        source_module="ingestion.scanner",
    ))
    return report
