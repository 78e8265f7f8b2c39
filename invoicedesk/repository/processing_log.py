"""Processing log — append-only diagnostics for scans and pipeline attempts.

Entries are written in their own session so a failing log write can never
roll back, or be rolled back by, the pipeline step it describes.
"""

from __future__ import annotations

import logging
import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from invoicedesk.db.engine import async_session_factory
from invoicedesk.errors import sanitize_message
from invoicedesk.models.enums import LogStatus, ProcessType
from invoicedesk.models.processing_log import ProcessingLogEntry
from invoicedesk.notifications.events import notify_processing_error

logger = logging.getLogger(__name__)


async def append_log(
    process_type: ProcessType,
    status: LogStatus,
    message: str | None = None,
    document_id: uuid.UUID | None = None,
    file_hash: str | None = None,
) -> None:
    """Append one entry. Never raises.

    An ``error`` entry also emits the processing error notification.
    """
    clean = sanitize_message(message) if message else None
    try:
        async with async_session_factory() as db:
            db.add(ProcessingLogEntry(
                document_id=document_id,
                file_hash=file_hash,
                process_type=process_type.value,
                status=status.value,
                message=clean,
            ))
            await db.commit()
    except Exception:
        logger.exception("Failed to write processing log entry (%s/%s)", process_type.value, status.value)

    if status is LogStatus.ERROR:
        try:
            await notify_processing_error(
                clean or "processing failed",
                source_module="repository.processing_log",
                document_id=document_id,
                process_type=process_type.value,
            )
        except Exception:
            logger.exception("Failed to emit processing error event")


async def list_log(
    db: AsyncSession,
    limit: int = 100,
    document_id: uuid.UUID | None = None,
) -> list[ProcessingLogEntry]:
    """Most recent entries first, optionally for one document."""
    stmt = select(ProcessingLogEntry).order_by(ProcessingLogEntry.created_at.desc()).limit(limit)
    if document_id is not None:
        stmt = stmt.where(ProcessingLogEntry.document_id == document_id)
    result = await db.execute(stmt)
    return list(result.scalars().all())
