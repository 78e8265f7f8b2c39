"""Extraction pipeline orchestrator.

Claims a pending document, runs OCR then AI extraction under timeouts,
persists the result and advances the state machine. A failure of one
document is recorded on that document and never propagates to the batch.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass
from pathlib import Path

from invoicedesk.config import settings
from invoicedesk.db.engine import async_session_factory
from invoicedesk.errors import CredentialError, ExtractionError, InvoiceDeskError
from invoicedesk.extraction.extractor import extract_invoice
from invoicedesk.llm.client import OpenAIClient
from invoicedesk.models.enums import IngestionStatus, LogStatus, ProcessType
from invoicedesk.notifications.events import notify_document_updated
from invoicedesk.ocr.text_extraction import extract_text_async
from invoicedesk.repository import documents as documents_repo
from invoicedesk.repository.processing_log import append_log
from invoicedesk.schemas.settings import AppSettings

logger = logging.getLogger(__name__)

FILE_NOT_FOUND = "file not found"
UNEXPECTED_FAILURE = "Unexpected error during processing"


@dataclass
class ProcessReport:
    """Outcome counts of one processing pass."""

    done: int = 0
    error: int = 0
    skipped: int = 0
    requeued: int = 0

    def record(self, status: str | None) -> None:
        if status == IngestionStatus.DONE.value:
            self.done += 1
        elif status == IngestionStatus.ERROR.value:
            self.error += 1
        elif status == IngestionStatus.PENDING.value:
            self.requeued += 1
        else:
            self.skipped += 1


async def _fail(
    document_id: uuid.UUID,
    file_hash: str | None,
    process_type: ProcessType,
    message: str,
    ocr_text: str | None = None,
) -> str | None:
    async with async_session_factory() as db:
        status = await documents_repo.complete_failure(db, document_id, message, ocr_text=ocr_text)
        await db.commit()
    await append_log(process_type, LogStatus.ERROR, message, document_id=document_id, file_hash=file_hash)
    await notify_document_updated(document_id, "pipeline.processor", ingestion_status=status)
    return status


async def process_document(
    document_id: uuid.UUID,
    app_settings: AppSettings,
    client: OpenAIClient | None = None,
) -> str | None:
    """Run one extraction attempt.

    Flow:
        1. Claim (pending -> processing); give up if another attempt won
        2. Check the file still exists
        3. OCR / text layer
        4. AI extraction
        5. Store result (processing -> done), or record the error

    Returns:
        The resulting ingestion status, or None if the document could not
        be claimed.
    """
    async with async_session_factory() as db:
        if not await documents_repo.claim(db, document_id):
            logger.debug("Document %s not claimable, skipping", document_id)
            return None
        await db.commit()
        document = await documents_repo.require_document(db, document_id)
        file_path, file_hash = document.file_path, document.file_hash

    start = time.monotonic()
    await notify_document_updated(document_id, "pipeline.processor", ingestion_status=IngestionStatus.PROCESSING.value)

    ocr_text: str | None = None
    try:
        if not file_path or not Path(file_path).is_file():
            logger.warning("Document %s: file %s is missing", document_id, file_path)
            return await _fail(document_id, file_hash, ProcessType.OCR, FILE_NOT_FOUND)

        # OCR
        try:
            ocr_text = await extract_text_async(file_path, app_settings.ocr_language)
        except ExtractionError as exc:
            logger.warning("OCR failed for document %s: %s", document_id, exc)
            return await _fail(document_id, file_hash, ProcessType.OCR, exc.user_message)
        await append_log(
            ProcessType.OCR,
            LogStatus.OK,
            f"{len(ocr_text)} characters",
            document_id=document_id,
            file_hash=file_hash,
        )

        # Extraction
        try:
            outcome = await extract_invoice(ocr_text, app_settings.openai_api_key, client=client)
        except (ExtractionError, CredentialError) as exc:
            logger.warning("Extraction failed for document %s: %s", document_id, exc)
            return await _fail(document_id, file_hash, ProcessType.EXTRACT, exc.user_message, ocr_text=ocr_text)

        async with async_session_factory() as db:
            status = await documents_repo.complete_success(db, document_id, ocr_text, outcome)
            await db.commit()

    except InvoiceDeskError as exc:
        logger.warning("Document %s failed: %s", document_id, exc)
        return await _fail(document_id, file_hash, ProcessType.EXTRACT, exc.user_message, ocr_text=ocr_text)
    except Exception:
        logger.exception("Unexpected error while processing document %s", document_id)
        return await _fail(document_id, file_hash, ProcessType.EXTRACT, UNEXPECTED_FAILURE, ocr_text=ocr_text)

    elapsed_ms = int((time.monotonic() - start) * 1000)
    logger.info(
        "Document %s extracted: total=%s %s confidence=%.2f latency=%dms",
        document_id,
        outcome.total_amount,
        outcome.currency,
        outcome.confidence_score,
        elapsed_ms,
    )
    await append_log(
        ProcessType.EXTRACT,
        LogStatus.OK,
        f"confidence {outcome.confidence_score:.2f}",
        document_id=document_id,
        file_hash=file_hash,
    )
    await notify_document_updated(document_id, "pipeline.processor", ingestion_status=status)
    return status


async def process_pending(
    app_settings: AppSettings,
    client: OpenAIClient | None = None,
    max_concurrency: int | None = None,
) -> ProcessReport:
    """Attempt every pending document, at most ``max_concurrency`` at a time."""
    async with async_session_factory() as db:
        pending = await documents_repo.list_pending_ids(db)

    report = ProcessReport()
    if not pending:
        return report

    semaphore = asyncio.Semaphore(max_concurrency or settings.scan.scan_max_concurrency)

    async def _bounded(document_id: uuid.UUID) -> str | None:
        async with semaphore:
            return await process_document(document_id, app_settings, client=client)

    results = await asyncio.gather(*[_bounded(doc_id) for doc_id in pending], return_exceptions=True)
    for document_id, result in zip(pending, results, strict=True):
        if isinstance(result, Exception):
            logger.error("Processing task for document %s crashed: %s", document_id, result)
            report.skipped += 1
        else:
            report.record(result)

    logger.info(
        "Processing pass finished: done=%d error=%d requeued=%d skipped=%d",
        report.done,
        report.error,
        report.requeued,
        report.skipped,
    )
    return report
