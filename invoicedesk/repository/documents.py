"""Invoice repository — the single source of truth for documents.

All functions take the caller's AsyncSession and leave committing to the
caller, so each unit of work stays one short transaction. Status writes are
conditional UPDATEs whose WHERE clause comes from the state machine; their
result tells the caller whether the transition actually happened.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import case, delete, false, select, true, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from invoicedesk.errors import NotFoundError
from invoicedesk.models.document import Document
from invoicedesk.models.enums import DocumentCategory, IngestionStatus
from invoicedesk.pipeline.states import sources_for
from invoicedesk.schemas.extraction import ExtractionOutcome

logger = logging.getLogger(__name__)

_PROCESSING = IngestionStatus.PROCESSING.value


# ── Reads ────────────────────────────────────────────────────────────


async def get_document(db: AsyncSession, document_id: uuid.UUID, with_overrides: bool = False) -> Document | None:
    """Load one document, bypassing any stale copy in the session."""
    stmt = select(Document).where(Document.id == document_id).execution_options(populate_existing=True)
    if with_overrides:
        stmt = stmt.options(selectinload(Document.overrides))
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def require_document(db: AsyncSession, document_id: uuid.UUID, with_overrides: bool = False) -> Document:
    """Like get_document, but raise NotFoundError for an unknown id."""
    document = await get_document(db, document_id, with_overrides=with_overrides)
    if document is None:
        raise NotFoundError(f"Document {document_id} not found", user_message="Document not found")
    return document


async def get_by_path(db: AsyncSession, file_path: str) -> Document | None:
    result = await db.execute(
        select(Document).where(Document.file_path == file_path).execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def find_by_hash(db: AsyncSession, file_hash: str, category: str) -> list[Document]:
    """Documents of one category with the given content fingerprint, oldest first."""
    result = await db.execute(
        select(Document)
        .where(Document.file_hash == file_hash, Document.category == category)
        .order_by(Document.created_at)
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


async def list_documents(db: AsyncSession, category: str | None = None) -> list[Document]:
    """All documents (optionally of one category) with their overrides loaded.

    Newest invoice date first, undated documents last.
    """
    stmt = (
        select(Document)
        .options(selectinload(Document.overrides))
        .order_by(Document.invoice_date.is_(None), Document.invoice_date.desc(), Document.created_at.desc())
        .execution_options(populate_existing=True)
    )
    if category is not None:
        stmt = stmt.where(Document.category == DocumentCategory(category).value)
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def list_pending_ids(db: AsyncSession) -> list[uuid.UUID]:
    """Ids of documents waiting for an attempt, oldest first."""
    result = await db.execute(
        select(Document.id)
        .where(Document.ingestion_status == IngestionStatus.PENDING.value)
        .order_by(Document.created_at)
    )
    return list(result.scalars().all())


# ── File tracking ────────────────────────────────────────────────────


async def create_pending(
    db: AsyncSession,
    category: str,
    file_path: str,
    file_hash: str,
    file_modified_at: datetime,
    currency: str,
) -> Document:
    """Insert a new document waiting for extraction."""
    document = Document(
        category=DocumentCategory(category).value,
        file_path=file_path,
        file_hash=file_hash,
        file_modified_at=file_modified_at,
        ingestion_status=IngestionStatus.PENDING.value,
        currency=currency,
        extracted_json={},
    )
    db.add(document)
    await db.flush()
    logger.info("Registered %s document %s for %s", category, document.id, file_path)
    return document


def _requeue_values() -> dict[str, Any]:
    """SET clause that re-enqueues a document.

    A document that is not in flight goes back to pending. One that is
    processing keeps its status and gets reprocess_requested, which the
    completing attempt turns into pending.
    """
    in_flight = Document.ingestion_status == _PROCESSING
    return {
        "ingestion_status": case(
            (in_flight, _PROCESSING),
            else_=IngestionStatus.PENDING.value,
        ),
        "reprocess_requested": case((in_flight, true()), else_=false()),
    }


async def mark_changed(
    db: AsyncSession,
    document_id: uuid.UUID,
    file_hash: str,
    file_modified_at: datetime,
) -> None:
    """Record new file content and re-enqueue the document.

    Extracted fields, confidence and overrides are kept until the next
    attempt replaces them.
    """
    await db.execute(
        update(Document)
        .where(Document.id == document_id)
        .values(file_hash=file_hash, file_modified_at=file_modified_at, **_requeue_values())
        .execution_options(synchronize_session=False)
    )


async def relocate(db: AsyncSession, document_id: uuid.UUID, file_path: str, file_modified_at: datetime) -> None:
    """Point a document at the new location of its (moved) file."""
    await db.execute(
        update(Document)
        .where(Document.id == document_id)
        .values(file_path=file_path, file_modified_at=file_modified_at)
        .execution_options(synchronize_session=False)
    )


# ── Status transitions ───────────────────────────────────────────────


async def claim(db: AsyncSession, document_id: uuid.UUID) -> bool:
    """Atomically move a pending document to processing.

    Returns True only if this caller changed exactly one row; any other
    caller racing for the same document gets False.
    """
    result = await db.execute(
        update(Document)
        .where(
            Document.id == document_id,
            Document.ingestion_status.in_(sources_for(IngestionStatus.PROCESSING)),
        )
        .values(ingestion_status=IngestionStatus.PROCESSING.value)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


async def _finish(db: AsyncSession, document_id: uuid.UUID, target: IngestionStatus, values: dict[str, Any]) -> str | None:
    """Complete an attempt, honouring a reprocess queued while it ran.

    Returns the resulting status, or None if the document was not in flight
    (deleted or already finished by someone else).
    """
    result = await db.execute(
        update(Document)
        .where(
            Document.id == document_id,
            Document.ingestion_status.in_(sources_for(target)),
        )
        .values(
            ingestion_status=case(
                (Document.reprocess_requested == true(), IngestionStatus.PENDING.value),
                else_=target.value,
            ),
            reprocess_requested=False,
            **values,
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        logger.warning("Document %s was not processing when its attempt finished", document_id)
        return None
    status = await db.execute(select(Document.ingestion_status).where(Document.id == document_id))
    return status.scalar_one()


async def complete_success(
    db: AsyncSession,
    document_id: uuid.UUID,
    ocr_text: str,
    outcome: ExtractionOutcome,
) -> str | None:
    """Store a successful extraction and advance processing -> done."""
    return await _finish(
        db,
        document_id,
        IngestionStatus.DONE,
        {
            "ocr_text": ocr_text,
            "extracted_json": outcome.raw_payload,
            "confidence_score": outcome.confidence_score,
            "invoice_number": outcome.invoice_number,
            "invoice_date": outcome.invoice_date,
            "due_date": outcome.due_date,
            "counterparty_name": outcome.counterparty_name,
            "total_amount": outcome.total_amount,
            "currency": outcome.currency,
            "tax_amount": outcome.tax_amount,
            "net_amount": outcome.net_amount,
            "last_error": None,
        },
    )


async def complete_failure(
    db: AsyncSession,
    document_id: uuid.UUID,
    message: str,
    ocr_text: str | None = None,
) -> str | None:
    """Advance processing -> error, keeping the previous extraction result."""
    values: dict[str, Any] = {"last_error": message}
    if ocr_text is not None:
        values["ocr_text"] = ocr_text
    return await _finish(db, document_id, IngestionStatus.ERROR, values)


async def request_reprocess(db: AsyncSession, document_id: uuid.UUID) -> bool:
    """Re-enqueue one document whatever its status. False if it does not exist."""
    result = await db.execute(
        update(Document)
        .where(Document.id == document_id)
        .values(**_requeue_values())
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


async def reprocess_all(db: AsyncSession, category: str | None = None) -> list[tuple[uuid.UUID, str]]:
    """Re-enqueue every document (optionally of one category).

    Returns (id, file_hash) of each re-enqueued document for logging.
    """
    stmt = select(Document.id, Document.file_hash)
    if category is not None:
        stmt = stmt.where(Document.category == DocumentCategory(category).value)
    rows = [(row.id, row.file_hash) for row in (await db.execute(stmt)).all()]
    if not rows:
        return []

    await db.execute(
        update(Document)
        .where(Document.id.in_([doc_id for doc_id, _ in rows]))
        .values(**_requeue_values())
        .execution_options(synchronize_session=False)
    )
    return rows


async def recover_interrupted(db: AsyncSession) -> int:
    """Send documents left in processing by an interrupted run back to pending."""
    result = await db.execute(
        update(Document)
        .where(Document.ingestion_status == _PROCESSING)
        .values(ingestion_status=IngestionStatus.PENDING.value, reprocess_requested=False)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount:
        logger.warning("Recovered %d documents interrupted while processing", result.rowcount)
    return result.rowcount


async def delete_document(db: AsyncSession, document_id: uuid.UUID) -> bool:
    """Remove a document; its overrides cascade and log entries are orphaned."""
    result = await db.execute(
        delete(Document).where(Document.id == document_id).execution_options(synchronize_session=False)
    )
    return result.rowcount == 1
