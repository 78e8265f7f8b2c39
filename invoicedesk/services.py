"""Operations exposed to the presentation layer.

Every function takes the caller's AsyncSession. Writes are committed here,
before the matching notification is emitted, so a subscriber reacting to
an event (the ingestion worker, a UI refresh) always sees the new state.
"""

from __future__ import annotations

import logging
import os
import subprocess
import sys
import uuid
from datetime import date
from pathlib import Path

from sqlalchemy.ext.asyncio import AsyncSession

from invoicedesk.aggregation import compute_dashboard
from invoicedesk.config import settings
from invoicedesk.errors import InvoiceDeskError, NotFoundError, ValidationError
from invoicedesk.llm.client import OpenAIClient, llm_client
from invoicedesk.models.enums import DocumentCategory, LogStatus, ProcessType
from invoicedesk.notifications.events import emit, notify_document_updated
from invoicedesk.reconciliation import resolve, summarize
from invoicedesk.repository import documents as documents_repo
from invoicedesk.repository import overrides as overrides_repo
from invoicedesk.repository import settings_store
from invoicedesk.repository.processing_log import append_log, list_log
from invoicedesk.schemas.dashboard import DashboardStats
from invoicedesk.schemas.documents import (
    DocumentDetail,
    DocumentSummary,
    OverrideOut,
    ProcessingLogOut,
    ReprocessResult,
    ResolvedDocument,
)
from invoicedesk.schemas.events import EventType, SystemEvent
from invoicedesk.schemas.settings import CredentialTestResult, SettingsUpdate, SettingsView

logger = logging.getLogger(__name__)

SOURCE = "services"


def _category(category: str | None) -> str | None:
    if category is None:
        return None
    try:
        return DocumentCategory(category).value
    except ValueError as exc:
        raise ValidationError(
            f"Unknown category {category!r}",
            user_message="Category must be 'revenue' or 'payable'",
        ) from exc


async def _resolved(db: AsyncSession, document_id: uuid.UUID) -> ResolvedDocument:
    document = await documents_repo.require_document(db, document_id)
    return resolve(document, await overrides_repo.get_overrides(db, document_id))


# ── Dashboard & documents ────────────────────────────────────────────


async def get_dashboard(db: AsyncSession, year_month: str | None = None, today: date | None = None) -> DashboardStats:
    """KPIs for ``year_month`` (default: current month) over resolved documents."""
    documents = await documents_repo.list_documents(db)
    return compute_dashboard(
        [resolve(doc, doc.overrides) for doc in documents],
        year_month=year_month,
        window=settings.dashboard_chart_window,
        recent_limit=settings.dashboard_recent_limit,
        today=today,
    )


async def list_documents(db: AsyncSession, category: str | None = None) -> list[DocumentSummary]:
    documents = await documents_repo.list_documents(db, _category(category))
    return [summarize(resolve(doc, doc.overrides)) for doc in documents]


async def get_document_detail(db: AsyncSession, document_id: uuid.UUID) -> DocumentDetail:
    """Resolved document plus overrides and the raw pipeline output."""
    document = await documents_repo.require_document(db, document_id)
    overrides = await overrides_repo.get_overrides(db, document_id)
    return DocumentDetail(
        document=resolve(document, overrides),
        overrides=[OverrideOut.model_validate(o) for o in overrides],
        ocr_text=document.ocr_text,
        extracted_json=document.extracted_json or {},
        last_error=document.last_error,
        file_hash=document.file_hash,
        file_modified_at=document.file_modified_at,
    )


# ── Overrides ────────────────────────────────────────────────────────


async def update_field(db: AsyncSession, document_id: uuid.UUID, field_name: str, value: str) -> ResolvedDocument:
    """Set (or replace) the override of one business field."""
    await documents_repo.require_document(db, document_id)
    await overrides_repo.set_override(db, document_id, field_name, value)
    await db.commit()

    await emit(SystemEvent(
        event_type=EventType.OVERRIDE_SET,
        document_id=document_id,
        data={"field_name": field_name},
        source_module=SOURCE,
    ))
    await notify_document_updated(document_id, SOURCE, field_name=field_name)
    return await _resolved(db, document_id)


async def clear_override(db: AsyncSession, document_id: uuid.UUID, field_name: str) -> ResolvedDocument:
    """Drop one override; the extracted value shows again."""
    await documents_repo.require_document(db, document_id)
    removed = await overrides_repo.clear_override(db, document_id, field_name)
    await db.commit()

    if removed:
        await emit(SystemEvent(
            event_type=EventType.OVERRIDE_CLEARED,
            document_id=document_id,
            data={"field_name": field_name},
            source_module=SOURCE,
        ))
        await notify_document_updated(document_id, SOURCE, field_name=field_name)
    return await _resolved(db, document_id)


async def clear_all_overrides(db: AsyncSession, document_id: uuid.UUID) -> ResolvedDocument:
    await documents_repo.require_document(db, document_id)
    removed = await overrides_repo.clear_all_overrides(db, document_id)
    await db.commit()

    if removed:
        await emit(SystemEvent(
            event_type=EventType.OVERRIDE_CLEARED,
            document_id=document_id,
            data={"field_name": None, "count": removed},
            source_module=SOURCE,
        ))
        await notify_document_updated(document_id, SOURCE)
    return await _resolved(db, document_id)


# ── Reprocessing ─────────────────────────────────────────────────────


async def reprocess_all(db: AsyncSession, category: str | None = None) -> ReprocessResult:
    """Re-enqueue every document, optionally only one category."""
    rows = await documents_repo.reprocess_all(db, _category(category))
    await db.commit()

    for document_id, file_hash in rows:
        await append_log(ProcessType.REPROCESS, LogStatus.OK, "reprocess requested", document_id, file_hash)
        await notify_document_updated(document_id, SOURCE, reason="reprocess")

    logger.info("Reprocess requested for %d documents (category=%s)", len(rows), category or "all")
    await emit(SystemEvent(
        event_type=EventType.REPROCESS_REQUESTED,
        data={"category": category, "count": len(rows)},
        source_module=SOURCE,
    ))
    return ReprocessResult(queued=len(rows))


async def reprocess_document(db: AsyncSession, document_id: uuid.UUID) -> ReprocessResult:
    document = await documents_repo.require_document(db, document_id)
    await documents_repo.request_reprocess(db, document_id)
    await db.commit()

    await append_log(ProcessType.REPROCESS, LogStatus.OK, "reprocess requested", document_id, document.file_hash)
    await notify_document_updated(document_id, SOURCE, reason="reprocess")
    await emit(SystemEvent(
        event_type=EventType.REPROCESS_REQUESTED,
        document_id=document_id,
        data={"count": 1},
        source_module=SOURCE,
    ))
    return ReprocessResult(queued=1)


async def delete_document(db: AsyncSession, document_id: uuid.UUID) -> None:
    """Administrative removal. The file on disk is left alone."""
    if not await documents_repo.delete_document(db, document_id):
        raise NotFoundError(f"Document {document_id} not found", user_message="Document not found")
    await db.commit()

    logger.info("Document %s deleted", document_id)
    await emit(SystemEvent(
        event_type=EventType.DOCUMENT_DELETED,
        document_id=document_id,
        source_module=SOURCE,
    ))


# ── Settings ─────────────────────────────────────────────────────────


async def get_settings(db: AsyncSession) -> SettingsView:
    return settings_store.to_view(await settings_store.load_settings(db))


async def save_settings(db: AsyncSession, update: SettingsUpdate) -> SettingsView:
    """Validate and store settings; the worker picks them up on its next cycle."""
    app_settings = await settings_store.save_settings(db, update)
    await db.commit()

    await emit(SystemEvent(
        event_type=EventType.SETTINGS_SAVED,
        data={"fields": sorted(update.model_dump(exclude_none=True))},
        source_module=SOURCE,
    ))
    return settings_store.to_view(app_settings)


async def test_credential(api_key: str, client: OpenAIClient | None = None) -> CredentialTestResult:
    """Check a provider credential without storing it."""
    api_key = api_key.strip()
    if not api_key:
        raise ValidationError("Empty credential", user_message="Enter an API key to test")
    valid = await (client or llm_client).check_credential(api_key)
    logger.info("Credential check: valid=%s", valid)
    return CredentialTestResult(valid=valid)


# ── Host integration & diagnostics ───────────────────────────────────


async def open_file(db: AsyncSession, path: str) -> None:
    """Open a document's file with the platform's default application.

    Only files that belong to a known document can be opened.
    """
    target = Path(path)
    known = await documents_repo.get_by_path(db, str(target))
    if known is None or not target.is_file():
        raise NotFoundError(f"Cannot open {path}: not a known document file", user_message="file not found")

    try:
        if sys.platform.startswith("win"):
            os.startfile(target)  # type: ignore[attr-defined]
        elif sys.platform == "darwin":
            subprocess.Popen(["open", str(target)])
        else:
            subprocess.Popen(["xdg-open", str(target)])
    except OSError as exc:
        raise InvoiceDeskError(f"Opening {path} failed: {exc}", user_message="Could not open the file") from exc


async def list_processing_log(
    db: AsyncSession,
    limit: int = 100,
    document_id: uuid.UUID | None = None,
) -> list[ProcessingLogOut]:
    if limit < 1 or limit > 1000:
        raise ValidationError(f"Invalid limit {limit}", user_message="limit must be between 1 and 1000")
    entries = await list_log(db, limit=limit, document_id=document_id)
    return [ProcessingLogOut.model_validate(e) for e in entries]
