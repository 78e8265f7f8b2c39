"""JSON API — FastAPI router over the service operations.

Domain errors are mapped to HTTP status codes by the handlers registered
in ``register_exception_handlers``; only their sanitized user message is
returned.
"""
# ruff: noqa: B008

from __future__ import annotations

import logging
import uuid

from fastapi import APIRouter, Depends, FastAPI, Query, Request, Response
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from invoicedesk import services
from invoicedesk.db.engine import get_session
from invoicedesk.errors import CredentialError, InvoiceDeskError, NotFoundError, ValidationError
from invoicedesk.models.enums import DocumentCategory
from invoicedesk.schemas.dashboard import DashboardStats
from invoicedesk.schemas.documents import (
    DocumentDetail,
    DocumentSummary,
    FieldUpdate,
    ProcessingLogOut,
    ReprocessResult,
    ResolvedDocument,
)
from invoicedesk.schemas.settings import (
    CredentialTest,
    CredentialTestResult,
    OpenFileRequest,
    SettingsUpdate,
    SettingsView,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["invoices"])


# ── Error mapping ────────────────────────────────────────────────────

_STATUS_CODES: dict[type[InvoiceDeskError], int] = {
    NotFoundError: 404,
    ValidationError: 422,
    CredentialError: 400,
}


async def _domain_error_handler(request: Request, exc: InvoiceDeskError) -> JSONResponse:
    status_code = next(
        (code for cls, code in _STATUS_CODES.items() if isinstance(exc, cls)),
        500,
    )
    if status_code == 500:
        logger.error("Unhandled domain error on %s: %s", request.url.path, exc)
    return JSONResponse(
        status_code=status_code,
        content={"error": type(exc).__name__, "detail": exc.user_message},
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Map InvoiceDeskError subclasses to JSON error responses."""
    app.add_exception_handler(InvoiceDeskError, _domain_error_handler)


# ── Dashboard & documents ────────────────────────────────────────────


@router.get("/dashboard", response_model=DashboardStats)
async def dashboard(
    year_month: str | None = Query(default=None, description="YYYY-MM, default current month"),
    db: AsyncSession = Depends(get_session),
) -> DashboardStats:
    return await services.get_dashboard(db, year_month)


@router.get("/documents", response_model=list[DocumentSummary])
async def documents(
    category: DocumentCategory | None = Query(default=None),
    db: AsyncSession = Depends(get_session),
) -> list[DocumentSummary]:
    return await services.list_documents(db, category.value if category else None)


@router.get("/documents/{document_id}", response_model=DocumentDetail)
async def document_detail(document_id: uuid.UUID, db: AsyncSession = Depends(get_session)) -> DocumentDetail:
    return await services.get_document_detail(db, document_id)


@router.put("/documents/{document_id}/fields/{field_name}", response_model=ResolvedDocument)
async def update_field(
    document_id: uuid.UUID,
    field_name: str,
    body: FieldUpdate,
    db: AsyncSession = Depends(get_session),
) -> ResolvedDocument:
    return await services.update_field(db, document_id, field_name, body.value)


@router.delete("/documents/{document_id}/fields/{field_name}", response_model=ResolvedDocument)
async def clear_override(
    document_id: uuid.UUID,
    field_name: str,
    db: AsyncSession = Depends(get_session),
) -> ResolvedDocument:
    return await services.clear_override(db, document_id, field_name)


@router.delete("/documents/{document_id}/overrides", response_model=ResolvedDocument)
async def clear_all_overrides(document_id: uuid.UUID, db: AsyncSession = Depends(get_session)) -> ResolvedDocument:
    return await services.clear_all_overrides(db, document_id)


@router.delete("/documents/{document_id}", status_code=204)
async def delete_document(document_id: uuid.UUID, db: AsyncSession = Depends(get_session)) -> Response:
    await services.delete_document(db, document_id)
    return Response(status_code=204)


# ── Reprocessing ─────────────────────────────────────────────────────


@router.post("/reprocess", response_model=ReprocessResult)
async def reprocess_all(
    category: DocumentCategory | None = Query(default=None),
    db: AsyncSession = Depends(get_session),
) -> ReprocessResult:
    return await services.reprocess_all(db, category.value if category else None)


@router.post("/documents/{document_id}/reprocess", response_model=ReprocessResult)
async def reprocess_document(document_id: uuid.UUID, db: AsyncSession = Depends(get_session)) -> ReprocessResult:
    return await services.reprocess_document(db, document_id)


# ── Settings ─────────────────────────────────────────────────────────


@router.get("/settings", response_model=SettingsView)
async def get_settings(db: AsyncSession = Depends(get_session)) -> SettingsView:
    return await services.get_settings(db)


@router.put("/settings", response_model=SettingsView)
async def save_settings(body: SettingsUpdate, db: AsyncSession = Depends(get_session)) -> SettingsView:
    return await services.save_settings(db, body)


@router.post("/settings/test-credential", response_model=CredentialTestResult)
async def test_credential(body: CredentialTest) -> CredentialTestResult:
    return await services.test_credential(body.api_key)


# ── Host integration & diagnostics ───────────────────────────────────


@router.post("/open-file", status_code=204)
async def open_file(body: OpenFileRequest, db: AsyncSession = Depends(get_session)) -> Response:
    await services.open_file(db, body.path)
    return Response(status_code=204)


@router.get("/processing-log", response_model=list[ProcessingLogOut])
async def processing_log(
    limit: int = Query(default=100, ge=1, le=1000),
    document_id: uuid.UUID | None = Query(default=None),
    db: AsyncSession = Depends(get_session),
) -> list[ProcessingLogOut]:
    return await services.list_processing_log(db, limit=limit, document_id=document_id)
