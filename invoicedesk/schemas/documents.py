"""Pydantic schemas for resolved document views returned to the presentation layer."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from invoicedesk.models.enums import DocumentCategory, IngestionStatus


class OverrideOut(BaseModel):
    """One stored override."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    field_name: str
    override_value: str
    created_at: datetime
    updated_at: datetime


class ResolvedDocument(BaseModel):
    """A document with override precedence applied to every business field.

    Values are best-effort strings: an override is free text and may not
    match the semantic type of its field.
    """

    id: uuid.UUID
    category: DocumentCategory
    file_path: str | None = None
    ingestion_status: IngestionStatus
    confidence_score: float = 0.0
    invoice_number: str | None = None
    invoice_date: str | None = None
    due_date: str | None = None
    counterparty_name: str | None = None
    total_amount: str | None = None
    currency: str | None = None
    tax_amount: str | None = None
    net_amount: str | None = None
    status: str | None = None
    paid_at: str | None = None
    overridden_fields: list[str] = Field(default_factory=list)
    created_at: datetime | None = None
    updated_at: datetime | None = None


class DocumentSummary(BaseModel):
    """Row of a document list or a recent-activity list."""

    id: uuid.UUID
    category: DocumentCategory
    invoice_date: str | None = None
    counterparty_name: str | None = None
    total_amount: str | None = None
    currency: str | None = None
    status: str | None = None
    ingestion_status: IngestionStatus
    file_name: str | None = None
    confidence_score: float = 0.0


class DocumentDetail(BaseModel):
    """Full resolved document plus the raw pipeline output."""

    document: ResolvedDocument
    overrides: list[OverrideOut] = Field(default_factory=list)
    ocr_text: str | None = None
    extracted_json: dict[str, Any] = Field(default_factory=dict)
    last_error: str | None = None
    file_hash: str | None = None
    file_modified_at: datetime | None = None


class FieldUpdate(BaseModel):
    """Body of an override write."""

    value: str


class ProcessingLogOut(BaseModel):
    """One processing log entry."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    document_id: uuid.UUID | None = None
    file_hash: str | None = None
    process_type: str
    status: str
    message: str | None = None
    created_at: datetime


class ReprocessResult(BaseModel):
    """How many documents were re-enqueued."""

    queued: int
