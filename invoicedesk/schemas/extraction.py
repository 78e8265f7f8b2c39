"""Pydantic schemas for the AI extraction step.

ExtractedInvoiceData mirrors the JSON object the provider must return.
Unknown keys are rejected so a reply that drifts from the schema triggers
the corrective retry.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ExtractedInvoiceData(BaseModel):
    """Fields the provider reports for one invoice."""

    model_config = ConfigDict(extra="forbid")

    invoice_number: str | None = None
    invoice_date: str | None
    due_date: str | None = None
    counterparty_name: str | None = None
    total_amount: float | None
    currency: str | None
    tax_amount: float | None = None
    net_amount: float | None = None
    extraction_notes: str
    confidence_score: float | None = None


class ExtractionOutcome(BaseModel):
    """Normalized result handed from the extractor to the pipeline."""

    invoice_number: str | None = None
    invoice_date: str | None = None
    due_date: str | None = None
    counterparty_name: str | None = None
    total_amount: str
    currency: str
    tax_amount: str | None = None
    net_amount: str | None = None
    confidence_score: float = Field(ge=0.0, le=1.0)
    raw_payload: dict[str, Any] = Field(default_factory=dict)
