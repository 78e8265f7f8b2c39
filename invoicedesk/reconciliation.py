"""Override reconciliation.

A resolved view is a two-level lookup: a user override for a field wins,
otherwise the extracted value stands. The base record is never modified
and resolved views are never cached, so clearing an override immediately
restores the extracted value.
"""

from __future__ import annotations

from collections.abc import Iterable
from pathlib import Path

from invoicedesk.errors import ValidationError
from invoicedesk.models.document import Document
from invoicedesk.models.enums import DocumentCategory, IngestionStatus
from invoicedesk.models.override import Override
from invoicedesk.schemas.documents import DocumentSummary, ResolvedDocument

# Fields a user may override, in display order
BUSINESS_FIELDS: tuple[str, ...] = (
    "invoice_number",
    "invoice_date",
    "due_date",
    "counterparty_name",
    "total_amount",
    "currency",
    "tax_amount",
    "net_amount",
    "status",
    "paid_at",
)


def validate_field_name(field_name: str) -> str:
    """Reject override targets that no resolved view would ever read."""
    if field_name not in BUSINESS_FIELDS:
        raise ValidationError(
            f"Unknown field {field_name!r}",
            user_message=f"Field '{field_name}' cannot be edited. Editable fields: {', '.join(BUSINESS_FIELDS)}",
        )
    return field_name


def resolve(document: Document, overrides: Iterable[Override]) -> ResolvedDocument:
    """Apply override precedence to every business field of ``document``."""
    by_field = {o.field_name: o.override_value for o in overrides}
    values = {
        name: by_field[name] if name in by_field else getattr(document, name)
        for name in BUSINESS_FIELDS
    }
    return ResolvedDocument(
        id=document.id,
        category=DocumentCategory(document.category),
        file_path=document.file_path,
        ingestion_status=IngestionStatus(document.ingestion_status),
        confidence_score=document.confidence_score or 0.0,
        overridden_fields=[name for name in BUSINESS_FIELDS if name in by_field],
        created_at=document.created_at,
        updated_at=document.updated_at,
        **values,
    )


def summarize(resolved: ResolvedDocument) -> DocumentSummary:
    """List-row view of a resolved document."""
    return DocumentSummary(
        id=resolved.id,
        category=resolved.category,
        invoice_date=resolved.invoice_date,
        counterparty_name=resolved.counterparty_name,
        total_amount=resolved.total_amount,
        currency=resolved.currency,
        status=resolved.status,
        ingestion_status=resolved.ingestion_status,
        file_name=Path(resolved.file_path).name if resolved.file_path else None,
        confidence_score=resolved.confidence_score,
    )
