"""Document model — one ingested invoice file and its extracted fields."""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import JSON, Boolean, CheckConstraint, DateTime, Float, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from invoicedesk.models.base import Base, TimestampMixin
from invoicedesk.models.enums import IngestionStatus, PaymentStatus

if TYPE_CHECKING:
    from invoicedesk.models.override import Override


class Document(TimestampMixin, Base):
    """An invoice picked up from the revenue or payable folder."""

    __tablename__ = "documents"
    __table_args__ = (
        CheckConstraint("category IN ('revenue', 'payable')", name="ck_documents_category"),
        Index("ix_documents_category_date", "category", "invoice_date"),
    )

    # File identity
    category: Mapped[str] = mapped_column(String(20), nullable=False)
    file_path: Mapped[str | None] = mapped_column(Text, unique=True)
    file_hash: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    file_modified_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    # Pipeline state
    ingestion_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=IngestionStatus.PENDING.value, index=True
    )
    reprocess_requested: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, comment="Queued reprocess while an attempt is in flight"
    )
    last_error: Mapped[str | None] = mapped_column(Text, comment="Sanitized message of the last failed attempt")

    # Extraction output
    ocr_text: Mapped[str | None] = mapped_column(Text)
    extracted_json: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    confidence_score: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)

    # Business fields (stored as extracted; overrides are applied on read)
    invoice_number: Mapped[str | None] = mapped_column(String(100))
    invoice_date: Mapped[str | None] = mapped_column(String(32), comment="YYYY-MM-DD when parseable")
    due_date: Mapped[str | None] = mapped_column(String(32))
    counterparty_name: Mapped[str | None] = mapped_column(String(255))
    total_amount: Mapped[str | None] = mapped_column(String(32), comment="Decimal text, e.g. 1200.00")
    currency: Mapped[str] = mapped_column(String(8), nullable=False, default="EUR")
    tax_amount: Mapped[str | None] = mapped_column(String(32))
    net_amount: Mapped[str | None] = mapped_column(String(32))
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=PaymentStatus.OPEN.value)
    paid_at: Mapped[str | None] = mapped_column(String(32))

    # Relationships
    overrides: Mapped[list[Override]] = relationship(
        "Override",
        back_populates="document",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def __repr__(self) -> str:
        return f"<Document id={self.id} category={self.category} status={self.ingestion_status}>"
