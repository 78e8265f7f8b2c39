"""ProcessingLogEntry model — append-only diagnostics for pipeline attempts.

Rows are never updated or deleted. When a document is deleted its entries
stay behind with a NULL document reference.
"""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from invoicedesk.models.base import Base, utcnow


class ProcessingLogEntry(Base):
    """One scan, OCR, extraction or reprocess outcome."""

    __tablename__ = "processing_log"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    document_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("documents.id", ondelete="SET NULL"), index=True
    )
    file_hash: Mapped[str | None] = mapped_column(String(64))
    process_type: Mapped[str] = mapped_column(String(20), nullable=False)
    status: Mapped[str] = mapped_column(String(10), nullable=False)
    message: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)

    def __repr__(self) -> str:
        return f"<ProcessingLogEntry {self.process_type}:{self.status} document={self.document_id}>"
