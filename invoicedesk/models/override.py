"""Override model — a manual correction of one field of one document."""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING

from sqlalchemy import ForeignKey, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from invoicedesk.models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from invoicedesk.models.document import Document


class Override(TimestampMixin, Base):
    """User-entered value that takes precedence over the extracted one."""

    __tablename__ = "overrides"
    __table_args__ = (UniqueConstraint("document_id", "field_name", name="uq_overrides_document_field"),)

    document_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("documents.id", ondelete="CASCADE"), nullable=False, index=True
    )
    field_name: Mapped[str] = mapped_column(String(50), nullable=False)
    override_value: Mapped[str] = mapped_column(Text, nullable=False)

    document: Mapped[Document] = relationship("Document", back_populates="overrides")

    def __repr__(self) -> str:
        return f"<Override document={self.document_id} field={self.field_name}>"
