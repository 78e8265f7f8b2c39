"""SQLAlchemy ORM models for InvoiceDesk.

Import all models here so Base.metadata.create_all() discovers them.
"""

from __future__ import annotations

from invoicedesk.models.base import Base
from invoicedesk.models.document import Document
from invoicedesk.models.enums import (
    DocumentCategory,
    IngestionStatus,
    LogStatus,
    PaymentStatus,
    ProcessType,
    SettingKey,
)
from invoicedesk.models.override import Override
from invoicedesk.models.processing_log import ProcessingLogEntry
from invoicedesk.models.setting import Setting

__all__ = [
    # Base
    "Base",
    # Models
    "Document",
    "Override",
    "Setting",
    "ProcessingLogEntry",
    # Enums
    "DocumentCategory",
    "IngestionStatus",
    "PaymentStatus",
    "ProcessType",
    "LogStatus",
    "SettingKey",
]
