"""Domain enums used across SQLAlchemy models and Pydantic schemas.

All enums use str mixin so values serialize as plain strings.
"""

from __future__ import annotations

from enum import Enum


class DocumentCategory(str, Enum):
    """Which watched folder a document came from."""

    REVENUE = "revenue"
    PAYABLE = "payable"


class IngestionStatus(str, Enum):
    """Position of a document in the extraction pipeline."""

    PENDING = "pending"
    PROCESSING = "processing"
    DONE = "done"
    ERROR = "error"


class PaymentStatus(str, Enum):
    """Known payment lifecycle values. Overrides may hold any other text."""

    OPEN = "open"
    PAID = "paid"


class ProcessType(str, Enum):
    """Kind of step recorded in the processing log."""

    SCAN = "scan"
    OCR = "ocr"
    EXTRACT = "extract"
    REPROCESS = "reprocess"


class LogStatus(str, Enum):
    """Outcome recorded in the processing log."""

    OK = "ok"
    ERROR = "error"


class SettingKey(str, Enum):
    """Rows of the settings table."""

    REVENUE_FOLDER = "revenue_folder"
    PAYABLE_FOLDER = "payable_folder"
    OPENAI_API_KEY = "openai_api_key"
    OCR_LANGUAGE = "ocr_language"
