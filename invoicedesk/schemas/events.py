"""SystemEvent schema — the event type that flows to notification subscribers.

Every state or field change emits a SystemEvent. The presentation layer
subscribes to the event bus to refresh views and show processing errors.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class EventType(str, Enum):
    """All event types emitted by the system."""

    # Documents
    DOCUMENT_UPDATED = "document.updated"
    DOCUMENT_DELETED = "document.deleted"

    # Pipeline
    PROCESSING_ERROR = "processing.error"
    SCAN_COMPLETED = "scan.completed"
    REPROCESS_REQUESTED = "reprocess.requested"

    # Operator actions
    OVERRIDE_SET = "override.set"
    OVERRIDE_CLEARED = "override.cleared"
    SETTINGS_SAVED = "settings.saved"


class SystemEvent(BaseModel):
    """Immutable notification about something the core did."""

    id: uuid.UUID = Field(default_factory=uuid.uuid4)
    event_type: EventType
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))

    # Context (optional, not every event concerns one document)
    document_id: uuid.UUID | None = None

    # Flexible payload
    data: dict[str, Any] = Field(default_factory=dict)

    # Metadata
    source_module: str | None = Field(default=None, description="Module that emitted this event")

    model_config = {"frozen": True}
