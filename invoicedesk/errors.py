"""Error taxonomy shared by the ingestion core and the API layer.

Every error carries a technical ``message`` (logged) and a sanitized
``user_message`` that is safe to hand to the presentation layer.
"""

from __future__ import annotations

import re

MAX_MESSAGE_LENGTH = 300

_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b-\x1f\x7f]")
_SECRET_PATTERNS = (
    re.compile(r"sk-[A-Za-z0-9_\-]{8,}"),
    re.compile(r"(?i)bearer\s+[A-Za-z0-9._\-]+"),
    re.compile(r"enc:[A-Za-z0-9+/=]{16,}"),
)


def sanitize_message(text: str | None, limit: int = MAX_MESSAGE_LENGTH) -> str:
    """Make an error text safe to persist and display.

    Strips control characters, redacts credentials, collapses whitespace
    and truncates to ``limit`` characters.
    """
    if not text:
        return ""
    cleaned = _CONTROL_CHARS.sub(" ", str(text))
    for pattern in _SECRET_PATTERNS:
        cleaned = pattern.sub("[redacted]", cleaned)
    cleaned = " ".join(cleaned.split())
    if len(cleaned) > limit:
        cleaned = cleaned[: limit - 1].rstrip() + "…"
    return cleaned


class InvoiceDeskError(Exception):
    """Base class for all domain errors."""

    def __init__(self, message: str, user_message: str | None = None) -> None:
        super().__init__(message)
        self.user_message = sanitize_message(user_message or message)


class ScanError(InvoiceDeskError):
    """A file in a watched folder could not be read or hashed."""

    def __init__(self, message: str, path: str | None = None, user_message: str | None = None) -> None:
        super().__init__(message, user_message)
        self.path = path


class ExtractionError(InvoiceDeskError):
    """OCR or provider failure, or a malformed / incomplete structured response."""


class NotFoundError(InvoiceDeskError):
    """An operation referenced an unknown document, override or file."""


class ValidationError(InvoiceDeskError):
    """Malformed input such as an unsupported OCR language or period."""


class CredentialError(InvoiceDeskError):
    """The extraction provider rejected (or could not check) the credential."""
