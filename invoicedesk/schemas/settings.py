"""Pydantic schemas for operator settings.

AppSettings is the frozen snapshot a scan/extraction cycle works with; the
credential inside it is already decrypted and must never be serialized
back to a client. SettingsView is what the API returns.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class AppSettings(BaseModel):
    """Snapshot of operator settings taken at the start of a cycle."""

    model_config = ConfigDict(frozen=True)

    revenue_folder: str | None = None
    payable_folder: str | None = None
    openai_api_key: str | None = Field(default=None, repr=False)
    ocr_language: str

    def folder_for(self, category: str) -> str | None:
        """Return the watched folder for a document category."""
        return self.revenue_folder if category == "revenue" else self.payable_folder


class SettingsUpdate(BaseModel):
    """Partial settings write. Omitted (None) fields are left untouched."""

    revenue_folder: str | None = None
    payable_folder: str | None = None
    openai_api_key: str | None = Field(default=None, repr=False)
    ocr_language: str | None = None


class SettingsView(BaseModel):
    """Settings as shown to the operator."""

    revenue_folder: str | None = None
    payable_folder: str | None = None
    ocr_language: str
    credential_configured: bool = False
    credential_hint: str | None = None


class CredentialTest(BaseModel):
    """Body of the credential probe."""

    api_key: str = Field(repr=False)


class CredentialTestResult(BaseModel):
    valid: bool


class OpenFileRequest(BaseModel):
    path: str
