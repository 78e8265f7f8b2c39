"""Operator settings persisted as key/value rows.

The provider credential is encrypted before it is stored. Readers get a
frozen AppSettings snapshot so one cycle never sees a half-applied save.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path

from sqlalchemy import delete, select
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from invoicedesk.config import settings
from invoicedesk.errors import CredentialError, ValidationError
from invoicedesk.models.base import utcnow
from invoicedesk.models.enums import SettingKey
from invoicedesk.models.setting import Setting
from invoicedesk.schemas.settings import AppSettings, SettingsUpdate, SettingsView
from invoicedesk.security.encryption import mask_secret, secret_encryptor

logger = logging.getLogger(__name__)

# Tesseract language codes, e.g. "deu", "eng", "chi_sim", "deu+eng"
_OCR_LANGUAGE = re.compile(r"^[a-z]{3}(_[a-z]+)?(\+[a-z]{3}(_[a-z]+)?)*$")


async def _read_raw(db: AsyncSession) -> dict[str, str]:
    result = await db.execute(select(Setting.key, Setting.value))
    return {row.key: row.value for row in result.all()}


def _decrypt_credential(stored: str | None) -> str | None:
    if not stored:
        return None
    try:
        return secret_encryptor.decrypt(stored)
    except CredentialError:
        logger.error("Stored provider credential cannot be decrypted; ignoring it")
        return None


async def load_settings(db: AsyncSession) -> AppSettings:
    """Read all setting rows into an immutable snapshot.

    The stored credential takes precedence over OPENAI_API_KEY from the
    environment.
    """
    raw = await _read_raw(db)
    credential = _decrypt_credential(raw.get(SettingKey.OPENAI_API_KEY.value))
    return AppSettings(
        revenue_folder=raw.get(SettingKey.REVENUE_FOLDER.value) or None,
        payable_folder=raw.get(SettingKey.PAYABLE_FOLDER.value) or None,
        openai_api_key=credential or settings.llm.openai_api_key or None,
        ocr_language=raw.get(SettingKey.OCR_LANGUAGE.value) or settings.ocr.ocr_default_language,
    )


def to_view(app_settings: AppSettings) -> SettingsView:
    """Settings as shown to the operator, without the credential in clear."""
    return SettingsView(
        revenue_folder=app_settings.revenue_folder,
        payable_folder=app_settings.payable_folder,
        ocr_language=app_settings.ocr_language,
        credential_configured=bool(app_settings.openai_api_key),
        credential_hint=mask_secret(app_settings.openai_api_key),
    )


def validate_ocr_language(language: str) -> str:
    language = language.strip()
    if not _OCR_LANGUAGE.match(language):
        raise ValidationError(
            f"Unsupported OCR language {language!r}",
            user_message="OCR language must be a Tesseract code such as 'deu' or 'deu+eng'",
        )
    return language


def _validate_folder(label: str, folder: str) -> str:
    folder = folder.strip()
    if folder and not Path(folder).is_dir():
        raise ValidationError(
            f"{label} folder {folder!r} is not a directory",
            user_message=f"{label} folder does not exist or is not a directory",
        )
    return folder


async def _put(db: AsyncSession, key: SettingKey, value: str) -> None:
    if not value:
        await db.execute(delete(Setting).where(Setting.key == key.value))
        return
    if secret_encryptor.should_encrypt(key.value):
        value = secret_encryptor.encrypt(value)
    stmt = sqlite_insert(Setting).values(key=key.value, value=value, updated_at=utcnow())
    stmt = stmt.on_conflict_do_update(
        index_elements=[Setting.key],
        set_={"value": stmt.excluded.value, "updated_at": stmt.excluded.updated_at},
    )
    await db.execute(stmt)


async def save_settings(db: AsyncSession, update: SettingsUpdate) -> AppSettings:
    """Validate and persist a partial settings update.

    Fields left as None are untouched; an empty string clears a value.
    Nothing is written if any field is invalid.
    """
    writes: list[tuple[SettingKey, str]] = []
    if update.revenue_folder is not None:
        writes.append((SettingKey.REVENUE_FOLDER, _validate_folder("Revenue", update.revenue_folder)))
    if update.payable_folder is not None:
        writes.append((SettingKey.PAYABLE_FOLDER, _validate_folder("Payable", update.payable_folder)))
    if update.ocr_language is not None:
        writes.append((SettingKey.OCR_LANGUAGE, validate_ocr_language(update.ocr_language)))
    if update.openai_api_key is not None:
        writes.append((SettingKey.OPENAI_API_KEY, update.openai_api_key.strip()))

    for key, value in writes:
        await _put(db, key, value)
    await db.flush()

    logger.info("Settings saved: %s", [key.value for key, _ in writes])
    return await load_settings(db)
