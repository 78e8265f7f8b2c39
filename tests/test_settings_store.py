"""Tests for operator settings persistence."""

from __future__ import annotations

from pathlib import Path

import pytest
from sqlalchemy import select

from invoicedesk.config import settings
from invoicedesk.errors import ValidationError
from invoicedesk.models import Setting
from invoicedesk.repository.settings_store import (
    load_settings,
    save_settings,
    to_view,
    validate_ocr_language,
)
from invoicedesk.schemas.settings import SettingsUpdate
from invoicedesk.security.encryption import secret_encryptor


async def _raw(db, key: str) -> str | None:
    result = await db.execute(select(Setting.value).where(Setting.key == key))
    return result.scalar_one_or_none()


class TestLoadSettings:
    @pytest.mark.asyncio()
    async def test_defaults(self, db) -> None:
        app_settings = await load_settings(db)
        assert app_settings.revenue_folder is None
        assert app_settings.payable_folder is None
        assert app_settings.openai_api_key is None
        assert app_settings.ocr_language == settings.ocr.ocr_default_language

    @pytest.mark.asyncio()
    async def test_environment_credential_fallback(self, db, monkeypatch) -> None:
        monkeypatch.setattr(settings.llm, "openai_api_key", "sk-from-environment")
        assert (await load_settings(db)).openai_api_key == "sk-from-environment"

        await save_settings(db, SettingsUpdate(openai_api_key="sk-stored-in-database"))
        await db.commit()
        assert (await load_settings(db)).openai_api_key == "sk-stored-in-database"

    @pytest.mark.asyncio()
    async def test_undecryptable_credential_ignored(self, db) -> None:
        db.add(Setting(key="openai_api_key", value="enc:" + "A" * 60))
        await db.commit()
        assert (await load_settings(db)).openai_api_key is None


class TestSaveSettings:
    @pytest.mark.asyncio()
    async def test_credential_encrypted_at_rest(self, db) -> None:
        await save_settings(db, SettingsUpdate(openai_api_key="  sk-secret-value-1234  "))
        await db.commit()

        stored = await _raw(db, "openai_api_key")
        assert stored.startswith("enc:")
        assert "sk-secret" not in stored
        assert secret_encryptor.decrypt(stored) == "sk-secret-value-1234"

    @pytest.mark.asyncio()
    async def test_partial_update_keeps_other_fields(self, db, folders) -> None:
        revenue, payable = folders
        await save_settings(db, SettingsUpdate(revenue_folder=str(revenue), ocr_language="deu+eng"))
        result = await save_settings(db, SettingsUpdate(payable_folder=str(payable)))
        await db.commit()

        assert result.revenue_folder == str(revenue)
        assert result.payable_folder == str(payable)
        assert result.ocr_language == "deu+eng"

    @pytest.mark.asyncio()
    async def test_empty_string_clears(self, db, folders) -> None:
        revenue, _ = folders
        await save_settings(db, SettingsUpdate(revenue_folder=str(revenue)))
        result = await save_settings(db, SettingsUpdate(revenue_folder=""))
        await db.commit()

        assert result.revenue_folder is None
        assert await _raw(db, "revenue_folder") is None

    @pytest.mark.asyncio()
    async def test_invalid_input_writes_nothing(self, db, folders, tmp_path: Path) -> None:
        revenue, _ = folders
        with pytest.raises(ValidationError):
            await save_settings(db, SettingsUpdate(revenue_folder=str(revenue), ocr_language="German!"))
        with pytest.raises(ValidationError):
            await save_settings(db, SettingsUpdate(payable_folder=str(tmp_path / "missing")))
        await db.commit()

        assert await _raw(db, "revenue_folder") is None
        assert await _raw(db, "ocr_language") is None


class TestValidateOcrLanguage:
    @pytest.mark.parametrize("language", ["deu", "eng", "deu+eng", "chi_sim", " fra "])
    def test_valid(self, language: str) -> None:
        assert validate_ocr_language(language) == language.strip()

    @pytest.mark.parametrize("language", ["", "de", "deutsch", "deu,eng", "../etc"])
    def test_invalid(self, language: str) -> None:
        with pytest.raises(ValidationError):
            validate_ocr_language(language)


class TestToView:
    @pytest.mark.asyncio()
    async def test_credential_masked(self, db) -> None:
        app_settings = await save_settings(db, SettingsUpdate(openai_api_key="sk-secret-value-1234"))
        view = to_view(app_settings)
        assert view.credential_configured is True
        assert view.credential_hint == "sk-…1234"
        assert "openai_api_key" not in view.model_dump()
