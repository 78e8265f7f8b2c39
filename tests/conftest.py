"""Shared fixtures: a throwaway SQLite database and document factories.

The environment is set before any invoicedesk module is imported because
the engine and settings singletons are built at import time.
"""

from __future__ import annotations

import base64
import os
import tempfile
from collections.abc import AsyncGenerator, Awaitable, Callable
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

_TMP_DIR = tempfile.mkdtemp(prefix="invoicedesk-tests-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_TMP_DIR}/test.db"
os.environ["ENCRYPTION_KEY"] = base64.b64encode(b"k" * 32).decode()
os.environ["OPENAI_API_KEY"] = ""
os.environ["LOG_LEVEL"] = "INFO"

import pytest  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession  # noqa: E402

from invoicedesk.db.engine import async_session_factory, engine  # noqa: E402
from invoicedesk.models import Base, Document  # noqa: E402
from invoicedesk.notifications.events import start_event_system, stop_event_system  # noqa: E402
from invoicedesk.schemas.settings import AppSettings  # noqa: E402


@pytest.fixture()
async def database() -> AsyncGenerator[None, None]:
    """Fresh tables and a running event bus for one test."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    await start_event_system()
    try:
        yield
    finally:
        await stop_event_system()
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)
        await engine.dispose()


@pytest.fixture()
async def db(database: None) -> AsyncGenerator[AsyncSession, None]:
    async with async_session_factory() as session:
        yield session


@pytest.fixture()
def folders(tmp_path: Path) -> tuple[Path, Path]:
    revenue = tmp_path / "revenue"
    payable = tmp_path / "payable"
    revenue.mkdir()
    payable.mkdir()
    return revenue, payable


@pytest.fixture()
def app_settings(folders: tuple[Path, Path]) -> AppSettings:
    revenue, payable = folders
    return AppSettings(
        revenue_folder=str(revenue),
        payable_folder=str(payable),
        openai_api_key="sk-test-000000000000",
        ocr_language="deu",
    )


async def _make_document(**fields: Any) -> Document:
    """Insert a document directly, bypassing the scanner."""
    values: dict[str, Any] = {
        "category": "revenue",
        "file_path": None,
        "file_hash": "0" * 64,
        "file_modified_at": datetime(2024, 1, 31, tzinfo=UTC),
        "ingestion_status": "done",
        "extracted_json": {},
        "currency": "EUR",
    }
    values.update(fields)
    async with async_session_factory() as session:
        document = Document(**values)
        session.add(document)
        await session.commit()
        return document


@pytest.fixture()
def make_document(database: None) -> Callable[..., Awaitable[Document]]:
    return _make_document


async def _drain_events() -> None:
    """Deliver every queued event, then keep the bus running."""
    await stop_event_system()
    await start_event_system()


@pytest.fixture()
def drain_events(database: None) -> Callable[[], Awaitable[None]]:
    return _drain_events
