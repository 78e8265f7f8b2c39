"""End-to-end pipeline scenarios: scan -> OCR -> extraction -> dashboard.

OCR and the provider call are mocked at the processor boundary; the
database, scanner, repository, reconciliation and aggregation are real.
"""

from __future__ import annotations

from decimal import Decimal
from unittest.mock import AsyncMock, patch

import pytest

from invoicedesk import services
from invoicedesk.db.engine import async_session_factory
from invoicedesk.errors import CredentialError, ExtractionError
from invoicedesk.ingestion.scanner import scan_all
from invoicedesk.pipeline.processor import FILE_NOT_FOUND, UNEXPECTED_FAILURE, process_document, process_pending
from invoicedesk.repository import documents as documents_repo
from invoicedesk.repository.processing_log import list_log
from invoicedesk.schemas.extraction import ExtractionOutcome

OCR_TARGET = "invoicedesk.pipeline.processor.extract_text_async"
EXTRACT_TARGET = "invoicedesk.pipeline.processor.extract_invoice"

OCR_TEXT = "Rechnung R-2024-001 vom 15.01.2024 Muster GmbH Gesamtbetrag 1.200,00 EUR"


def _outcome(**overrides) -> ExtractionOutcome:
    values = {
        "invoice_number": "R-2024-001",
        "invoice_date": "2024-01-15",
        "counterparty_name": "Muster GmbH",
        "total_amount": "1200.00",
        "currency": "EUR",
        "tax_amount": "191.60",
        "net_amount": "1008.40",
        "confidence_score": 0.9,
        "raw_payload": {"total_amount": 1200.0, "extraction_notes": "ok"},
    }
    values.update(overrides)
    return ExtractionOutcome(**values)


async def _scan_and_process(app_settings, extract: AsyncMock, ocr: AsyncMock | None = None):
    ocr = ocr or AsyncMock(return_value=OCR_TEXT)
    with patch(OCR_TARGET, ocr), patch(EXTRACT_TARGET, extract):
        await scan_all(app_settings)
        return await process_pending(app_settings)


class TestHappyPath:
    @pytest.mark.asyncio()
    async def test_revenue_invoice_reaches_dashboard(self, db, folders, app_settings) -> None:
        revenue, _ = folders
        path = revenue / "invoice_2024_01.pdf"
        path.write_bytes(b"%PDF invoice")
        extract = AsyncMock(return_value=_outcome())

        report = await _scan_and_process(app_settings, extract)

        assert report.done == 1
        document = await documents_repo.get_by_path(db, str(path))
        assert document.ingestion_status == "done"
        assert document.total_amount == "1200.00"
        assert document.ocr_text == OCR_TEXT
        assert extract.await_args.args == (OCR_TEXT, "sk-test-000000000000")

        stats = await services.get_dashboard(db, "2024-01")
        assert stats.revenue_month == Decimal("1200.00")
        assert stats.profit_month == Decimal("1200.00")
        assert [d.id for d in stats.recent_revenue] == [document.id]

        types = sorted((e.process_type, e.status) for e in await list_log(db, document_id=document.id))
        assert types == [("extract", "ok"), ("ocr", "ok")]

    @pytest.mark.asyncio()
    async def test_unchanged_rescan_does_not_reprocess(self, db, folders, app_settings) -> None:
        revenue, _ = folders
        (revenue / "invoice_2024_01.pdf").write_bytes(b"%PDF invoice")
        extract = AsyncMock(return_value=_outcome())

        await _scan_and_process(app_settings, extract)
        report = await _scan_and_process(app_settings, extract)

        assert report.done == 0
        assert extract.await_count == 1
        assert len(await documents_repo.list_documents(db)) == 1

    @pytest.mark.asyncio()
    async def test_override_reflected_in_detail_and_dashboard(self, db, folders, app_settings) -> None:
        revenue, _ = folders
        path = revenue / "invoice_2024_01.pdf"
        path.write_bytes(b"%PDF invoice")
        await _scan_and_process(app_settings, AsyncMock(return_value=_outcome()))
        document = await documents_repo.get_by_path(db, str(path))

        await services.update_field(db, document.id, "total_amount", "1500.00")

        detail = await services.get_document_detail(db, document.id)
        assert detail.document.total_amount == "1500.00"
        assert detail.document.overridden_fields == ["total_amount"]
        assert detail.extracted_json["total_amount"] == 1200.0
        stats = await services.get_dashboard(db, "2024-01")
        assert stats.revenue_month == Decimal("1500.00")

        await services.clear_override(db, document.id, "total_amount")
        stats = await services.get_dashboard(db, "2024-01")
        assert stats.revenue_month == Decimal("1200.00")


class TestFailures:
    @pytest.mark.asyncio()
    async def test_provider_error_marks_payable_error(self, db, folders, app_settings) -> None:
        _, payable = folders
        path = payable / "supplier.pdf"
        path.write_bytes(b"%PDF supplier")
        extract = AsyncMock(side_effect=ExtractionError("Provider error 500: upstream"))

        report = await _scan_and_process(app_settings, extract)

        assert report.error == 1
        document = await documents_repo.get_by_path(db, str(path))
        assert document.ingestion_status == "error"
        assert document.last_error == "Provider error 500: upstream"
        assert document.ocr_text == OCR_TEXT

        entries = await list_log(db, document_id=document.id)
        errors = [e for e in entries if e.status == "error"]
        assert [(e.process_type, e.message) for e in errors] == [("extract", "Provider error 500: upstream")]

        stats = await services.get_dashboard(db, "2024-01")
        assert stats.open_payables == Decimal("0")

    @pytest.mark.asyncio()
    async def test_missing_credential(self, db, folders, app_settings) -> None:
        revenue, _ = folders
        (revenue / "a.pdf").write_bytes(b"%PDF a")
        extract = AsyncMock(side_effect=CredentialError("No API key", user_message="No API key configured"))

        report = await _scan_and_process(app_settings, extract)

        assert report.error == 1
        document = (await documents_repo.list_documents(db))[0]
        assert document.last_error == "No API key configured"

    @pytest.mark.asyncio()
    async def test_ocr_failure(self, db, folders, app_settings) -> None:
        revenue, _ = folders
        (revenue / "blank.png").write_bytes(b"png")
        ocr = AsyncMock(side_effect=ExtractionError("No text recovered from blank.png"))
        extract = AsyncMock(return_value=_outcome())

        report = await _scan_and_process(app_settings, extract, ocr=ocr)

        assert report.error == 1
        extract.assert_not_awaited()
        entries = await list_log(db)
        assert entries[0].process_type == "ocr"
        assert entries[0].status == "error"

    @pytest.mark.asyncio()
    async def test_unexpected_exception_contained(self, db, folders, app_settings) -> None:
        revenue, _ = folders
        (revenue / "a.pdf").write_bytes(b"%PDF a")
        (revenue / "b.pdf").write_bytes(b"%PDF b")
        extract = AsyncMock(side_effect=[RuntimeError("boom"), _outcome()])

        report = await _scan_and_process(app_settings, extract)

        assert report.error == 1
        assert report.done == 1
        statuses = sorted(d.ingestion_status for d in await documents_repo.list_documents(db))
        assert statuses == ["done", "error"]
        failed = [d for d in await documents_repo.list_documents(db) if d.ingestion_status == "error"][0]
        assert failed.last_error == UNEXPECTED_FAILURE

    @pytest.mark.asyncio()
    async def test_reprocess_after_file_deleted(self, db, folders, app_settings) -> None:
        revenue, _ = folders
        path = revenue / "invoice_2024_01.pdf"
        path.write_bytes(b"%PDF invoice")
        await _scan_and_process(app_settings, AsyncMock(return_value=_outcome()))
        document = await documents_repo.get_by_path(db, str(path))

        path.unlink()
        await services.reprocess_document(db, document.id)
        with patch(OCR_TARGET, AsyncMock(return_value=OCR_TEXT)) as ocr:
            status = await process_document(document.id, app_settings)

        assert status == "error"
        ocr.assert_not_awaited()
        kept = await documents_repo.require_document(db, document.id)
        assert kept.last_error == FILE_NOT_FOUND
        assert kept.total_amount == "1200.00"


class TestConcurrency:
    @pytest.mark.asyncio()
    async def test_reprocess_requested_mid_attempt(self, db, folders, app_settings) -> None:
        revenue, _ = folders
        path = revenue / "a.pdf"
        path.write_bytes(b"%PDF a")

        async def extract_and_request_reprocess(*args, **kwargs) -> ExtractionOutcome:
            async with async_session_factory() as session:
                document = await documents_repo.get_by_path(session, str(path))
                await services.reprocess_document(session, document.id)
            return _outcome()

        report = await _scan_and_process(app_settings, AsyncMock(side_effect=extract_and_request_reprocess))

        assert report.requeued == 1
        document = await documents_repo.get_by_path(db, str(path))
        assert document.ingestion_status == "pending"
        assert document.reprocess_requested is False
        assert document.total_amount == "1200.00"

    @pytest.mark.asyncio()
    async def test_second_attempt_on_claimed_document_skipped(self, db, make_document, app_settings) -> None:
        document = await make_document(ingestion_status="processing")
        assert await process_document(document.id, app_settings) is None
