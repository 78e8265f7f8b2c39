"""Tests for the folder scanner decision table."""

from __future__ import annotations

import shutil
from pathlib import Path
from unittest.mock import patch

import pytest
from sqlalchemy import update

from invoicedesk.errors import ScanError
from invoicedesk.ingestion.scanner import IngestOutcome, ScanReport, iter_candidate_files, scan_all, scan_folder
from invoicedesk.models import Document
from invoicedesk.notifications.events import subscribe, unsubscribe
from invoicedesk.repository import documents as documents_repo
from invoicedesk.repository.processing_log import list_log
from invoicedesk.schemas.events import EventType, SystemEvent


class TestIterCandidateFiles:
    def test_filters_extensions(self, tmp_path: Path) -> None:
        (tmp_path / "a.pdf").write_bytes(b"a")
        (tmp_path / "b.PNG").write_bytes(b"b")
        (tmp_path / "notes.txt").write_text("skip")
        (tmp_path / "sub.pdf").mkdir()
        names = sorted(p.name for p, _ in iter_candidate_files(tmp_path))
        assert names == ["a.pdf", "b.PNG"]

    def test_missing_folder(self, tmp_path: Path) -> None:
        assert list(iter_candidate_files(tmp_path / "nope")) == []

    def test_restartable(self, tmp_path: Path) -> None:
        (tmp_path / "a.pdf").write_bytes(b"a")
        assert len(list(iter_candidate_files(tmp_path))) == 1
        assert len(list(iter_candidate_files(tmp_path))) == 1


class TestScanReport:
    def test_record_and_merge(self) -> None:
        first = ScanReport()
        first.record(IngestOutcome.CREATED)
        first.record(IngestOutcome.DUPLICATE)
        second = ScanReport(changed=2, errors=1)
        merged = first.merge(second)
        assert (merged.created, merged.changed, merged.duplicates, merged.errors) == (1, 2, 1, 1)
        assert merged.enqueued == 3


class TestScanFolder:
    @pytest.mark.asyncio()
    async def test_new_file_registered_pending(self, db, folders) -> None:
        revenue, _ = folders
        (revenue / "invoice_2024_01.pdf").write_bytes(b"%PDF first")

        report = await scan_folder(revenue, "revenue")

        assert report.created == 1
        document = await documents_repo.get_by_path(db, str(revenue / "invoice_2024_01.pdf"))
        assert document is not None
        assert document.category == "revenue"
        assert document.ingestion_status == "pending"
        assert document.currency == "EUR"

    @pytest.mark.asyncio()
    async def test_rescan_unchanged_is_noop(self, db, folders) -> None:
        revenue, _ = folders
        (revenue / "a.pdf").write_bytes(b"%PDF a")
        await scan_folder(revenue, "revenue")

        report = await scan_folder(revenue, "revenue")

        assert report.unchanged == 1
        assert report.created == 0
        assert len(await documents_repo.list_documents(db)) == 1

    @pytest.mark.asyncio()
    async def test_content_change_requeues_and_keeps_fields(self, db, folders) -> None:
        revenue, _ = folders
        path = revenue / "a.pdf"
        path.write_bytes(b"%PDF a")
        await scan_folder(revenue, "revenue")
        await db.execute(
            update(Document).values(ingestion_status="done", total_amount="100.00")
        )
        await db.commit()

        path.write_bytes(b"%PDF a, corrected")
        report = await scan_folder(revenue, "revenue")

        assert report.changed == 1
        document = await documents_repo.get_by_path(db, str(path))
        assert document.ingestion_status == "pending"
        assert document.total_amount == "100.00"

    @pytest.mark.asyncio()
    async def test_moved_file_keeps_identity(self, db, folders) -> None:
        revenue, _ = folders
        (revenue / "a.pdf").write_bytes(b"%PDF a")
        await scan_folder(revenue, "revenue")
        original = await documents_repo.get_by_path(db, str(revenue / "a.pdf"))

        (revenue / "a.pdf").rename(revenue / "renamed.pdf")
        report = await scan_folder(revenue, "revenue")

        assert report.moved == 1
        moved = await documents_repo.get_by_path(db, str(revenue / "renamed.pdf"))
        assert moved.id == original.id
        assert len(await documents_repo.list_documents(db)) == 1

    @pytest.mark.asyncio()
    async def test_duplicate_copy_skipped(self, db, folders) -> None:
        revenue, _ = folders
        (revenue / "a.pdf").write_bytes(b"%PDF a")
        shutil.copy(revenue / "a.pdf", revenue / "copy.pdf")

        report = await scan_folder(revenue, "revenue")

        assert report.created == 1
        assert report.duplicates == 1
        documents = await documents_repo.list_documents(db)
        assert len(documents) == 1
        entries = await list_log(db)
        assert entries[0].process_type == "scan"
        assert entries[0].status == "ok"
        assert entries[0].document_id == documents[0].id
        assert "Duplicate" in entries[0].message

    @pytest.mark.asyncio()
    async def test_same_content_other_category_is_separate(self, db, folders) -> None:
        revenue, payable = folders
        (revenue / "a.pdf").write_bytes(b"%PDF shared")
        (payable / "a.pdf").write_bytes(b"%PDF shared")

        await scan_folder(revenue, "revenue")
        report = await scan_folder(payable, "payable")

        assert report.created == 1
        assert len(await documents_repo.list_documents(db)) == 2

    @pytest.mark.asyncio()
    async def test_unreadable_file_logged(self, db, folders) -> None:
        revenue, _ = folders
        (revenue / "locked.pdf").write_bytes(b"%PDF")
        error = ScanError("denied", path=str(revenue / "locked.pdf"), user_message="Cannot read file locked.pdf")

        with patch("invoicedesk.ingestion.scanner.hash_file", side_effect=error):
            report = await scan_folder(revenue, "revenue")

        assert report.errors == 1
        entries = await list_log(db)
        assert entries[0].status == "error"
        assert entries[0].message == "Cannot read file locked.pdf"
        assert await documents_repo.list_documents(db) == []

    @pytest.mark.asyncio()
    async def test_unset_folder(self, database) -> None:
        assert await scan_folder(None, "revenue") == ScanReport()


class TestScanAll:
    @pytest.mark.asyncio()
    async def test_both_folders_and_completion_event(self, db, folders, app_settings, drain_events) -> None:
        revenue, payable = folders
        (revenue / "r.pdf").write_bytes(b"%PDF revenue")
        (payable / "p.jpg").write_bytes(b"jpeg payable")
        received: list[SystemEvent] = []

        async def on_scan(event: SystemEvent) -> None:
            received.append(event)

        subscribe(on_scan, event_types=[EventType.SCAN_COMPLETED])
        try:
            report = await scan_all(app_settings)
            await drain_events()
        finally:
            unsubscribe(on_scan)

        assert report.created == 2
        categories = sorted(d.category for d in await documents_repo.list_documents(db))
        assert categories == ["payable", "revenue"]
        assert received[0].data["created"] == 2
