"""Tests for the JSON API routes and error mapping."""

from __future__ import annotations

import uuid
from collections.abc import AsyncGenerator
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from invoicedesk.errors import CredentialError
from invoicedesk.llm.client import llm_client
from invoicedesk.main import app


@pytest.fixture()
async def client(database: None) -> AsyncGenerator[httpx.AsyncClient, None]:
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as http:
        yield http


class TestHealth:
    @pytest.mark.asyncio()
    async def test_health(self, client: httpx.AsyncClient) -> None:
        response = await client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"
        assert response.json()["worker_running"] is False


class TestDocumentRoutes:
    @pytest.mark.asyncio()
    async def test_unknown_document_is_404(self, client: httpx.AsyncClient) -> None:
        response = await client.get(f"/api/documents/{uuid.uuid4()}")
        assert response.status_code == 404
        assert response.json() == {"error": "NotFoundError", "detail": "Document not found"}

    @pytest.mark.asyncio()
    async def test_list_and_detail(self, client: httpx.AsyncClient, make_document) -> None:
        document = await make_document(file_path="/in/r.pdf", invoice_date="2024-01-15", total_amount="1200.00")

        listed = await client.get("/api/documents", params={"category": "revenue"})
        assert listed.status_code == 200
        assert [row["id"] for row in listed.json()] == [str(document.id)]

        detail = await client.get(f"/api/documents/{document.id}")
        assert detail.json()["document"]["total_amount"] == "1200.00"

    @pytest.mark.asyncio()
    async def test_invalid_category_rejected(self, client: httpx.AsyncClient) -> None:
        response = await client.get("/api/documents", params={"category": "expenses"})
        assert response.status_code == 422

    @pytest.mark.asyncio()
    async def test_override_round_trip(self, client: httpx.AsyncClient, make_document) -> None:
        document = await make_document(total_amount="1200.00")

        response = await client.put(f"/api/documents/{document.id}/fields/total_amount", json={"value": "1500.00"})
        assert response.status_code == 200
        assert response.json()["total_amount"] == "1500.00"

        response = await client.delete(f"/api/documents/{document.id}/fields/total_amount")
        assert response.json()["total_amount"] == "1200.00"

    @pytest.mark.asyncio()
    async def test_unknown_field_is_422(self, client: httpx.AsyncClient, make_document) -> None:
        document = await make_document()
        response = await client.put(f"/api/documents/{document.id}/fields/ocr_text", json={"value": "x"})
        assert response.status_code == 422
        assert response.json()["error"] == "ValidationError"

    @pytest.mark.asyncio()
    async def test_delete(self, client: httpx.AsyncClient, make_document) -> None:
        document = await make_document()
        assert (await client.delete(f"/api/documents/{document.id}")).status_code == 204
        assert (await client.delete(f"/api/documents/{document.id}")).status_code == 404


class TestDashboardRoute:
    @pytest.mark.asyncio()
    async def test_month_kpis(self, client: httpx.AsyncClient, make_document) -> None:
        await make_document(invoice_date="2024-01-15", total_amount="1200.00", file_hash="a" * 64)
        await make_document(category="payable", invoice_date="2024-01-20", total_amount="200.00", file_hash="b" * 64)

        response = await client.get("/api/dashboard", params={"year_month": "2024-01"})

        body = response.json()
        assert response.status_code == 200
        assert body["year_month"] == "2024-01"
        assert body["revenue_month"] == "1200.00"
        assert body["profit_month"] == "1000.00"
        assert body["open_payables"] == "200.00"

    @pytest.mark.asyncio()
    async def test_malformed_period(self, client: httpx.AsyncClient) -> None:
        response = await client.get("/api/dashboard", params={"year_month": "01/2024"})
        assert response.status_code == 422
        assert response.json()["detail"] == "Period must have the form YYYY-MM"


class TestReprocessRoutes:
    @pytest.mark.asyncio()
    async def test_reprocess_all(self, client: httpx.AsyncClient, make_document) -> None:
        await make_document(file_hash="a" * 64)
        response = await client.post("/api/reprocess")
        assert response.json() == {"queued": 1}

    @pytest.mark.asyncio()
    async def test_reprocess_one_unknown(self, client: httpx.AsyncClient) -> None:
        response = await client.post(f"/api/documents/{uuid.uuid4()}/reprocess")
        assert response.status_code == 404


class TestSettingsRoutes:
    @pytest.mark.asyncio()
    async def test_save_and_read(self, client: httpx.AsyncClient, folders) -> None:
        revenue, _ = folders
        response = await client.put(
            "/api/settings",
            json={"revenue_folder": str(revenue), "openai_api_key": "sk-live-abcdef9876", "ocr_language": "eng"},
        )
        assert response.status_code == 200

        body = (await client.get("/api/settings")).json()
        assert body["revenue_folder"] == str(revenue)
        assert body["ocr_language"] == "eng"
        assert body["credential_configured"] is True
        assert "sk-live-abcdef9876" not in response.text

    @pytest.mark.asyncio()
    async def test_invalid_language(self, client: httpx.AsyncClient) -> None:
        response = await client.put("/api/settings", json={"ocr_language": "klingon"})
        assert response.status_code == 422

    @pytest.mark.asyncio()
    async def test_credential_probe(self, client: httpx.AsyncClient) -> None:
        with patch.object(llm_client, "check_credential", AsyncMock(return_value=True)):
            response = await client.post("/api/settings/test-credential", json={"api_key": "sk-live-abcdef9876"})
        assert response.json() == {"valid": True}

    @pytest.mark.asyncio()
    async def test_credential_probe_unreachable(self, client: httpx.AsyncClient) -> None:
        error = CredentialError("connect failed", user_message="Provider unreachable")
        with patch.object(llm_client, "check_credential", AsyncMock(side_effect=error)):
            response = await client.post("/api/settings/test-credential", json={"api_key": "sk-live-abcdef9876"})
        assert response.status_code == 400
        assert response.json() == {"error": "CredentialError", "detail": "Provider unreachable"}


class TestDiagnosticsRoutes:
    @pytest.mark.asyncio()
    async def test_open_unknown_file(self, client: httpx.AsyncClient, tmp_path) -> None:
        response = await client.post("/api/open-file", json={"path": str(tmp_path / "x.pdf")})
        assert response.status_code == 404

    @pytest.mark.asyncio()
    async def test_processing_log(self, client: httpx.AsyncClient) -> None:
        assert (await client.get("/api/processing-log")).json() == []
        assert (await client.get("/api/processing-log", params={"limit": 0})).status_code == 422
