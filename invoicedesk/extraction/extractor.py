"""Invoice field extraction via an OpenAI-compatible chat model."""

from __future__ import annotations

import asyncio
import logging
import math

from invoicedesk.config import settings
from invoicedesk.errors import ExtractionError
from invoicedesk.extraction.normalizers import format_decimal, normalize_date
from invoicedesk.extraction.utils import LlmParseError, parse_llm_json
from invoicedesk.llm.client import OpenAIClient, llm_client
from invoicedesk.schemas.extraction import ExtractedInvoiceData, ExtractionOutcome

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are an invoice extraction system. Return JSON only and match the schema exactly.\n"
    "Fields:\n"
    "- invoice_number (string|null)\n"
    "- invoice_date (YYYY-MM-DD|null)\n"
    "- due_date (YYYY-MM-DD|null)\n"
    "- counterparty_name (string|null): the other party, i.e. the customer on a "
    "revenue invoice or the supplier on a payable invoice\n"
    "- total_amount (number|null): gross amount including tax\n"
    "- currency (ISO 4217 string|null)\n"
    "- tax_amount (number|null)\n"
    "- net_amount (number|null)\n"
    "- extraction_notes (string, short)\n"
    "- confidence_score (number between 0 and 1|null)\n"
    "Use null for anything that is not in the text. Do not add other keys."
)

USER_PROMPT = "Invoice text:\n{text}"

FIX_PROMPT = (
    "Fix this JSON so that it matches the schema exactly. Output JSON only.\n"
    "JSON:\n{raw}"
)

NOTES_MISSING = "notes missing"


def compute_confidence(data: ExtractedInvoiceData) -> float:
    """Heuristic confidence when the provider does not report one."""
    score = 0.4
    if data.invoice_number is not None:
        score += 0.1
    if data.invoice_date is not None:
        score += 0.1
    if data.counterparty_name is not None:
        score += 0.1
    if data.total_amount is not None:
        score += 0.1
    if data.tax_amount is not None or data.net_amount is not None:
        score += 0.05
    return clamp_confidence(score)


def clamp_confidence(value: float) -> float:
    if math.isnan(value):
        return 0.0
    return round(min(1.0, max(0.0, value)), 4)


async def _ask(client: OpenAIClient, user_prompt: str, api_key: str | None) -> str:
    """One provider round-trip under an overall deadline."""
    timeout = settings.llm.extraction_timeout
    try:
        return await asyncio.wait_for(
            client.chat_json(SYSTEM_PROMPT, user_prompt, api_key),
            timeout=timeout + 5.0,
        )
    except TimeoutError as exc:
        raise ExtractionError(
            f"Extraction exceeded {timeout:.0f}s",
            user_message=f"Extraction timed out after {timeout:.0f} seconds",
        ) from exc


async def extract_invoice(
    ocr_text: str,
    api_key: str | None,
    client: OpenAIClient | None = None,
) -> ExtractionOutcome:
    """Extract structured invoice fields from OCR text.

    A reply that is not valid JSON or does not match the schema gets one
    corrective retry.

    Raises:
        CredentialError: Missing or rejected credential.
        ExtractionError: Provider failure, malformed reply after the retry,
            or no numeric total amount.
    """
    client = client or llm_client
    text = ocr_text[: settings.llm.max_prompt_chars]

    raw = await _ask(client, USER_PROMPT.format(text=text), api_key)
    try:
        data, payload = parse_llm_json(raw, ExtractedInvoiceData)
    except LlmParseError as exc:
        logger.warning("Extraction reply did not match the schema (%s), retrying", exc)
        raw = await _ask(client, FIX_PROMPT.format(raw=raw), api_key)
        try:
            data, payload = parse_llm_json(raw, ExtractedInvoiceData)
        except LlmParseError as retry_exc:
            raise ExtractionError(
                f"Provider reply still invalid after retry: {retry_exc}",
                user_message="The provider returned data that does not match the invoice schema",
            ) from retry_exc

    if data.total_amount is None or not math.isfinite(data.total_amount):
        raise ExtractionError(
            "Provider reported no numeric total amount",
            user_message="No total amount could be extracted",
        )

    notes = data.extraction_notes.strip() or NOTES_MISSING
    payload["extraction_notes"] = notes
    currency = (data.currency or "").strip().upper() or settings.base_currency

    if data.confidence_score is None:
        confidence = compute_confidence(data)
    else:
        confidence = clamp_confidence(data.confidence_score)

    return ExtractionOutcome(
        invoice_number=(data.invoice_number or "").strip() or None,
        invoice_date=normalize_date(data.invoice_date),
        due_date=normalize_date(data.due_date),
        counterparty_name=(data.counterparty_name or "").strip() or None,
        total_amount=format_decimal(data.total_amount),
        currency=currency,
        tax_amount=format_decimal(data.tax_amount) if data.tax_amount is not None else None,
        net_amount=format_decimal(data.net_amount) if data.net_amount is not None else None,
        confidence_score=confidence,
        raw_payload=payload,
    )
