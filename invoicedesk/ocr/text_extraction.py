"""Text extraction: PDF text layer first, Tesseract OCR as fallback.

Contract: ``extract_text(path, language) -> str`` raises ExtractionError
on any failure or when no text at all could be recovered. The blocking
work runs in a worker thread via ``extract_text_async`` under a timeout.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

import fitz  # PyMuPDF
import pytesseract
from PIL import Image

from invoicedesk.config import settings
from invoicedesk.errors import ExtractionError
from invoicedesk.ocr.preprocessor import load_image, prepare_for_ocr

logger = logging.getLogger(__name__)

MIN_WORDS = 10

if settings.ocr.tesseract_cmd:
    pytesseract.pytesseract.tesseract_cmd = settings.ocr.tesseract_cmd


def has_usable_text(text: str, min_chars: int | None = None) -> bool:
    """Whether an embedded text layer is good enough to skip OCR."""
    min_chars = settings.ocr.ocr_min_text_chars if min_chars is None else min_chars
    stripped = text.strip()
    return len(stripped) > min_chars and len(stripped.split()) > MIN_WORDS


def ocr_image(img: Image.Image, language: str) -> str:
    """Run Tesseract on one preprocessed page."""
    try:
        return pytesseract.image_to_string(prepare_for_ocr(img), lang=language)
    except pytesseract.TesseractNotFoundError as exc:
        raise ExtractionError(
            "Tesseract binary not found",
            user_message="OCR engine (tesseract) is not installed or not on PATH",
        ) from exc
    except pytesseract.TesseractError as exc:
        raise ExtractionError(
            f"Tesseract failed: {exc}",
            user_message=f"OCR failed (language '{language}' installed?)",
        ) from exc


def _render_page(page: fitz.Page, dpi: int) -> Image.Image:
    pix = page.get_pixmap(dpi=dpi, alpha=False)
    mode = "L" if pix.n == 1 else "RGB"
    return Image.frombytes(mode, (pix.width, pix.height), pix.samples)


def extract_from_pdf(path: Path, language: str) -> str:
    """Use the embedded text layer when usable, otherwise OCR rendered pages."""
    max_pages = settings.ocr.ocr_max_pages
    try:
        with fitz.open(path) as pdf:
            pages = [pdf[i] for i in range(min(pdf.page_count, max_pages))]
            text = "\n".join(page.get_text("text") for page in pages)
            if has_usable_text(text):
                logger.debug("Using text layer of %s (%d chars)", path.name, len(text))
                return text

            logger.info("No usable text layer in %s, running OCR on %d pages", path.name, len(pages))
            return "\n".join(
                ocr_image(_render_page(page, settings.ocr.ocr_render_dpi), language) for page in pages
            )
    except (fitz.FileDataError, RuntimeError) as exc:
        raise ExtractionError(
            f"Cannot open PDF {path}: {exc}",
            user_message=f"PDF {path.name} is damaged or encrypted",
        ) from exc


def extract_from_image(path: Path, language: str) -> str:
    try:
        raw = path.read_bytes()
    except OSError as exc:
        raise ExtractionError(f"Cannot read {path}: {exc}", user_message="file not found") from exc
    return ocr_image(load_image(raw), language)


def extract_text(path: str | Path, language: str) -> str:
    """Return the text of an invoice file.

    Raises:
        ExtractionError: If the file is missing, unreadable, or yields no text.
    """
    path = Path(path)
    if not path.is_file():
        raise ExtractionError(f"File not found: {path}", user_message="file not found")

    if path.suffix.lower() == ".pdf":
        text = extract_from_pdf(path, language)
    else:
        text = extract_from_image(path, language)

    if not text.strip():
        raise ExtractionError(
            f"No text recovered from {path}",
            user_message=f"No text could be read from {path.name}",
        )
    return text


async def extract_text_async(path: str | Path, language: str, timeout: float | None = None) -> str:
    """Run extract_text in a worker thread, bounded by the OCR timeout."""
    timeout = settings.ocr.ocr_timeout if timeout is None else timeout
    try:
        return await asyncio.wait_for(asyncio.to_thread(extract_text, path, language), timeout=timeout)
    except TimeoutError as exc:
        raise ExtractionError(
            f"OCR of {path} exceeded {timeout:.0f}s",
            user_message=f"OCR timed out after {timeout:.0f} seconds",
        ) from exc
