"""Image preprocessing for Tesseract.

Synchronous, pure Python (Pillow). Normalizes scans and photos before OCR:
EXIF orientation, upscaling of small images, grayscale conversion and
contrast stretching.
"""

from __future__ import annotations

import io

from PIL import Image, ImageOps, UnidentifiedImageError

from invoicedesk.errors import ExtractionError

# Tesseract reads best at roughly 300 DPI; an A4 page at 300 DPI is ~2480px wide
MIN_LONG_SIDE = 1800
MAX_LONG_SIDE = 5000
LOW_CONTRAST_CUTOFF = 0.35


def load_image(raw: bytes) -> Image.Image:
    """Decode image bytes, raising ExtractionError for unreadable data."""
    try:
        img = Image.open(io.BytesIO(raw))
        img.load()
    except (UnidentifiedImageError, OSError) as exc:
        raise ExtractionError(
            f"Cannot decode image: {exc}",
            user_message="The image file could not be read",
        ) from exc
    return img


def prepare_for_ocr(img: Image.Image) -> Image.Image:
    """Return a grayscale, upright, reasonably sized copy of ``img``.

    Steps:
        1. Apply EXIF orientation
        2. Resize so the longer side is within [MIN_LONG_SIDE, MAX_LONG_SIDE]
        3. Convert to grayscale
        4. Stretch contrast if the histogram is narrow
    """
    img = ImageOps.exif_transpose(img) or img

    long_side = max(img.size)
    if long_side < MIN_LONG_SIDE or long_side > MAX_LONG_SIDE:
        target = MIN_LONG_SIDE if long_side < MIN_LONG_SIDE else MAX_LONG_SIDE
        ratio = target / long_side
        img = img.resize((max(1, int(img.width * ratio)), max(1, int(img.height * ratio))), Image.LANCZOS)

    if img.mode != "L":
        img = img.convert("L")

    if _is_low_contrast(img):
        img = ImageOps.autocontrast(img)
    return img


def _is_low_contrast(img: Image.Image) -> bool:
    """Check if the image has low contrast by comparing extrema spread."""
    lo, hi = img.getextrema()
    return (hi - lo) / 255.0 < LOW_CONTRAST_CUTOFF
