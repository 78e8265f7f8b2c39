"""Value normalization for extracted and user-entered invoice fields.

Pure functions: dates to ISO, amounts to two-decimal text, and a lenient
amount parser for free-text overrides.
"""

from __future__ import annotations

import re
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

DATE_FORMATS = ("%Y-%m-%d", "%d.%m.%Y", "%d/%m/%Y", "%Y/%m/%d", "%Y.%m.%d")

_TWO_PLACES = Decimal("0.01")
_NON_NUMERIC = re.compile(r"[^0-9,.\-]")


def normalize_date(value: str | None) -> str | None:
    """Return ``YYYY-MM-DD`` for known date layouts, the input otherwise.

    Blank input becomes None; unparseable text is kept verbatim so nothing
    the provider read is lost.
    """
    if value is None:
        return None
    raw = value.strip()
    if not raw:
        return None
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(raw, fmt).date().isoformat()
        except ValueError:
            continue
    return raw


def format_decimal(value: float | Decimal | str) -> str:
    """Format an amount with exactly two decimals, rounding half up."""
    amount = value if isinstance(value, Decimal) else Decimal(str(value))
    return str(amount.quantize(_TWO_PLACES, rounding=ROUND_HALF_UP))


def parse_amount(text: str | None) -> Decimal | None:
    """Parse a human-written amount, or return None if it is not numeric.

    Accepts ``1200.00``, ``1.200,00``, ``1,200.00``, ``1200,5`` and
    surrounding currency symbols or codes (``€ 99,90``, ``EUR 10``).
    With both separators present the last one is the decimal mark. A lone
    comma followed by exactly three digits is a thousands separator; a lone
    dot is always a decimal mark.
    """
    if text is None:
        return None
    cleaned = _NON_NUMERIC.sub("", str(text).strip())
    if not any(ch.isdigit() for ch in cleaned):
        return None

    negative = cleaned.startswith("-")
    cleaned = cleaned.replace("-", "")

    has_comma, has_dot = "," in cleaned, "." in cleaned
    if has_comma and has_dot:
        decimal_mark = "," if cleaned.rfind(",") > cleaned.rfind(".") else "."
        thousands = "." if decimal_mark == "," else ","
        cleaned = cleaned.replace(thousands, "").replace(decimal_mark, ".")
    elif has_comma:
        head, _, tail = cleaned.rpartition(",")
        if cleaned.count(",") > 1 or len(tail) == 3:
            cleaned = cleaned.replace(",", "")
        else:
            cleaned = f"{head}.{tail}"
    elif cleaned.count(".") > 1:
        cleaned = cleaned.replace(".", "")

    try:
        amount = Decimal(cleaned)
    except InvalidOperation:
        return None
    if not amount.is_finite():
        return None
    return -amount if negative else amount
