"""Dashboard aggregation over resolved documents.

Pure and synchronous: callers resolve overrides first, so every figure
reflects what the operator sees. Amounts are summed as Decimal, making the
result independent of iteration order. A total that is missing or not
numeric contributes zero.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from datetime import date
from decimal import Decimal

from invoicedesk.errors import ValidationError
from invoicedesk.extraction.normalizers import normalize_date, parse_amount
from invoicedesk.models.enums import DocumentCategory, PaymentStatus
from invoicedesk.reconciliation import summarize
from invoicedesk.schemas.dashboard import DashboardStats
from invoicedesk.schemas.documents import ResolvedDocument

_YEAR_MONTH = re.compile(r"^(\d{4})-(0[1-9]|1[0-2])$")
ZERO = Decimal("0.00")


def parse_year_month(year_month: str | None, today: date | None = None) -> tuple[int, int]:
    """Split ``YYYY-MM`` into (year, month); default is the current month."""
    if year_month is None:
        today = today or date.today()
        return today.year, today.month
    match = _YEAR_MONTH.match(year_month.strip())
    if not match:
        raise ValidationError(
            f"Malformed period {year_month!r}",
            user_message="Period must have the form YYYY-MM",
        )
    return int(match.group(1)), int(match.group(2))


def month_window(year: int, month: int, window: int) -> list[str]:
    """``window`` consecutive ``YYYY-MM`` labels ending at (year, month)."""
    labels: list[str] = []
    index = year * 12 + (month - 1)
    for offset in range(window - 1, -1, -1):
        y, m = divmod(index - offset, 12)
        labels.append(f"{y:04d}-{m + 1:02d}")
    return labels


def _period(doc: ResolvedDocument) -> str | None:
    """``YYYY-MM`` of the resolved invoice date, if it is a real date."""
    iso = normalize_date(doc.invoice_date)
    if iso is None:
        return None
    try:
        return date.fromisoformat(iso).strftime("%Y-%m")
    except ValueError:
        return None


def _amount(doc: ResolvedDocument) -> Decimal:
    return parse_amount(doc.total_amount) or ZERO


def _is_paid(doc: ResolvedDocument) -> bool:
    return (doc.status or "").strip().lower() == PaymentStatus.PAID.value


def _recent(docs: list[ResolvedDocument], limit: int) -> list[ResolvedDocument]:
    """Most recently dated first, undated last, newest record breaking ties."""
    dated = sorted(
        (d for d in docs if _period(d) is not None),
        key=lambda d: (normalize_date(d.invoice_date), d.created_at.isoformat() if d.created_at else ""),
        reverse=True,
    )
    undated = sorted(
        (d for d in docs if _period(d) is None),
        key=lambda d: d.created_at.isoformat() if d.created_at else "",
        reverse=True,
    )
    return (dated + undated)[:limit]


def compute_dashboard(
    resolved_docs: Iterable[ResolvedDocument],
    year_month: str | None = None,
    window: int = 12,
    recent_limit: int = 5,
    today: date | None = None,
) -> DashboardStats:
    """Compute month and year KPIs, the chart series and recent activity.

    Raises:
        ValidationError: If ``year_month`` is not ``YYYY-MM``.
    """
    year, month = parse_year_month(year_month, today=today)
    target = f"{year:04d}-{month:02d}"
    year_prefix = f"{year:04d}-"
    months = month_window(year, month, max(window, 1))

    by_category: dict[str, list[ResolvedDocument]] = {c.value: [] for c in DocumentCategory}
    monthly: dict[str, dict[str, Decimal]] = {c.value: {} for c in DocumentCategory}
    yearly: dict[str, Decimal] = {c.value: ZERO for c in DocumentCategory}
    open_payables = ZERO

    for doc in resolved_docs:
        category = DocumentCategory(doc.category).value
        by_category[category].append(doc)
        amount = _amount(doc)

        if category == DocumentCategory.PAYABLE.value and not _is_paid(doc):
            open_payables += amount

        period = _period(doc)
        if period is None:
            continue
        monthly[category][period] = monthly[category].get(period, ZERO) + amount
        if period.startswith(year_prefix):
            yearly[category] += amount

    revenue, payable = DocumentCategory.REVENUE.value, DocumentCategory.PAYABLE.value
    chart_revenue = [monthly[revenue].get(m, ZERO) for m in months]
    chart_payables = [monthly[payable].get(m, ZERO) for m in months]

    revenue_month = monthly[revenue].get(target, ZERO)
    payable_month = monthly[payable].get(target, ZERO)

    return DashboardStats(
        year_month=target,
        revenue_month=revenue_month,
        revenue_year=yearly[revenue],
        payable_month=payable_month,
        payable_year=yearly[payable],
        profit_month=revenue_month - payable_month,
        profit_year=yearly[revenue] - yearly[payable],
        open_payables=open_payables,
        recent_revenue=[summarize(d) for d in _recent(by_category[revenue], recent_limit)],
        recent_payables=[summarize(d) for d in _recent(by_category[payable], recent_limit)],
        chart_months=months,
        chart_revenue=chart_revenue,
        chart_payables=chart_payables,
        chart_profit=[r - p for r, p in zip(chart_revenue, chart_payables, strict=True)],
    )
