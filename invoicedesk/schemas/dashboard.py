"""Pydantic schema for the dashboard KPI bundle.

All money fields use Decimal.
"""

from __future__ import annotations

from decimal import Decimal

from pydantic import BaseModel, Field

from invoicedesk.schemas.documents import DocumentSummary


class DashboardStats(BaseModel):
    """Revenue, payables and profit for a month, its year, and a chart window."""

    year_month: str
    revenue_month: Decimal = Decimal("0")
    revenue_year: Decimal = Decimal("0")
    payable_month: Decimal = Decimal("0")
    payable_year: Decimal = Decimal("0")
    profit_month: Decimal = Decimal("0")
    profit_year: Decimal = Decimal("0")
    open_payables: Decimal = Decimal("0")
    recent_revenue: list[DocumentSummary] = Field(default_factory=list)
    recent_payables: list[DocumentSummary] = Field(default_factory=list)
    chart_months: list[str] = Field(default_factory=list)
    chart_revenue: list[Decimal] = Field(default_factory=list)
    chart_payables: list[Decimal] = Field(default_factory=list)
    chart_profit: list[Decimal] = Field(default_factory=list)
