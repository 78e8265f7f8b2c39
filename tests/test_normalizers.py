"""Tests for date and amount normalization."""

from __future__ import annotations

from decimal import Decimal

import pytest

from invoicedesk.extraction.normalizers import format_decimal, normalize_date, parse_amount


class TestNormalizeDate:
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("2024-01-15", "2024-01-15"),
            ("15.01.2024", "2024-01-15"),
            ("15/01/2024", "2024-01-15"),
            ("2024/01/15", "2024-01-15"),
            ("2024.01.15", "2024-01-15"),
            ("  2024-01-15 ", "2024-01-15"),
        ],
    )
    def test_known_layouts(self, raw: str, expected: str) -> None:
        assert normalize_date(raw) == expected

    def test_unparseable_kept_verbatim(self) -> None:
        assert normalize_date("Januar 2024") == "Januar 2024"

    def test_impossible_date_kept_verbatim(self) -> None:
        assert normalize_date("31.02.2024") == "31.02.2024"

    def test_blank_is_none(self) -> None:
        assert normalize_date("   ") is None
        assert normalize_date(None) is None


class TestFormatDecimal:
    def test_two_places(self) -> None:
        assert format_decimal(1200) == "1200.00"
        assert format_decimal(19.9) == "19.90"

    def test_rounds_half_up(self) -> None:
        assert format_decimal(0.125) == "0.13"
        assert format_decimal(Decimal("2.675")) == "2.68"

    def test_accepts_text(self) -> None:
        assert format_decimal("1500") == "1500.00"


class TestParseAmount:
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("1200.00", Decimal("1200.00")),
            ("1.200,00", Decimal("1200.00")),
            ("1,200.00", Decimal("1200.00")),
            ("1200,5", Decimal("1200.5")),
            ("€ 99,90", Decimal("99.90")),
            ("EUR 10", Decimal("10")),
            ("1,200", Decimal("1200")),
            ("1.234.567,89", Decimal("1234567.89")),
            ("-50.00", Decimal("-50.00")),
            ("$1,999.99", Decimal("1999.99")),
        ],
    )
    def test_formats(self, raw: str, expected: Decimal) -> None:
        assert parse_amount(raw) == expected

    @pytest.mark.parametrize("raw", [None, "", "n/a", "abc", "€", "-"])
    def test_non_numeric(self, raw: str | None) -> None:
        assert parse_amount(raw) is None
