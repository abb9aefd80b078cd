"""
Canonical Model and Settings Test

Validates input normalization and configuration:
1. Amount, rate, date and tax id parsing
2. Required document fields
3. Period parsing
4. Settings loaded from the environment
"""

from datetime import date
from decimal import Decimal

import pytest
from pydantic import ValidationError

from core.config import Settings, load_settings
from core.models.canonical import (
    LineItem,
    RateSentinel,
    SourceTransaction,
    Subject,
    TransactionKind,
)
from jpk_engine import InvalidPeriodError, Period, parse_period


class TestValueParsing:
    """Loose repository values become typed fields."""

    @pytest.mark.parametrize("raw,expected", [
        ("1 234,56", Decimal("1234.56")),
        ("1,234.56", Decimal("1234.56")),
        ("1.234,56", Decimal("1234.56")),
        ("1.234.567,89", Decimal("1234567.89")),
        ("1,234,567.89", Decimal("1234567.89")),
        ("zł 10.00", Decimal("10.00")),
        ("99,90 PLN", Decimal("99.90")),
        ("1 000,00", Decimal("1000.00")),
        ("(5.00)", Decimal("-5.00")),
        (12.5, Decimal("12.5")),
        (7, Decimal("7")),
    ])
    def test_amounts(self, raw, expected):
        """Polish and English number formats are accepted."""
        assert LineItem(net_value=raw, vat_rate="23").net_value == expected

    @pytest.mark.parametrize("raw", ["abc", "NaN", "Infinity", True, "1,234.567,8", "1.2,3,4"])
    def test_bad_amounts(self, raw):
        """Unparseable or non-finite amounts are rejected."""
        with pytest.raises(ValidationError):
            LineItem(net_value=raw, vat_rate="23")

    @pytest.mark.parametrize("raw,expected", [
        ("23", Decimal("23")),
        ("8%", Decimal("8")),
        ("zw", RateSentinel.EXEMPT),
        ("NP", RateSentinel.NOT_SUBJECT),
        ("oo", RateSentinel.REVERSE_CHARGE),
        ("exempt", RateSentinel.EXEMPT),
    ])
    def test_rates(self, raw, expected):
        """Rates are numbers or sentinel codes."""
        assert LineItem(vat_rate=raw).vat_rate == expected

    @pytest.mark.parametrize("raw", ["2024-03-15", "15.03.2024", "15/03/2024", "2024-03-15T08:00:00"])
    def test_dates(self, raw):
        """Common date formats parse to the same day."""
        doc = SourceTransaction(id="D1", kind="sale", document_number="FV/1", issue_date=raw)
        assert doc.issue_date == date(2024, 3, 15)

    @pytest.mark.parametrize("raw,expected", [
        ("526-025-02-74", "5260250274"),
        ("PL 5260250274", "5260250274"),
        ("de811907980", "DE811907980"),
        ("  ", None),
    ])
    def test_tax_ids(self, raw, expected):
        """Tax ids lose separators and the domestic prefix."""
        assert Subject(nip=raw).tax_id == expected


class TestSourceTransaction:
    """Required document fields."""

    def test_alias_and_defaults(self):
        """id populates document_id; collections default to empty."""
        doc = SourceTransaction.model_validate({
            "id": "D1", "kind": "purchase", "document_number": "ZK/1", "issue_date": "2024-03-01",
        })
        assert doc.document_id == "D1"
        assert doc.kind == TransactionKind.PURCHASE
        assert doc.line_items == []
        assert doc.gtu_codes == []
        assert not doc.is_import

    @pytest.mark.parametrize("missing", ["document_number", "issue_date", "kind"])
    def test_required_fields(self, missing):
        """Documents without number, date or kind are rejected."""
        data = {"id": "D1", "kind": "sale", "document_number": "FV/1", "issue_date": "2024-03-01"}
        del data[missing]
        with pytest.raises(ValidationError):
            SourceTransaction.model_validate(data)

    def test_blank_document_number(self):
        """A blank number counts as missing."""
        with pytest.raises(ValidationError):
            SourceTransaction(id="D1", kind="sale", document_number="  ", issue_date="2024-03-01")

    def test_unknown_gtu_code(self):
        """GTU codes come from the closed list."""
        with pytest.raises(ValidationError):
            SourceTransaction(id="D1", kind="sale", document_number="FV/1", issue_date="2024-03-01", gtu_codes="GTU_99")


class TestPeriod:
    """Period parsing."""

    def test_month_label(self):
        """YYYY-MM covers the whole month."""
        period = parse_period("2024-02")
        assert period.start == date(2024, 2, 1)
        assert period.end == date(2024, 2, 29)
        assert period.label == "2024-02"

    def test_explicit_range(self):
        """A start/end mapping is taken as given."""
        period = parse_period({"start": "2024-03-01", "end": "2024-03-31"})
        assert period == Period.for_month(2024, 3)

    @pytest.mark.parametrize("raw", ["2024-00", "2024-3", "", 202403])
    def test_invalid(self, raw):
        """Malformed periods raise InvalidPeriodError."""
        with pytest.raises(InvalidPeriodError):
            parse_period(raw)


class TestSettings:
    """Environment-driven configuration."""

    def test_defaults(self, monkeypatch):
        """Without variables the defaults apply."""
        for name in (
            "JPK_SYSTEM_NAME", "JPK_SCHEMA_VERSION", "JPK_AMOUNT_TOLERANCE", "JPK_DEFAULT_TAX_OFFICE_CODE",
            "JPK_ROW_WORKERS", "JPK_ROW_BATCH_SIZE", "LOG_LEVEL", "LOG_JSON",
        ):
            monkeypatch.delenv(name, raising=False)
        settings = load_settings()

        assert settings == Settings()
        assert settings.amount_tolerance == Decimal("0.01")

    def test_overrides(self, monkeypatch):
        """Variables override defaults."""
        monkeypatch.setenv("JPK_SYSTEM_NAME", "erp-export")
        monkeypatch.setenv("JPK_AMOUNT_TOLERANCE", "0.05")
        monkeypatch.setenv("JPK_ROW_WORKERS", "2")
        monkeypatch.setenv("LOG_JSON", "true")
        settings = load_settings()

        assert settings.system_name == "erp-export"
        assert settings.amount_tolerance == Decimal("0.05")
        assert settings.row_workers == 2
        assert settings.log_json

    @pytest.mark.parametrize("name,value", [
        ("JPK_ROW_WORKERS", "many"),
        ("JPK_ROW_BATCH_SIZE", "0"),
        ("JPK_AMOUNT_TOLERANCE", "abc"),
    ])
    def test_invalid_values(self, monkeypatch, name, value):
        """Bad values fail loudly."""
        monkeypatch.setenv(name, value)
        with pytest.raises(ValueError):
            load_settings()
