"""
Rate Classifier and Summary Table Test

Validates the schema-driven tables:
1. Every rate the schema knows maps to its bucket, per section and treatment
2. Unknown rates fall into the default bucket without raising
3. Every bucket projects onto K_ fields; the P_ table only reads known K_ fields
"""

from decimal import Decimal

import pytest

from core.models.canonical import LineItem, RateSentinel, TransactionKind, VatTreatment
from jpk_engine import (
    JPK_V7M_3,
    UnsupportedSchemaVersionError,
    VatRateBucket,
    classify_line_item,
    classify_rate,
    get_schema,
    normalize_rate,
)
from jpk_engine.aggregates import summary_sources

SALE = TransactionKind.SALE
PURCHASE = TransactionKind.PURCHASE


class TestNormalizeRate:
    """Plain text form of rates."""

    @pytest.mark.parametrize("rate,expected", [
        (Decimal("23"), "23"),
        (Decimal("23.00"), "23"),
        (Decimal("8.50"), "8.5"),
        (Decimal("0.00"), "0"),
        (5, "5"),
        ("23%", "23"),
        ("ZW", "zw"),
        (RateSentinel.NOT_SUBJECT, "np"),
    ])
    def test_normalize(self, rate, expected):
        """Trailing zeros, percent signs and case do not matter."""
        assert normalize_rate(rate) == expected


class TestClassifyRate:
    """Rate table lookups."""

    @pytest.mark.parametrize("rate,treatment,bucket", [
        ("23", VatTreatment.DOMESTIC, VatRateBucket.RATE_23),
        ("8", VatTreatment.DOMESTIC, VatRateBucket.RATE_8),
        ("5", VatTreatment.DOMESTIC, VatRateBucket.RATE_5),
        ("0", VatTreatment.DOMESTIC, VatRateBucket.ZERO_DOMESTIC),
        ("0", VatTreatment.EXPORT, VatRateBucket.ZERO_EXPORT),
        ("0", VatTreatment.INTRA_COMMUNITY, VatRateBucket.ZERO_EXPORT),
        ("23", VatTreatment.IMPORT, VatRateBucket.IMPORT_OF_SERVICES),
        ("23", VatTreatment.REVERSE_CHARGE, VatRateBucket.DOMESTIC_REVERSE_CHARGE),
        ("zw", VatTreatment.DOMESTIC, VatRateBucket.EXEMPT),
        ("np", VatTreatment.EXPORT, VatRateBucket.NOT_SUBJECT),
        ("oo", VatTreatment.DOMESTIC, VatRateBucket.REVERSE_CHARGE),
    ])
    def test_sale_rates(self, rate, treatment, bucket):
        """Sale rates map to their buckets."""
        result = classify_rate(rate, treatment, SALE)
        assert result.bucket == bucket
        assert result.recognized

    @pytest.mark.parametrize("rate,treatment,bucket", [
        ("23", VatTreatment.DOMESTIC, VatRateBucket.RATE_23),
        ("8", VatTreatment.DOMESTIC, VatRateBucket.RATE_8),
        ("23", VatTreatment.INTRA_COMMUNITY, VatRateBucket.INTRA_COMMUNITY_ACQUISITION),
        ("0", VatTreatment.INTRA_COMMUNITY, VatRateBucket.INTRA_COMMUNITY_ACQUISITION),
        ("zw", VatTreatment.DOMESTIC, VatRateBucket.EXEMPT),
    ])
    def test_purchase_rates(self, rate, treatment, bucket):
        """Purchase rates map to their buckets."""
        assert classify_rate(rate, treatment, PURCHASE).bucket == bucket

    @pytest.mark.parametrize("rate", ["12", "7", "22", "0.5"])
    def test_unknown_rate_is_default_bucket(self, rate):
        """Classification is total: unknown rates use the default bucket."""
        result = classify_rate(rate, VatTreatment.DOMESTIC, SALE)
        assert result.bucket == JPK_V7M_3.default_bucket
        assert not result.recognized

    def test_same_rate_different_section(self):
        """Reverse charge "oo" is a sale bucket only."""
        assert classify_rate("oo", section=SALE).recognized
        assert not classify_rate("oo", section=PURCHASE).recognized


class TestClassifyLineItem:
    """Line item classification with diagnostics."""

    def test_known_rate_has_no_warning(self):
        """Known rates produce no warning."""
        item = LineItem(net_value="10", vat_rate="23")
        bucket, warning = classify_line_item(item, SALE, "D1", "D1#1")
        assert bucket == VatRateBucket.RATE_23
        assert warning is None

    def test_unknown_rate_warning_fields(self):
        """The warning names document, line, rate and target bucket."""
        item = LineItem(net_value="10", vat_rate="12", treatment="domestic")
        bucket, warning = classify_line_item(item, SALE, "D1", "D1#2")

        assert bucket == VatRateBucket.UNCLASSIFIED
        assert warning.kind == "unclassified_rate"
        assert warning.document_id == "D1"
        assert warning.line_item_id == "D1#2"
        assert warning.rate == "12"
        assert warning.treatment == "domestic"
        assert warning.bucket == "unclassified"


class TestSchemaTables:
    """Consistency of the versioned tables."""

    def test_registry(self):
        """Version 3 is registered; other versions are rejected."""
        assert get_schema("3") is JPK_V7M_3
        with pytest.raises(UnsupportedSchemaVersionError):
            get_schema("2")

    @pytest.mark.parametrize("section", [SALE, PURCHASE])
    def test_every_classified_bucket_has_fields(self, section):
        """Any bucket the rate table can produce has K_ fields in that section."""
        fields = JPK_V7M_3.bucket_fields(section)
        for bucket in set(JPK_V7M_3.rate_table(section).values()) | {JPK_V7M_3.default_bucket}:
            assert bucket in fields

    @pytest.mark.parametrize("section", [SALE, PURCHASE])
    def test_bucket_fields_are_section_fields(self, section):
        """Bucket fields belong to the section's K_ field list."""
        allowed = set(JPK_V7M_3.amount_fields(section))
        for fields in JPK_V7M_3.bucket_fields(section).values():
            assert fields.net in allowed
            assert fields.vat is None or fields.vat in allowed

    def test_summary_reads_known_fields(self):
        """Every P_ source is a K_ field of the line's section."""
        for line in JPK_V7M_3.summary:
            allowed = set(JPK_V7M_3.amount_fields(line.section))
            assert set(line.sources) <= allowed, line.field

    def test_tax_totals_cover_every_vat_field(self):
        """P_40 and P_54 add up every VAT field a bucket writes."""
        sources = summary_sources(JPK_V7M_3)
        sale_vat = {f.vat for f in JPK_V7M_3.sale_fields.values() if f.vat}
        purchase_vat = {f.vat for f in JPK_V7M_3.purchase_fields.values() if f.vat}

        assert set(sources["P_40"]) == sale_vat
        assert set(sources["P_54"]) == purchase_vat

    def test_summary_golden_table(self):
        """Spot-check the P_ table."""
        sources = summary_sources(JPK_V7M_3)
        assert sources["P_10"] == ["K_10"]
        assert sources["P_28"] == ["K_28"]
        assert sources["P_42"] == ["K_41"]
        assert sources["P_51"] == ["K_50"]
        assert sources["P_40"] == ["K_11", "K_13", "K_15", "K_28", "K_30", "K_32"]
        assert sources["P_54"] == ["K_41", "K_43", "K_45", "K_50"]
