"""
Versioned declaration schema tables.

Everything that depends on the authority's schema lives here as data:
- the rate classification table per section
- the bucket to K_ field table per section
- the P_ summary table
- per-field emission flags and element order
- form identifiers and namespaces

Supporting a new schema version means registering another SchemaVersion.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, FrozenSet, Optional, Tuple

from core.models.canonical import TransactionKind, VatTreatment
from .errors import UnsupportedSchemaVersionError
from .models import DeclarationRow, VatRateBucket

ZERO = Decimal("0")

SALE = TransactionKind.SALE
PURCHASE = TransactionKind.PURCHASE

# Rate-table key: (normalized rate, treatment); None treatment matches any
RateKey = Tuple[str, Optional[VatTreatment]]


@dataclass(frozen=True)
class BucketFields:
    """Row fields a bucket accumulates into."""
    net: str
    vat: Optional[str] = None


@dataclass(frozen=True)
class SummaryLine:
    """One P_ field: sum of the given K_ fields over all rows of a section."""
    field: str
    section: TransactionKind
    sources: Tuple[str, ...]


@dataclass(frozen=True)
class FormCode:
    text: str
    attributes: Tuple[Tuple[str, str], ...]


@dataclass(frozen=True)
class SchemaVersion:
    """All schema-dependent data for one declaration version."""
    version: str
    namespace: str
    etd_namespace: str
    form_code: FormCode
    form_variant: str
    declaration_form_code: FormCode
    declaration_variant: str
    sale_rates: Dict[RateKey, VatRateBucket]
    purchase_rates: Dict[RateKey, VatRateBucket]
    sale_fields: Dict[VatRateBucket, BucketFields]
    purchase_fields: Dict[VatRateBucket, BucketFields]
    sale_amount_fields: Tuple[str, ...]
    purchase_amount_fields: Tuple[str, ...]
    sale_markers: Tuple[str, ...]
    purchase_markers: Tuple[str, ...]
    sale_document_types: FrozenSet[str]
    purchase_document_types: FrozenSet[str]
    summary: Tuple[SummaryLine, ...]
    summary_fields: Tuple[str, ...]
    settlement_fields: Tuple[str, str, str, str]  # (output, input, payable, refund)
    always_present: FrozenSet[str]
    default_bucket: VatRateBucket = VatRateBucket.UNCLASSIFIED

    def rate_table(self, section: TransactionKind) -> Dict[RateKey, VatRateBucket]:
        return self.sale_rates if section == SALE else self.purchase_rates

    def bucket_fields(self, section: TransactionKind) -> Dict[VatRateBucket, BucketFields]:
        return self.sale_fields if section == SALE else self.purchase_fields

    def amount_fields(self, section: TransactionKind) -> Tuple[str, ...]:
        return self.sale_amount_fields if section == SALE else self.purchase_amount_fields

    def markers(self, section: TransactionKind) -> Tuple[str, ...]:
        return self.sale_markers if section == SALE else self.purchase_markers

    def document_types(self, section: TransactionKind) -> FrozenSet[str]:
        return self.sale_document_types if section == SALE else self.purchase_document_types

    def carries_vat(self, section: TransactionKind, bucket: VatRateBucket) -> bool:
        fields = self.bucket_fields(section).get(bucket)
        return fields is not None and fields.vat is not None

    def is_always_present(self, name: str) -> bool:
        return name in self.always_present


# =============================================================================
# JPK_V7M (3)
# =============================================================================

def _rates(treatment: Optional[VatTreatment], buckets: Dict[str, VatRateBucket]) -> Dict[RateKey, VatRateBucket]:
    """Key rate -> bucket pairs by one treatment."""
    return {(rate, treatment): bucket for rate, bucket in buckets.items()}


_STANDARD_RATES = ("23", "8", "5")

_V3_SALE_RATES: Dict[RateKey, VatRateBucket] = {
    **_rates(VatTreatment.DOMESTIC, {
        "23": VatRateBucket.RATE_23,
        "8": VatRateBucket.RATE_8,
        "5": VatRateBucket.RATE_5,
        "0": VatRateBucket.ZERO_DOMESTIC,
    }),
    ("0", VatTreatment.INTRA_COMMUNITY): VatRateBucket.ZERO_EXPORT,
    ("0", VatTreatment.EXPORT): VatRateBucket.ZERO_EXPORT,
    # Output tax self-assessed by the buyer
    **_rates(VatTreatment.INTRA_COMMUNITY, dict.fromkeys(_STANDARD_RATES, VatRateBucket.INTRA_COMMUNITY_ACQUISITION)),
    **_rates(VatTreatment.IMPORT, dict.fromkeys(_STANDARD_RATES, VatRateBucket.IMPORT_OF_SERVICES)),
    **_rates(VatTreatment.REVERSE_CHARGE, dict.fromkeys(_STANDARD_RATES, VatRateBucket.DOMESTIC_REVERSE_CHARGE)),
    ("zw", None): VatRateBucket.EXEMPT,
    ("np", None): VatRateBucket.NOT_SUBJECT,
    ("oo", None): VatRateBucket.REVERSE_CHARGE,
}

_V3_PURCHASE_RATES: Dict[RateKey, VatRateBucket] = {
    **_rates(VatTreatment.DOMESTIC, {
        "23": VatRateBucket.RATE_23,
        "8": VatRateBucket.RATE_8,
        "5": VatRateBucket.RATE_5,
        "0": VatRateBucket.ZERO_DOMESTIC,
    }),
    **_rates(
        VatTreatment.INTRA_COMMUNITY,
        dict.fromkeys(_STANDARD_RATES + ("0",), VatRateBucket.INTRA_COMMUNITY_ACQUISITION),
    ),
    ("zw", None): VatRateBucket.EXEMPT,
    ("np", None): VatRateBucket.NOT_SUBJECT,
}

_V3_SALE_FIELDS: Dict[VatRateBucket, BucketFields] = {
    VatRateBucket.RATE_23: BucketFields("K_10", "K_11"),
    VatRateBucket.RATE_8: BucketFields("K_12", "K_13"),
    VatRateBucket.RATE_5: BucketFields("K_14", "K_15"),
    VatRateBucket.ZERO_EXPORT: BucketFields("K_16"),
    VatRateBucket.ZERO_DOMESTIC: BucketFields("K_17"),
    VatRateBucket.EXEMPT: BucketFields("K_18"),
    VatRateBucket.NOT_SUBJECT: BucketFields("K_19"),
    VatRateBucket.REVERSE_CHARGE: BucketFields("K_20"),
    VatRateBucket.INTRA_COMMUNITY_ACQUISITION: BucketFields("K_27", "K_28"),
    VatRateBucket.IMPORT_OF_SERVICES: BucketFields("K_29", "K_30"),
    VatRateBucket.DOMESTIC_REVERSE_CHARGE: BucketFields("K_31", "K_32"),
    # Default bucket reports at the standard rate so all totals stay consistent
    VatRateBucket.UNCLASSIFIED: BucketFields("K_10", "K_11"),
}

_V3_PURCHASE_FIELDS: Dict[VatRateBucket, BucketFields] = {
    VatRateBucket.RATE_23: BucketFields("K_40", "K_41"),
    VatRateBucket.RATE_8: BucketFields("K_42", "K_43"),
    VatRateBucket.RATE_5: BucketFields("K_44", "K_45"),
    VatRateBucket.ZERO_DOMESTIC: BucketFields("K_46"),
    VatRateBucket.EXEMPT: BucketFields("K_47"),
    VatRateBucket.NOT_SUBJECT: BucketFields("K_48"),
    VatRateBucket.INTRA_COMMUNITY_ACQUISITION: BucketFields("K_49", "K_50"),
    VatRateBucket.UNCLASSIFIED: BucketFields("K_40", "K_41"),
}


def _one_to_one(section: TransactionKind, pairs: Dict[str, str]) -> Tuple[SummaryLine, ...]:
    """Summary lines that copy a single K_ field."""
    return tuple(SummaryLine(p_field, section, (k_field,)) for p_field, k_field in pairs.items())


_V3_SUMMARY: Tuple[SummaryLine, ...] = (
    *_one_to_one(SALE, {
        "P_10": "K_10", "P_11": "K_11", "P_12": "K_12", "P_13": "K_13",
        "P_14": "K_14", "P_15": "K_15", "P_16": "K_16", "P_17": "K_17",
        "P_18": "K_18", "P_19": "K_19", "P_20": "K_20",
        "P_27": "K_27", "P_28": "K_28", "P_29": "K_29", "P_30": "K_30",
        "P_31": "K_31", "P_32": "K_32",
    }),
    # Total output tax
    SummaryLine("P_40", SALE, ("K_11", "K_13", "K_15", "K_28", "K_30", "K_32")),
    *_one_to_one(PURCHASE, {
        "P_41": "K_40", "P_42": "K_41", "P_43": "K_42", "P_44": "K_43",
        "P_45": "K_44", "P_46": "K_45", "P_47": "K_46", "P_48": "K_47",
        "P_49": "K_48", "P_50": "K_49", "P_51": "K_50",
    }),
    # Total input tax
    SummaryLine("P_54", PURCHASE, ("K_41", "K_43", "K_45", "K_50")),
)

JPK_V7M_3 = SchemaVersion(
    version="3",
    namespace="http://jpk.mf.gov.pl/wzor/2022/02/17/02171/",
    etd_namespace="http://crd.gov.pl/xml/schematy/dziedzinowe/mf/2022/01/05/eDeklaracja/",
    form_code=FormCode(
        text="JPK_VAT",
        attributes=(("kodSystemowy", "JPK_V7M (3)"), ("wersjaSchemy", "1-0")),
    ),
    form_variant="3",
    declaration_form_code=FormCode(
        text="VAT-7",
        attributes=(
            ("kodSystemowy", "VAT-7 (21)"),
            ("kodPodatku", "VAT"),
            ("rodzajZobowiazania", "Z"),
            ("wersjaSchemy", "1-0E"),
        ),
    ),
    declaration_variant="21",
    sale_rates=_V3_SALE_RATES,
    purchase_rates=_V3_PURCHASE_RATES,
    sale_fields=_V3_SALE_FIELDS,
    purchase_fields=_V3_PURCHASE_FIELDS,
    sale_amount_fields=tuple(f"K_{i}" for i in range(10, 40)),
    purchase_amount_fields=tuple(f"K_{i}" for i in range(40, 51)),
    sale_markers=(
        "SW", "EE", "TP", "TT_WNT", "TT_D", "MR_T", "MR_UZ", "I_42", "I_63",
        "B_SPV", "B_SPV_DOSTAWA", "B_MPV_PROWIZJA", "MPP",
    ),
    purchase_markers=("IMP",),
    sale_document_types=frozenset({"RO", "WEW", "FP"}),
    purchase_document_types=frozenset({"MK", "VAT_RR", "WEW"}),
    summary=_V3_SUMMARY,
    summary_fields=tuple(f"P_{i}" for i in range(10, 70)),
    settlement_fields=("P_40", "P_54", "P_60", "P_61"),
    always_present=frozenset({
        # Header and subject
        "KodFormularza", "WariantFormularza", "CelZlozenia", "DataWytworzeniaJPK",
        "DataOd", "DataDo", "NIP", "PelnaNazwa",
        "KodFormularzaDekl", "WariantFormularzaDekl", "DataWytworzeniaDeklaracji",
        "KodUrzedu", "Pouczenia",
        # Rows
        "LpSprzedazy", "DowodSprzedazy", "DataWystawienia",
        "LpZakupu", "DowodZakupu", "DataZakupu",
        # Control totals
        "LiczbaWierszySprzedazy", "PodatekNalezny",
        "LiczbaWierszyZakupow", "PodatekNaliczony",
        # Summary
        "P_40", "P_54",
    }),
)


SCHEMA_VERSIONS: Dict[str, SchemaVersion] = {
    JPK_V7M_3.version: JPK_V7M_3,
}


def get_schema(version: str) -> SchemaVersion:
    """Look up a registered schema version.

    Raises:
        UnsupportedSchemaVersionError: If no table is registered for version
    """
    schema = SCHEMA_VERSIONS.get(str(version).strip())
    if schema is None:
        raise UnsupportedSchemaVersionError(str(version), SCHEMA_VERSIONS.keys())
    return schema


def row_amounts(row: DeclarationRow, schema: SchemaVersion) -> Dict[str, Decimal]:
    """Project a row's buckets onto its section's K_ fields, in field order.

    Several buckets may share a field (the default bucket does); their
    amounts add up.
    """
    fields = schema.bucket_fields(row.section)
    totals: Dict[str, Decimal] = {}
    for bucket, amount in row.buckets.items():
        target = fields.get(bucket) or fields[schema.default_bucket]
        totals[target.net] = totals.get(target.net, ZERO) + amount.net
        if target.vat is not None:
            totals[target.vat] = totals.get(target.vat, ZERO) + amount.vat
    return {name: totals[name] for name in schema.amount_fields(row.section) if name in totals}
