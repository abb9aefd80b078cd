"""VAT rate classifier.

Total function from (rate, treatment, section) to a VatRateBucket, driven by
the schema version's rate table. Unknown rates land in the schema's default
bucket; classification itself never fails.
"""

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Optional, Tuple, Union

from core.models.canonical import LineItem, RateSentinel, TransactionKind, VatTreatment
from .diagnostics import UnclassifiedRateWarning
from .models import VatRateBucket
from .schema import SchemaVersion, JPK_V7M_3


@dataclass(frozen=True)
class RateClassification:
    """Outcome of classifying one rate.

    Attributes:
        bucket: Bucket the rate belongs to
        rate: Normalized rate text ("23", "8.5", "zw")
        recognized: False when the default bucket was used
    """
    bucket: VatRateBucket
    rate: str
    recognized: bool


def normalize_rate(rate: Union[RateSentinel, Decimal, int, float, str]) -> str:
    """Plain text form of a rate: "23.00" -> "23", "8.50" -> "8.5", zw -> "zw"."""
    if isinstance(rate, RateSentinel):
        return rate.value
    if isinstance(rate, str):
        text = rate.strip().lower().rstrip("%").strip()
        if text in {s.value for s in RateSentinel}:
            return text
        rate = text
    try:
        value = Decimal(str(rate))
    except InvalidOperation:
        return str(rate)
    if not value.is_finite():
        return str(rate)
    if value.is_zero():
        return "0"
    return format(value.normalize(), "f")


def classify_rate(
    rate: Union[RateSentinel, Decimal, int, float, str],
    treatment: VatTreatment = VatTreatment.DOMESTIC,
    section: TransactionKind = TransactionKind.SALE,
    schema: SchemaVersion = JPK_V7M_3,
) -> RateClassification:
    """Classify a rate.

    Looks up (rate, treatment) first, then the treatment-agnostic (rate, None)
    entry. Anything else maps to the default bucket.
    """
    key = normalize_rate(rate)
    table = schema.rate_table(section)

    bucket = table.get((key, treatment))
    if bucket is None:
        bucket = table.get((key, None))
    if bucket is None:
        return RateClassification(bucket=schema.default_bucket, rate=key, recognized=False)
    return RateClassification(bucket=bucket, rate=key, recognized=True)


def classify_line_item(
    item: LineItem,
    section: TransactionKind,
    document_id: str,
    line_item_id: str,
    schema: SchemaVersion = JPK_V7M_3,
) -> Tuple[VatRateBucket, Optional[UnclassifiedRateWarning]]:
    """Classify one line item, returning the warning for an unrecognized rate."""
    result = classify_rate(item.vat_rate, item.treatment, section, schema)
    if result.recognized:
        return result.bucket, None

    warning = UnclassifiedRateWarning(
        message=(
            f"Rate {result.rate!r} ({item.treatment.value}) on line {line_item_id} of "
            f"{section.value} document {document_id} is not in schema {schema.version}; "
            f"routed to {result.bucket.value}"
        ),
        document_id=document_id,
        line_item_id=line_item_id,
        rate=result.rate,
        treatment=item.treatment.value,
        bucket=result.bucket.value,
    )
    return result.bucket, warning
