"""Row builder.

Turns one SourceTransaction into one DeclarationRow: every line item is
classified, its net and VAT rounded to cents, and accumulated into the
bucket it belongs to. Row sub-totals are sums of the bucket fields.
"""

from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, List, Optional

from core.models.canonical import (
    GtuCode,
    LineItem,
    ProcedureMarker,
    SourceTransaction,
    TransactionKind,
)
from .classifier import classify_line_item
from .diagnostics import Diagnostic
from .models import BucketAmount, DeclarationRow, VatRateBucket
from .schema import SchemaVersion, JPK_V7M_3

CENT = Decimal("0.01")
ZERO_AMOUNT = Decimal("0.00")
HUNDRED = Decimal("100")


# =============================================================================
# Amount Helpers
# =============================================================================

def round_amount(value) -> Decimal:
    """Round to 2 decimals, half away from zero."""
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    rounded = value.quantize(CENT, rounding=ROUND_HALF_UP)
    # Drop the sign of negative zero
    return rounded if rounded else ZERO_AMOUNT


def line_item_id(item: LineItem, document_id: str, index: int) -> str:
    """Stable identifier of a line: its own id, else document id and 1-based position."""
    return item.line_id or f"{document_id}#{index}"


def line_net(item: LineItem) -> Decimal:
    """Stored net value, else quantity * unit price, rounded."""
    if item.net_value is not None:
        return round_amount(item.net_value)
    if item.quantity is not None and item.unit_price is not None:
        return round_amount(item.quantity * item.unit_price)
    return ZERO_AMOUNT


def line_vat(item: LineItem, net: Decimal, carries_vat: bool) -> Decimal:
    """Stored VAT value, else net * rate / 100, rounded.

    Buckets without a VAT field (zero rate, exempt, not subject) carry no VAT.
    """
    if not carries_vat:
        return ZERO_AMOUNT
    if item.vat_value is not None:
        return round_amount(item.vat_value)
    if isinstance(item.vat_rate, Decimal):
        return round_amount(net * item.vat_rate / HUNDRED)
    return ZERO_AMOUNT


# =============================================================================
# Row Builder
# =============================================================================

@dataclass
class RowBuild:
    """A built row and the diagnostics raised while building it."""
    row: DeclarationRow
    diagnostics: List[Diagnostic] = field(default_factory=list)


def _markers(transaction: SourceTransaction, schema: SchemaVersion) -> List[str]:
    present = {marker.value for marker in transaction.procedures}
    if transaction.kind == TransactionKind.PURCHASE and transaction.is_import:
        present.add(ProcedureMarker.IMP.value)
    return [name for name in schema.markers(transaction.kind) if name in present]


def _gtu_codes(transaction: SourceTransaction) -> List[str]:
    if transaction.kind != TransactionKind.SALE:
        return []
    present = set(transaction.gtu_codes)
    return [code.value for code in GtuCode if code in present]


def _document_type(transaction: SourceTransaction, schema: SchemaVersion) -> Optional[str]:
    if transaction.document_type is None:
        return None
    code = transaction.document_type.value
    return code if code in schema.document_types(transaction.kind) else None


def build_row(
    transaction: SourceTransaction,
    ordinal: int,
    schema: SchemaVersion = JPK_V7M_3,
) -> RowBuild:
    """Build the declaration row for one document.

    Args:
        transaction: Source document
        ordinal: 1-based position of the row within its section
        schema: Schema version whose tables drive classification

    Returns:
        RowBuild with the row and any UnclassifiedRateWarning diagnostics
    """
    section = transaction.kind
    diagnostics: List[Diagnostic] = []
    accumulated: Dict[VatRateBucket, BucketAmount] = {}

    for index, item in enumerate(transaction.line_items, start=1):
        item_id = line_item_id(item, transaction.document_id, index)
        bucket, warning = classify_line_item(
            item,
            section=section,
            document_id=transaction.document_id,
            line_item_id=item_id,
            schema=schema,
        )
        if warning is not None:
            diagnostics.append(warning)

        net = line_net(item)
        vat = line_vat(item, net, schema.carries_vat(section, bucket))

        amount = accumulated.setdefault(bucket, BucketAmount(net=ZERO_AMOUNT, vat=ZERO_AMOUNT))
        amount.net += net
        amount.vat += vat

    buckets = {bucket: accumulated[bucket] for bucket in VatRateBucket if bucket in accumulated}
    net_subtotal = sum((amount.net for amount in buckets.values()), ZERO_AMOUNT)
    vat_subtotal = sum((amount.vat for amount in buckets.values()), ZERO_AMOUNT)

    row = DeclarationRow(
        section=section,
        ordinal=ordinal,
        document_id=transaction.document_id,
        document_number=transaction.document_number,
        counterparty_tax_id=transaction.counterparty_tax_id,
        counterparty_name=transaction.counterparty_name,
        counterparty_address=transaction.counterparty_address,
        issue_date=transaction.issue_date,
        sale_date=transaction.sale_date if section == TransactionKind.SALE else None,
        receipt_date=transaction.receipt_date if section == TransactionKind.PURCHASE else None,
        document_type=_document_type(transaction, schema),
        gtu_codes=_gtu_codes(transaction),
        markers=_markers(transaction, schema),
        buckets=buckets,
        net_subtotal=net_subtotal,
        vat_subtotal=vat_subtotal,
    )
    return RowBuild(row=row, diagnostics=diagnostics)
