"""Control total and summary aggregators.

Both are pure reductions over the finished rows of a declaration.
"""

from decimal import Decimal
from typing import Dict, List, Optional, Sequence

from core.models.canonical import TransactionKind
from .models import ControlTotal, DeclarationRow, DeclarationSummary
from .rows import ZERO_AMOUNT, round_amount
from .schema import SchemaVersion, JPK_V7M_3, row_amounts


def control_total(section: TransactionKind, rows: Sequence[DeclarationRow]) -> ControlTotal:
    """Row count and rounded sum of row VAT sub-totals for one section."""
    total_vat = sum((row.vat_subtotal for row in rows), ZERO_AMOUNT)
    return ControlTotal(
        section=section,
        row_count=len(rows),
        total_vat=round_amount(total_vat),
    )


def section_field_totals(
    rows: Sequence[DeclarationRow],
    schema: SchemaVersion = JPK_V7M_3,
) -> Dict[str, Decimal]:
    """Sum every K_ field over the given rows."""
    totals: Dict[str, Decimal] = {}
    for row in rows:
        for name, amount in row_amounts(row, schema).items():
            totals[name] = totals.get(name, ZERO_AMOUNT) + amount
    return totals


def summarize(
    sale_rows: Sequence[DeclarationRow],
    purchase_rows: Sequence[DeclarationRow],
    schema: SchemaVersion = JPK_V7M_3,
    justification: Optional[str] = None,
) -> DeclarationSummary:
    """Compute the P_ fields from the schema's summary table, then settle.

    Settlement: output tax minus input tax is payable when positive, refundable
    when negative.
    """
    by_section = {
        TransactionKind.SALE: section_field_totals(sale_rows, schema),
        TransactionKind.PURCHASE: section_field_totals(purchase_rows, schema),
    }

    computed: Dict[str, Decimal] = {}
    for line in schema.summary:
        totals = by_section[line.section]
        value = sum((totals.get(source, ZERO_AMOUNT) for source in line.sources), ZERO_AMOUNT)
        computed[line.field] = round_amount(computed.get(line.field, ZERO_AMOUNT) + value)

    output_field, input_field, payable_field, refund_field = schema.settlement_fields
    balance = computed.get(output_field, ZERO_AMOUNT) - computed.get(input_field, ZERO_AMOUNT)
    computed[payable_field] = round_amount(balance) if balance > 0 else ZERO_AMOUNT
    computed[refund_field] = round_amount(-balance) if balance < 0 else ZERO_AMOUNT

    ordered = {name: computed[name] for name in schema.summary_fields if name in computed}
    return DeclarationSummary(fields=ordered, justification=justification)


def summary_sources(schema: SchemaVersion = JPK_V7M_3) -> Dict[str, List[str]]:
    """Summary table as plain data, field -> contributing K_ fields."""
    return {line.field: list(line.sources) for line in schema.summary}
