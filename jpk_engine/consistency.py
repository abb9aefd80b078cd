"""Row consistency validator.

Compares a built row's sub-totals with the totals stored on its source
document. Produces diagnostics only; the row's bucket breakdown stays the
source of truth.
"""

from decimal import Decimal
from typing import List, Optional

from core.models.canonical import SourceTransaction
from .diagnostics import RowTotalMismatchWarning
from .models import DeclarationRow

ROW_TOLERANCE = Decimal("0.01")


def amounts_match(
    a: Optional[Decimal],
    b: Optional[Decimal],
    tolerance: Decimal = ROW_TOLERANCE,
) -> bool:
    """Check if two amounts match within tolerance."""
    if a is None or b is None:
        return False
    return abs(a - b) <= tolerance


def check_row_totals(
    row: DeclarationRow,
    transaction: SourceTransaction,
    tolerance: Decimal = ROW_TOLERANCE,
) -> List[RowTotalMismatchWarning]:
    """Compare K_P / K_H with the document's stored net / VAT totals.

    A stored total that is absent is not compared.
    """
    warnings = []
    figures = (
        ("net", transaction.total_net, row.net_subtotal),
        ("vat", transaction.total_vat, row.vat_subtotal),
    )
    for figure, expected, computed in figures:
        if expected is None or amounts_match(expected, computed, tolerance):
            continue
        warnings.append(RowTotalMismatchWarning(
            message=(
                f"Row {row.ordinal} ({transaction.document_number}): computed {figure} "
                f"{computed} differs from stored {expected} by {abs(expected - computed)}"
            ),
            document_id=transaction.document_id,
            figure=figure,
            expected=expected,
            computed=computed,
        ))
    return warnings
