"""Typed non-fatal diagnostics attached to a declaration result."""

from __future__ import annotations

from decimal import Decimal
from enum import Enum
from typing import Optional, Union

from pydantic import BaseModel, Field
from typing_extensions import Annotated, Literal


class Severity(str, Enum):
    BLOCK = "BLOCK"
    WARN = "WARN"
    INFO = "INFO"


class Diagnostic(BaseModel):
    """Common shape of every diagnostic."""
    kind: str
    severity: Severity = Severity.WARN
    message: str
    document_id: Optional[str] = None


class UnclassifiedRateWarning(Diagnostic):
    """A line item's rate matched no bucket and was routed to the default bucket.

    Attributes:
        line_item_id: Identifier of the offending line item
        rate: The rate as supplied, in normalized text form
        treatment: VAT treatment of the line
        bucket: The bucket the line was routed to
    """
    kind: Literal["unclassified_rate"] = "unclassified_rate"
    line_item_id: str
    rate: str
    treatment: str
    bucket: str


class RowTotalMismatchWarning(Diagnostic):
    """A row's computed sub-total differs from the document's stored total.

    The row keeps the computed value.
    """
    kind: Literal["row_total_mismatch"] = "row_total_mismatch"
    figure: Literal["net", "vat"]
    expected: Decimal = Field(..., description="Total stored on the source document")
    computed: Decimal = Field(..., description="Sum of the row's bucket fields")

    @property
    def difference(self) -> Decimal:
        return abs(self.expected - self.computed)


AnyDiagnostic = Annotated[
    Union[UnclassifiedRateWarning, RowTotalMismatchWarning],
    Field(discriminator="kind"),
]
