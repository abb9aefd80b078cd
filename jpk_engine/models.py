"""
Declaration Models

Defines data structures for:
- Rate buckets and per-row bucket amounts
- Declaration rows, control totals and the summary
- The assembled declaration, the generation request and the result envelope
"""

from __future__ import annotations

import calendar
import re
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Dict, List, Optional, Union

from pydantic import BaseModel, Field

from core.models.canonical import SourceTransaction, Subject, TransactionKind
from .diagnostics import AnyDiagnostic, Diagnostic
from .errors import InvalidPeriodError

ZERO = Decimal("0")


class VatRateBucket(str, Enum):
    """Closed set of classification slots (order is the row accumulation order)."""
    RATE_23 = "rate_23"
    RATE_8 = "rate_8"
    RATE_5 = "rate_5"
    ZERO_EXPORT = "zero_export"
    ZERO_DOMESTIC = "zero_domestic"
    EXEMPT = "exempt"
    NOT_SUBJECT = "not_subject"
    REVERSE_CHARGE = "reverse_charge"
    INTRA_COMMUNITY_ACQUISITION = "intra_community_acquisition"
    IMPORT_OF_SERVICES = "import_of_services"
    DOMESTIC_REVERSE_CHARGE = "domestic_reverse_charge"
    UNCLASSIFIED = "unclassified"  # Default for unrecognized rates


class DeclarationPurpose(int, Enum):
    """CelZlozenia."""
    FILING = 1
    CORRECTION = 2


# =============================================================================
# Period
# =============================================================================

_MONTH_PATTERN = re.compile(r"^(\d{4})-(\d{2})$")


class Period(BaseModel):
    """Closed date range covered by the declaration."""
    start: date
    end: date

    @property
    def label(self) -> str:
        """YYYY-MM of the period start."""
        return f"{self.start.year:04d}-{self.start.month:02d}"

    @classmethod
    def for_month(cls, year: int, month: int) -> "Period":
        last_day = calendar.monthrange(year, month)[1]
        return cls(start=date(year, month, 1), end=date(year, month, last_day))


def parse_period(value: Union[str, dict, "Period"]) -> Period:
    """Parse "YYYY-MM", a {"start", "end"} mapping or a Period.

    Raises:
        InvalidPeriodError: On malformed text, an invalid month or start > end
    """
    if isinstance(value, Period):
        period = value
    elif isinstance(value, str):
        match = _MONTH_PATTERN.match(value.strip())
        if not match:
            raise InvalidPeriodError(f"Period must be YYYY-MM, got {value!r}")
        year, month = int(match.group(1)), int(match.group(2))
        if not 1 <= month <= 12:
            raise InvalidPeriodError(f"Invalid month in period {value!r}")
        period = Period.for_month(year, month)
    elif isinstance(value, dict):
        try:
            period = Period.model_validate(value)
        except ValueError as e:
            raise InvalidPeriodError(f"Invalid period {value!r}: {e}")
    else:
        raise InvalidPeriodError(f"Unsupported period value: {value!r}")

    if period.start > period.end:
        raise InvalidPeriodError(f"Period start {period.start} is after end {period.end}")
    return period


# =============================================================================
# Rows and Totals
# =============================================================================

class BucketAmount(BaseModel):
    """Net and VAT accumulated into one bucket of one row."""
    net: Decimal = ZERO
    vat: Decimal = ZERO


class DeclarationRow(BaseModel):
    """One register row built from one source document.

    Attributes:
        section: Sale or purchase register
        ordinal: LpSprzedazy / LpZakupu, 1-based within the section
        document_id: Source document identifier
        buckets: Per-bucket amounts, in bucket order
        net_subtotal: K_P, the sum of bucket nets
        vat_subtotal: K_H, the sum of bucket VAT
    """
    section: TransactionKind
    ordinal: int
    document_id: str
    document_number: Optional[str] = None
    counterparty_tax_id: Optional[str] = None
    counterparty_name: Optional[str] = None
    counterparty_address: Optional[str] = None
    issue_date: Optional[date] = None
    sale_date: Optional[date] = None
    receipt_date: Optional[date] = None
    document_type: Optional[str] = None
    gtu_codes: List[str] = Field(default_factory=list)
    markers: List[str] = Field(default_factory=list)
    buckets: Dict[VatRateBucket, BucketAmount] = Field(default_factory=dict)
    net_subtotal: Decimal = ZERO
    vat_subtotal: Decimal = ZERO


class ControlTotal(BaseModel):
    """SprzedazCtrl / ZakupCtrl."""
    section: TransactionKind
    row_count: int
    total_vat: Decimal


class DeclarationSummary(BaseModel):
    """P_ fields of the declaration part, in table order.

    Attributes:
        fields: Every P_ field of the schema table plus settlement fields
        justification: P_ORDZU text for corrections
    """
    fields: Dict[str, Decimal] = Field(default_factory=dict)
    justification: Optional[str] = None

    def get(self, name: str) -> Decimal:
        return self.fields.get(name, ZERO)


# =============================================================================
# Declaration
# =============================================================================

class DeclarationHeader(BaseModel):
    """Naglowek data shared by the register and declaration parts."""
    schema_version: str
    purpose: DeclarationPurpose = DeclarationPurpose.FILING
    generated_at: datetime
    period: Period
    system_name: Optional[str] = None
    tax_office_code: Optional[str] = None


class Declaration(BaseModel):
    """Assembled declaration record, ready for serialization."""
    header: DeclarationHeader
    subject: Subject
    sale_rows: List[DeclarationRow] = Field(default_factory=list)
    sale_control: ControlTotal
    purchase_rows: List[DeclarationRow] = Field(default_factory=list)
    purchase_control: ControlTotal
    summary: DeclarationSummary

    @property
    def declaration_id(self) -> str:
        return f"{self.subject.tax_id}-{self.header.period.label}"


class DeclarationRequest(BaseModel):
    """Everything needed for one generation run.

    Attributes:
        subject: Filing taxpayer
        period: "YYYY-MM" or {"start": ..., "end": ...}
        transactions: Finalized sale and purchase documents of the period
        purpose: Filing or correction
        system_name: Overrides the configured NazwaSystemu
        schema_version: Overrides the configured schema version
        correction_reason: P_ORDZU text, used for corrections only
        generated_at: Fixed generation timestamp (defaults to now, UTC)
    """
    subject: Subject
    period: Union[str, Period]
    transactions: List[SourceTransaction] = Field(default_factory=list)
    purpose: DeclarationPurpose = DeclarationPurpose.FILING
    system_name: Optional[str] = None
    schema_version: Optional[str] = None
    correction_reason: Optional[str] = None
    generated_at: Optional[datetime] = None


class DeclarationResult(BaseModel):
    """Successful generation: the declaration plus non-fatal diagnostics."""
    declaration: Declaration
    diagnostics: List[AnyDiagnostic] = Field(default_factory=list)

    def diagnostics_of(self, kind: type) -> List[Diagnostic]:
        return [d for d in self.diagnostics if isinstance(d, kind)]
