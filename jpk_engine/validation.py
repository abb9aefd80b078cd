"""Business-rule validation of an assembled declaration.

Exposes high-level function:
- validate_declaration(declaration) -> ValidationReport

Runs after assembly and never changes the declaration. BLOCK findings mean
the authority would reject the document; WARN findings need review.
"""

from decimal import Decimal
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from core.models.canonical import ProcedureMarker, TransactionKind
from .consistency import ROW_TOLERANCE, amounts_match
from .diagnostics import Severity
from .models import ControlTotal, Declaration, DeclarationRow
from .schema import SchemaVersion, get_schema, row_amounts


# =============================================================================
# Configuration & Data Structures
# =============================================================================

NIP_WEIGHTS = (6, 5, 7, 2, 3, 4, 5, 6, 7)
MAX_GTU_CODES = 3
PLACEHOLDER_TAX_OFFICE_CODE = "0000"


class CheckStatus(str, Enum):
    PASS = "PASS"
    WARN = "WARN"
    FAIL = "FAIL"


class CheckResult:
    """Result of a single declaration check."""

    def __init__(
        self,
        check_id: str,
        severity: Severity,
        passed: bool,
        message: str,
        field: Optional[str] = None,
        evidence: Optional[Dict] = None,
    ):
        self.check_id = check_id
        self.severity = severity
        self.passed = passed
        self.message = message
        self.field = field
        self.evidence = evidence or {}

    def to_dict(self) -> Dict:
        return {
            "check_id": self.check_id,
            "severity": self.severity.value,
            "passed": self.passed,
            "message": self.message,
            "field": self.field,
            "evidence": self.evidence,
        }


class ValidationReport(BaseModel):
    """Validation results for one declaration.

    Attributes:
        declaration_id: Subject tax id and period label
        status: Overall status ("PASS", "WARN", "FAIL")
        checks: Failed checks, as dicts
        metrics: Key figures the checks looked at
    """
    declaration_id: str = Field(..., description="Subject tax id and period")
    status: str = Field(..., description="Overall status: PASS, WARN, or FAIL")
    checks: List[dict] = Field(default_factory=list, description="Failed check results")
    metrics: dict = Field(default_factory=dict, description="Key metrics")

    @property
    def is_valid(self) -> bool:
        return self.status != CheckStatus.FAIL.value


# =============================================================================
# Utility Functions
# =============================================================================

def is_valid_nip(value: Optional[str]) -> bool:
    """Check a Polish NIP: ten digits, weighted checksum mod 11 equals the last digit."""
    if not value:
        return False
    digits = value.replace("-", "").replace(" ", "")
    if digits.upper().startswith("PL"):
        digits = digits[2:]
    if len(digits) != 10 or not digits.isdigit():
        return False
    checksum = sum(int(d) * w for d, w in zip(digits[:9], NIP_WEIGHTS)) % 11
    return checksum != 10 and checksum == int(digits[9])


def _fail(check_id: str, severity: Severity, message: str, field: str = None, **evidence) -> CheckResult:
    return CheckResult(check_id, severity, False, message, field=field, evidence=evidence)


def _row_label(row: DeclarationRow) -> str:
    prefix = "SprzedazWiersz" if row.section == TransactionKind.SALE else "ZakupWiersz"
    return f"{prefix}[{row.ordinal}]"


# =============================================================================
# Individual Check Functions
# =============================================================================

def check_subject(declaration: Declaration) -> List[CheckResult]:
    """S1: Subject NIP present and valid, legal name present."""
    subject = declaration.subject
    results = []
    if not subject.tax_id:
        results.append(_fail("S1_MISSING_NIP", Severity.BLOCK, "Subject has no NIP", "Podmiot1.NIP"))
    elif not is_valid_nip(subject.tax_id):
        results.append(_fail(
            "S1_INVALID_NIP", Severity.BLOCK,
            f"Subject NIP {subject.tax_id} fails the checksum", "Podmiot1.NIP",
            nip=subject.tax_id,
        ))
    if not subject.full_name:
        results.append(_fail("S1_MISSING_NAME", Severity.BLOCK, "Subject has no full name", "Podmiot1.PelnaNazwa"))
    if (declaration.header.tax_office_code or PLACEHOLDER_TAX_OFFICE_CODE) == PLACEHOLDER_TAX_OFFICE_CODE:
        results.append(_fail(
            "S2_TAX_OFFICE_PLACEHOLDER", Severity.WARN,
            "Tax office code is the placeholder 0000", "Deklaracja.Naglowek.KodUrzedu",
        ))
    return results


def check_row(row: DeclarationRow, schema: SchemaVersion) -> List[CheckResult]:
    """R1-R5: required fields, amounts present, counterparty NIP, GTU count, markers."""
    label = _row_label(row)
    results = []

    if not row.document_number:
        results.append(_fail("R1_MISSING_DOCUMENT_NUMBER", Severity.BLOCK,
                             f"{label} has no document number", label, document_id=row.document_id))
    if row.issue_date is None:
        results.append(_fail("R1_MISSING_DATE", Severity.BLOCK,
                             f"{label} has no document date", label, document_id=row.document_id))

    amounts = row_amounts(row, schema)
    if not any(amounts.values()):
        results.append(_fail("R2_MISSING_AMOUNTS", Severity.BLOCK,
                             f"{label} has no non-zero amount field", label, document_id=row.document_id))

    if row.section != TransactionKind.SALE:
        return results

    foreign = ProcedureMarker.SW.value in row.markers or ProcedureMarker.EE.value in row.markers
    if row.counterparty_tax_id and not foreign and not is_valid_nip(row.counterparty_tax_id):
        results.append(_fail(
            "R3_INVALID_COUNTERPARTY_NIP", Severity.WARN,
            f"{label} counterparty NIP {row.counterparty_tax_id} fails the checksum",
            f"{label}.NrKontrahenta", nip=row.counterparty_tax_id,
        ))

    if len(row.gtu_codes) > MAX_GTU_CODES:
        results.append(_fail(
            "R4_MULTIPLE_GTU_CODES", Severity.WARN,
            f"{label} carries {len(row.gtu_codes)} GTU codes: {', '.join(row.gtu_codes)}",
            label, gtu_codes=list(row.gtu_codes),
        ))

    if ProcedureMarker.SW.value in row.markers and ProcedureMarker.EE.value in row.markers:
        results.append(_fail("R5_CONFLICTING_MARKERS", Severity.WARN,
                             f"{label} has both SW and EE markers", label))
    if foreign and not amounts.get("K_16"):
        results.append(_fail("R5_MISSING_EXPORT_AMOUNT", Severity.WARN,
                             f"{label} is marked SW/EE but has no K_16 amount", label))
    return results


def check_control(rows: List[DeclarationRow], control: ControlTotal) -> List[CheckResult]:
    """C1: Control row count equals the number of rows."""
    if control.row_count == len(rows):
        return []
    return [_fail(
        f"C1_{control.section.value.upper()}_COUNT_MISMATCH", Severity.BLOCK,
        f"{control.section.value} control counts {control.row_count} rows, register has {len(rows)}",
        expected=len(rows), actual=control.row_count,
    )]


def check_settlement(declaration: Declaration, tolerance: Decimal) -> List[CheckResult]:
    """D1-D2: Control VAT agrees with P_40 / P_54; P_60 / P_61 settle the difference."""
    summary = declaration.summary
    output_vat = declaration.sale_control.total_vat
    input_vat = declaration.purchase_control.total_vat
    results = []

    for check_id, field, control_value in (
        ("D1_OUTPUT_VAT_MISMATCH", "P_40", output_vat),
        ("D1_INPUT_VAT_MISMATCH", "P_54", input_vat),
    ):
        if not amounts_match(control_value, summary.get(field), tolerance):
            results.append(_fail(
                check_id, Severity.WARN,
                f"Register VAT {control_value} vs declaration {field} {summary.get(field)}",
                f"Deklaracja.PozycjeSzczegolowe.{field}",
                register=str(control_value), declaration=str(summary.get(field)),
            ))

    balance = output_vat - input_vat
    if balance > 0 and not amounts_match(balance, summary.get("P_60"), tolerance):
        results.append(_fail(
            "D2_SETTLEMENT_MISMATCH", Severity.BLOCK,
            f"Tax payable {balance} vs P_60 {summary.get('P_60')}", "Deklaracja.PozycjeSzczegolowe.P_60",
        ))
    if balance < 0 and not amounts_match(-balance, summary.get("P_61"), tolerance):
        results.append(_fail(
            "D2_SETTLEMENT_MISMATCH", Severity.BLOCK,
            f"Tax refund {-balance} vs P_61 {summary.get('P_61')}", "Deklaracja.PozycjeSzczegolowe.P_61",
        ))
    return results


# =============================================================================
# Main Validation Function
# =============================================================================

def validate_declaration(declaration: Declaration, tolerance: Decimal = ROW_TOLERANCE) -> ValidationReport:
    """Run all business-rule checks and return a report.

    Args:
        declaration: Assembled declaration
        tolerance: Maximum accepted difference between compared amounts

    Returns:
        ValidationReport with status, failed checks, and metrics
    """
    schema = get_schema(declaration.header.schema_version)
    checks: List[CheckResult] = []

    checks.extend(check_subject(declaration))
    for row in declaration.sale_rows + declaration.purchase_rows:
        checks.extend(check_row(row, schema))
    checks.extend(check_control(declaration.sale_rows, declaration.sale_control))
    checks.extend(check_control(declaration.purchase_rows, declaration.purchase_control))
    checks.extend(check_settlement(declaration, tolerance))

    if any(c.severity == Severity.BLOCK for c in checks):
        status = CheckStatus.FAIL
    elif checks:
        status = CheckStatus.WARN
    else:
        status = CheckStatus.PASS

    return ValidationReport(
        declaration_id=declaration.declaration_id,
        status=status.value,
        checks=[c.to_dict() for c in checks],
        metrics={
            "sale_rows": len(declaration.sale_rows),
            "purchase_rows": len(declaration.purchase_rows),
            "output_vat": str(declaration.sale_control.total_vat),
            "input_vat": str(declaration.purchase_control.total_vat),
            "blocking": sum(1 for c in checks if c.severity == Severity.BLOCK),
            "warnings": sum(1 for c in checks if c.severity == Severity.WARN),
        },
    )
