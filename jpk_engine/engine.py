"""Declaration engine.

Exposes high-level functions:
- generate_declaration(transactions, subject, period) -> DeclarationResult
- generate_from_request(request) -> DeclarationResult
- serialize_declaration(declaration) -> str

Rows are built per document in parallel (fan-out); control totals and the
summary are computed once every row of both sections exists (fan-in).
"""

from concurrent.futures import ThreadPoolExecutor
from contextvars import copy_context
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Sequence, Tuple, Union

from core.config import Settings, get_settings
from core.models.canonical import SourceTransaction, Subject, TransactionKind, VatStatus
from core.observability.logging import get_logger, with_correlation
from .assembler import assemble_declaration, build_header, require_subject
from .consistency import ROW_TOLERANCE, check_row_totals
from .diagnostics import Diagnostic
from .errors import SubjectNotEligibleError
from .models import (
    DeclarationPurpose,
    DeclarationRequest,
    DeclarationResult,
    DeclarationRow,
    Period,
    parse_period,
)
from .rows import RowBuild, build_row
from .schema import SchemaVersion, JPK_V7M_3, get_schema
from .serializer import serialize_declaration

logger = get_logger(__name__)


# =============================================================================
# Row Fan-out
# =============================================================================

@dataclass
class SectionBuild:
    """Rows of one section (or one batch of it) with their diagnostics, in ordinal order."""
    rows: List[DeclarationRow] = field(default_factory=list)
    diagnostics: List[Diagnostic] = field(default_factory=list)


def build_and_check_row(
    transaction: SourceTransaction,
    ordinal: int,
    schema: SchemaVersion = JPK_V7M_3,
    tolerance: Decimal = ROW_TOLERANCE,
) -> RowBuild:
    """Build one row and run the consistency check against its document."""
    with with_correlation(section=transaction.kind.value, document_id=transaction.document_id):
        build = build_row(transaction, ordinal, schema)
        build.diagnostics.extend(check_row_totals(build.row, transaction, tolerance))
        for diagnostic in build.diagnostics:
            logger.warning(diagnostic.message, extra_fields={"diagnostic": diagnostic.kind})
    return build


def build_section_rows(
    transactions: Sequence[SourceTransaction],
    schema: SchemaVersion = JPK_V7M_3,
    start_ordinal: int = 1,
    tolerance: Decimal = ROW_TOLERANCE,
    max_workers: int = 1,
) -> SectionBuild:
    """Build rows for documents of a single section.

    Each document is independent; with max_workers > 1 they are built on a
    thread pool. Results keep input order, so ordinals follow input order.

    Raises:
        ValueError: If the documents span more than one section
    """
    sections = {t.kind for t in transactions}
    if len(sections) > 1:
        raise ValueError(f"Documents of one section expected, got {sorted(s.value for s in sections)}")

    jobs = [(t, start_ordinal + i) for i, t in enumerate(transactions)]

    if max_workers > 1 and len(jobs) > 1:
        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            # Each task runs in a copy of the caller's context so log correlation carries over
            futures = [
                executor.submit(copy_context().run, build_and_check_row, t, ordinal, schema, tolerance)
                for t, ordinal in jobs
            ]
            builds = [f.result() for f in futures]
    else:
        builds = [build_and_check_row(t, ordinal, schema, tolerance) for t, ordinal in jobs]

    result = SectionBuild()
    for build in builds:
        result.rows.append(build.row)
        result.diagnostics.extend(build.diagnostics)
    return result


def split_sections(
    transactions: Sequence[SourceTransaction],
) -> Tuple[List[SourceTransaction], List[SourceTransaction]]:
    """Sale and purchase documents, each in input order."""
    sales = [t for t in transactions if t.kind == TransactionKind.SALE]
    purchases = [t for t in transactions if t.kind == TransactionKind.PURCHASE]
    return sales, purchases


# =============================================================================
# Request Validation
# =============================================================================

def prepare_request(
    request: DeclarationRequest,
    settings: Optional[Settings] = None,
) -> Tuple[SchemaVersion, Period]:
    """Check everything that must hold before any row is built.

    Raises:
        UnsupportedSchemaVersionError: Unknown schema version
        InvalidPeriodError: Malformed or inverted period
        SubjectNotEligibleError: VAT-exempt subject
        MissingRequiredSubjectDataError: Subject without tax id or name
    """
    settings = settings or get_settings()
    schema = get_schema(request.schema_version or settings.schema_version)
    period = parse_period(request.period)

    if request.subject.vat_status == VatStatus.EXEMPT:
        raise SubjectNotEligibleError(
            f"Subject {request.subject.tax_id or '?'} is VAT-exempt and does not file JPK_V7M"
        )
    require_subject(request.subject)
    return schema, period


# =============================================================================
# Main Entry Points
# =============================================================================

def generate_from_request(
    request: DeclarationRequest,
    settings: Optional[Settings] = None,
) -> DeclarationResult:
    """Generate a declaration from a validated request.

    Args:
        request: Subject, period, documents and options
        settings: Overrides process settings (tolerance, workers, defaults)

    Returns:
        DeclarationResult with the declaration and all diagnostics

    Raises:
        DeclarationError: Any fatal input problem; nothing is returned then
    """
    settings = settings or get_settings()
    schema, period = prepare_request(request, settings)
    declaration_id = f"{request.subject.tax_id}-{period.label}"

    with with_correlation(declaration_id=declaration_id, period=period.label, schema_version=schema.version):
        sales, purchases = split_sections(request.transactions)
        logger.info(
            "Generating declaration",
            extra_fields={"sale_documents": len(sales), "purchase_documents": len(purchases)},
        )

        sale_build = build_section_rows(
            sales, schema, tolerance=settings.amount_tolerance, max_workers=settings.row_workers,
        )
        purchase_build = build_section_rows(
            purchases, schema, tolerance=settings.amount_tolerance, max_workers=settings.row_workers,
        )

        header = build_header(
            period,
            schema,
            purpose=request.purpose,
            generated_at=request.generated_at,
            system_name=request.system_name or settings.system_name,
            tax_office_code=request.subject.tax_office_code or settings.default_tax_office_code,
        )
        declaration = assemble_declaration(
            request.subject,
            header,
            sale_build.rows,
            purchase_build.rows,
            schema,
            correction_reason=request.correction_reason,
        )

        diagnostics = sale_build.diagnostics + purchase_build.diagnostics
        logger.info(
            "Declaration generated",
            extra_fields={
                "sale_rows": declaration.sale_control.row_count,
                "purchase_rows": declaration.purchase_control.row_count,
                "output_vat": str(declaration.sale_control.total_vat),
                "input_vat": str(declaration.purchase_control.total_vat),
                "diagnostics": len(diagnostics),
            },
        )

    return DeclarationResult(declaration=declaration, diagnostics=diagnostics)


def generate_declaration(
    transactions: Sequence[SourceTransaction],
    subject: Subject,
    period: Union[str, dict, Period],
    purpose: DeclarationPurpose = DeclarationPurpose.FILING,
    system_name: Optional[str] = None,
    schema_version: Optional[str] = None,
    generated_at: Optional[datetime] = None,
    correction_reason: Optional[str] = None,
    settings: Optional[Settings] = None,
) -> DeclarationResult:
    """Generate the declaration for one subject and period.

    Raises:
        MissingRequiredSubjectDataError: If the subject has no tax id
        DeclarationError: Other fatal input problems
    """
    if isinstance(period, dict):
        period = parse_period(period)
    request = DeclarationRequest(
        subject=subject,
        period=period,
        transactions=list(transactions),
        purpose=purpose,
        system_name=system_name,
        schema_version=schema_version,
        generated_at=generated_at,
        correction_reason=correction_reason,
    )
    return generate_from_request(request, settings)


__all__ = [
    "SectionBuild",
    "build_and_check_row",
    "build_section_rows",
    "split_sections",
    "prepare_request",
    "generate_from_request",
    "generate_declaration",
    "serialize_declaration",
]
