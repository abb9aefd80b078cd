"""Declaration activities for the JPK_V7M pipeline.

Temporal activities wrapping the declaration engine. Payloads cross the
workflow boundary as JSON-ready dicts; each activity re-validates them into
engine models on entry.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import TypeAdapter, ValidationError
from temporalio import activity
from temporalio.exceptions import ApplicationError

from core.config import get_settings
from core.models.canonical import SourceTransaction, Subject, TransactionKind
from core.observability.logging import with_correlation
from jpk_engine.assembler import assemble_declaration as assemble_record, build_header
from jpk_engine.diagnostics import AnyDiagnostic
from jpk_engine.engine import build_section_rows, prepare_request, split_sections
from jpk_engine.errors import DeclarationError
from jpk_engine.models import (
    Declaration,
    DeclarationPurpose,
    DeclarationRequest,
    DeclarationRow,
    Period,
)
from jpk_engine.schema import get_schema
from jpk_engine.serializer import declaration_filename, serialize_declaration
from jpk_engine.validation import validate_declaration


_ROWS = TypeAdapter(List[DeclarationRow])
_DIAGNOSTICS = TypeAdapter(List[AnyDiagnostic])


def _non_retryable(error: Exception) -> ApplicationError:
    """Input errors will not heal on retry."""
    return ApplicationError(str(error), type=type(error).__name__, non_retryable=True)


# =============================================================================
# Data Classes
# =============================================================================

@dataclass
class PrepareDeclarationInput:
    """Input for prepare_declaration activity.

    Attributes:
        request: Serialized DeclarationRequest
    """
    request: dict


@dataclass
class PrepareDeclarationOutput:
    """Output from prepare_declaration activity.

    Attributes:
        declaration_id: <tax id>-<YYYY-MM>, used for correlation
        schema_version: Resolved schema version
        period: Serialized Period
        subject: Normalized subject
        purpose: CelZlozenia value
        system_name: Resolved NazwaSystemu
        tax_office_code: Resolved KodUrzedu
        correction_reason: P_ORDZU text, if any
        generated_at: Fixed timestamp from the request (ISO), if any
        tolerance: Row consistency tolerance (string Decimal)
        batch_size: Documents per build_rows call
        sale_transactions: Normalized sale documents, input order
        purchase_transactions: Normalized purchase documents, input order
    """
    declaration_id: str
    schema_version: str
    period: dict
    subject: dict
    purpose: int
    system_name: Optional[str]
    tax_office_code: Optional[str]
    correction_reason: Optional[str]
    generated_at: Optional[str]
    tolerance: str
    batch_size: int
    sale_transactions: List[dict] = field(default_factory=list)
    purchase_transactions: List[dict] = field(default_factory=list)


@dataclass
class BuildRowsInput:
    """Input for build_rows activity.

    Attributes:
        section: sale or purchase
        transactions: Serialized documents of that section
        start_ordinal: Ordinal of the first document in this batch
        schema_version: Schema whose rate tables apply
        tolerance: Row consistency tolerance (string Decimal)
    """
    section: str
    transactions: List[dict]
    start_ordinal: int = 1
    schema_version: str = "3"
    tolerance: str = "0.01"


@dataclass
class BuildRowsOutput:
    """Output from build_rows activity."""
    rows: List[dict]
    diagnostics: List[dict]


@dataclass
class AssembleDeclarationInput:
    """Input for assemble_declaration activity.

    Attributes:
        subject: Serialized Subject
        period: Serialized Period
        schema_version: Schema version
        purpose: CelZlozenia value
        generated_at: ISO timestamp; the workflow supplies its own clock
        sale_rows: All sale rows, any batch order
        purchase_rows: All purchase rows, any batch order
    """
    subject: dict
    period: dict
    schema_version: str
    purpose: int
    generated_at: str
    sale_rows: List[dict] = field(default_factory=list)
    purchase_rows: List[dict] = field(default_factory=list)
    system_name: Optional[str] = None
    tax_office_code: Optional[str] = None
    correction_reason: Optional[str] = None


@dataclass
class AssembleDeclarationOutput:
    """Output from assemble_declaration activity."""
    declaration_id: str
    declaration: dict
    sale_row_count: int
    purchase_row_count: int


@dataclass
class CheckDeclarationInput:
    """Input for check_declaration activity."""
    declaration: dict
    tolerance: str = "0.01"


@dataclass
class CheckDeclarationOutput:
    """Output from check_declaration activity.

    Attributes:
        status: PASS, WARN or FAIL
        is_valid: False when any blocking check failed
        checks: Failed checks as dicts
        metrics: Counts by severity
    """
    status: str
    is_valid: bool
    checks: List[dict]
    metrics: dict


@dataclass
class RenderDeclarationInput:
    """Input for render_declaration activity."""
    declaration: dict


@dataclass
class RenderDeclarationOutput:
    """Output from render_declaration activity."""
    filename: str
    xml: str


# =============================================================================
# Activity Definitions
# =============================================================================

@activity.defn
async def prepare_declaration(input: PrepareDeclarationInput) -> PrepareDeclarationOutput:
    """Validate a request and split its documents by section.

    Every fatal input problem surfaces here, before any row is built.

    Raises:
        ApplicationError: Non-retryable, for malformed requests and DeclarationError
    """
    settings = get_settings()
    try:
        request = DeclarationRequest.model_validate(input.request)
        schema, period = prepare_request(request, settings)
    except (ValidationError, DeclarationError) as e:
        activity.logger.error(f"Declaration request rejected: {e}")
        raise _non_retryable(e)

    sales, purchases = split_sections(request.transactions)
    declaration_id = f"{request.subject.tax_id}-{period.label}"
    activity.logger.info(
        f"Prepared declaration {declaration_id}: {len(sales)} sale / {len(purchases)} purchase documents"
    )

    return PrepareDeclarationOutput(
        declaration_id=declaration_id,
        schema_version=schema.version,
        period=period.model_dump(mode="json"),
        subject=request.subject.model_dump(mode="json"),
        purpose=int(request.purpose),
        system_name=request.system_name or settings.system_name,
        tax_office_code=request.subject.tax_office_code or settings.default_tax_office_code,
        correction_reason=request.correction_reason,
        generated_at=request.generated_at.isoformat() if request.generated_at else None,
        tolerance=str(settings.amount_tolerance),
        batch_size=settings.row_batch_size,
        sale_transactions=[t.model_dump(mode="json") for t in sales],
        purchase_transactions=[t.model_dump(mode="json") for t in purchases],
    )


@activity.defn
async def build_rows(input: BuildRowsInput) -> BuildRowsOutput:
    """Build declaration rows for one batch of one section.

    Ordinals start at input.start_ordinal so batches can be built in any
    order and still number consecutively.
    """
    section = TransactionKind(input.section)
    try:
        schema = get_schema(input.schema_version)
        transactions = [SourceTransaction.model_validate(t) for t in input.transactions]
        if any(t.kind != section for t in transactions):
            raise ValueError(f"Batch for {section.value} contains documents of another section")
    except (ValidationError, ValueError, DeclarationError) as e:
        raise _non_retryable(e)

    activity.logger.info(
        f"Building {len(transactions)} {section.value} rows from ordinal {input.start_ordinal}"
    )
    with with_correlation(section=section.value, activity_name="build_rows"):
        build = build_section_rows(
            transactions,
            schema,
            start_ordinal=input.start_ordinal,
            tolerance=Decimal(input.tolerance),
            max_workers=get_settings().row_workers,
        )

    if build.diagnostics:
        activity.logger.warning(f"{len(build.diagnostics)} diagnostics in {section.value} batch")

    return BuildRowsOutput(
        rows=_ROWS.dump_python(build.rows, mode="json"),
        diagnostics=_DIAGNOSTICS.dump_python(build.diagnostics, mode="json"),
    )


@activity.defn(name="assemble_declaration")
async def assemble_declaration_activity(input: AssembleDeclarationInput) -> AssembleDeclarationOutput:
    """Compute control totals and the summary once every row exists."""
    try:
        schema = get_schema(input.schema_version)
        subject = Subject.model_validate(input.subject)
        header = build_header(
            Period.model_validate(input.period),
            schema,
            purpose=DeclarationPurpose(input.purpose),
            generated_at=datetime.fromisoformat(input.generated_at),
            system_name=input.system_name,
            tax_office_code=input.tax_office_code,
        )
        declaration = assemble_record(
            subject,
            header,
            _ROWS.validate_python(input.sale_rows),
            _ROWS.validate_python(input.purchase_rows),
            schema,
            correction_reason=input.correction_reason,
        )
    except (ValidationError, ValueError, DeclarationError) as e:
        activity.logger.error(f"Assembly failed: {e}")
        raise _non_retryable(e)

    activity.logger.info(
        f"Assembled {declaration.declaration_id}: "
        f"output VAT {declaration.sale_control.total_vat}, input VAT {declaration.purchase_control.total_vat}"
    )
    return AssembleDeclarationOutput(
        declaration_id=declaration.declaration_id,
        declaration=declaration.model_dump(mode="json"),
        sale_row_count=declaration.sale_control.row_count,
        purchase_row_count=declaration.purchase_control.row_count,
    )


@activity.defn
async def check_declaration(input: CheckDeclarationInput) -> CheckDeclarationOutput:
    """Run business-rule checks on an assembled declaration."""
    try:
        declaration = Declaration.model_validate(input.declaration)
    except ValidationError as e:
        raise _non_retryable(e)

    report = validate_declaration(declaration, tolerance=Decimal(input.tolerance))
    activity.logger.info(f"Checked {report.declaration_id}: {report.status}")

    return CheckDeclarationOutput(
        status=report.status,
        is_valid=report.is_valid,
        checks=report.checks,
        metrics=report.metrics,
    )


@activity.defn
async def render_declaration(input: RenderDeclarationInput) -> RenderDeclarationOutput:
    """Serialize an assembled declaration to JPK_V7M XML."""
    try:
        declaration = Declaration.model_validate(input.declaration)
        xml = serialize_declaration(declaration)
    except (ValidationError, DeclarationError) as e:
        activity.logger.error(f"Rendering failed: {e}")
        raise _non_retryable(e)

    filename = declaration_filename(declaration)
    activity.logger.info(f"Rendered {filename} ({len(xml)} chars)")
    return RenderDeclarationOutput(filename=filename, xml=xml)
