"""
JPK Engine Package

Compiles a period's finalized sale and purchase documents into a JPK_V7M
VAT declaration and renders it as the authority's XML document.

Features:
- Table-driven rate classification with a default bucket (never fails)
- Per-document rows with cent-rounded bucket amounts and K_P / K_H sub-totals
- Row vs. document total consistency diagnostics
- Control totals and P_ summary from versioned schema tables
- Deterministic, schema-ordered XML serialization
- Business-rule validation (NIP checksum, markers, settlement)

Usage:
    from jpk_engine import generate_declaration, serialize_declaration

    result = generate_declaration(transactions, subject, "2024-03")
    for diagnostic in result.diagnostics:
        print(diagnostic.kind, diagnostic.message)

    xml = serialize_declaration(result.declaration)
"""

from .errors import (
    DeclarationError,
    MissingRequiredSubjectDataError,
    SubjectNotEligibleError,
    InvalidPeriodError,
    UnsupportedSchemaVersionError,
    SerializationError,
)

from .diagnostics import (
    Severity,
    Diagnostic,
    UnclassifiedRateWarning,
    RowTotalMismatchWarning,
)

from .models import (
    # Enums
    VatRateBucket,
    DeclarationPurpose,

    # Records
    Period,
    BucketAmount,
    DeclarationRow,
    ControlTotal,
    DeclarationSummary,
    DeclarationHeader,
    Declaration,
    DeclarationRequest,
    DeclarationResult,

    # Helpers
    parse_period,
)

from .schema import (
    SchemaVersion,
    SCHEMA_VERSIONS,
    JPK_V7M_3,
    get_schema,
    row_amounts,
)

from .classifier import (
    RateClassification,
    classify_rate,
    classify_line_item,
    normalize_rate,
)

from .rows import build_row, round_amount
from .consistency import check_row_totals
from .aggregates import control_total, summarize, summary_sources
from .assembler import assemble_declaration, build_header

from .serializer import (
    serialize_declaration,
    declaration_filename,
    escape_text,
)

from .validation import (
    ValidationReport,
    validate_declaration,
    is_valid_nip,
)

from .engine import (
    build_section_rows,
    generate_declaration,
    generate_from_request,
)

__all__ = [
    # Errors
    "DeclarationError",
    "MissingRequiredSubjectDataError",
    "SubjectNotEligibleError",
    "InvalidPeriodError",
    "UnsupportedSchemaVersionError",
    "SerializationError",

    # Diagnostics
    "Severity",
    "Diagnostic",
    "UnclassifiedRateWarning",
    "RowTotalMismatchWarning",

    # Records
    "VatRateBucket",
    "DeclarationPurpose",
    "Period",
    "BucketAmount",
    "DeclarationRow",
    "ControlTotal",
    "DeclarationSummary",
    "DeclarationHeader",
    "Declaration",
    "DeclarationRequest",
    "DeclarationResult",
    "parse_period",

    # Schema
    "SchemaVersion",
    "SCHEMA_VERSIONS",
    "JPK_V7M_3",
    "get_schema",
    "row_amounts",

    # Pipeline stages
    "RateClassification",
    "classify_rate",
    "classify_line_item",
    "normalize_rate",
    "build_row",
    "round_amount",
    "check_row_totals",
    "control_total",
    "summarize",
    "summary_sources",
    "assemble_declaration",
    "build_header",

    # Output
    "serialize_declaration",
    "declaration_filename",
    "escape_text",

    # Validation
    "ValidationReport",
    "validate_declaration",
    "is_valid_nip",

    # Engine
    "build_section_rows",
    "generate_declaration",
    "generate_from_request",
]
