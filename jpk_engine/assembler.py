"""Document assembler.

Composes header, subject, rows, control totals and summary into one
Declaration. Control totals and the summary are always recomputed here from
the rows handed in.
"""

from datetime import datetime, timezone
from typing import Optional, Sequence

from core.models.canonical import Subject, TransactionKind
from .aggregates import control_total, summarize
from .errors import MissingRequiredSubjectDataError
from .models import (
    Declaration,
    DeclarationHeader,
    DeclarationPurpose,
    DeclarationRow,
    Period,
)
from .schema import SchemaVersion, JPK_V7M_3


def require_subject(subject: Subject) -> None:
    """Fail fast when the subject cannot appear on a valid document.

    Raises:
        MissingRequiredSubjectDataError: If the tax id or legal name is missing
    """
    if not subject.tax_id:
        raise MissingRequiredSubjectDataError("tax_id")
    if not subject.full_name:
        raise MissingRequiredSubjectDataError("full_name")


def build_header(
    period: Period,
    schema: SchemaVersion = JPK_V7M_3,
    purpose: DeclarationPurpose = DeclarationPurpose.FILING,
    generated_at: Optional[datetime] = None,
    system_name: Optional[str] = None,
    tax_office_code: Optional[str] = None,
) -> DeclarationHeader:
    """Header shared by the register and declaration parts.

    generated_at defaults to now; naive timestamps are taken as UTC.
    """
    if generated_at is None:
        generated_at = datetime.now(timezone.utc).replace(microsecond=0)
    elif generated_at.tzinfo is None:
        generated_at = generated_at.replace(tzinfo=timezone.utc)

    return DeclarationHeader(
        schema_version=schema.version,
        purpose=purpose,
        generated_at=generated_at,
        period=period,
        system_name=system_name,
        tax_office_code=tax_office_code,
    )


def _section_rows(rows: Sequence[DeclarationRow], section: TransactionKind) -> list:
    for row in rows:
        if row.section != section:
            raise ValueError(
                f"Row {row.ordinal} for document {row.document_id} is a {row.section.value} row, "
                f"expected {section.value}"
            )
    return sorted(rows, key=lambda r: r.ordinal)


def assemble_declaration(
    subject: Subject,
    header: DeclarationHeader,
    sale_rows: Sequence[DeclarationRow],
    purchase_rows: Sequence[DeclarationRow],
    schema: SchemaVersion = JPK_V7M_3,
    correction_reason: Optional[str] = None,
) -> Declaration:
    """Assemble the declaration record.

    Args:
        subject: Filing taxpayer
        header: Header from build_header
        sale_rows: Finished sale rows (any order; sorted by ordinal)
        purchase_rows: Finished purchase rows
        schema: Schema version whose summary table applies
        correction_reason: P_ORDZU text, kept only for corrections

    Returns:
        Declaration with recomputed control totals and summary

    Raises:
        MissingRequiredSubjectDataError: If the subject lacks a tax id or name
    """
    require_subject(subject)

    sales = _section_rows(sale_rows, TransactionKind.SALE)
    purchases = _section_rows(purchase_rows, TransactionKind.PURCHASE)

    justification = None
    if header.purpose == DeclarationPurpose.CORRECTION and correction_reason:
        justification = correction_reason.strip() or None

    return Declaration(
        header=header,
        subject=subject,
        sale_rows=sales,
        sale_control=control_total(TransactionKind.SALE, sales),
        purchase_rows=purchases,
        purchase_control=control_total(TransactionKind.PURCHASE, purchases),
        summary=summarize(sales, purchases, schema, justification=justification),
    )
