"""
Declaration serializer.

Renders a Declaration into the JPK_V7M XML document:
- fixed element order (header, subject, sale rows, sale control, purchase
  rows, purchase control, declaration part)
- every amount with exactly two decimals
- zero or empty fields omitted unless the schema flags them always-present
- < > & ' " escaped in every text node and attribute value

The output is a pure function of the Declaration.
"""

import re
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Iterable, List, Optional, Tuple
from xml.sax.saxutils import escape

from core.models.canonical import GtuCode, TransactionKind
from .errors import SerializationError, UnsupportedSchemaVersionError
from .models import ControlTotal, Declaration, DeclarationRow
from .rows import round_amount
from .schema import SchemaVersion, get_schema, row_amounts

XML_DECLARATION = '<?xml version="1.0" encoding="UTF-8"?>'
INDENT = "  "

_QUOTE_ENTITIES = {"'": "&apos;", '"': "&quot;"}

# Outside the XML 1.0 Char production
_FORBIDDEN_CHARS = re.compile("[\x00-\x08\x0b\x0c\x0e-\x1f\ud800-\udfff\ufffe\uffff]")


# =============================================================================
# Formatting
# =============================================================================

def escape_text(value: str) -> str:
    """Escape the five XML reserved characters.

    Raises:
        SerializationError: If the text holds a character XML 1.0 does not allow
    """
    forbidden = _FORBIDDEN_CHARS.search(value)
    if forbidden:
        raise SerializationError(f"Character {forbidden.group()!r} is not allowed in XML: {value!r}")
    return escape(value, _QUOTE_ENTITIES)


def format_amount(value: Decimal) -> str:
    """Two decimals, no exponent, no grouping."""
    return format(round_amount(value), "f")


def format_date(value: date) -> str:
    return value.isoformat()


def format_timestamp(value: datetime) -> str:
    """UTC, second precision, Z suffix."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def declaration_filename(declaration: Declaration) -> str:
    """File name for the rendered document, e.g. JPK_V7M_2024-03.xml."""
    return f"JPK_V7M_{declaration.header.period.label}.xml"


# =============================================================================
# XML Writer
# =============================================================================

class XmlWriter:
    """Minimal indented XML writer; callers pass raw text, the writer escapes."""

    def __init__(self):
        self._lines: List[str] = [XML_DECLARATION]
        self._stack: List[str] = []

    @staticmethod
    def _attrs(attributes: Iterable[Tuple[str, str]]) -> str:
        return "".join(f' {name}="{escape_text(value)}"' for name, value in attributes)

    def open(self, tag: str, attributes: Iterable[Tuple[str, str]] = ()) -> None:
        self._lines.append(f"{INDENT * len(self._stack)}<{tag}{self._attrs(attributes)}>")
        self._stack.append(tag)

    def close(self) -> None:
        tag = self._stack.pop()
        self._lines.append(f"{INDENT * len(self._stack)}</{tag}>")

    def element(self, tag: str, text: str, attributes: Iterable[Tuple[str, str]] = ()) -> None:
        self._lines.append(
            f"{INDENT * len(self._stack)}<{tag}{self._attrs(attributes)}>{escape_text(text)}</{tag}>"
        )

    def getvalue(self) -> str:
        if self._stack:
            raise SerializationError(f"Unclosed elements: {', '.join(self._stack)}")
        return "\n".join(self._lines) + "\n"


class _FieldEmitter:
    """Applies the schema's per-field emission flags."""

    def __init__(self, writer: XmlWriter, schema: SchemaVersion):
        self.writer = writer
        self.schema = schema

    def _missing(self, name: str) -> None:
        if self.schema.is_always_present(name):
            raise SerializationError(f"Required field {name} has no value")

    def text(self, name: str, value: Optional[str]) -> None:
        if value is None or str(value).strip() == "":
            self._missing(name)
            return
        self.writer.element(name, str(value))

    def amount(self, name: str, value: Optional[Decimal]) -> None:
        if value is None:
            self._missing(name)
            return
        if not round_amount(value) and not self.schema.is_always_present(name):
            return
        self.writer.element(name, format_amount(value))

    def integer(self, name: str, value: Optional[int]) -> None:
        if value is None:
            self._missing(name)
            return
        if value == 0 and not self.schema.is_always_present(name):
            return
        self.writer.element(name, str(int(value)))

    def date(self, name: str, value: Optional[date]) -> None:
        if value is None:
            self._missing(name)
            return
        self.writer.element(name, format_date(value))

    def flag(self, name: str, is_set: bool) -> None:
        if is_set:
            self.writer.element(name, "1")


# =============================================================================
# Structure Checks
# =============================================================================

def _check_section(rows: List[DeclarationRow], control: ControlTotal, section: TransactionKind) -> None:
    if control.row_count < 0:
        raise SerializationError(f"Negative {section.value} row count: {control.row_count}")
    if control.section != section:
        raise SerializationError(f"{section.value} control total is labelled {control.section.value}")
    if control.row_count != len(rows):
        raise SerializationError(
            f"{section.value} control total counts {control.row_count} rows, declaration has {len(rows)}"
        )
    for expected, row in enumerate(rows, start=1):
        if row.section != section:
            raise SerializationError(f"Row {row.ordinal} ({row.document_id}) is not a {section.value} row")
        if row.ordinal != expected:
            raise SerializationError(
                f"{section.value} rows are not numbered consecutively: expected {expected}, got {row.ordinal}"
            )


def _resolve_schema(declaration: Declaration) -> SchemaVersion:
    try:
        return get_schema(declaration.header.schema_version)
    except UnsupportedSchemaVersionError as e:
        raise SerializationError(str(e)) from e


# =============================================================================
# Sections
# =============================================================================

def _write_header(out: _FieldEmitter, declaration: Declaration) -> None:
    schema, header = out.schema, declaration.header
    out.writer.open("Naglowek")
    out.writer.element("KodFormularza", schema.form_code.text, schema.form_code.attributes)
    out.text("WariantFormularza", schema.form_variant)
    out.integer("CelZlozenia", int(header.purpose))
    out.text("DataWytworzeniaJPK", format_timestamp(header.generated_at))
    out.date("DataOd", header.period.start)
    out.date("DataDo", header.period.end)
    out.text("NazwaSystemu", header.system_name)
    out.text("KodUrzedu", header.tax_office_code)
    out.writer.close()


def _write_subject(out: _FieldEmitter, declaration: Declaration) -> None:
    subject = declaration.subject
    out.writer.open("Podmiot1")
    out.text("NIP", subject.tax_id)
    out.text("PelnaNazwa", subject.full_name)
    out.text("REGON", subject.regon)
    out.text("Email", subject.email)
    out.writer.close()


def _write_amounts(out: _FieldEmitter, row: DeclarationRow) -> None:
    for name, value in row_amounts(row, out.schema).items():
        out.amount(name, value)


def _write_sale_row(out: _FieldEmitter, row: DeclarationRow) -> None:
    out.writer.open("SprzedazWiersz")
    out.integer("LpSprzedazy", row.ordinal)
    out.text("NrKontrahenta", row.counterparty_tax_id)
    out.text("NazwaKontrahenta", row.counterparty_name)
    out.text("AdresKontrahenta", row.counterparty_address)
    out.text("DowodSprzedazy", row.document_number)
    out.date("DataWystawienia", row.issue_date)
    out.date("DataSprzedazy", row.sale_date)
    out.text("TypDokumentu", row.document_type)
    for code in GtuCode:
        out.flag(code.value, code.value in row.gtu_codes)
    for marker in out.schema.markers(TransactionKind.SALE):
        out.flag(marker, marker in row.markers)
    _write_amounts(out, row)
    out.writer.close()


def _write_purchase_row(out: _FieldEmitter, row: DeclarationRow) -> None:
    out.writer.open("ZakupWiersz")
    out.integer("LpZakupu", row.ordinal)
    out.text("NrDostawcy", row.counterparty_tax_id)
    out.text("NazwaDostawcy", row.counterparty_name)
    out.text("AdresDostawcy", row.counterparty_address)
    out.text("DowodZakupu", row.document_number)
    out.date("DataZakupu", row.issue_date)
    out.date("DataWplywu", row.receipt_date)
    out.text("TypDokumentu", row.document_type)
    for marker in out.schema.markers(TransactionKind.PURCHASE):
        out.flag(marker, marker in row.markers)
    _write_amounts(out, row)
    out.writer.close()


def _write_control(out: _FieldEmitter, tag: str, count_field: str, vat_field: str, control: ControlTotal) -> None:
    out.writer.open(tag)
    out.integer(count_field, control.row_count)
    out.amount(vat_field, control.total_vat)
    out.writer.close()


def _write_declaration_part(out: _FieldEmitter, declaration: Declaration) -> None:
    schema, header, summary = out.schema, declaration.header, declaration.summary
    out.writer.open("Deklaracja")

    out.writer.open("Naglowek")
    out.writer.element(
        "KodFormularzaDekl",
        schema.declaration_form_code.text,
        schema.declaration_form_code.attributes,
    )
    out.text("WariantFormularzaDekl", schema.declaration_variant)
    out.integer("CelZlozenia", int(header.purpose))
    out.text("DataWytworzeniaDeklaracji", format_timestamp(header.generated_at))
    out.date("DataOd", header.period.start)
    out.date("DataDo", header.period.end)
    out.text("KodUrzedu", header.tax_office_code)
    out.writer.close()

    out.writer.open("PozycjeSzczegolowe")
    for name in schema.summary_fields:
        if name in summary.fields or schema.is_always_present(name):
            out.amount(name, summary.fields.get(name))
    out.text("P_ORDZU", summary.justification)
    out.writer.close()

    out.text("Pouczenia", "1")
    out.writer.close()


# =============================================================================
# Public API
# =============================================================================

def serialize_declaration(declaration: Declaration) -> str:
    """Render the declaration as a JPK_V7M XML document.

    Raises:
        SerializationError: If the declaration breaks a structural invariant
            (negative or mismatched row counts, non-consecutive ordinals,
            missing mandatory fields, unknown schema version)
    """
    schema = _resolve_schema(declaration)
    _check_section(declaration.sale_rows, declaration.sale_control, TransactionKind.SALE)
    _check_section(declaration.purchase_rows, declaration.purchase_control, TransactionKind.PURCHASE)

    writer = XmlWriter()
    out = _FieldEmitter(writer, schema)

    writer.open("JPK", (("xmlns", schema.namespace), ("xmlns:etd", schema.etd_namespace)))
    _write_header(out, declaration)
    _write_subject(out, declaration)
    for row in declaration.sale_rows:
        _write_sale_row(out, row)
    _write_control(out, "SprzedazCtrl", "LiczbaWierszySprzedazy", "PodatekNalezny", declaration.sale_control)
    for row in declaration.purchase_rows:
        _write_purchase_row(out, row)
    _write_control(out, "ZakupCtrl", "LiczbaWierszyZakupow", "PodatekNaliczony", declaration.purchase_control)
    _write_declaration_part(out, declaration)
    writer.close()

    return writer.getvalue()
