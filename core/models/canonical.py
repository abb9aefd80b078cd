"""Core canonical data models - normalized source documents.

These models represent sale and purchase documents, their line items and the
filing subject in one typed shape. Repositories and the API translate their
own records into these models before anything reaches the declaration
compiler; nothing downstream reads loosely-typed rows.

Schema-specific mappings (rate buckets, K_/P_ fields) live in /jpk_engine/.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Optional, List, Union

from pydantic import BaseModel, Field, ConfigDict
from pydantic.functional_validators import BeforeValidator
from typing_extensions import Annotated


# =============================================================================
# Enumerations
# =============================================================================

class TransactionKind(str, Enum):
    """Register section a document belongs to."""
    SALE = "sale"
    PURCHASE = "purchase"


class VatTreatment(str, Enum):
    """How the tax on a line is settled."""
    DOMESTIC = "domestic"
    INTRA_COMMUNITY = "intra_community"  # WDT on sales, WNT on purchases
    EXPORT = "export"
    IMPORT = "import"                    # import of services
    REVERSE_CHARGE = "reverse_charge"    # buyer settles domestic tax


class RateSentinel(str, Enum):
    """Non-numeric VAT rates."""
    EXEMPT = "zw"
    NOT_SUBJECT = "np"
    REVERSE_CHARGE = "oo"


class DocumentType(str, Enum):
    FA = "FA"
    KOREKTA = "KOREKTA"
    ZAL = "ZAL"
    RO = "RO"
    WEW = "WEW"
    FP = "FP"
    MK = "MK"
    VAT_RR = "VAT_RR"
    IMPORT = "IMPORT"
    WNT = "WNT"


class VatStatus(str, Enum):
    ACTIVE = "active"
    EXEMPT = "exempt"
    SMALL_TAXPAYER = "small_taxpayer"


class GtuCode(str, Enum):
    """Goods and services group codes."""
    GTU_01 = "GTU_01"
    GTU_02 = "GTU_02"
    GTU_03 = "GTU_03"
    GTU_04 = "GTU_04"
    GTU_05 = "GTU_05"
    GTU_06 = "GTU_06"
    GTU_07 = "GTU_07"
    GTU_08 = "GTU_08"
    GTU_09 = "GTU_09"
    GTU_10 = "GTU_10"
    GTU_11 = "GTU_11"
    GTU_12 = "GTU_12"
    GTU_13 = "GTU_13"


class ProcedureMarker(str, Enum):
    """Procedure flags carried on register rows."""
    SW = "SW"
    EE = "EE"
    TP = "TP"
    TT_WNT = "TT_WNT"
    TT_D = "TT_D"
    MR_T = "MR_T"
    MR_UZ = "MR_UZ"
    I_42 = "I_42"
    I_63 = "I_63"
    B_SPV = "B_SPV"
    B_SPV_DOSTAWA = "B_SPV_DOSTAWA"
    B_MPV_PROWIZJA = "B_MPV_PROWIZJA"
    MPP = "MPP"
    IMP = "IMP"


# =============================================================================
# Value Parsers (handle the formats repositories and forms hand us)
# =============================================================================

def _parse_decimal(value):
    """Parse decimal from various formats ("1 234,56", "1.234,56", "zł 10.00", floats, etc.)."""
    if value is None:
        return None
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise ValueError("Boolean is not an amount")
    if isinstance(value, (int, float)):
        return Decimal(str(value))
    if isinstance(value, str):
        s = value.strip()
        if s == "":
            return None
        s = s.replace("zł", "").replace("PLN", "").replace("\u00a0", "").replace(" ", "")
        if "," in s and "." in s:
            # The later separator is the decimal one, the other groups thousands
            if s.rfind(",") > s.rfind("."):
                decimal_sep, group_sep = ",", "."
            else:
                decimal_sep, group_sep = ".", ","
            head, _, tail = s.rpartition(decimal_sep)
            if decimal_sep in head:
                raise ValueError(f"Ambiguous amount: {value}")
            s = head.replace(group_sep, "") + "." + tail
        elif "," in s:
            s = s.replace(",", ".")
        if s.startswith("(") and s.endswith(")"):
            s = "-" + s[1:-1]
        try:
            parsed = Decimal(s)
        except InvalidOperation:
            raise ValueError(f"Cannot parse amount: {value}")
        if not parsed.is_finite():
            raise ValueError(f"Amount must be finite: {value}")
        return parsed
    return value


def _parse_rate(value):
    """Parse a VAT rate: a sentinel code or a percentage number."""
    if isinstance(value, (RateSentinel, Decimal)):
        return value
    if isinstance(value, str):
        s = value.strip().lower().rstrip("%").strip()
        for sentinel in RateSentinel:
            if s == sentinel.value:
                return sentinel
        if s in ("exempt", "zw."):
            return RateSentinel.EXEMPT
        return _parse_decimal(s)
    return _parse_decimal(value)


def _parse_date(value):
    """Parse date from various string formats."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        s = value.strip()
        if s == "":
            return None
        if "T" in s:
            s = s.split("T", 1)[0]
        for fmt in ("%Y-%m-%d", "%d.%m.%Y", "%d-%m-%Y", "%d/%m/%Y"):
            try:
                return datetime.strptime(s, fmt).date()
            except ValueError:
                continue
        raise ValueError(f"Cannot parse date: {s}")
    return value


def _parse_tax_id(value):
    """Normalize a tax id: drop spaces and dashes, and the PL prefix of a domestic NIP."""
    if value is None:
        return None
    s = str(value).strip().upper().replace(" ", "").replace("-", "")
    if s == "":
        return None
    if s.startswith("PL") and s[2:].isdigit() and len(s) == 12:
        s = s[2:]
    return s


def _parse_text(value):
    if value is None:
        return None
    s = str(value).strip()
    return s or None


def _parse_codes(value):
    """Accept codes as a list or a comma-separated string, in any case."""
    if value is None:
        return []
    if isinstance(value, str):
        value = [part for part in value.split(",")]
    return [str(v).strip().upper() for v in value if str(v).strip()]


# Annotated types for automatic parsing
DecimalValue = Annotated[Decimal, BeforeValidator(_parse_decimal)]
RateValue = Annotated[Union[RateSentinel, Decimal], BeforeValidator(_parse_rate)]
DateValue = Annotated[date, BeforeValidator(_parse_date)]
TaxIdValue = Annotated[Optional[str], BeforeValidator(_parse_tax_id)]
TextValue = Annotated[Optional[str], BeforeValidator(_parse_text)]


# =============================================================================
# Base Model
# =============================================================================

class CanonicalBase(BaseModel):
    """Base model for all canonical data structures."""
    model_config = ConfigDict(populate_by_name=True)


# =============================================================================
# Subject
# =============================================================================

class Subject(CanonicalBase):
    """Taxpayer the declaration is filed for.

    Attributes:
        tax_id: NIP; mandatory for a declaration but validated by the compiler,
            not here, so a missing value surfaces as a domain error
        full_name: Legal name (PelnaNazwa)
        regon: Optional statistical registration number
        email: Optional contact address
        tax_office_code: Four-digit KodUrzedu
        vat_status: Registration status; exempt subjects cannot file
    """
    tax_id: TaxIdValue = Field(None, alias="nip")
    full_name: TextValue = None
    regon: TextValue = None
    email: TextValue = None
    tax_office_code: TextValue = None
    vat_status: VatStatus = VatStatus.ACTIVE


# =============================================================================
# Source Documents
# =============================================================================

class LineItem(CanonicalBase):
    """One line of a source document.

    Stored net and VAT values win over values derived from quantity, unit
    price and rate.
    """
    line_id: Optional[str] = None
    description: Optional[str] = None
    quantity: Optional[DecimalValue] = None
    unit_price: Optional[DecimalValue] = None
    net_value: Optional[DecimalValue] = None
    vat_rate: RateValue
    vat_value: Optional[DecimalValue] = None
    treatment: VatTreatment = VatTreatment.DOMESTIC


class SourceTransaction(CanonicalBase):
    """A finalized sale or purchase document for the reporting period."""
    document_id: str = Field(..., alias="id")
    kind: TransactionKind
    document_number: Annotated[str, BeforeValidator(_parse_text)]
    counterparty_name: TextValue = None
    counterparty_tax_id: TaxIdValue = None
    counterparty_address: TextValue = None
    issue_date: DateValue
    sale_date: Optional[DateValue] = None
    receipt_date: Optional[DateValue] = None
    document_type: Optional[DocumentType] = None
    gtu_codes: Annotated[List[GtuCode], BeforeValidator(_parse_codes)] = Field(default_factory=list)
    procedures: Annotated[List[ProcedureMarker], BeforeValidator(_parse_codes)] = Field(default_factory=list)
    is_import: bool = False
    line_items: List[LineItem] = Field(default_factory=list)
    total_net: Optional[DecimalValue] = None
    total_vat: Optional[DecimalValue] = None
    total_gross: Optional[DecimalValue] = None
