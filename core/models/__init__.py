"""Core data models - canonical source documents and subject.

This package contains the typed inputs of the declaration compiler.
"""

from core.models.canonical import (
    # Base
    CanonicalBase,
    DecimalValue,
    RateValue,
    DateValue,
    TaxIdValue,

    # Enumerations
    TransactionKind,
    VatTreatment,
    RateSentinel,
    DocumentType,
    VatStatus,
    GtuCode,
    ProcedureMarker,

    # Entities
    Subject,
    LineItem,
    SourceTransaction,
)

__all__ = [
    # Base
    "CanonicalBase",
    "DecimalValue",
    "RateValue",
    "DateValue",
    "TaxIdValue",

    # Enumerations
    "TransactionKind",
    "VatTreatment",
    "RateSentinel",
    "DocumentType",
    "VatStatus",
    "GtuCode",
    "ProcedureMarker",

    # Entities
    "Subject",
    "LineItem",
    "SourceTransaction",
]
