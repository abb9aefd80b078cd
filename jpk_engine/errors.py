"""Fatal errors raised by the declaration compiler.

Every error aborts the run; no partial declaration or document is returned.
Non-fatal findings are diagnostics (see jpk_engine.diagnostics).
"""


class DeclarationError(Exception):
    """Base class for declaration compiler errors."""


class MissingRequiredSubjectDataError(DeclarationError):
    """The subject lacks data without which no valid document can exist (tax id)."""

    def __init__(self, field: str = "tax_id", message: str = None):
        self.field = field
        super().__init__(message or f"Subject is missing required field: {field}")


class SubjectNotEligibleError(DeclarationError):
    """The subject may not file this declaration (e.g. VAT-exempt)."""


class InvalidPeriodError(DeclarationError):
    """The reporting period could not be parsed or is inverted."""


class UnsupportedSchemaVersionError(DeclarationError):
    """No table is registered for the requested schema version."""

    def __init__(self, version: str, supported=()):
        self.version = version
        self.supported = tuple(supported)
        super().__init__(
            f"Unsupported schema version {version!r}; supported: {', '.join(self.supported) or 'none'}"
        )


class SerializationError(DeclarationError):
    """An assembled declaration violates a structural invariant of the output document."""
