"""
Observability Validation Test

This test validates the logging stack:
1. Correlation context is set, merged and restored
2. Formatters render correlation IDs (JSON and human-readable)
3. Extra fields travel with individual log calls
4. Row building logs diagnostics with the document's correlation, also on worker threads
"""

import json
import logging
from datetime import date

import pytest


class CapturingHandler(logging.Handler):
    """Records each log record together with the correlation active at emit time."""

    def __init__(self):
        super().__init__(level=logging.DEBUG)
        self.entries = []

    def emit(self, record):
        from core.observability.logging import get_correlation_context
        self.entries.append((record, get_correlation_context()))


@pytest.fixture
def captured():
    handler = CapturingHandler()
    logger = logging.getLogger("jpk_engine")
    logger.addHandler(handler)
    try:
        yield handler
    finally:
        logger.removeHandler(handler)


def test_observability_imports():
    """Verify the observability package exports."""
    from core.observability import (
        get_logger, configure_logging, configure_from_settings,
        CorrelationContext, get_correlation_context, with_correlation,
    )
    assert get_logger is not None
    assert CorrelationContext is not None


class TestCorrelatedLogging:
    """Test structured logging with correlation IDs."""

    def test_correlation_context_creation(self):
        """Create correlation context with declaration fields."""
        from core.observability.logging import CorrelationContext

        ctx = CorrelationContext(
            declaration_id="5260250274-2024-03",
            period="2024-03",
            section="sale",
            workflow_id="jpk-5260250274-2024-03",
            activity_name="build_rows",
        )

        assert ctx.declaration_id == "5260250274-2024-03"
        assert ctx.to_dict()["section"] == "sale"
        assert "document_id" not in ctx.to_dict()

    def test_merge_keeps_existing_values(self):
        """Merging adds fields and ignores None."""
        from core.observability.logging import CorrelationContext

        ctx = CorrelationContext(declaration_id="D-1").merge(section="purchase", document_id=None)
        assert ctx.declaration_id == "D-1"
        assert ctx.section == "purchase"
        assert ctx.document_id is None

    def test_context_var_isolation(self):
        """with_correlation restores the previous context on exit."""
        from core.observability.logging import get_correlation_context, with_correlation

        assert get_correlation_context().declaration_id is None

        with with_correlation(declaration_id="5260250274-2024-03"):
            with with_correlation(document_id="S1"):
                inner = get_correlation_context()
                assert inner.declaration_id == "5260250274-2024-03"
                assert inner.document_id == "S1"
            assert get_correlation_context().document_id is None

        assert get_correlation_context().declaration_id is None

    def test_structured_formatter_json_output(self):
        """StructuredFormatter outputs valid JSON with correlation and extra fields."""
        from core.observability.logging import StructuredFormatter, with_correlation

        formatter = StructuredFormatter()
        record = logging.LogRecord(
            name="jpk_engine.engine",
            level=logging.INFO,
            pathname="engine.py",
            lineno=10,
            msg="Declaration generated",
            args=(),
            exc_info=None,
        )
        record.extra_fields = {"sale_rows": 12}

        with with_correlation(declaration_id="5260250274-2024-03", section="sale"):
            data = json.loads(formatter.format(record))

        assert data["message"] == "Declaration generated"
        assert data["declaration_id"] == "5260250274-2024-03"
        assert data["section"] == "sale"
        assert data["sale_rows"] == 12
        assert data["timestamp"].endswith("Z")

    def test_human_readable_formatter(self):
        """HumanReadableFormatter shows the correlation path."""
        from core.observability.logging import HumanReadableFormatter, with_correlation

        record = logging.LogRecord("jpk_engine.rows", logging.WARNING, "rows.py", 1, "Odd rate", (), None)
        with with_correlation(declaration_id="5260250274-2024-03", section="sale", document_id="S7"):
            line = HumanReadableFormatter().format(record)

        assert "[WARNING]" in line
        assert "[5260250274-2024-03/sale/doc:S7]" in line
        assert line.endswith("Odd rate")

    def test_extra_fields_reach_handlers(self, captured):
        """extra_fields are attached to the record."""
        from core.observability.logging import get_logger

        get_logger("jpk_engine.test").warning("Mismatch", extra_fields={"figure": "vat"})

        record, _ = captured.entries[-1]
        assert record.getMessage() == "Mismatch"
        assert record.extra_fields == {"figure": "vat"}


class TestEngineLogging:
    """Diagnostics are logged where they arise."""

    def make_documents(self):
        from core.models.canonical import SourceTransaction

        return [
            SourceTransaction(
                id=f"S{i}", kind="sale", document_number=f"FV/{i}", issue_date=date(2024, 3, 1),
                line_items=[{"line_id": f"L{i}", "net_value": "10", "vat_rate": "12"}],
            )
            for i in range(1, 5)
        ]

    @pytest.mark.parametrize("workers", [1, 4])
    def test_diagnostic_logged_with_document(self, captured, workers):
        """Each warning carries its own document id, on any thread."""
        from jpk_engine import build_section_rows
        from core.observability.logging import with_correlation

        with with_correlation(declaration_id="5260250274-2024-03"):
            build_section_rows(self.make_documents(), max_workers=workers)

        warnings = [(r, ctx) for r, ctx in captured.entries if r.levelno == logging.WARNING]
        assert sorted(ctx.document_id for _, ctx in warnings) == ["S1", "S2", "S3", "S4"]
        assert all(ctx.declaration_id == "5260250274-2024-03" for _, ctx in warnings)
        assert all(r.extra_fields["diagnostic"] == "unclassified_rate" for r, _ in warnings)
