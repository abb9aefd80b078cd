"""
Observability Module for the declaration compiler

Provides:
- Structured logging with correlation IDs (declaration, period, section, document)
"""

from core.observability.logging import (
    get_logger,
    configure_logging,
    configure_from_settings,
    CorrelationContext,
    get_correlation_context,
    with_correlation,
)

__all__ = [
    # Logging
    "get_logger",
    "configure_logging",
    "configure_from_settings",
    "CorrelationContext",
    "get_correlation_context",
    "with_correlation",
]
