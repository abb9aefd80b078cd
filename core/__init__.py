"""Core module - canonical inputs, configuration and observability.

This module holds the normalized source-document models handed to the
declaration compiler, the settings layer and structured logging. It knows
nothing about any particular declaration schema; schema tables live in
/jpk_engine/.
"""

__version__ = "1.0.0"
