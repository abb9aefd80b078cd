"""Runtime settings for the declaration compiler.

Reads configuration from environment variables. A ``.env`` file at the
repository root is loaded first when present.

Usage:
    from core.config import get_settings

    settings = get_settings()
    settings.amount_tolerance  # Decimal("0.01")
"""

import os
from dataclasses import dataclass
from decimal import Decimal
from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv

env_path = Path(__file__).resolve().parents[1] / ".env"
if env_path.exists():
    load_dotenv(env_path)


# =============================================================================
# Defaults
# =============================================================================

DEFAULT_SYSTEM_NAME = "temporal-jpk"
DEFAULT_SCHEMA_VERSION = "3"
DEFAULT_AMOUNT_TOLERANCE = "0.01"
DEFAULT_TAX_OFFICE_CODE = "0000"
DEFAULT_ROW_WORKERS = 4
DEFAULT_ROW_BATCH_SIZE = 200


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {value!r}")


@dataclass(frozen=True)
class Settings:
    """Resolved settings.

    Attributes:
        system_name: Value written to NazwaSystemu
        schema_version: Declaration schema version used when a request names none
        amount_tolerance: Maximum accepted difference between compared amounts
        default_tax_office_code: KodUrzedu used when the subject has none
        row_workers: Thread pool size for per-document row building
        row_batch_size: Documents per build_rows activity in the workflow
        log_level: Logging level name
        log_json: Emit JSON logs instead of human-readable lines
    """
    system_name: str = DEFAULT_SYSTEM_NAME
    schema_version: str = DEFAULT_SCHEMA_VERSION
    amount_tolerance: Decimal = Decimal(DEFAULT_AMOUNT_TOLERANCE)
    default_tax_office_code: str = DEFAULT_TAX_OFFICE_CODE
    row_workers: int = DEFAULT_ROW_WORKERS
    row_batch_size: int = DEFAULT_ROW_BATCH_SIZE
    log_level: str = "INFO"
    log_json: bool = False


def load_settings() -> Settings:
    """Build Settings from the current environment.

    Raises:
        ValueError: If a numeric variable cannot be parsed
    """
    tolerance = os.getenv("JPK_AMOUNT_TOLERANCE", DEFAULT_AMOUNT_TOLERANCE)
    try:
        amount_tolerance = Decimal(tolerance.strip())
    except ArithmeticError:
        raise ValueError(f"JPK_AMOUNT_TOLERANCE must be a decimal, got {tolerance!r}")

    row_workers = _env_int("JPK_ROW_WORKERS", DEFAULT_ROW_WORKERS)
    row_batch_size = _env_int("JPK_ROW_BATCH_SIZE", DEFAULT_ROW_BATCH_SIZE)
    if row_workers < 1 or row_batch_size < 1:
        raise ValueError("JPK_ROW_WORKERS and JPK_ROW_BATCH_SIZE must be positive")

    return Settings(
        system_name=os.getenv("JPK_SYSTEM_NAME", DEFAULT_SYSTEM_NAME),
        schema_version=os.getenv("JPK_SCHEMA_VERSION", DEFAULT_SCHEMA_VERSION),
        amount_tolerance=amount_tolerance,
        default_tax_office_code=os.getenv("JPK_DEFAULT_TAX_OFFICE_CODE", DEFAULT_TAX_OFFICE_CODE),
        row_workers=row_workers,
        row_batch_size=row_batch_size,
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        log_json=_env_bool("LOG_JSON"),
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Cached settings for the process."""
    return load_settings()
