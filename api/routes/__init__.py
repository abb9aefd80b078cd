"""API Routes Package."""

from api.routes import health, declarations

__all__ = [
    "health",
    "declarations",
]
