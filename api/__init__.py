"""API Package.

FastAPI server for the JPK_V7M declaration compiler.
"""

from api.server import create_app, app

__all__ = [
    "create_app",
    "app",
]
