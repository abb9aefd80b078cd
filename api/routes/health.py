"""Health check endpoints."""

from datetime import datetime, timezone
from typing import Dict, List

from fastapi import APIRouter, Response
from pydantic import BaseModel

from core import __version__
from core.config import get_settings
from jpk_engine.schema import SCHEMA_VERSIONS


router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    timestamp: str
    version: str
    schema_versions: List[str]
    services: Dict[str, str]


@router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Health check endpoint."""
    settings = get_settings()
    return HealthResponse(
        status="healthy",
        timestamp=datetime.now(timezone.utc).isoformat(),
        version=__version__,
        schema_versions=sorted(SCHEMA_VERSIONS),
        services={
            "api": "up",
            "engine": "up" if settings.schema_version in SCHEMA_VERSIONS else "misconfigured",
        }
    )


@router.get("/ready")
async def readiness_check() -> Dict[str, str]:
    """Readiness probe for Kubernetes."""
    return {"status": "ready"}


@router.get("/live")
async def liveness_check(response: Response) -> Dict[str, str]:
    """Liveness probe for Kubernetes."""
    return {"status": "alive"}
