"""FastAPI server for the JPK_V7M declaration compiler.

Main entry point for the API server.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api.routes import health, declarations
from core import __version__
from core.observability.logging import get_logger
from jpk_engine.errors import DeclarationError, MissingRequiredSubjectDataError

logger = get_logger("api.server")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    logger.info("Declaration API starting up")

    yield

    logger.info("Declaration API shutting down")


async def declaration_error_handler(request: Request, exc: DeclarationError) -> JSONResponse:
    """Fatal input errors are the caller's to fix: 422 with the error type."""
    body = {"error": type(exc).__name__, "detail": str(exc)}
    if isinstance(exc, MissingRequiredSubjectDataError):
        body["field"] = exc.field

    logger.warning(f"Declaration rejected: {exc}", extra_fields={"error": body["error"], "path": request.url.path})
    return JSONResponse(status_code=422, content=body)


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="JPK_V7M Declaration API",
        description="Compiles periodic VAT declarations (JPK_V7M) from finalized sale and purchase documents",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Configure for production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(DeclarationError, declaration_error_handler)

    # Include routers
    app.include_router(health.router, tags=["Health"])
    app.include_router(declarations.router, prefix="/declarations", tags=["Declarations"])

    return app


# Default app instance
app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("api.server:app", host="0.0.0.0", port=8000, reload=True)
