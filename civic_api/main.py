"""
Civic Governance API - Main Application Entry Point

FastAPI application for board governance: motions, votes, minutes and
board packet approvals.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from civic_api.core.config import settings
from civic_api.core.database import init_db
from civic_api.governance.errors import (
    AuthorizationCheckError,
    GovernanceError,
    describe_validation_errors,
)
from civic_api.governance.router import router as governance_router

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    # Startup
    logger.info(f"Starting {settings.app_name} ({settings.environment})")
    await init_db()
    yield
    # Shutdown
    logger.info(f"Stopping {settings.app_name}")


app = FastAPI(
    title=settings.app_name,
    description="Approval workflow for motions, meeting minutes and board packets",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

# CORS Middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# =============================================================================
# Exception Handlers
# =============================================================================


@app.exception_handler(GovernanceError)
async def governance_error_handler(request: Request, exc: GovernanceError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


@app.exception_handler(AuthorizationCheckError)
async def authorization_check_error_handler(
    request: Request, exc: AuthorizationCheckError
) -> JSONResponse:
    return JSONResponse(status_code=500, content={"error": "Authorization check failed"})


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed path parameters are INVALID (400)."""
    return JSONResponse(
        status_code=400, content={"error": describe_validation_errors(exc.errors())}
    )


# Health Check
@app.get("/health", tags=["system"])
async def health_check() -> dict[str, str]:
    """Health check endpoint."""
    return {"status": "healthy", "version": "0.1.0"}


# Include Routers
app.include_router(governance_router, prefix="/api/v1")


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("civic_api.main:app", host="0.0.0.0", port=8000, reload=True)
