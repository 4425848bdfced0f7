"""FastAPI application factory."""

import logging
from contextlib import asynccontextmanager
from collections.abc import AsyncGenerator

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from barangay_payroll import __version__
from barangay_payroll.api.routes import health_router, payroll_router
from barangay_payroll.database import dispose_db, init_db
from barangay_payroll.exceptions import (
    AuthorizationError,
    ConcurrentReleaseError,
    EntryNotFoundError,
    PayrollError,
    SnapshotMismatchError,
)
from barangay_payroll.logging_config import configure_logging

logger = logging.getLogger(__name__)

# Most specific first
ERROR_STATUS: list[tuple[type[PayrollError], int]] = [
    (AuthorizationError, status.HTTP_403_FORBIDDEN),
    (EntryNotFoundError, status.HTTP_404_NOT_FOUND),
    (ConcurrentReleaseError, status.HTTP_409_CONFLICT),
    (SnapshotMismatchError, status.HTTP_409_CONFLICT),
]


def status_for(exc: PayrollError) -> int:
    """HTTP status for an expected payroll failure."""
    for error_type, code in ERROR_STATUS:
        if isinstance(exc, error_type):
            return code
    return status.HTTP_400_BAD_REQUEST


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    # Startup
    init_db()
    yield
    # Shutdown
    await dispose_db()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    configure_logging()

    app = FastAPI(
        title="Barangay Payroll API",
        description="Payroll computation and release engine for barangay personnel",
        version=__version__,
        lifespan=lifespan,
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Configure appropriately for production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Exception handlers
    @app.exception_handler(PayrollError)
    async def payroll_error_handler(request: Request, exc: PayrollError) -> JSONResponse:
        """Expected failures surface with their message and code."""
        return JSONResponse(
            status_code=status_for(exc),
            content={"detail": exc.message, "code": exc.code, "context": exc.context},
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        """Handle unexpected exceptions."""
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "detail": "An unexpected error occurred",
                "code": "INTERNAL_ERROR",
            },
        )

    # Include routers
    app.include_router(health_router)
    app.include_router(payroll_router, prefix="/api/v1")

    return app


# Default app instance for uvicorn
app = create_app()
