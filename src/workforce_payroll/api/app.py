"""FastAPI application factory."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from workforce_payroll import __version__
from workforce_payroll.api.routes import (
    health_router,
    imports_router,
    movements_router,
    periods_router,
    time_entries_router,
)
from workforce_payroll.api.schemas import BulkTransitionResponse
from workforce_payroll.config import configure_logging
from workforce_payroll.database import dispose_db, init_db
from workforce_payroll.errors import (
    InvalidTransitionError,
    NotFoundError,
    PartialBatchFailure,
    PayrollError,
    PeriodLockedError,
    PermissionDeniedError,
    SequenceViolationError,
    ValidationError,
)
from workforce_payroll.services.time_entry_service import BulkTransitionResult

logger = logging.getLogger(__name__)

# Most specific first; PayrollError catches the rest
_STATUS_BY_ERROR: list[tuple[type[PayrollError], int]] = [
    (ValidationError, 422),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (PermissionDeniedError, status.HTTP_403_FORBIDDEN),
    (PeriodLockedError, status.HTTP_409_CONFLICT),
    (SequenceViolationError, status.HTTP_409_CONFLICT),
    (InvalidTransitionError, status.HTTP_409_CONFLICT),
    (PartialBatchFailure, status.HTTP_207_MULTI_STATUS),
]


def status_for(exc: PayrollError) -> int:
    for error_type, code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return code
    return status.HTTP_400_BAD_REQUEST


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    # Startup
    configure_logging()
    init_db()
    yield
    # Shutdown
    await dispose_db()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Workforce Payroll API",
        description="Pay periods, movements, time entries and spreadsheet reconciliation",
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
        """Map domain errors to HTTP responses."""
        code = status_for(exc)
        if isinstance(exc, PartialBatchFailure) and isinstance(exc.result, BulkTransitionResult):
            body = BulkTransitionResponse.from_result(exc.result).model_dump(mode="json")
            body.update({"detail": str(exc), "code": exc.code})
            return JSONResponse(status_code=code, content=body)

        content = {"detail": str(exc), "code": exc.code}
        field = getattr(exc, "field", None)
        if field:
            content["field"] = field
        if isinstance(exc, PermissionDeniedError):
            logger.warning("Denied %s %s: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=code, content=jsonable_encoder(content))

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
    app.include_router(periods_router, prefix="/api/v1")
    app.include_router(movements_router, prefix="/api/v1")
    app.include_router(time_entries_router, prefix="/api/v1")
    app.include_router(imports_router, prefix="/api/v1")

    return app


# Default app instance for uvicorn
app = create_app()
