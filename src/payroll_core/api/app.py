"""FastAPI application factory."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from payroll_core import __version__
from payroll_core.api.routes import (
    catalog_router,
    compensation_router,
    filings_router,
    health_router,
    periods_router,
)
from payroll_core.calculators.statutory import StatutoryEvaluator
from payroll_core.config import Settings, get_settings
from payroll_core.database import dispose_db, init_db
from payroll_core.exceptions import (
    ComponentNotFound,
    ConcurrentModification,
    FilingError,
    FilingNotFound,
    InvalidTransitionError,
    OverlapWarning,
    PayrollError,
    PeriodNotEditable,
    PeriodNotFound,
    RunLocked,
    RunNotFound,
)
from payroll_core.logging_config import configure_logging
from payroll_core.services.filing_service import FilingGenerator
from payroll_core.services.period_service import PeriodLocks

logger = logging.getLogger(__name__)

NOT_FOUND_ERRORS = (PeriodNotFound, RunNotFound, ComponentNotFound, FilingNotFound)
CONFLICT_ERRORS = (
    InvalidTransitionError,
    RunLocked,
    PeriodNotEditable,
    ConcurrentModification,
    OverlapWarning,
    FilingError,
)


def status_for(exc: PayrollError) -> int:
    """HTTP status for a payroll error."""
    if isinstance(exc, NOT_FOUND_ERRORS):
        return status.HTTP_404_NOT_FOUND
    if isinstance(exc, CONFLICT_ERRORS):
        return status.HTTP_409_CONFLICT
    # Validation, missing compensation and evaluator failures.
    # Literal; the constant name differs across Starlette releases.
    return 422


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    configure_logging(app.state.settings.log_level)
    owns_db = app.state.session_factory is None
    if owns_db:
        _, app.state.session_factory = init_db()
    yield
    if owns_db:
        await dispose_db()


def create_app(
    settings: Settings | None = None,
    session_factory: async_sessionmaker[AsyncSession] | None = None,
    evaluator: StatutoryEvaluator | None = None,
    filing_generator: FilingGenerator | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Collaborators left as None get defaults: the global database, the
    wage-base evaluator and the totals filing generator.
    """
    app = FastAPI(
        title="Payroll Core API",
        description="Payroll period and run orchestration",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings or get_settings()
    app.state.session_factory = session_factory
    app.state.evaluator = evaluator
    app.state.filing_generator = filing_generator
    app.state.period_locks = PeriodLocks()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(PayrollError)
    async def payroll_error_handler(request: Request, exc: PayrollError) -> JSONResponse:
        """Map typed payroll errors to {detail, code, context}."""
        return JSONResponse(status_code=status_for(exc), content=exc.to_dict())

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Handle unexpected exceptions."""
        logger.exception("unhandled error path=%s", request.url.path)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "detail": "An unexpected error occurred",
                "code": "INTERNAL_ERROR",
            },
        )

    app.include_router(health_router)
    app.include_router(periods_router, prefix="/api/v1")
    app.include_router(filings_router, prefix="/api/v1")
    app.include_router(compensation_router, prefix="/api/v1")
    app.include_router(catalog_router, prefix="/api/v1")

    return app
