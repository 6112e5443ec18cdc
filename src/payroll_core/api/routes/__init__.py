"""API routes."""

from payroll_core.api.routes.catalog import router as catalog_router
from payroll_core.api.routes.compensation import router as compensation_router
from payroll_core.api.routes.filings import router as filings_router
from payroll_core.api.routes.health import router as health_router
from payroll_core.api.routes.periods import router as periods_router

__all__ = [
    "catalog_router",
    "compensation_router",
    "filings_router",
    "health_router",
    "periods_router",
]
