"""API routes."""

from workforce_payroll.api.routes.health import router as health_router
from workforce_payroll.api.routes.imports import router as imports_router
from workforce_payroll.api.routes.movements import router as movements_router
from workforce_payroll.api.routes.periods import router as periods_router
from workforce_payroll.api.routes.time_entries import router as time_entries_router

__all__ = [
    "health_router",
    "imports_router",
    "movements_router",
    "periods_router",
    "time_entries_router",
]
