"""API routes."""

from .applications import router as applications_router
from .earnings import router as earnings_router
from .jobs import router as jobs_router
from .payments import router as payments_router
from .reviews import router as reviews_router
from .tasks import router as tasks_router

__all__ = [
    "jobs_router",
    "applications_router",
    "tasks_router",
    "payments_router",
    "earnings_router",
    "reviews_router",
]
