"""Gigmarket Backend API - FastAPI application."""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded

from .config import get_settings
from .database import Controller, get_lifecycle_controller
from .errors import error_body, register_exception_handlers
from .logging_config import setup_logging
from .rate_limit import limiter
from .routes import (
    applications_router,
    earnings_router,
    jobs_router,
    payments_router,
    reviews_router,
    tasks_router,
)

VERSION = "0.1.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    # Startup
    settings = get_settings()
    logger = setup_logging()
    logger.info(f"Starting Gigmarket Backend API (debug={settings.debug}, storage={settings.storage_backend})")
    get_lifecycle_controller(settings)
    yield
    # Shutdown
    logger.info("Shutting down Gigmarket Backend API")


app = FastAPI(
    title="Gigmarket Backend API",
    description="Job lifecycle API for the gig marketplace",
    version=VERSION,
    lifespan=lifespan,
)


async def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        content=error_body(f"Rate limit exceeded: {exc.detail}", "rate_limited"),
    )


# Rate limiting
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
register_exception_handlers(app)

# CORS middleware
settings = get_settings()
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(jobs_router)
app.include_router(applications_router)
app.include_router(tasks_router)
app.include_router(payments_router)
app.include_router(earnings_router)
app.include_router(reviews_router)


@app.get("/")
async def root():
    """Service info."""
    return {
        "service": "gigmarket-backend",
        "version": VERSION,
        "status": "ok",
    }


@app.get("/health")
def health(controller: Controller):
    """Detailed health check with actual storage verification."""
    storage_status = "disconnected"
    try:
        if controller.storage.ping():
            storage_status = "connected"
    except Exception as e:
        storage_status = f"error: {str(e)[:50]}"

    overall_status = "healthy" if storage_status == "connected" else "degraded"

    return {
        "status": overall_status,
        "storage": storage_status,
    }
