"""FastAPI main application entry point."""

import asyncio
import logging
from contextlib import asynccontextmanager, suppress

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from sanctuary.core.config import settings
from sanctuary.core.middleware import setup_middleware
from sanctuary.core.rate_limiter import build_rate_limiter, run_periodic_sweep
from sanctuary.core.exceptions import SanctuaryError, RateLimitExceededError

from sanctuary.api.auth import router as auth_router
from sanctuary.api.roles import router as roles_router
from sanctuary.api.permissions import router as permissions_router
from sanctuary.api.invites import router as invites_router
from sanctuary.api.admin import router as admin_router
from sanctuary.api.assist import router as assist_router

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger("sanctuary")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    logger.info("Starting %s", settings.APP_NAME)
    sweeper = asyncio.create_task(
        run_periodic_sweep(app.state.rate_limiter, settings.RATE_LIMIT_SWEEP_SECONDS)
    )

    yield

    sweeper.cancel()
    with suppress(asyncio.CancelledError):
        await sweeper
    logger.info("Shutting down %s", settings.APP_NAME)


app = FastAPI(
    title="Sanctuary Access API",
    description="Roles, permissions, and AI-assist throttling for the sanctuary platform",
    version="0.1.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# Middleware
setup_middleware(app)

# Rate limiting
app.state.rate_limiter = build_rate_limiter(settings)


@app.exception_handler(SanctuaryError)
async def sanctuary_exception_handler(request: Request, exc: SanctuaryError):
    headers = None
    if isinstance(exc, RateLimitExceededError) and exc.retry_after is not None:
        headers = {"Retry-After": str(exc.retry_after)}
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message},
        headers=headers,
    )


# Register routers
app.include_router(auth_router, prefix="/api")
app.include_router(roles_router, prefix="/api")
app.include_router(permissions_router, prefix="/api")
app.include_router(invites_router, prefix="/api")
app.include_router(admin_router, prefix="/api")
app.include_router(assist_router, prefix="/api")


@app.get("/")
async def root():
    return {
        "name": settings.APP_NAME,
        "version": "0.1.0",
        "docs": "/docs",
    }


@app.get("/api/health")
async def health():
    """Quick health check endpoint."""
    return {"status": "ok"}
