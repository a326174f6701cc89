"""DashPilot - Webhook delivery and site health monitoring service."""

import logging
import os
import tomllib
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

from dashpilot.api import api_router
from dashpilot.db import AsyncSessionLocal, init_db
from dashpilot.services.metrics import collect_metrics, get_content_type, get_metrics
from dashpilot.services.scheduler import scheduler_service
from dashpilot.services.settings_service import SettingsService
from dashpilot.services.webhook_queue import webhook_queue
from dashpilot.utils.encryption import ENCRYPTION_KEY_ENV, is_encryption_configured


def get_version() -> str:
    """Read version from pyproject.toml (single source of truth)."""
    try:
        # pyproject.toml sits next to the dashpilot/ package
        pyproject_path = Path(__file__).parent.resolve().parent / "pyproject.toml"

        if not pyproject_path.exists():
            logger.warning(f"pyproject.toml not found at {pyproject_path}")
            return "0.0.0-dev"

        with open(pyproject_path, "rb") as f:
            data = tomllib.load(f)
        return data["project"]["version"]
    except (FileNotFoundError, KeyError) as e:
        logger.warning(f"Could not read version from pyproject.toml: {e}")
        return "0.0.0-dev"


# Configure logging
logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO"),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: startup and shutdown."""
    logger.info("Starting DashPilot...")

    if not is_encryption_configured():
        logger.warning(
            f"{ENCRYPTION_KEY_ENV} is not set - webhook secrets and WordPress API keys "
            "cannot be stored until an encryption key is configured"
        )

    await init_db()
    logger.info("Database initialized")

    async with AsyncSessionLocal() as db:
        await SettingsService.init_defaults(db)
    logger.info("Default settings initialized")

    webhook_queue.start()

    # Start background scheduler for site health checks
    await scheduler_service.start()

    yield

    await scheduler_service.stop()
    webhook_queue.stop()
    logger.info("Shutting down DashPilot...")


app = FastAPI(
    title="DashPilot",
    description="Signed webhook delivery with retries and scheduled site health checks",
    version=get_version(),
    lifespan=lifespan,
)

# Default CORS origins (localhost development ports)
DEFAULT_CORS_ORIGINS = [
    "http://localhost:3000",
    "http://localhost:5173",
    "http://localhost:8000",
    "http://127.0.0.1:3000",
    "http://127.0.0.1:5173",
    "http://127.0.0.1:8000",
]

cors_origins_env = os.getenv("CORS_ORIGINS")
if cors_origins_env:
    if cors_origins_env == "*":
        cors_origins = ["*"]
        logger.warning("CORS configured with wildcard (*) - not recommended for production")
    else:
        cors_origins = [origin.strip() for origin in cors_origins_env.split(",") if origin.strip()]
        logger.info(f"CORS origins from environment: {cors_origins}")
else:
    cors_origins = DEFAULT_CORS_ORIGINS

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    # Cannot use allow_credentials=True with allow_origins=["*"]
    allow_credentials=cors_origins != ["*"],
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "Accept"],
)


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception):
    """Generic exception handler to prevent stack trace exposure.

    In DEBUG mode (DASHPILOT_DEBUG=true), detailed errors are shown for development.
    All errors are still logged internally with full details.
    """
    logger.error(
        f"Unhandled exception: {type(exc).__name__}: {exc}",
        exc_info=True,
        extra={
            "path": request.url.path,
            "method": request.method,
        },
    )

    if os.getenv("DASHPILOT_DEBUG", "false").lower() == "true":
        return JSONResponse(
            status_code=500,
            content={"detail": str(exc), "type": type(exc).__name__, "debug": True},
        )

    return JSONResponse(
        status_code=500,
        content={"detail": "An internal error occurred. Please contact support if this persists."},
    )


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "service": "dashpilot",
        "scheduler": scheduler_service.get_status(),
    }


@app.get("/metrics")
async def metrics():
    """Prometheus metrics endpoint."""
    async with AsyncSessionLocal() as db:
        await collect_metrics(db)

    return Response(content=get_metrics(), media_type=get_content_type())


app.include_router(api_router)


@app.get("/")
async def root():
    return {
        "message": "DashPilot API",
        "docs": "/docs",
        "health": "/health",
    }
