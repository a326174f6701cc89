"""API routers for DashPilot."""

from fastapi import APIRouter
from dashpilot.api import webhooks

api_router = APIRouter(prefix="/api/v1")

api_router.include_router(webhooks.router, prefix="/webhooks", tags=["webhooks"])

__all__ = ["api_router"]
