"""Prometheus metrics for DashPilot."""

from prometheus_client import (
    Counter,
    Gauge,
    Histogram,
    Info,
    generate_latest,
    CONTENT_TYPE_LATEST,
)
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from dashpilot.models.site import Site
from dashpilot.models.webhook import Webhook

# Application info
app_info = Info("dashpilot_app", "DashPilot application information")
app_info.info({"version": "1.0.0", "name": "DashPilot"})

# Webhook metrics
webhooks_total = Gauge("dashpilot_webhooks_total", "Configured webhook endpoints")
webhooks_active = Gauge("dashpilot_webhooks_active", "Active webhook endpoints")
webhook_deliveries_total = Counter(
    "dashpilot_webhook_deliveries_total", "Webhook delivery attempts", ["result"]
)
webhook_terminal_failures_total = Counter(
    "dashpilot_webhook_terminal_failures_total",
    "Webhook deliveries that exhausted every retry attempt",
)
webhook_delivery_duration = Histogram(
    "dashpilot_webhook_delivery_duration_seconds",
    "Webhook HTTP request duration",
    buckets=[0.1, 0.25, 0.5, 1, 2.5, 5, 10],
)

# Site health metrics
sites_by_status = Gauge("dashpilot_sites_by_status", "Sites grouped by status", ["status"])
health_checks_total = Counter(
    "dashpilot_health_checks_total", "Site health checks performed", ["result"]
)


async def collect_metrics(db: AsyncSession) -> None:
    """Refresh gauge metrics from the database.

    Args:
        db: Database session
    """
    total = await db.scalar(select(func.count()).select_from(Webhook))
    webhooks_total.set(total or 0)

    active = await db.scalar(
        select(func.count()).select_from(Webhook).where(Webhook.is_active.is_(True))
    )
    webhooks_active.set(active or 0)

    result = await db.execute(select(Site.status, func.count()).group_by(Site.status))
    for status, count in result.all():
        sites_by_status.labels(status=status).set(count)


def get_metrics() -> bytes:
    """Get Prometheus metrics in text format."""
    return generate_latest()


def get_content_type() -> str:
    """Get Prometheus content type."""
    return CONTENT_TYPE_LATEST
