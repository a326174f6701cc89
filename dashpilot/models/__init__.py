"""Database models for DashPilot."""

from dashpilot.models.setting import Setting
from dashpilot.models.webhook import Webhook
from dashpilot.models.webhook_log import WebhookLog
from dashpilot.models.site import Site
from dashpilot.models.site_check import SiteCheck
from dashpilot.models.scheduler_lease import SchedulerLease

__all__ = [
    "Setting",
    "Webhook",
    "WebhookLog",
    "Site",
    "SiteCheck",
    "SchedulerLease",
]
