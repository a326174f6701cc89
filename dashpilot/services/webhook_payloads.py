"""Payload builders for alert webhooks.

Slack and Discord incoming webhooks get their native message formats; any
other endpoint receives the generic JSON document.
"""

from datetime import UTC, datetime
from typing import Any, Dict

from dashpilot.schemas.webhook import AlertEvent

SLACK_COLORS = {
    "critical": "#dc2626",
    "high": "#f59e0b",
    "medium": "#eab308",
}
SLACK_DEFAULT_COLOR = "#6b7280"

DISCORD_COLORS = {
    "critical": 15158332,  # Red
    "high": 16776960,  # Yellow
    "medium": 16776960,  # Yellow
}
DISCORD_DEFAULT_COLOR = 9807270  # Gray

RESOLVED_EMOJI = "✅"
ALERT_EMOJI = "\U0001f6a8"


def _isoformat(value: datetime | None) -> str | None:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.isoformat()


def _severity_label(severity: str | None) -> str:
    severity = severity or "low"
    return severity[:1].upper() + severity[1:]


def is_slack_url(url: str) -> bool:
    return "hooks.slack.com" in url


def is_discord_url(url: str) -> bool:
    return "discord.com" in url or "discordapp.com" in url


def build_slack_payload(event_type: str, alert: AlertEvent) -> Dict[str, Any]:
    """Build a Slack incoming-webhook message with a colored attachment."""
    emoji = RESOLVED_EMOJI if event_type == "alert_resolved" else ALERT_EMOJI
    created_at = alert.created_at or datetime.now(UTC)

    return {
        "text": f"{emoji} Alert: {alert.site.name}",
        "attachments": [
            {
                "color": SLACK_COLORS.get(alert.severity, SLACK_DEFAULT_COLOR),
                "fields": [
                    {"title": "Type", "value": alert.type or "General", "short": True},
                    {
                        "title": "Severity",
                        "value": _severity_label(alert.severity),
                        "short": True,
                    },
                    {"title": "Message", "value": alert.message, "short": False},
                    {"title": "Site", "value": alert.site.url or "N/A", "short": False},
                ],
                "ts": int(created_at.timestamp()),
            }
        ],
    }


def build_discord_payload(event_type: str, alert: AlertEvent) -> Dict[str, Any]:
    """Build a Discord webhook message with a single embed."""
    if event_type == "alert_resolved":
        title = f"{RESOLVED_EMOJI} Alert Resolved: {alert.site.name}"
    else:
        title = f"{ALERT_EMOJI} Alert: {alert.site.name}"

    return {
        "embeds": [
            {
                "title": title,
                "description": alert.message,
                "color": DISCORD_COLORS.get(alert.severity, DISCORD_DEFAULT_COLOR),
                "fields": [
                    {"name": "Type", "value": alert.type or "General", "inline": True},
                    {
                        "name": "Severity",
                        "value": _severity_label(alert.severity),
                        "inline": True,
                    },
                    {"name": "Site URL", "value": alert.site.url or "N/A", "inline": False},
                ],
                "timestamp": _isoformat(alert.created_at) or datetime.now(UTC).isoformat(),
            }
        ]
    }


def build_generic_payload(event_type: str, alert: AlertEvent) -> Dict[str, Any]:
    """Build the JSON document sent to custom endpoints."""
    return {
        "event": event_type,
        "timestamp": datetime.now(UTC).isoformat(),
        "alert": {
            "id": alert.id,
            "title": alert.title,
            "type": alert.type,
            "severity": alert.severity,
            "message": alert.message,
            "status": alert.status,
            "is_resolved": alert.is_resolved,
            "created_at": _isoformat(alert.created_at),
            "resolved_at": _isoformat(alert.resolved_at),
        },
        "site": {
            "id": alert.site.id,
            "name": alert.site.name,
            "url": alert.site.url,
        },
    }


def build_alert_payload(event_type: str, alert: AlertEvent, url: str) -> Dict[str, Any]:
    """Pick the payload format for a webhook URL.

    Args:
        event_type: alert_created or alert_resolved
        alert: Alert being delivered
        url: Webhook endpoint URL

    Returns:
        JSON-serializable payload
    """
    if is_slack_url(url):
        return build_slack_payload(event_type, alert)
    if is_discord_url(url):
        return build_discord_payload(event_type, alert)
    return build_generic_payload(event_type, alert)
