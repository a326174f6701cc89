"""Custom exceptions for DashPilot application."""

from typing import Optional


class SSRFProtectionError(ValueError):
    """Raised when a URL fails SSRF (Server-Side Request Forgery) validation.

    This exception indicates that a webhook URL was blocked for security reasons,
    either because it points to localhost or because its host resolves to a
    private, loopback, link-local or otherwise reserved address.

    Subclasses ValueError so API handlers surface it as a 400 response.
    """
    pass


class WebhookDeliveryError(RuntimeError):
    """Raised when a single webhook delivery attempt fails.

    Carries the HTTP status code (0 when no response was received) and the
    truncated response body or transport error text. The retry queue decides
    whether the attempt is re-scheduled or terminal.
    """

    def __init__(self, status_code: int, response_body: str, webhook_id: Optional[int] = None):
        self.status_code = status_code
        self.response_body = response_body
        self.webhook_id = webhook_id
        super().__init__(
            f"Webhook delivery failed with status {status_code}: {response_body}"
        )


class WordPressApiError(Exception):
    """Raised when a WordPress health endpoint cannot be queried or returns bad data."""

    def __init__(self, message: str, status_code: int = 0):
        self.status_code = status_code
        super().__init__(message)
