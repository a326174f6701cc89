"""Tests for Webhooks API (dashpilot/api/webhooks.py).

Tests webhook management endpoints:
- GET /api/v1/webhooks - List webhooks
- POST /api/v1/webhooks - Create webhook
- GET /api/v1/webhooks/{id} - Get webhook by ID
- PUT /api/v1/webhooks/{id} - Update webhook
- DELETE /api/v1/webhooks/{id} - Delete webhook
- POST /api/v1/webhooks/{id}/test - Test webhook delivery
- GET /api/v1/webhooks/{id}/logs - Delivery attempts
- POST /api/v1/webhooks/alerts/{event_type} - Queue alert event
"""

from fastapi import status
from unittest.mock import AsyncMock, patch

from dashpilot.models.webhook_log import WebhookLog
from dashpilot.schemas.webhook import WebhookTestResponse
from dashpilot.utils.encryption import encrypt_value


class TestListWebhooksEndpoint:
    """Test suite for GET /api/v1/webhooks endpoint."""

    async def test_list_webhooks_empty(self, client, db):
        response = await client.get("/api/v1/webhooks")

        assert response.status_code == status.HTTP_200_OK
        assert response.json() == []

    async def test_list_webhooks_by_owner(self, client, db, make_webhook):
        db.add_all([make_webhook(owner_id=1), make_webhook(owner_id=2), make_webhook(owner_id=2)])
        await db.commit()

        response = await client.get("/api/v1/webhooks", params={"owner_id": 2})

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert len(data) == 2
        assert all(w["owner_id"] == 2 for w in data)

    async def test_secret_never_returned(self, client, db, make_webhook):
        db.add(make_webhook(secret=encrypt_value("hidden")))
        await db.commit()

        response = await client.get("/api/v1/webhooks")

        webhook = response.json()[0]
        assert "secret" not in webhook
        assert webhook["has_secret"] is True


class TestCreateWebhookEndpoint:
    """Test suite for POST /api/v1/webhooks endpoint."""

    async def test_create_webhook_success(self, client, db, public_dns):
        response = await client.post(
            "/api/v1/webhooks",
            json={
                "owner_id": 1,
                "name": "Ops channel",
                "url": "https://hooks.example.com/endpoint",
                "secret": "my-secret-key-123",
                "events": ["alert_created", "alert_resolved"],
            },
        )

        assert response.status_code == status.HTTP_201_CREATED
        data = response.json()
        assert data["name"] == "Ops channel"
        assert data["events"] == ["alert_created", "alert_resolved"]
        assert data["is_active"] is True
        assert data["has_secret"] is True

    async def test_create_webhook_ssrf_localhost(self, client, db):
        response = await client.post(
            "/api/v1/webhooks",
            json={"owner_id": 1, "url": "http://localhost:8080/hook", "events": ["*"]},
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert "private/internal" in response.json()["detail"]

    async def test_create_webhook_ssrf_private_ip(self, client, db):
        response = await client.post(
            "/api/v1/webhooks",
            json={"owner_id": 1, "url": "http://192.168.1.20/hook", "events": ["*"]},
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    async def test_create_webhook_invalid_event(self, client, db):
        response = await client.post(
            "/api/v1/webhooks",
            json={"owner_id": 1, "url": "https://hooks.example.com/x", "events": ["site_deleted"]},
        )

        assert response.status_code == 422

    async def test_create_webhook_invalid_scheme(self, client, db):
        response = await client.post(
            "/api/v1/webhooks",
            json={"owner_id": 1, "url": "ftp://hooks.example.com/x", "events": ["*"]},
        )

        assert response.status_code == 422

    async def test_create_webhook_requires_events(self, client, db):
        response = await client.post(
            "/api/v1/webhooks",
            json={"owner_id": 1, "url": "https://hooks.example.com/x", "events": []},
        )

        assert response.status_code == 422


class TestWebhookByIdEndpoints:
    """Test suite for GET/PUT/DELETE /api/v1/webhooks/{id}."""

    async def test_get_webhook(self, client, db, make_webhook):
        webhook = make_webhook(name="Primary")
        db.add(webhook)
        await db.commit()

        response = await client.get(f"/api/v1/webhooks/{webhook.id}")

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["name"] == "Primary"

    async def test_get_webhook_not_found(self, client, db):
        response = await client.get("/api/v1/webhooks/999")
        assert response.status_code == status.HTTP_404_NOT_FOUND

    async def test_update_webhook(self, client, db, make_webhook):
        webhook = make_webhook()
        db.add(webhook)
        await db.commit()

        response = await client.put(
            f"/api/v1/webhooks/{webhook.id}",
            json={"is_active": False, "events": ["*"]},
        )

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["is_active"] is False
        assert data["events"] == ["*"]

    async def test_update_webhook_ssrf(self, client, db, make_webhook):
        webhook = make_webhook()
        db.add(webhook)
        await db.commit()

        response = await client.put(
            f"/api/v1/webhooks/{webhook.id}",
            json={"url": "http://127.0.0.1:5000/admin"},
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    async def test_update_webhook_not_found(self, client, db):
        response = await client.put("/api/v1/webhooks/999", json={"name": "x"})
        assert response.status_code == status.HTTP_404_NOT_FOUND

    async def test_delete_webhook(self, client, db, make_webhook):
        webhook = make_webhook()
        db.add(webhook)
        await db.commit()

        response = await client.delete(f"/api/v1/webhooks/{webhook.id}")
        assert response.status_code == status.HTTP_204_NO_CONTENT

        response = await client.get(f"/api/v1/webhooks/{webhook.id}")
        assert response.status_code == status.HTTP_404_NOT_FOUND

    async def test_delete_webhook_not_found(self, client, db):
        response = await client.delete("/api/v1/webhooks/999")
        assert response.status_code == status.HTTP_404_NOT_FOUND


class TestTestWebhookEndpoint:
    """Test suite for POST /api/v1/webhooks/{id}/test."""

    async def test_test_webhook(self, client, db, make_webhook):
        webhook = make_webhook()
        db.add(webhook)
        await db.commit()

        with patch(
            "dashpilot.api.webhooks.WebhookService.test_webhook",
            new=AsyncMock(
                return_value=WebhookTestResponse(
                    success=True, status_code=200, response_time_ms=12.5, message="Test successful (HTTP 200)"
                )
            ),
        ):
            response = await client.post(f"/api/v1/webhooks/{webhook.id}/test")

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["success"] is True

    async def test_test_webhook_not_found(self, client, db):
        response = await client.post("/api/v1/webhooks/999/test")
        assert response.status_code == status.HTTP_404_NOT_FOUND


class TestWebhookLogsEndpoint:
    """Test suite for GET /api/v1/webhooks/{id}/logs."""

    async def test_logs_newest_first(self, client, db, make_webhook):
        webhook = make_webhook()
        db.add(webhook)
        await db.commit()
        for attempt in (1, 2, 3):
            db.add(
                WebhookLog(
                    webhook_id=webhook.id,
                    event_type="alert_created",
                    payload={"n": attempt},
                    response_status=500,
                    response_body="err",
                    attempt_number=attempt,
                    success=False,
                    error_message="err",
                )
            )
        await db.commit()

        response = await client.get(f"/api/v1/webhooks/{webhook.id}/logs", params={"limit": 2})

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert [log["attempt_number"] for log in data] == [3, 2]

    async def test_logs_not_found(self, client, db):
        response = await client.get("/api/v1/webhooks/999/logs")
        assert response.status_code == status.HTTP_404_NOT_FOUND


class TestAlertEventEndpoint:
    """Test suite for POST /api/v1/webhooks/alerts/{event_type}."""

    async def test_queues_subscribed_webhooks(self, client, db, make_webhook):
        db.add_all([make_webhook(events=["alert_created"]), make_webhook(events=["alert_resolved"])])
        await db.commit()

        with patch("dashpilot.services.webhook_service.webhook_queue") as mock_queue:
            response = await client.post(
                "/api/v1/webhooks/alerts/alert_created",
                json={
                    "id": 10,
                    "title": "Backup missing",
                    "type": "backup",
                    "severity": "medium",
                    "message": "No backup in 48h",
                    "site": {"id": 1, "name": "Shop", "url": "https://shop.example.com"},
                },
            )

        assert response.status_code == status.HTTP_202_ACCEPTED
        assert response.json()["queued"] == 1
        mock_queue.enqueue.assert_called_once()

    async def test_unknown_event_rejected(self, client, db):
        response = await client.post(
            "/api/v1/webhooks/alerts/site_deleted",
            json={"id": 1, "title": "x", "type": "x", "site": {"id": 1, "name": "s", "url": "u"}},
        )
        assert response.status_code == 422
