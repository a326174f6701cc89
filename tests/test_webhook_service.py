"""Tests for webhook management and fan-out (dashpilot/services/webhook_service.py)."""

import asyncio
import time
from unittest.mock import patch

import httpx
import pytest
from sqlalchemy import select

from dashpilot.exceptions import SSRFProtectionError
from dashpilot.models.webhook import Webhook
from dashpilot.models.webhook_log import WebhookLog
from dashpilot.schemas.webhook import AlertEvent, SiteSummary, WebhookCreate, WebhookUpdate
from dashpilot.services.webhook_delivery import generate_signature
from dashpilot.services.webhook_service import WebhookService
from dashpilot.utils.encryption import decrypt_value


@pytest.fixture
def alert():
    return AlertEvent(
        id=1,
        title="SSL expiring",
        type="ssl",
        severity="high",
        message="Certificate expires in 3 days",
        site=SiteSummary(id=3, name="Blog", url="https://blog.example.com"),
    )


class TestCreateWebhook:
    async def test_create_encrypts_secret(self, db, public_dns):
        created = await WebhookService.create_webhook(
            db,
            WebhookCreate(
                owner_id=5,
                name="Ops",
                url="https://hooks.example.com/endpoint",
                secret="super-secret",
                events=["alert_created"],
            ),
        )

        assert created.owner_id == 5
        assert created.has_secret is True
        assert created.url == "https://hooks.example.com/endpoint"

        stored = await db.get(Webhook, created.id)
        assert stored.secret != "super-secret"
        assert decrypt_value(stored.secret) == "super-secret"

    async def test_create_without_secret(self, db, public_dns):
        created = await WebhookService.create_webhook(
            db,
            WebhookCreate(owner_id=1, url="https://hooks.example.com/x", events=["*"]),
        )
        assert created.has_secret is False

    async def test_create_rejects_localhost(self, db):
        with pytest.raises(SSRFProtectionError):
            await WebhookService.create_webhook(
                db,
                WebhookCreate(owner_id=1, url="http://localhost:9000/hook", events=["*"]),
            )

        result = await db.execute(select(Webhook))
        assert result.scalars().all() == []

    async def test_create_rejects_host_resolving_to_private_ip(self, db):
        with patch(
            "socket.getaddrinfo", return_value=[(2, 1, 6, "", ("10.0.0.8", 0))]
        ):
            with pytest.raises(SSRFProtectionError, match="10.0.0.8"):
                await WebhookService.create_webhook(
                    db,
                    WebhookCreate(owner_id=1, url="https://intranet.example.com/hook", events=["*"]),
                )

    async def test_slow_dns_does_not_block_event_loop(self, db):
        def slow_getaddrinfo(*args, **kwargs):
            time.sleep(0.5)
            return [(2, 1, 6, "", ("93.184.216.34", 0))]

        ticks = 0
        stop = asyncio.Event()

        async def ticker():
            nonlocal ticks
            while not stop.is_set():
                ticks += 1
                await asyncio.sleep(0.05)

        task = asyncio.create_task(ticker())
        with patch("socket.getaddrinfo", side_effect=slow_getaddrinfo):
            await WebhookService.create_webhook(
                db,
                WebhookCreate(owner_id=1, url="https://slow-dns.example.com/hook", events=["*"]),
            )
        stop.set()
        await task

        assert ticks >= 5


class TestUpdateWebhook:
    async def test_unchanged_url_skips_dns(self, db, make_webhook):
        webhook = make_webhook(url="https://hooks.example.com/endpoint")
        db.add(webhook)
        await db.commit()

        with patch("socket.getaddrinfo") as mock_dns:
            updated = await WebhookService.update_webhook(
                db, webhook.id, WebhookUpdate(url="https://hooks.example.com/endpoint", name="Renamed")
            )

        mock_dns.assert_not_called()
        assert updated.name == "Renamed"

    async def test_changed_url_is_validated(self, db, make_webhook):
        webhook = make_webhook()
        db.add(webhook)
        await db.commit()

        with pytest.raises(SSRFProtectionError):
            await WebhookService.update_webhook(
                db, webhook.id, WebhookUpdate(url="http://169.254.169.254/latest")
            )

    async def test_empty_secret_clears_signing(self, db, make_webhook):
        webhook = make_webhook(secret="encrypted")
        db.add(webhook)
        await db.commit()

        updated = await WebhookService.update_webhook(db, webhook.id, WebhookUpdate(secret=""))
        assert updated.has_secret is False

    async def test_update_missing_returns_none(self, db):
        assert await WebhookService.update_webhook(db, 404, WebhookUpdate(name="x")) is None


class TestListAndDelete:
    async def test_list_filters_by_owner(self, db, make_webhook):
        db.add_all([make_webhook(owner_id=1), make_webhook(owner_id=1), make_webhook(owner_id=2)])
        await db.commit()

        assert len(await WebhookService.list_webhooks(db)) == 3
        assert len(await WebhookService.list_webhooks(db, owner_id=1)) == 2
        assert len(await WebhookService.list_webhooks(db, owner_id=3)) == 0

    async def test_delete_removes_logs(self, db, make_webhook):
        webhook = make_webhook()
        db.add(webhook)
        await db.commit()
        db.add(
            WebhookLog(
                webhook_id=webhook.id,
                event_type="alert_created",
                payload={},
                response_status=200,
                attempt_number=1,
                success=True,
            )
        )
        await db.commit()

        assert await WebhookService.delete_webhook(db, webhook.id) is True
        assert await WebhookService.get_webhook(db, webhook.id) is None
        result = await db.execute(select(WebhookLog))
        assert result.scalars().all() == []

    async def test_delete_missing(self, db):
        assert await WebhookService.delete_webhook(db, 12345) is False


class TestTestWebhook:
    async def test_success(self, db, make_webhook):
        from dashpilot.utils.encryption import encrypt_value

        webhook = make_webhook(secret=encrypt_value("k"))
        db.add(webhook)
        await db.commit()

        captured = {}

        def handler(request):
            import json

            captured["body"] = json.loads(request.content)
            return httpx.Response(200)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            result = await WebhookService.test_webhook(db, webhook.id, client=client)

        assert result.success is True
        assert result.status_code == 200
        body = captured["body"]
        assert body["event"] == "test"
        signature = body.pop("signature")
        assert signature == generate_signature(body, "k")

        logs = await WebhookService.get_logs(db, webhook.id)
        assert len(logs) == 1
        assert logs[0].event_type == "test"

    async def test_failure_is_reported_not_retried(self, db, make_webhook):
        webhook = make_webhook()
        db.add(webhook)
        await db.commit()

        async with httpx.AsyncClient(
            transport=httpx.MockTransport(lambda r: httpx.Response(404, text="nope"))
        ) as client:
            result = await WebhookService.test_webhook(db, webhook.id, client=client)

        assert result.success is False
        assert result.status_code == 404
        assert result.error == "nope"
        assert len(await WebhookService.get_logs(db, webhook.id)) == 1

    async def test_missing_webhook(self, db):
        assert await WebhookService.test_webhook(db, 77) is None


class TestTriggerEvents:
    async def test_only_active_subscribers_are_queued(self, db, make_webhook, mock_queue, alert):
        subscribed = make_webhook(events=["alert_created"])
        wildcard = make_webhook(events=["*"])
        other_event = make_webhook(events=["alert_resolved"])
        inactive = make_webhook(events=["alert_created"], is_active=False)
        db.add_all([subscribed, wildcard, other_event, inactive])
        await db.commit()

        jobs = await WebhookService.trigger_alert_event(db, "alert_created", alert, queue=mock_queue)

        assert sorted(job.webhook_id for job in jobs) == sorted([subscribed.id, wildcard.id])
        assert all(job.attempt == 1 for job in jobs)
        assert mock_queue.scheduler.add_job.call_count == 2

    async def test_payload_format_per_endpoint(self, db, make_webhook, mock_queue, alert):
        slack = make_webhook(url="https://hooks.slack.com/services/T/B/X", events=["*"])
        generic = make_webhook(url="https://example.com/hook", events=["*"])
        db.add_all([slack, generic])
        await db.commit()

        jobs = await WebhookService.trigger_alert_event(db, "alert_resolved", alert, queue=mock_queue)
        payloads = {job.webhook_id: job.payload for job in jobs}

        assert "attachments" in payloads[slack.id]
        assert payloads[generic.id]["event"] == "alert_resolved"
        assert payloads[generic.id]["site"]["name"] == "Blog"

    async def test_no_subscribers(self, db, mock_queue, alert):
        jobs = await WebhookService.trigger_alert_event(db, "alert_created", alert, queue=mock_queue)
        assert jobs == []
        mock_queue.scheduler.add_job.assert_not_called()
