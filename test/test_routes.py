"""
Tests for the HTTP surface: message bus, read models, settings, tabs,
monitoring and the notification stream.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from consent_wallet.routes.sse import _event_stream
from utils.mock_utils import T0, create_test_consent_data, create_test_issued_consent

TAB = {"tabId": 7, "url": "https://shop.example.com/checkout"}


def envelope(message: dict, tab: dict | None = TAB) -> dict:
    return {"message": message, "tab": tab}


def issued_message(token_id: str = "42") -> dict:
    return {"action": "consentIssued", "data": create_test_issued_consent(token_id).to_store()}


def detected_message() -> dict:
    return {
        "action": "consentDetected",
        "data": create_test_consent_data().to_store(),
        "url": TAB["url"],
        "timestamp": T0.isoformat(),
    }


class TestMessageRoute:
    @pytest.mark.asyncio
    async def test_issue_is_accepted_and_stored(self, client):
        response = await client.post("/api/v1/messages", json=envelope(issued_message()))

        assert response.status_code == 202
        assert response.json() == {"status": "accepted"}

        consents = (await client.get("/api/v1/consents")).json()
        assert consents[0]["tokenId"] == "42"
        assert consents[0]["status"] == "Pending"
        assert consents[0]["tabId"] == 7

    @pytest.mark.asyncio
    async def test_unknown_action_is_ignored(self, client):
        response = await client.post("/api/v1/messages", json=envelope({"action": "formatDisk"}))

        assert response.status_code == 202
        assert response.json() == {"status": "ignored"}

    @pytest.mark.asyncio
    async def test_get_consent_tokens_answers(self, client):
        await client.post("/api/v1/messages", json=envelope(issued_message("1")))

        response = await client.post("/api/v1/messages", json=envelope({"action": "getConsentTokens"}, tab=None))

        assert response.status_code == 200
        assert [token["tokenId"] for token in response.json()] == ["1"]

    @pytest.mark.asyncio
    async def test_envelope_without_message(self, client):
        response = await client.post("/api/v1/messages", json={"tab": TAB})

        assert response.status_code == 422
        assert response.json()["error"]["error_code"] == "VALIDATION_FAILED"


class TestConsentRoutes:
    @pytest.mark.asyncio
    async def test_unknown_consent_uses_error_envelope(self, client):
        response = await client.get("/api/v1/consents/404")

        assert response.status_code == 404
        error = response.json()["error"]
        assert error["error_code"] == "RESOURCE_CONSENT_NOT_FOUND"
        assert error["path"] == "/api/v1/consents/404"

    @pytest.mark.asyncio
    async def test_get_one_and_stats(self, client, coordinator):
        await client.post("/api/v1/messages", json=envelope(issued_message("42")))
        await coordinator.activate_consent("42")

        record = (await client.get("/api/v1/consents/42")).json()
        stats = (await client.get("/api/v1/consents/stats")).json()

        assert record["status"] == "Active"
        assert stats == {"activeConsents": 1, "totalConsents": 1, "byStatus": {"Active": 1}}

    @pytest.mark.asyncio
    async def test_detections_and_activity(self, client):
        await client.post("/api/v1/messages", json=envelope(detected_message()))
        await client.post("/api/v1/messages", json=envelope(detected_message()))

        detections = (await client.get("/api/v1/detections", params={"limit": 1})).json()
        activity = (await client.get("/api/v1/activity")).json()

        assert len(detections) == 1
        assert detections[0]["consentData"]["siteName"] == "Example Shop"
        assert [item["type"] for item in activity] == ["detection", "detection"]

    @pytest.mark.asyncio
    async def test_settings_roundtrip(self, client):
        assert (await client.get("/api/v1/settings")).json() == {
            "autoDetection": True,
            "notifications": True,
            "expiryReminders": True,
        }

        response = await client.patch("/api/v1/settings", json={"notifications": False})

        assert response.json()["notifications"] is False
        assert response.json()["autoDetection"] is True


class TestTabRoutes:
    @pytest.mark.asyncio
    async def test_scan_request(self, client, tab_channel):
        delivered = (await client.post("/api/v1/tabs/7/scan")).json()
        missing = (await client.post("/api/v1/tabs/8/scan")).json()

        assert delivered == {"delivered": True}
        assert missing == {"delivered": False}
        assert tab_channel.actions() == ["scanForConsent"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("body", "scheduled"),
        [
            ({"url": "https://shop.example.com/"}, True),
            ({"url": "https://shop.example.com/", "status": "loading"}, False),
            ({"url": "chrome://settings"}, False),
        ],
    )
    async def test_tab_updated(self, client, body, scheduled):
        response = await client.post("/api/v1/tabs/7/updated", json=body)

        assert response.json() == {"scheduled": scheduled}

    @pytest.mark.asyncio
    async def test_tab_stats(self, client, tab_channel):
        stats = (await client.get("/api/v1/tabs")).json()

        assert stats["total_tabs"] == 1
        assert stats["tabs"][0]["url"] == "https://shop.example.com/checkout"


class TestMonitoring:
    @pytest.mark.asyncio
    async def test_health(self, client):
        response = await client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    @pytest.mark.asyncio
    async def test_ready(self, client):
        body = (await client.get("/ready")).json()

        assert body["status"] == "ready"
        assert body["checks"]["store"]["status"] == "healthy"
        assert body["checks"]["scheduler"]["status"] == "healthy"

    @pytest.mark.asyncio
    async def test_metrics(self, client):
        await client.post("/api/v1/messages", json=envelope({"action": "formatDisk"}))

        response = await client.get("/metrics")

        assert response.status_code == 200
        assert 'consent_wallet_messages_total{action="ignored"}' in response.text

    @pytest.mark.asyncio
    async def test_request_id_is_echoed(self, client):
        response = await client.get("/api/v1/settings", headers={"X-Request-ID": "req-123"})

        assert response.headers["X-Request-ID"] == "req-123"


class TestNotificationStream:
    @pytest.mark.asyncio
    async def test_replay_then_live_events(self, services):
        broadcaster = services.broadcaster
        await broadcaster.publish("notification", {"title": "Earlier"})
        request = MagicMock()
        request.is_disconnected = AsyncMock(side_effect=[False, True])

        stream = _event_stream(request, broadcaster, replay=1)
        chunks = [await stream.__anext__(), await stream.__anext__()]
        await broadcaster.publish("notification", {"title": "Live"})
        chunks.append(await stream.__anext__())
        with pytest.raises(StopAsyncIteration):
            await stream.__anext__()

        assert '"type": "connected"' in chunks[0]
        assert '"Earlier"' in chunks[1]
        assert '"Live"' in chunks[2]
        assert all(chunk.endswith("\n\n") for chunk in chunks)
        assert broadcaster.subscriber_count() == 0
