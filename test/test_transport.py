"""
Tests for the Observer transports, including a full in-process round trip
between a page Observer and the coordinator.
"""

import json
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from consent_wallet.observer.observer import PageObserver, PageState
from consent_wallet.observer.transport import HttpTransport, InProcessTransport
from consent_wallet.schemas.consent import ConsentStatus, TabInfo
from consent_wallet.schemas.messages import GetConsentTokens, ScanForConsent
from utils.mock_utils import create_test_issued_consent

PAGE_URL = "https://shop.example.com/checkout"

CHECKOUT_PAGE = """
<html><head><title>Example Shop - Checkout</title></head>
<body><div class="notice"><button>Accept all cookies</button></div></body></html>
"""

ACCOUNT_PAGE = """
<html><head><title>Example Shop - Account</title></head>
<body><p>Signed in as jane@example.org</p><a href="/logout">Log out</a></body></html>
"""


@pytest.fixture
async def page(services, clock):
    """An Observer for tab 7 wired to the coordinator in the same process."""
    transport = InProcessTransport(services.coordinator, services.tabs)
    contract_client = MagicMock()
    contract_client.activate_consent = AsyncMock()
    contract_client.abandon_consent = AsyncMock()
    observer = PageObserver(
        tab_id=7,
        state=PageState(url=PAGE_URL, html=CHECKOUT_PAGE),
        transport=transport,
        contract_client=contract_client,
        clock=clock,
    )
    await transport.connect(observer)
    yield observer
    await transport.disconnect(observer)


class TestInProcessTransport:
    @pytest.mark.asyncio
    async def test_detection_reaches_coordinator(self, page, coordinator):
        await page.scan_for_consent_prompts()

        events = await coordinator.list_detections()
        assert len(events) == 1
        assert events[0].tab_id == 7
        assert events[0].consent_data.site_name == "Example Shop"

    @pytest.mark.asyncio
    async def test_coordinator_scan_request_reaches_page(self, page, coordinator):
        assert await coordinator.request_scan(7) is True

        assert len(await coordinator.list_detections()) == 1

    @pytest.mark.asyncio
    async def test_sign_in_activates_and_calls_contract(self, page, coordinator, clock):
        issued = {"action": "consentIssued", "data": create_test_issued_consent("42").to_store()}
        await coordinator.handle_message(issued, page.tab)
        page.remember_issued_consent("42")

        clock.advance(minutes=4)
        page.update_page(ACCOUNT_PAGE, url="https://shop.example.com/account")
        assert await page.check_login_status() is True

        record = await coordinator.get_consent("42")
        assert record.status == ConsentStatus.ACTIVE
        page.contract_client.activate_consent.assert_awaited_once_with("42")

    @pytest.mark.asyncio
    async def test_abandonment_runs_contract_call_in_page(self, page, coordinator):
        issued = {"action": "consentIssued", "data": create_test_issued_consent("42").to_store()}
        await coordinator.handle_message(issued, page.tab)

        await coordinator.handle_deadline("abandon_42")

        page.contract_client.abandon_consent.assert_awaited_once_with("42")

    @pytest.mark.asyncio
    async def test_disconnected_page_gets_no_commands(self, page, services):
        await InProcessTransport(services.coordinator, services.tabs).disconnect(page)

        assert await services.coordinator.request_scan(7) is False


class TestHttpTransport:
    @pytest.mark.asyncio
    async def test_posts_envelope(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append((request.url.path, json.loads(request.content)))
            return httpx.Response(200, json=[{"tokenId": "1"}])

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://coordinator.test")
        transport = HttpTransport("http://coordinator.test", client=client)

        result = await transport.send_message(GetConsentTokens(), TabInfo(tab_id=7, url=PAGE_URL))
        await client.aclose()

        assert result == [{"tokenId": "1"}]
        assert seen == [
            ("/api/v1/messages", {"message": {"action": "getConsentTokens"}, "tab": {"tabId": 7, "url": PAGE_URL}})
        ]

    @pytest.mark.asyncio
    async def test_delivery_failure_is_logged(self):
        client = httpx.AsyncClient(
            transport=httpx.MockTransport(lambda request: httpx.Response(503)),
            base_url="http://coordinator.test",
        )
        transport = HttpTransport("http://coordinator.test", client=client)

        assert await transport.send_message(ScanForConsent(), TabInfo(tab_id=7)) is None
        await client.aclose()

    @pytest.mark.asyncio
    async def test_owned_client_is_closed(self):
        transport = HttpTransport("http://coordinator.test/")

        client = await transport._get_client()
        await transport.aclose()

        assert client.is_closed
        assert transport.base_url == "http://coordinator.test"
