"""
Tests for the page Observer: prompt reporting, issuance hand-off, coordinator
commands and sign-in detection.
"""

import asyncio
import json
from datetime import timedelta
from itertools import islice
from unittest.mock import AsyncMock, MagicMock

import pytest

from consent_wallet.observer.interceptors import InterceptorRegistry, RequestInfo, is_login_request
from consent_wallet.observer.observer import PageObserver, PageState, poll_intervals
from consent_wallet.schemas.messages import ActivateConsent, ConsentDetected
from utils.mock_utils import T0, FakeClock

PAGE_URL = "https://shop.example.com/checkout"

PROMPT_PAGE = """
<html><head><title>Example Shop | Checkout</title></head>
<body>
  <div class="consent-modal">
    <p>We use analytics to improve your experience.</p>
    <button>I accept</button>
  </div>
</body></html>
"""

SIGNED_IN_PAGE = """
<html><head><title>Example Shop</title></head>
<body><span>jane@example.org</span><button>Log out</button></body></html>
"""

PLAIN_PAGE = "<html><body><a href='/login'>Sign in</a></body></html>"

RECIPIENT = "0x" + "1" * 40

INSERTED_BANNER = f"""
<div class="site-consent">
  <p>We share analytics and advertising data with {RECIPIENT}.</p>
  <button>Accept all</button>
</div>
"""


@pytest.fixture
def transport():
    transport = MagicMock()
    transport.send_message = AsyncMock(return_value=None)
    return transport


@pytest.fixture
def observer_clock():
    return FakeClock()


def make_observer(transport, clock, html=PROMPT_PAGE, **kwargs) -> PageObserver:
    return PageObserver(
        tab_id=7,
        state=PageState(url=PAGE_URL, html=html),
        transport=transport,
        clock=clock,
        issuance_base_url="http://wallet.test/issue",
        **kwargs,
    )


def sent_messages(transport) -> list:
    return [call.args[0] for call in transport.send_message.await_args_list]


class TestConsentReporting:
    @pytest.mark.asyncio
    async def test_sweep_reports_each_match(self, transport, observer_clock):
        observer = make_observer(transport, observer_clock)

        found = await observer.scan_for_consent_prompts()

        messages = sent_messages(transport)
        assert len(found) == len(messages) == 2
        assert all(isinstance(m, ConsentDetected) for m in messages)
        assert messages[0].url == PAGE_URL
        assert messages[0].timestamp == T0
        assert messages[0].data.site_name == "Example Shop"
        assert messages[0].data.purpose == "Analytics and performance tracking"
        assert transport.send_message.await_args_list[0].args[1].tab_id == 7

    @pytest.mark.asyncio
    async def test_approved_prompt_navigates_to_issuance(self, transport, observer_clock):
        navigate = MagicMock()
        observer = make_observer(
            transport,
            observer_clock,
            html="<body><button>Accept all</button></body>",
            prompt=AsyncMock(return_value=True),
            navigate=navigate,
        )

        await observer.scan_for_consent_prompts()

        url = navigate.call_args.args[0]
        assert url.startswith("http://wallet.test/issue?")
        assert "sourceUrl=https%3A%2F%2Fshop.example.com%2Fcheckout" in url

    @pytest.mark.asyncio
    async def test_dismissed_prompt_is_silent(self, transport, observer_clock):
        navigate = AsyncMock()
        observer = make_observer(
            transport,
            observer_clock,
            html="<body><button>Accept all</button></body>",
            prompt=AsyncMock(return_value=False),
            navigate=navigate,
        )

        await observer.scan_for_consent_prompts()

        navigate.assert_not_awaited()
        assert len(sent_messages(transport)) == 1

    @pytest.mark.asyncio
    async def test_inserted_nodes_are_scanned(self, transport, observer_clock):
        observer = make_observer(transport, observer_clock, html=PLAIN_PAGE)

        found = await observer.on_nodes_added(["<div><p>Accept cookies to continue</p></div>", "<span>ad</span>"])

        assert len(found) == 1
        assert len(sent_messages(transport)) == 1

    @pytest.mark.asyncio
    async def test_inserted_banner_text_is_read(self, transport, observer_clock):
        observer = make_observer(transport, observer_clock, html="<html><body><p>Welcome</p></body></html>")

        found = await observer.on_nodes_added([INSERTED_BANNER])

        assert len(found) == 1
        assert found[0].data_types == ["analytics", "advertising"]
        assert found[0].recipient_address == RECIPIENT
        assert found[0].purpose == "Analytics and performance tracking"

    @pytest.mark.asyncio
    async def test_inserted_nodes_stay_in_page(self, transport, observer_clock):
        observer = make_observer(transport, observer_clock, html="<html><body><p>Welcome</p></body></html>")
        await observer.on_nodes_added([INSERTED_BANNER])

        found = await observer.scan_for_consent_prompts()

        # the banner's button and the banner itself
        assert len(found) == 2
        assert observer.document.parent(observer.document.find("button")).tag == "div"

    @pytest.mark.asyncio
    async def test_update_page_resets_document(self, transport, observer_clock):
        observer = make_observer(transport, observer_clock, html=PLAIN_PAGE)
        assert await observer.scan_for_consent_prompts() == []

        observer.update_page("<body><button>I accept</button></body>")

        assert len(await observer.scan_for_consent_prompts()) == 1


class TestCommands:
    @pytest.mark.asyncio
    async def test_scan_command_triggers_sweep(self, transport, observer_clock):
        observer = make_observer(transport, observer_clock)

        await observer.handle_command({"action": "scanForConsent"})

        assert len(sent_messages(transport)) == 2

    @pytest.mark.asyncio
    async def test_contract_call_runs_against_page_client(self, transport, observer_clock):
        contract_client = MagicMock()
        contract_client.abandon_consent = AsyncMock()
        observer = make_observer(transport, observer_clock, contract_client=contract_client)

        await observer.handle_command({"action": "injectContractCall", "method": "abandonConsent", "tokenId": "42"})

        contract_client.abandon_consent.assert_awaited_once_with("42")

    @pytest.mark.asyncio
    async def test_contract_call_failure_is_contained(self, transport, observer_clock):
        contract_client = MagicMock()
        contract_client.activate_consent = AsyncMock(side_effect=RuntimeError("user rejected transaction"))
        observer = make_observer(transport, observer_clock, contract_client=contract_client)

        await observer.handle_command({"action": "injectContractCall", "method": "activateConsent", "tokenId": "42"})

        contract_client.activate_consent.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_unknown_command_is_ignored(self, transport, observer_clock):
        observer = make_observer(transport, observer_clock)

        await observer.handle_command({"action": "formatDisk"})

        transport.send_message.assert_not_awaited()


class TestSignInDetection:
    @pytest.mark.asyncio
    async def test_signed_in_page_activates_pending_consent(self, transport, observer_clock):
        observer = make_observer(transport, observer_clock, html=SIGNED_IN_PAGE)
        observer.remember_issued_consent("42")
        observer_clock.advance(minutes=2)

        assert await observer.check_login_status() is True

        message = sent_messages(transport)[0]
        assert isinstance(message, ActivateConsent)
        assert message.token_id == "42"
        assert message.site == "shop.example.com"
        assert message.url == PAGE_URL
        assert "lastIssuedConsent" not in observer.state.local_storage

    @pytest.mark.asyncio
    async def test_activation_is_sent_once(self, transport, observer_clock):
        observer = make_observer(transport, observer_clock, html=SIGNED_IN_PAGE)
        observer.remember_issued_consent("42")

        await observer.check_login_status()
        await observer.check_login_status()

        assert len(sent_messages(transport)) == 1

    @pytest.mark.asyncio
    async def test_not_signed_in_keeps_pointer(self, transport, observer_clock):
        observer = make_observer(transport, observer_clock, html=PLAIN_PAGE)
        observer.remember_issued_consent("42")

        assert await observer.check_login_status() is False
        assert "lastIssuedConsent" in observer.state.local_storage

    @pytest.mark.asyncio
    async def test_stale_pointer_is_ignored(self, transport, observer_clock):
        observer = make_observer(transport, observer_clock, html=SIGNED_IN_PAGE)
        observer.remember_issued_consent("42")
        observer_clock.advance(minutes=11)

        assert observer.pending_consent() is None
        assert await observer.check_login_status() is False

    @pytest.mark.asyncio
    async def test_pointer_for_other_site_is_ignored(self, transport, observer_clock):
        observer = make_observer(transport, observer_clock, html=SIGNED_IN_PAGE)
        observer.remember_issued_consent("42", site="other.example.com")

        assert observer.pending_consent() is None

    @pytest.mark.parametrize("raw", ["not json", json.dumps({"tokenId": "1", "status": "Active"}), json.dumps([1])])
    def test_unusable_pointer(self, transport, observer_clock, raw):
        observer = make_observer(transport, observer_clock, html=SIGNED_IN_PAGE)
        observer.state.local_storage["lastIssuedConsent"] = raw

        assert observer.pending_consent() is None

    @pytest.mark.asyncio
    async def test_login_request_activates_even_before_page_looks_signed_in(self, transport, observer_clock):
        observer = make_observer(transport, observer_clock, html=PLAIN_PAGE)
        observer.remember_issued_consent("42")

        activated = await observer.on_request(RequestInfo(url="https://shop.example.com/api/session", method="POST"))

        assert activated is True
        assert sent_messages(transport)[0].token_id == "42"

    @pytest.mark.asyncio
    async def test_unrelated_request_on_anonymous_page(self, transport, observer_clock):
        observer = make_observer(transport, observer_clock, html=PLAIN_PAGE)
        observer.remember_issued_consent("42")

        assert await observer.on_request(RequestInfo(url="https://cdn.example.com/app.js")) is False

    @pytest.mark.asyncio
    async def test_page_becoming_visible_checks_sign_in(self, transport, observer_clock):
        observer = make_observer(transport, observer_clock, html=SIGNED_IN_PAGE)
        observer.remember_issued_consent("42")

        assert await observer.on_visibility_change(hidden=True) is False
        assert await observer.on_visibility_change(hidden=False) is True
        assert len(sent_messages(transport)) == 1

    @pytest.mark.asyncio
    async def test_intercepted_requests_reach_started_observer(self, transport, observer_clock):
        interceptors = InterceptorRegistry()
        observer = make_observer(
            transport,
            observer_clock,
            html=PLAIN_PAGE,
            interceptors=interceptors,
            initial_scan_delay=timedelta(hours=1),
        )
        observer.remember_issued_consent("42")

        observer.start()
        await interceptors.dispatch(RequestInfo(url="https://shop.example.com/oauth/callback"))
        await observer.stop()

        assert sent_messages(transport)[0].token_id == "42"
        assert len(interceptors) == 0

    @pytest.mark.asyncio
    async def test_initial_sweep_runs_after_delay(self, transport, observer_clock):
        observer = make_observer(transport, observer_clock, initial_scan_delay=timedelta(0))

        observer.start()
        await asyncio.sleep(0.05)
        await observer.stop()

        assert len(sent_messages(transport)) == 2


class TestPollIntervals:
    def test_frequent_then_slow(self):
        intervals = list(islice(poll_intervals(), 14))

        assert intervals[:12] == [timedelta(seconds=10)] * 12
        assert intervals[12:] == [timedelta(seconds=30)] * 2


class TestInterceptors:
    @pytest.mark.parametrize(
        ("request_info", "expected"),
        [
            (RequestInfo(url="https://x.example.com/api/login"), True),
            (RequestInfo(url="https://x.example.com/api/cart", body={"username": "jane"}), True),
            (RequestInfo(url="https://x.example.com/api/cart", body=b"password=secret"), True),
            (RequestInfo(url="https://x.example.com/api/cart", body={"items": [1]}), False),
            (RequestInfo(url="https://x.example.com/static/app.css"), False),
        ],
    )
    def test_is_login_request(self, request_info, expected):
        assert is_login_request(request_info) is expected

    @pytest.mark.asyncio
    async def test_failing_interceptor_does_not_stop_others(self):
        registry = InterceptorRegistry()
        failing = AsyncMock(side_effect=RuntimeError("boom"))
        ok = AsyncMock()
        registry.register(failing)
        registry.register(ok)

        await registry.dispatch(RequestInfo(url="https://x.example.com/"))

        ok.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_unregister(self):
        registry = InterceptorRegistry()
        interceptor = AsyncMock()
        unregister = registry.register(interceptor)

        unregister()
        await registry.dispatch(RequestInfo(url="https://x.example.com/"))

        interceptor.assert_not_awaited()
