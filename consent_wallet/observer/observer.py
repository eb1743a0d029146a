"""
Page Observer

Runs once per page. Sweeps the page for consent prompts and reports them,
hands an approved prompt off to the issuance form, and watches for signs that
the user signed in so the pending consent issued from this page can be
activated.

Sign-in is checked from three independent triggers:
    * intercepted network requests (``InterceptorRegistry``)
    * a poll: every 10 s for two minutes, then every 30 s
    * the page becoming visible again

The pending consent is a pointer the issuance form leaves in the page's
local storage under ``lastIssuedConsent``:
``{"tokenId", "status", "site", "timestamp"}`` (timestamp in epoch ms).
"""

import asyncio
import inspect
import json
import logging
from collections.abc import Awaitable, Callable, Iterator
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from itertools import chain, repeat
from typing import Any, Protocol

from consent_wallet.config import settings
from consent_wallet.constants.heuristics import (
    FREQUENT_POLL_COUNT,
    FREQUENT_POLL_INTERVAL,
    INITIAL_SCAN_DELAY,
    PENDING_POINTER_KEY,
    PENDING_POINTER_MAX_AGE,
    SLOW_POLL_INTERVAL,
)
from consent_wallet.observer.auth_scorer import AuthScore, AuthScorer
from consent_wallet.observer.detection import ConsentDetector, Detection
from consent_wallet.observer.document import PageDocument
from consent_wallet.observer.interceptors import InterceptorRegistry, RequestInfo, is_login_request
from consent_wallet.observer.transport import ObserverTransport
from consent_wallet.schemas.consent import ConsentData, TabId, TabInfo
from consent_wallet.schemas.messages import (
    ActivateConsent,
    ConsentDetected,
    InjectContractCall,
    ScanForConsent,
    parse_command,
)
from consent_wallet.utils.issuance import build_issuance_url

logger = logging.getLogger(__name__)


def poll_intervals() -> Iterator[timedelta]:
    """Sign-in poll delays: 12 frequent checks, then slow checks forever."""
    return chain(repeat(FREQUENT_POLL_INTERVAL, FREQUENT_POLL_COUNT), repeat(SLOW_POLL_INTERVAL))


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ContractClient(Protocol):
    """The page-side contract client the coordinator's injected calls run against."""

    async def activate_consent(self, token_id: str) -> Any: ...

    async def abandon_consent(self, token_id: str) -> Any: ...

    async def revoke_consent(self, token_id: str) -> Any: ...


ConsentPrompt = Callable[[ConsentData], Awaitable[bool]]
Navigate = Callable[[str], Any]


@dataclass
class PageState:
    """What the Observer can see of its page."""

    url: str
    html: str = ""
    cookies: dict[str, str] = field(default_factory=dict)
    local_storage: dict[str, str] = field(default_factory=dict)
    hidden: bool = False


class PageObserver:
    def __init__(
        self,
        tab_id: TabId,
        state: PageState,
        transport: ObserverTransport,
        interceptors: InterceptorRegistry | None = None,
        detector: ConsentDetector | None = None,
        scorer: AuthScorer | None = None,
        prompt: ConsentPrompt | None = None,
        navigate: Navigate | None = None,
        contract_client: ContractClient | None = None,
        issuance_base_url: str | None = None,
        clock: Callable[[], datetime] = _utcnow,
        initial_scan_delay: timedelta = INITIAL_SCAN_DELAY,
    ):
        self.tab_id = tab_id
        self.state = state
        self.transport = transport
        self.interceptors = interceptors or InterceptorRegistry()
        self.detector = detector or ConsentDetector()
        self.scorer = scorer or AuthScorer()
        self.prompt = prompt
        self.navigate = navigate
        self.contract_client = contract_client
        self.issuance_base_url = issuance_base_url or settings.issuance_base_url
        self._clock = clock
        self._initial_scan_delay = initial_scan_delay
        self._document: PageDocument | None = None
        self._tasks: list[asyncio.Task] = []
        self._unregister: Callable[[], None] | None = None

    # ── Lifecycle ──

    def start(self) -> None:
        """Hook network interception and start the initial sweep and sign-in poll."""
        if self._tasks:
            return
        self._unregister = self.interceptors.register(self.on_request)
        self._tasks = [
            asyncio.create_task(self._initial_scan()),
            asyncio.create_task(self._poll_login_status()),
        ]

    async def stop(self) -> None:
        if self._unregister:
            self._unregister()
            self._unregister = None
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []

    async def _initial_scan(self) -> None:
        await asyncio.sleep(self._initial_scan_delay.total_seconds())
        await self.scan_for_consent_prompts()

    async def _poll_login_status(self) -> None:
        for interval in poll_intervals():
            await asyncio.sleep(interval.total_seconds())
            try:
                await self.check_login_status()
            except Exception as e:
                logger.error(f"Sign-in check failed: {e}", extra={"tab_id": self.tab_id})

    # ── Page state ──

    @property
    def document(self) -> PageDocument:
        if self._document is None:
            self._document = PageDocument(self.state.html, self.state.url)
        return self._document

    @property
    def tab(self) -> TabInfo:
        return TabInfo(tab_id=self.tab_id, url=self.state.url)

    def update_page(self, html: str, url: str | None = None) -> None:
        self.state.html = html
        if url is not None:
            self.state.url = url
        self._document = None

    # ── Consent detection ──

    async def scan_for_consent_prompts(self) -> list[ConsentData]:
        """Full sweep; reports every match."""
        detections = self.detector.sweep(self.document)
        for detection in detections:
            await self._report(detection)
        return [detection.consent for detection in detections]

    async def on_nodes_added(self, fragments: list[str]) -> list[ConsentData]:
        """
        Add inserted nodes (markup of each) to the page body and check them.

        The nodes stay part of the page for later sweeps and sign-in checks.
        """
        found: list[ConsentData] = []
        for fragment in fragments:
            for element in self.document.insert(fragment):
                detection = self.detector.scan_element(element, self.document)
                if detection is not None:
                    await self._report(detection)
                    found.append(detection.consent)
        return found

    async def _report(self, detection: Detection) -> None:
        message = ConsentDetected(data=detection.consent, url=self.state.url, timestamp=self._clock())
        await self.transport.send_message(message, self.tab)

        if self.prompt is None:
            return
        if await self.prompt(detection.consent):
            await self.open_issuance(detection.consent)

    async def open_issuance(self, consent: ConsentData) -> str:
        """Hand the consent off to the issuance form by navigating this page to it."""
        url = build_issuance_url(consent, self.state.url, self.issuance_base_url)
        if self.navigate is not None:
            result = self.navigate(url)
            if inspect.isawaitable(result):
                await result
        return url

    # ── Commands from the coordinator ──

    async def handle_command(self, raw: dict[str, Any]) -> None:
        command = parse_command(raw)
        if isinstance(command, ScanForConsent):
            await self.scan_for_consent_prompts()
        elif isinstance(command, InjectContractCall):
            await self._run_contract_call(command)

    async def _run_contract_call(self, command: InjectContractCall) -> None:
        if self.contract_client is None:
            logger.warning(f"No contract client on page for {command.method}({command.token_id})")
            return
        call = {
            "activateConsent": self.contract_client.activate_consent,
            "abandonConsent": self.contract_client.abandon_consent,
            "revokeConsent": self.contract_client.revoke_consent,
        }[command.method]
        try:
            await call(command.token_id)
        except Exception as e:
            # The coordinator never learns the on-chain outcome
            logger.error(f"Contract call {command.method}({command.token_id}) failed: {e}", extra={"token_id": command.token_id})

    # ── Sign-in detection ──

    def auth_score(self) -> AuthScore:
        return self.scorer.score(self.document, self.state.cookies, self.state.local_storage.keys())

    def is_authenticated(self) -> bool:
        return self.auth_score().authenticated

    def remember_issued_consent(self, token_id: str, site: str | None = None) -> None:
        """Leave the pending pointer the way the issuance form does."""
        self.state.local_storage[PENDING_POINTER_KEY] = json.dumps(
            {
                "tokenId": str(token_id),
                "status": "Pending",
                "site": site or self.document.hostname,
                "timestamp": int(self._clock().timestamp() * 1000),
            }
        )

    def pending_consent(self) -> dict[str, Any] | None:
        """The pointer, if it names a Pending consent for this host set within the last 10 minutes."""
        raw = self.state.local_storage.get(PENDING_POINTER_KEY)
        if not raw:
            return None
        try:
            pointer = json.loads(raw)
        except ValueError:
            logger.warning("Unreadable pending consent pointer", extra={"tab_id": self.tab_id})
            return None
        if not isinstance(pointer, dict) or pointer.get("status") != "Pending":
            return None
        if pointer.get("site") != self.document.hostname:
            return None

        cutoff = (self._clock() - PENDING_POINTER_MAX_AGE).timestamp() * 1000
        timestamp = pointer.get("timestamp")
        if not isinstance(timestamp, (int, float)) or timestamp <= cutoff:
            return None
        return pointer

    async def on_request(self, request: RequestInfo) -> bool:
        """Interceptor: a login-looking request, or a page that already looks signed in."""
        if not is_login_request(request) and not self.is_authenticated():
            return False
        pointer = self.pending_consent()
        if pointer is None:
            return False
        await self._activate(pointer)
        return True

    async def check_login_status(self) -> bool:
        pointer = self.pending_consent()
        if pointer is None or not self.is_authenticated():
            return False
        await self._activate(pointer)
        return True

    async def on_visibility_change(self, hidden: bool) -> bool:
        was_hidden = self.state.hidden
        self.state.hidden = hidden
        if hidden or not was_hidden:
            return False
        return await self.check_login_status()

    async def _activate(self, pointer: dict[str, Any]) -> None:
        message = ActivateConsent(token_id=pointer["tokenId"], site=self.document.hostname, url=self.state.url)
        logger.info(f"Sign-in detected, activating pending consent {message.token_id}", extra={"tab_id": self.tab_id})
        await self.transport.send_message(message, self.tab)
        self.state.local_storage.pop(PENDING_POINTER_KEY, None)
