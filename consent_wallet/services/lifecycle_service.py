"""
Consent Lifecycle Coordinator

The single shared state machine for consent records:

    (none)  --ConsentIssued-->      Pending
    Pending --ActivateConsent-->    Active
    Pending --abandon deadline-->   Abandoned
    Active  --ConsentRevoked-->     Revoked
    Active  --expiry deadline-->    Active (reminder only)

Every operation is a read-modify-write of whole collections in the
persistent store with no locking. Deadline handlers re-read the record and do
nothing unless it is still in the state the deadline was armed for, so a
user action that lands first always wins over a timer.

Failures inside a transition are logged and swallowed; a failing transition
never stops the coordinator from handling the next message.
"""

import asyncio
import logging
import uuid
from collections import Counter
from collections.abc import Callable, Iterable
from datetime import datetime, timedelta, timezone
from functools import wraps
from typing import Any

from consent_wallet.constants.heuristics import (
    ABANDON_TIMEOUT,
    EXPIRY_REMINDER_LEAD,
    RECENT_ACTIVITY_LIMIT,
    TAB_SCAN_SETTLE_DELAY,
)
from consent_wallet.constants.store import StoreKey
from consent_wallet.exceptions import (
    ConsentNotFoundError,
    ConsentWalletError,
    DuplicateConsentError,
    StoreError,
    TabUnavailableError,
)
from consent_wallet.scheduler import DeadlineKind, DeadlineScheduler, deadline_name, parse_deadline_name
from consent_wallet.schemas.consent import (
    ActivityItem,
    ConsentData,
    ConsentRecord,
    ConsentStats,
    ConsentStatus,
    DetectionEvent,
    IssuedConsent,
    Notification,
    TabId,
    TabInfo,
    WalletSettings,
    WalletSettingsUpdate,
)
from consent_wallet.schemas.messages import (
    ActivateConsent,
    ConsentDetected,
    ConsentIssued,
    ConsentRevoked,
    GetConsentTokens,
    ScanForConsent,
    parse_message,
)
from consent_wallet.services import notification_service as notices
from consent_wallet.services.contract_bridge import ContractBridge
from consent_wallet.services.notification_service import NotificationSink
from consent_wallet.services.store_service import PersistentStore
from consent_wallet.services.tab_manager import TabManager
from consent_wallet.utils.metrics import (
    CONSENT_TRANSITIONS_TOTAL,
    DEADLINES_FIRED_TOTAL,
    DETECTIONS_TOTAL,
    MESSAGES_TOTAL,
)
from consent_wallet.utils.validation import validate_expiry_date

logger = logging.getLogger(__name__)

TOKENS = StoreKey.CONSENT_TOKENS.value
DETECTIONS = StoreKey.DETECTIONS.value
SETTINGS = StoreKey.SETTINGS.value
TAB_MAP = StoreKey.ABANDON_TAB_MAP.value


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def contained(operation: str):
    """Log failures of a coordinator operation instead of raising them."""

    def decorator(func):
        @wraps(func)
        async def wrapper(self, *args, **kwargs):
            try:
                return await func(self, *args, **kwargs)
            except ConsentWalletError as e:
                logger.error(f"{operation} aborted: {e.message}", extra={"action": operation, "details": e.details})
            except Exception:
                logger.exception(f"{operation} failed", extra={"action": operation})
            return None

        return wrapper

    return decorator


class ConsentCoordinator:
    """Owns the store, the deadlines and the consent state machine."""

    def __init__(
        self,
        store: PersistentStore,
        deadlines: DeadlineScheduler,
        notifier: NotificationSink,
        contract: ContractBridge,
        tabs: TabManager,
        clock: Callable[[], datetime] = _utcnow,
        scan_skip_prefixes: Iterable[str] = (),
        scan_delay: timedelta = TAB_SCAN_SETTLE_DELAY,
    ):
        self.store = store
        self.deadlines = deadlines
        self.notifier = notifier
        self.contract = contract
        self.tabs = tabs
        self._clock = clock
        self._scan_skip_prefixes = tuple(scan_skip_prefixes)
        self._scan_delay = scan_delay
        self._background: set[asyncio.Task] = set()

        self._message_handlers = {
            ConsentDetected: self._on_consent_detected,
            ConsentIssued: self._on_consent_issued,
            ConsentRevoked: self._on_consent_revoked,
            ActivateConsent: self._on_activate_consent,
            GetConsentTokens: self._on_get_consent_tokens,
        }
        self._deadline_handlers = {
            DeadlineKind.ABANDON: self._abandon,
            DeadlineKind.EXPIRY: self._remind_expiry,
        }

    async def initialize(self) -> None:
        """Create default collections and settings if absent, and take over deadline dispatch."""
        await self.store.initialize(
            {
                TOKENS: [],
                DETECTIONS: [],
                SETTINGS: WalletSettings().to_store(),
                TAB_MAP: {},
            }
        )
        self.deadlines.bind(self.on_deadline)

    async def close(self) -> None:
        for task in list(self._background):
            task.cancel()
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)
        self.deadlines.bind(None)

    # ============== Message dispatch ==============

    async def handle_message(self, message: Any, sender: TabInfo | None = None) -> Any:
        """
        Dispatch one Observer message.

        Accepts a parsed message or its raw dict form. Malformed payloads and
        unknown actions are ignored. Only ``getConsentTokens`` returns a value.
        """
        if isinstance(message, dict):
            message = parse_message(message)
        handler = self._message_handlers.get(type(message))
        if handler is None:
            MESSAGES_TOTAL.labels(action="ignored").inc()
            return None

        MESSAGES_TOTAL.labels(action=message.action).inc()
        return await handler(message, sender)

    async def _on_consent_detected(self, message: ConsentDetected, sender: TabInfo | None) -> None:
        await self.record_detection(message.data, sender, url=message.url, timestamp=message.timestamp)

    async def _on_consent_issued(self, message: ConsentIssued, sender: TabInfo | None) -> None:
        await self.issue_consent(message.data, sender)

    async def _on_consent_revoked(self, message: ConsentRevoked, sender: TabInfo | None) -> None:
        await self.revoke_consent(message.token_id)

    async def _on_activate_consent(self, message: ActivateConsent, sender: TabInfo | None) -> None:
        logger.info(
            f"Activation requested for token {message.token_id} from {message.site or 'unknown site'}",
            extra={"token_id": message.token_id, "tab_id": sender.tab_id if sender else None},
        )
        await self.activate_consent(message.token_id)

    async def _on_get_consent_tokens(self, message: GetConsentTokens, sender: TabInfo | None) -> list[dict]:
        try:
            records = await self.list_consents()
        except StoreError as e:
            logger.error(f"getConsentTokens aborted: {e.message}")
            return []
        return [record.to_store() for record in records]

    # ============== Lifecycle operations ==============

    @contained("recordDetection")
    async def record_detection(
        self,
        consent: ConsentData,
        source_tab: TabInfo | None,
        url: str | None = None,
        timestamp: datetime | None = None,
    ) -> None:
        """Append a detection event to the log. Detections are never deduplicated."""
        event = DetectionEvent(
            id=uuid.uuid4().hex,
            timestamp=timestamp or self._clock(),
            url=url or (source_tab.url if source_tab and source_tab.url else ""),
            tab_id=source_tab.tab_id if source_tab else None,
            consent_data=consent,
        )

        values = await self.store.get(DETECTIONS, SETTINGS)
        detections = list(values.get(DETECTIONS) or [])
        detections.append(event.to_store())
        await self.store.set({DETECTIONS: detections})
        DETECTIONS_TOTAL.inc()

        logger.info(f"Consent detected on {event.url} ({consent.site_name})", extra={"tab_id": event.tab_id})
        await self._notify(notices.consent_detected(consent.site_name), self._settings_from(values))

    @contained("issueConsent")
    async def issue_consent(self, consent: IssuedConsent, source_tab: TabInfo | None) -> None:
        """Store a new Pending record and arm its abandonment deadline."""
        now = self._clock()
        values = await self.store.get(TOKENS, TAB_MAP, SETTINGS)
        records = self._records_from(values)
        if any(record.token_id == consent.token_id for record in records):
            raise DuplicateConsentError(consent.token_id)

        if consent.expiry_date is not None:
            problem = validate_expiry_date(consent.expiry_date, now)
            if problem:
                # Already minted on-chain, so the record is kept
                logger.warning(f"Consent {consent.token_id} issued with questionable expiry: {problem}")

        tab_id = source_tab.tab_id if source_tab else None
        record = ConsentRecord.from_issued(consent, issued_at=now, tab_id=tab_id)
        records.append(record)

        changes: dict[str, Any] = {TOKENS: [r.to_store() for r in records]}
        if tab_id is not None:
            tab_map = dict(values.get(TAB_MAP) or {})
            tab_map[record.token_id] = tab_id
            changes[TAB_MAP] = tab_map
        await self.store.set(changes)
        CONSENT_TRANSITIONS_TOTAL.labels(status=ConsentStatus.PENDING.value).inc()

        self.deadlines.schedule(deadline_name(DeadlineKind.ABANDON, record.token_id), delay=ABANDON_TIMEOUT)
        logger.info(f"Consent {record.token_id} issued for {record.site_name}", extra={"token_id": record.token_id, "tab_id": tab_id})
        await self._notify(notices.consent_issued(record.site_name), self._settings_from(values))

    @contained("activateConsent")
    async def activate_consent(self, token_id: str) -> None:
        """Promote a Pending record to Active after a sign-in was observed."""
        now = self._clock()
        values = await self.store.get(TOKENS, TAB_MAP, SETTINGS)
        records = self._records_from(values)
        record = self._find(records, token_id)
        if record.status != ConsentStatus.PENDING:
            logger.info(f"Ignoring activation of {token_id}: status is {record.status.value}", extra={"token_id": token_id})
            return

        updated = record.transition(ConsentStatus.ACTIVE, now)
        tab_map = dict(values.get(TAB_MAP) or {})
        tab_id = tab_map.pop(updated.token_id, updated.tab_id)
        await self.store.set({TOKENS: self._replace(records, updated), TAB_MAP: tab_map})
        CONSENT_TRANSITIONS_TOTAL.labels(status=ConsentStatus.ACTIVE.value).inc()

        self.deadlines.cancel(deadline_name(DeadlineKind.ABANDON, updated.token_id))
        if updated.expiry_date is not None:
            reminder_at = updated.expiry_date - EXPIRY_REMINDER_LEAD
            if reminder_at > now:
                self.deadlines.schedule(deadline_name(DeadlineKind.EXPIRY, updated.token_id), when=reminder_at)

        await self.contract.request_activation(updated.token_id, tab_id)
        logger.info(f"Consent {updated.token_id} activated", extra={"token_id": updated.token_id, "tab_id": tab_id})
        await self._notify(notices.consent_activated(updated.site_name), self._settings_from(values))

    @contained("revokeConsent")
    async def revoke_consent(self, token_id: str) -> None:
        """Mark an Active record Revoked (the contract client already revoked it on-chain)."""
        now = self._clock()
        values = await self.store.get(TOKENS, SETTINGS)
        records = self._records_from(values)
        record = self._find(records, token_id)
        if record.status != ConsentStatus.ACTIVE:
            logger.info(f"Ignoring revocation of {token_id}: status is {record.status.value}", extra={"token_id": token_id})
            return

        updated = record.transition(ConsentStatus.REVOKED, now)
        await self.store.set({TOKENS: self._replace(records, updated)})
        CONSENT_TRANSITIONS_TOTAL.labels(status=ConsentStatus.REVOKED.value).inc()

        self.deadlines.cancel(deadline_name(DeadlineKind.EXPIRY, updated.token_id))
        logger.info(f"Consent {updated.token_id} revoked", extra={"token_id": updated.token_id})
        await self._notify(notices.consent_revoked(updated.site_name), self._settings_from(values))

    async def list_consents(self) -> list[ConsentRecord]:
        """Every consent record, in issuance order."""
        return self._records_from(await self.store.get(TOKENS))

    async def get_consent(self, token_id: str) -> ConsentRecord:
        return self._find(await self.list_consents(), str(token_id))

    # ============== Deadlines ==============

    async def handle_deadline(self, name: str) -> None:
        """Dispatch a fired deadline by name."""
        kind, token_id = parse_deadline_name(name)
        await self.on_deadline(kind, token_id)

    async def on_deadline(self, kind: DeadlineKind, token_id: str) -> None:
        await self._deadline_handlers[kind](token_id)

    @contained("abandonDeadline")
    async def _abandon(self, token_id: str) -> None:
        name = deadline_name(DeadlineKind.ABANDON, token_id)
        # A date job is gone once it fires; this covers direct dispatch
        self.deadlines.cancel(name)

        now = self._clock()
        values = await self.store.get(TOKENS, TAB_MAP, SETTINGS)
        records = self._records_from(values)
        record = self._find(records, token_id)
        if record.status != ConsentStatus.PENDING:
            DEADLINES_FIRED_TOTAL.labels(kind=DeadlineKind.ABANDON.value, outcome="superseded").inc()
            logger.info(f"Deadline {name} superseded: status is {record.status.value}", extra={"deadline": name})
            return

        updated = record.transition(ConsentStatus.ABANDONED, now)
        tab_id = (values.get(TAB_MAP) or {}).get(updated.token_id, updated.tab_id)
        await self.store.set({TOKENS: self._replace(records, updated)})
        DEADLINES_FIRED_TOTAL.labels(kind=DeadlineKind.ABANDON.value, outcome="applied").inc()
        CONSENT_TRANSITIONS_TOTAL.labels(status=ConsentStatus.ABANDONED.value).inc()

        await self.contract.request_abandonment(updated.token_id, tab_id)
        logger.info(f"Consent {updated.token_id} abandoned", extra={"token_id": updated.token_id, "deadline": name})
        await self._notify(notices.consent_abandoned(updated.site_name), self._settings_from(values))

        tab_map = dict((await self.store.get(TAB_MAP)).get(TAB_MAP) or {})
        if tab_map.pop(updated.token_id, None) is not None:
            await self.store.set({TAB_MAP: tab_map})

    @contained("expiryDeadline")
    async def _remind_expiry(self, token_id: str) -> None:
        name = deadline_name(DeadlineKind.EXPIRY, token_id)
        values = await self.store.get(TOKENS, SETTINGS)
        record = self._find(self._records_from(values), token_id)
        if record.status != ConsentStatus.ACTIVE:
            DEADLINES_FIRED_TOTAL.labels(kind=DeadlineKind.EXPIRY.value, outcome="superseded").inc()
            logger.info(f"Deadline {name} superseded: status is {record.status.value}", extra={"deadline": name})
            return

        DEADLINES_FIRED_TOTAL.labels(kind=DeadlineKind.EXPIRY.value, outcome="applied").inc()
        settings = self._settings_from(values)
        if not settings.expiry_reminders:
            logger.info(f"Expiry reminder for {token_id} skipped: reminders disabled", extra={"token_id": token_id})
            return
        await self._send(notices.consent_expiring(record.site_name))

    # ============== Settings & read models ==============

    async def get_settings(self) -> WalletSettings:
        return self._settings_from(await self.store.get(SETTINGS))

    async def update_settings(self, update: WalletSettingsUpdate) -> WalletSettings:
        """Apply an explicit user change to the settings record."""
        current = await self.get_settings()
        updated = current.model_copy(update=update.model_dump(exclude_none=True))
        await self.store.set({SETTINGS: updated.to_store()})
        logger.info(f"Settings updated: {update.model_dump(exclude_none=True)}")
        return updated

    async def list_detections(self, limit: int | None = None) -> list[DetectionEvent]:
        """Detection log, oldest first; ``limit`` keeps only the most recent entries."""
        raw = (await self.store.get(DETECTIONS)).get(DETECTIONS) or []
        if limit:
            raw = raw[-limit:]
        return [DetectionEvent.model_validate(item) for item in raw]

    async def recent_activity(self, limit: int = RECENT_ACTIVITY_LIMIT) -> list[ActivityItem]:
        """Consents and the latest detections merged, newest first."""
        records = await self.list_consents()
        detections = await self.list_detections(limit=limit)

        items = [
            ActivityItem(type="consent", timestamp=r.issued_at, site_name=r.site_name, status=r.status.value)
            for r in records
        ]
        items.extend(
            ActivityItem(type="detection", timestamp=d.timestamp, site_name=d.consent_data.site_name, status=d.status)
            for d in detections
        )
        items.sort(key=lambda item: item.timestamp, reverse=True)
        return items[:limit]

    async def active_consent_count(self) -> int:
        """Active consents that have not passed their expiry date."""
        now = self._clock()
        return sum(1 for r in await self.list_consents() if r.status == ConsentStatus.ACTIVE and not r.is_expired(now))

    async def stats(self) -> ConsentStats:
        now = self._clock()
        records = await self.list_consents()
        return ConsentStats(
            active_consents=sum(1 for r in records if r.status == ConsentStatus.ACTIVE and not r.is_expired(now)),
            total_consents=len(records),
            by_status=dict(Counter(r.status.value for r in records)),
        )

    # ============== Tab-driven scanning ==============

    def should_scan_url(self, url: str) -> bool:
        return not any(url.startswith(prefix) for prefix in self._scan_skip_prefixes)

    async def handle_tab_updated(self, tab_id: TabId, url: str | None, status: str = "complete") -> bool:
        """
        React to a tab finishing a page load.

        Schedules a consent sweep in the tab after the settle delay when
        auto-detection is on and the page is scannable.

        Returns:
            True if a sweep was scheduled
        """
        if status != "complete" or not url:
            return False

        settings = await self.get_settings()
        if not settings.auto_detection or not self.should_scan_url(url):
            return False

        task = asyncio.create_task(self._scan_after_delay(tab_id))
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return True

    async def request_scan(self, tab_id: TabId) -> bool:
        """Ask a tab to sweep its page right away."""
        try:
            await self.tabs.send(tab_id, ScanForConsent())
        except TabUnavailableError as e:
            logger.warning(f"Scan request not delivered: {e.message}", extra={"tab_id": tab_id})
            return False
        return True

    async def _scan_after_delay(self, tab_id: TabId) -> None:
        await asyncio.sleep(self._scan_delay.total_seconds())
        await self.request_scan(tab_id)

    # ============== Private helpers ==============

    def _records_from(self, values: dict[str, Any]) -> list[ConsentRecord]:
        return [ConsentRecord.model_validate(item) for item in values.get(TOKENS) or []]

    def _settings_from(self, values: dict[str, Any]) -> WalletSettings:
        return WalletSettings.model_validate(values.get(SETTINGS) or {})

    def _find(self, records: list[ConsentRecord], token_id: str) -> ConsentRecord:
        for record in records:
            if record.token_id == token_id:
                return record
        raise ConsentNotFoundError(token_id)

    def _replace(self, records: list[ConsentRecord], updated: ConsentRecord) -> list[dict]:
        return [(updated if r.token_id == updated.token_id else r).to_store() for r in records]

    async def _notify(self, notification: Notification, settings: WalletSettings) -> None:
        if settings.notifications:
            await self._send(notification)

    async def _send(self, notification: Notification) -> None:
        try:
            await self.notifier.notify(notification)
        except Exception as e:
            logger.error(f"Notification '{notification.title}' failed: {e}")
