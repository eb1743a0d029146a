"""
Service wiring.

``build_services`` assembles the coordinator and its collaborators; the
application keeps the result on ``app.state.services`` and routes reach it
through the ``get_*`` dependencies below.
"""

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from starlette.requests import HTTPConnection

from consent_wallet.config import Settings, settings
from consent_wallet.database import AsyncSessionLocal
from consent_wallet.scheduler import DeadlineScheduler, create_scheduler
from consent_wallet.services.contract_bridge import ContractBridge
from consent_wallet.services.lifecycle_service import ConsentCoordinator
from consent_wallet.services.notification_service import NotificationService
from consent_wallet.services.sse_manager import NotificationBroadcaster, get_notification_broadcaster
from consent_wallet.services.store_service import PersistentStore
from consent_wallet.services.tab_manager import TabManager, get_tab_manager


@dataclass
class Services:
    store: PersistentStore
    scheduler: AsyncIOScheduler
    deadlines: DeadlineScheduler
    tabs: TabManager
    broadcaster: NotificationBroadcaster
    notifier: NotificationService
    contract: ContractBridge
    coordinator: ConsentCoordinator


def build_services(
    config: Settings = settings,
    session_factory: async_sessionmaker[AsyncSession] = AsyncSessionLocal,
    jobstore_url: str | None = None,
    tabs: TabManager | None = None,
    broadcaster: NotificationBroadcaster | None = None,
    clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    use_memory_jobstore: bool = False,
) -> Services:
    store = PersistentStore(session_factory, namespace=config.store_namespace)
    scheduler = create_scheduler(None if use_memory_jobstore else (jobstore_url or config.scheduler_jobstore_url))
    deadlines = DeadlineScheduler(scheduler, clock=clock)
    tabs = tabs or get_tab_manager()
    broadcaster = broadcaster or get_notification_broadcaster()
    notifier = NotificationService(broadcaster)
    contract = ContractBridge(tabs)
    coordinator = ConsentCoordinator(
        store=store,
        deadlines=deadlines,
        notifier=notifier,
        contract=contract,
        tabs=tabs,
        clock=clock,
        scan_skip_prefixes=config.scan_skip_prefixes,
    )
    return Services(
        store=store,
        scheduler=scheduler,
        deadlines=deadlines,
        tabs=tabs,
        broadcaster=broadcaster,
        notifier=notifier,
        contract=contract,
        coordinator=coordinator,
    )


def get_services(conn: HTTPConnection) -> Services:
    return conn.app.state.services


def get_coordinator(conn: HTTPConnection) -> ConsentCoordinator:
    return get_services(conn).coordinator


def get_tabs(conn: HTTPConnection) -> TabManager:
    return get_services(conn).tabs


def get_broadcaster(conn: HTTPConnection) -> NotificationBroadcaster:
    return get_services(conn).broadcaster
