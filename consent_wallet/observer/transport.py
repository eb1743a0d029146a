"""
Observer -> Coordinator transports.

``InProcessTransport`` hands messages straight to a coordinator living in
the same event loop and registers the Observer's command channel with the
tab manager. ``HttpTransport`` posts message envelopes to a coordinator
service's ``/api/v1/messages`` endpoint with httpx.
"""

import logging
from typing import TYPE_CHECKING, Any, Protocol

import httpx

from consent_wallet.schemas.consent import CamelModel, TabInfo
from consent_wallet.schemas.messages import dump
from consent_wallet.services.tab_manager import CallbackChannel, TabManager

if TYPE_CHECKING:
    from consent_wallet.observer.observer import PageObserver
    from consent_wallet.services.lifecycle_service import ConsentCoordinator

logger = logging.getLogger(__name__)


class ObserverTransport(Protocol):
    async def send_message(self, message: CamelModel, tab: TabInfo) -> Any: ...


class InProcessTransport:
    def __init__(self, coordinator: "ConsentCoordinator", tabs: TabManager):
        self.coordinator = coordinator
        self.tabs = tabs

    async def connect(self, observer: "PageObserver") -> None:
        """Route coordinator commands for the observer's tab to ``observer.handle_command``."""
        await self.tabs.register(observer.tab_id, CallbackChannel(observer.handle_command), url=observer.state.url)

    async def disconnect(self, observer: "PageObserver") -> None:
        await self.tabs.disconnect(observer.tab_id)

    async def send_message(self, message: CamelModel, tab: TabInfo) -> Any:
        return await self.coordinator.handle_message(message, tab)


class HttpTransport:
    """
    Posts ``{"message": ..., "tab": ...}`` envelopes to a coordinator service.

    Commands for the tab arrive separately over ``/api/v1/tabs/{tab_id}/ws``.
    """

    def __init__(self, base_url: str, client: httpx.AsyncClient | None = None, timeout: float = 10.0):
        self.base_url = base_url.rstrip("/")
        self._client = client
        self._owns_client = client is None
        self._timeout = timeout

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(base_url=self.base_url, timeout=self._timeout)
        return self._client

    async def send_message(self, message: CamelModel, tab: TabInfo) -> Any:
        client = await self._get_client()
        envelope = {"message": dump(message), "tab": tab.to_store()}
        try:
            response = await client.post("/api/v1/messages", json=envelope)
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error(f"Message {getattr(message, 'action', '?')} not delivered: {e}", extra={"tab_id": tab.tab_id})
            return None
        return response.json()

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
