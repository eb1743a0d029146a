"""
Tab Channel Manager

Keeps the Coordinator -> Observer command channel of every open tab. An
Observer either connects over a WebSocket (``/api/v1/tabs/{tab_id}/ws``) or,
when it runs in the coordinator's process, registers a callback channel.

Commands are the ``scanForConsent`` sweep trigger and ``injectContractCall``
requests that the page runs against the contract client.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Protocol

from fastapi import WebSocket, WebSocketDisconnect

from consent_wallet.exceptions import TabUnavailableError
from consent_wallet.schemas.consent import CamelModel, TabId
from consent_wallet.schemas.messages import dump

logger = logging.getLogger(__name__)


class TabChannel(Protocol):
    async def send(self, payload: dict[str, Any]) -> None: ...


@dataclass
class WebSocketChannel:
    websocket: WebSocket

    async def send(self, payload: dict[str, Any]) -> None:
        await self.websocket.send_json(payload)


@dataclass
class CallbackChannel:
    """Channel to an Observer living in the same process."""

    callback: Callable[[dict[str, Any]], Awaitable[None]]

    async def send(self, payload: dict[str, Any]) -> None:
        await self.callback(payload)


@dataclass
class TabConnection:
    """Represents an open tab's command channel."""

    tab_id: TabId
    channel: TabChannel
    url: str | None = None
    connected_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    last_heartbeat: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class TabManager:
    """
    Registry of tab command channels.

    Tab ids are compared by their string form, so ``7`` and ``"7"`` name the
    same tab.
    """

    def __init__(self):
        self._connections: dict[str, TabConnection] = {}
        self._lock = asyncio.Lock()

    async def register(self, tab_id: TabId, channel: TabChannel, url: str | None = None) -> None:
        """Register (or replace) the channel of a tab."""
        async with self._lock:
            self._connections[str(tab_id)] = TabConnection(tab_id=tab_id, channel=channel, url=url)
        logger.info(f"Tab connected: {tab_id}", extra={"tab_id": tab_id})

    async def connect_websocket(self, websocket: WebSocket, tab_id: TabId, url: str | None = None) -> None:
        await websocket.accept()
        await self.register(tab_id, WebSocketChannel(websocket), url=url)
        await websocket.send_json(
            {
                "type": "connected",
                "tabId": tab_id,
                "timestamp": datetime.now(timezone.utc).isoformat(),
            }
        )

    async def disconnect(self, tab_id: TabId) -> None:
        async with self._lock:
            connection = self._connections.pop(str(tab_id), None)
        if connection:
            logger.info(f"Tab disconnected: {tab_id}", extra={"tab_id": tab_id})

    def is_connected(self, tab_id: TabId) -> bool:
        return str(tab_id) in self._connections

    async def send(self, tab_id: TabId | None, command: CamelModel) -> None:
        """
        Deliver a command to a tab.

        Raises:
            TabUnavailableError: no channel for the tab, or delivery failed
        """
        if tab_id is None:
            raise TabUnavailableError(tab_id, reason="no tab recorded")

        connection = self._connections.get(str(tab_id))
        if not connection:
            raise TabUnavailableError(tab_id)

        try:
            await connection.channel.send(dump(command))
        except WebSocketDisconnect as e:
            await self.disconnect(tab_id)
            raise TabUnavailableError(tab_id, reason="disconnected") from e
        except Exception as e:
            logger.error(f"Error sending to tab {tab_id}: {e}", extra={"tab_id": tab_id})
            raise TabUnavailableError(tab_id, reason=str(e)) from e

    async def handle_message(self, tab_id: TabId, message: dict) -> dict | None:
        """
        Handle a control message arriving on a tab's WebSocket.

        Returns:
            Response message or None
        """
        msg_type = message.get("type", "unknown")

        if msg_type in ("heartbeat", "ping"):
            async with self._lock:
                connection = self._connections.get(str(tab_id))
                if connection:
                    connection.last_heartbeat = datetime.now(timezone.utc)
            return {"type": "pong", "timestamp": datetime.now(timezone.utc).isoformat()}

        if msg_type == "navigated":
            connection = self._connections.get(str(tab_id))
            if connection:
                connection.url = message.get("url")
            return None

        return None

    def get_stats(self) -> dict:
        return {
            "total_tabs": len(self._connections),
            "tabs": [
                {
                    "tab_id": c.tab_id,
                    "url": c.url,
                    "connected_at": c.connected_at.isoformat(),
                    "last_heartbeat": c.last_heartbeat.isoformat(),
                }
                for c in self._connections.values()
            ],
        }


tab_manager = TabManager()


def get_tab_manager() -> TabManager:
    """Return the global TabManager singleton."""
    return tab_manager
