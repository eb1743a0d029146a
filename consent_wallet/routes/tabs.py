"""
Tab Routes

Tab lifecycle events and the Coordinator -> Observer command channel.

Endpoints:
    GET  /api/v1/tabs                  — connected tab channels
    POST /api/v1/tabs/{tab_id}/updated — a tab finished (or started) loading
    POST /api/v1/tabs/{tab_id}/scan    — ask a tab to sweep its page now
    WS   /api/v1/tabs/{tab_id}/ws      — command channel of one tab
"""

import json
import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect

from consent_wallet.dependencies import get_coordinator, get_tabs
from consent_wallet.schemas.consent import TabInfo
from consent_wallet.schemas.messages import GetConsentTokens, TabUpdate, parse_message
from consent_wallet.services.lifecycle_service import ConsentCoordinator
from consent_wallet.services.tab_manager import TabManager

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Tabs"])


@router.get("/tabs")
async def tab_stats(tabs: TabManager = Depends(get_tabs)) -> dict:
    return tabs.get_stats()


@router.post("/tabs/{tab_id}/updated")
async def tab_updated(
    tab_id: str,
    data: TabUpdate,
    coordinator: ConsentCoordinator = Depends(get_coordinator),
) -> dict:
    """Schedules a consent sweep once the page has settled, if auto-detection is on."""
    scheduled = await coordinator.handle_tab_updated(tab_id, data.url, data.status)
    return {"scheduled": scheduled}


@router.post("/tabs/{tab_id}/scan")
async def scan_tab(tab_id: str, coordinator: ConsentCoordinator = Depends(get_coordinator)) -> dict:
    return {"delivered": await coordinator.request_scan(tab_id)}


@router.websocket("/tabs/{tab_id}/ws")
async def tab_channel(
    websocket: WebSocket,
    tab_id: str,
    url: Annotated[str | None, Query()] = None,
):
    """
    Command channel of one tab.

    Server -> Observer: ``connected``, ``pong`` and commands
    (``{"action": "scanForConsent"}``, ``{"action": "injectContractCall", ...}``).

    Observer -> Server: ``{"type": "ping"}``, ``{"type": "navigated", "url": ...}``,
    or any Observer message (an object with an ``action``), which is handled as
    if posted to ``/api/v1/messages``. ``getConsentTokens`` is answered with
    ``{"type": "consentTokens", "data": [...]}``.
    """
    tabs = get_tabs(websocket)
    coordinator = get_coordinator(websocket)

    await tabs.connect_websocket(websocket, tab_id, url=url)

    try:
        while True:
            data = await websocket.receive_text()

            try:
                message = json.loads(data)
            except json.JSONDecodeError:
                await websocket.send_json({"type": "error", "message": "Invalid JSON"})
                continue
            if not isinstance(message, dict):
                await websocket.send_json({"type": "error", "message": "Expected a JSON object"})
                continue

            if "action" in message:
                parsed = parse_message(message)
                if parsed is None:
                    continue
                sender = TabInfo(tab_id=tab_id, url=url)
                result = await coordinator.handle_message(parsed, sender)
                if isinstance(parsed, GetConsentTokens):
                    await websocket.send_json({"type": "consentTokens", "data": result})
                continue

            if message.get("type") == "navigated":
                url = message.get("url", url)
            response = await tabs.handle_message(tab_id, message)
            if response:
                await websocket.send_json(response)

    except WebSocketDisconnect:
        logger.info(f"Tab channel closed: {tab_id}", extra={"tab_id": tab_id})
    except Exception as e:
        logger.error(f"Tab channel error: {e}", extra={"tab_id": tab_id})
    finally:
        await tabs.disconnect(tab_id)
