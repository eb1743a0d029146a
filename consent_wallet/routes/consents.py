"""
Consent Routes

Read models for the wallet popup and the settings record.

Endpoints:
    GET   /api/v1/consents             — every consent record
    GET   /api/v1/consents/stats       — counts by status
    GET   /api/v1/consents/{token_id}  — one record
    GET   /api/v1/detections           — detection log (most recent ``limit``)
    GET   /api/v1/activity             — consents and detections, newest first
    GET   /api/v1/settings             — runtime settings
    PATCH /api/v1/settings             — change runtime settings
"""

import logging
from typing import Any

from fastapi import APIRouter, Depends, Query

from consent_wallet.constants.heuristics import RECENT_ACTIVITY_LIMIT
from consent_wallet.dependencies import get_coordinator
from consent_wallet.schemas.consent import WalletSettingsUpdate
from consent_wallet.services.lifecycle_service import ConsentCoordinator

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Consents"])


@router.get("/consents")
async def list_consents(coordinator: ConsentCoordinator = Depends(get_coordinator)) -> list[dict[str, Any]]:
    return [record.to_store() for record in await coordinator.list_consents()]


@router.get("/consents/stats")
async def consent_stats(coordinator: ConsentCoordinator = Depends(get_coordinator)) -> dict[str, Any]:
    """Active (and not expired), total and per-status counts."""
    return (await coordinator.stats()).to_store()


@router.get("/consents/{token_id}")
async def get_consent(token_id: str, coordinator: ConsentCoordinator = Depends(get_coordinator)) -> dict[str, Any]:
    return (await coordinator.get_consent(token_id)).to_store()


@router.get("/detections")
async def list_detections(
    limit: int | None = Query(None, ge=1, le=1000),
    coordinator: ConsentCoordinator = Depends(get_coordinator),
) -> list[dict[str, Any]]:
    return [event.to_store() for event in await coordinator.list_detections(limit=limit)]


@router.get("/activity")
async def recent_activity(
    limit: int = Query(RECENT_ACTIVITY_LIMIT, ge=1, le=100),
    coordinator: ConsentCoordinator = Depends(get_coordinator),
) -> list[dict[str, Any]]:
    return [item.to_store() for item in await coordinator.recent_activity(limit=limit)]


@router.get("/settings")
async def get_settings(coordinator: ConsentCoordinator = Depends(get_coordinator)) -> dict[str, Any]:
    return (await coordinator.get_settings()).to_store()


@router.patch("/settings")
async def update_settings(
    data: WalletSettingsUpdate,
    coordinator: ConsentCoordinator = Depends(get_coordinator),
) -> dict[str, Any]:
    """Only provided fields are changed."""
    return (await coordinator.update_settings(data)).to_store()
