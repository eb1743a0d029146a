"""
Monitoring Routes

Health checks and the Prometheus scrape endpoint.
"""

import time
from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from consent_wallet.config import settings
from consent_wallet.dependencies import Services, get_services
from consent_wallet.exceptions import StoreError
from consent_wallet.utils.metrics import metrics_endpoint, set_app_info

router = APIRouter(tags=["Monitoring"])

APP_START_TIME = time.time()

set_app_info(version=settings.app_version, environment=settings.environment)


class HealthStatus(BaseModel):
    status: str
    timestamp: str
    version: str
    uptime_seconds: float


class ReadinessStatus(BaseModel):
    status: str
    timestamp: str
    checks: dict[str, dict[str, Any]]


@router.get("/health", response_model=HealthStatus)
async def health_check() -> HealthStatus:
    """Liveness probe; does not touch the store or the scheduler."""
    return HealthStatus(
        status="healthy",
        timestamp=datetime.now(timezone.utc).isoformat(),
        version=settings.app_version,
        uptime_seconds=round(time.time() - APP_START_TIME, 2),
    )


@router.get("/ready", response_model=ReadinessStatus)
async def readiness_check(services: Services = Depends(get_services)) -> ReadinessStatus:
    """Readiness probe: store reachable and deadline scheduler running."""
    checks: dict[str, dict[str, Any]] = {}

    try:
        await services.store.version("settings")
        checks["store"] = {"status": "healthy"}
    except StoreError as e:
        checks["store"] = {"status": "unhealthy", "message": e.message}

    if services.scheduler.running:
        checks["scheduler"] = {"status": "healthy", "pending_deadlines": len(services.deadlines.pending())}
    else:
        checks["scheduler"] = {"status": "unhealthy", "message": "scheduler not running"}

    checks["tabs"] = {"status": "healthy", "connected": services.tabs.get_stats()["total_tabs"]}
    checks["notifications"] = {"status": "healthy", "listeners": services.broadcaster.subscriber_count()}

    all_healthy = all(check["status"] == "healthy" for check in checks.values())
    return ReadinessStatus(
        status="ready" if all_healthy else "not_ready",
        timestamp=datetime.now(timezone.utc).isoformat(),
        checks=checks,
    )


router.add_api_route("/metrics", metrics_endpoint, methods=["GET"], include_in_schema=False)
