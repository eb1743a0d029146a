"""
Prometheus Metrics Module

Provides coordinator metrics using the prometheus_client library.
Metrics are exposed at /metrics endpoint for Prometheus scraping.
"""

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Info, generate_latest
from starlette.requests import Request
from starlette.responses import Response

# =============================================================================
# Application Info
# =============================================================================

APP_INFO = Info("consent_wallet_app", "Consent Wallet Coordinator information")


def set_app_info(version: str, environment: str) -> None:
    """Set application info labels."""
    APP_INFO.info({"version": version, "environment": environment})


# =============================================================================
# Message Bus Metrics
# =============================================================================

MESSAGES_TOTAL = Counter(
    "consent_wallet_messages_total",
    "Messages received by the coordinator",
    ["action"],  # consentDetected, consentIssued, ..., ignored
)

# =============================================================================
# Lifecycle Metrics
# =============================================================================

DETECTIONS_TOTAL = Counter(
    "consent_wallet_detections_total",
    "Consent prompt detection events recorded",
)

CONSENT_TRANSITIONS_TOTAL = Counter(
    "consent_wallet_consent_transitions_total",
    "Consent record status transitions",
    ["status"],  # Pending, Active, Revoked, Abandoned
)

DEADLINES_FIRED_TOTAL = Counter(
    "consent_wallet_deadlines_fired_total",
    "Deadlines fired, by kind and outcome",
    ["kind", "outcome"],  # applied, superseded, unhandled
)

# =============================================================================
# Contract Client Metrics
# =============================================================================

CONTRACT_REQUESTS_TOTAL = Counter(
    "consent_wallet_contract_requests_total",
    "On-chain requests handed to a tab, by method and outcome",
    ["method", "outcome"],  # sent, failed
)


async def metrics_endpoint(request: Request) -> Response:
    """Prometheus scrape endpoint."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
