"""
Message Routes

The Observer -> Coordinator message bus over HTTP.

Endpoints:
    POST /api/v1/messages — deliver one message envelope
"""

import logging

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse

from consent_wallet.dependencies import get_coordinator
from consent_wallet.schemas.messages import GetConsentTokens, MessageEnvelope, parse_message
from consent_wallet.services.lifecycle_service import ConsentCoordinator
from consent_wallet.utils.metrics import MESSAGES_TOTAL

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Messages"])


@router.post("/messages", status_code=status.HTTP_202_ACCEPTED)
async def post_message(
    envelope: MessageEnvelope,
    coordinator: ConsentCoordinator = Depends(get_coordinator),
):
    """
    Deliver a message from an Observer.

    ``consentDetected``, ``consentIssued``, ``consentRevoked`` and
    ``activateConsent`` are fire-and-forget and answer
    ``{"status": "accepted"}``. ``getConsentTokens`` answers with every
    consent record. Malformed or unknown messages answer
    ``{"status": "ignored"}``.
    """
    message = parse_message(envelope.message)
    if message is None:
        MESSAGES_TOTAL.labels(action="ignored").inc()
        return {"status": "ignored"}

    result = await coordinator.handle_message(message, envelope.tab)
    if isinstance(message, GetConsentTokens):
        return JSONResponse(status_code=status.HTTP_200_OK, content=result)
    return {"status": "accepted"}
