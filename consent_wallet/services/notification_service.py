"""
Notification Service

The user-visible notification sink. Notifications are logged and published
to SSE listeners as ``notification`` events. Buttons are advisory: nothing in
the coordinator waits for a button press.
"""

import logging
from typing import Protocol

from consent_wallet.schemas.consent import Notification
from consent_wallet.services.sse_manager import NotificationBroadcaster
from consent_wallet.utils.sanitize import strip_tags

logger = logging.getLogger(__name__)


class NotificationSink(Protocol):
    async def notify(self, notification: Notification) -> None: ...


class NotificationService:
    """Publishes notifications to every connected listener."""

    def __init__(self, broadcaster: NotificationBroadcaster):
        self.broadcaster = broadcaster

    async def notify(self, notification: Notification) -> None:
        # Site names and purposes come from third-party pages
        clean = notification.model_copy(
            update={"title": strip_tags(notification.title), "message": strip_tags(notification.message)}
        )
        delivered = await self.broadcaster.publish("notification", clean.to_store())
        logger.info(f"Notification '{clean.title}': {clean.message} (listeners: {delivered})")


# ============== Notification builders ==============


def consent_detected(site_name: str) -> Notification:
    return Notification(title="Consent Detected", message=f"Privacy consent detected on {site_name}")


def consent_issued(site_name: str) -> Notification:
    return Notification(
        title="Consent Token Issued",
        message=f"Consent token for {site_name} is pending until you sign in",
    )


def consent_activated(site_name: str) -> Notification:
    return Notification(title="Consent Activated", message=f"Sign-in detected, consent for {site_name} is now active")


def consent_abandoned(site_name: str) -> Notification:
    return Notification(
        title="Consent Abandoned",
        message=f"No sign-in was detected for {site_name}; the pending consent was abandoned",
    )


def consent_revoked(site_name: str) -> Notification:
    return Notification(title="Consent Revoked", message=f"Consent token revoked for {site_name}")


def consent_expiring(site_name: str) -> Notification:
    return Notification(
        title="Consent Expiring Soon",
        message=f"Your consent for {site_name} expires in 24 hours. Renew or revoke?",
        buttons=["Renew", "Revoke"],
    )
