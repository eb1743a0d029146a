"""Constants package for the Consent Wallet Coordinator."""

from .heuristics import (
    ABANDON_TIMEOUT,
    AUTH_MAX_SCORE,
    AUTH_SIGNAL_WEIGHTS,
    AUTH_THRESHOLD,
    EXPIRY_REMINDER_LEAD,
    ZERO_ADDRESS,
)
from .store import StoreKey

__all__ = [
    # Store constants
    "StoreKey",
    # Heuristic constants
    "ABANDON_TIMEOUT",
    "AUTH_MAX_SCORE",
    "AUTH_SIGNAL_WEIGHTS",
    "AUTH_THRESHOLD",
    "EXPIRY_REMINDER_LEAD",
    "ZERO_ADDRESS",
]
