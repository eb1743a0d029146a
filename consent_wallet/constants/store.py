"""
Persistent Store Keys

Names of the collections held in the coordinator's key-value store.
"""

from enum import Enum


class StoreKey(str, Enum):
    """Enumeration of store keys."""

    CONSENT_TOKENS = "consentTokens"
    DETECTIONS = "detections"
    SETTINGS = "settings"
    ABANDON_TAB_MAP = "abandonTabMap"
