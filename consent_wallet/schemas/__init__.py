from .consent import (
    ActivityItem,
    ConsentData,
    ConsentRecord,
    ConsentStats,
    ConsentStatus,
    DetectionEvent,
    IssuedConsent,
    Notification,
    TabInfo,
    WalletSettings,
    WalletSettingsUpdate,
)
from .messages import (
    ActivateConsent,
    ConsentDetected,
    ConsentIssued,
    ConsentRevoked,
    GetConsentTokens,
    InjectContractCall,
    MessageEnvelope,
    ScanForConsent,
    TabUpdate,
    parse_command,
    parse_message,
)

__all__ = [
    "ActivateConsent",
    "ActivityItem",
    "ConsentData",
    "ConsentDetected",
    "ConsentIssued",
    "ConsentRecord",
    "ConsentRevoked",
    "ConsentStats",
    "ConsentStatus",
    "DetectionEvent",
    "GetConsentTokens",
    "InjectContractCall",
    "IssuedConsent",
    "MessageEnvelope",
    "Notification",
    "ScanForConsent",
    "TabInfo",
    "TabUpdate",
    "WalletSettings",
    "WalletSettingsUpdate",
    "parse_command",
    "parse_message",
]
