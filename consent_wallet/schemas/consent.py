"""
Consent data model.

All models serialise with camelCase aliases (``tokenId``, ``siteName``...),
which is the shape used on the wire and in the persistent store, and accept
snake_case field names on input as well.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Literal

from pydantic import AfterValidator, BaseModel, BeforeValidator, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from consent_wallet.constants.heuristics import ZERO_ADDRESS
from consent_wallet.exceptions import InvalidStatusTransitionError
from consent_wallet.utils.validation import validate_ethereum_address


def _coerce_token_id(value: Any) -> Any:
    # Token ids are opaque; numeric ids from the ledger are kept as strings
    if isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    return value


def _ensure_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


TokenId = Annotated[str, BeforeValidator(_coerce_token_id)]
TabId = int | str
UtcDatetime = Annotated[datetime, AfterValidator(_ensure_utc)]


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_store(self) -> dict[str, Any]:
        """Serialise to the JSON-compatible, camelCase shape kept in the store."""
        return self.model_dump(mode="json", by_alias=True)


class ConsentStatus(str, Enum):
    PENDING = "Pending"
    ACTIVE = "Active"
    REVOKED = "Revoked"
    ABANDONED = "Abandoned"


# Status -> statuses it may move to. Revoked and Abandoned are terminal.
ALLOWED_TRANSITIONS: dict[ConsentStatus, frozenset[ConsentStatus]] = {
    ConsentStatus.PENDING: frozenset({ConsentStatus.ACTIVE, ConsentStatus.ABANDONED}),
    ConsentStatus.ACTIVE: frozenset({ConsentStatus.REVOKED}),
    ConsentStatus.REVOKED: frozenset(),
    ConsentStatus.ABANDONED: frozenset(),
}

TRANSITION_TIMESTAMPS: dict[ConsentStatus, str] = {
    ConsentStatus.ACTIVE: "activated_at",
    ConsentStatus.REVOKED: "revoked_at",
    ConsentStatus.ABANDONED: "abandoned_at",
}


class ConsentData(CamelModel):
    """Structured consent information extracted from a page."""

    site_name: str
    purpose: str
    data_types: list[str] = Field(default_factory=list)
    privacy_policy_url: str | None = None
    recipient_address: str = ZERO_ADDRESS
    detected_element: str | None = None

    @field_validator("recipient_address")
    @classmethod
    def check_recipient_address(cls, value: str) -> str:
        if not validate_ethereum_address(value):
            raise ValueError("recipient address must be 0x followed by 40 hex digits")
        return value


class IssuedConsent(ConsentData):
    """Consent data after the contract client minted a token for it."""

    token_id: TokenId
    expiry_date: UtcDatetime | None = None
    website: str | None = None


class ConsentRecord(IssuedConsent):
    """Durable record of one issued consent token."""

    status: ConsentStatus = ConsentStatus.PENDING
    issued_at: UtcDatetime
    activated_at: UtcDatetime | None = None
    revoked_at: UtcDatetime | None = None
    abandoned_at: UtcDatetime | None = None
    tab_id: TabId | None = None

    @classmethod
    def from_issued(cls, issued: IssuedConsent, issued_at: datetime, tab_id: TabId | None = None) -> "ConsentRecord":
        return cls(
            **issued.model_dump(),
            status=ConsentStatus.PENDING,
            issued_at=issued_at,
            tab_id=tab_id,
        )

    def can_transition(self, target: ConsentStatus) -> bool:
        return target in ALLOWED_TRANSITIONS[self.status]

    def transition(self, target: ConsentStatus, at: datetime) -> "ConsentRecord":
        """
        Return a copy moved to ``target`` with its transition timestamp set.

        Raises:
            InvalidStatusTransitionError: target is not reachable from the
                current status, or its timestamp was already set
        """
        if not self.can_transition(target):
            raise InvalidStatusTransitionError(self.status.value, target.value)
        field = TRANSITION_TIMESTAMPS[target]
        if getattr(self, field) is not None:
            raise InvalidStatusTransitionError(self.status.value, target.value)
        return self.model_copy(update={"status": target, field: _ensure_utc(at)})

    def is_expired(self, now: datetime) -> bool:
        """Expiry is derived, never stored."""
        return (
            self.status == ConsentStatus.ACTIVE
            and self.expiry_date is not None
            and self.expiry_date < now
        )


class DetectionEvent(CamelModel):
    """Append-only log entry for an observed consent prompt."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    id: str
    timestamp: UtcDatetime
    url: str
    tab_id: TabId | None = None
    consent_data: ConsentData
    status: Literal["detected"] = "detected"


class WalletSettings(CamelModel):
    """User-facing runtime settings kept in the store."""

    auto_detection: bool = True
    notifications: bool = True
    expiry_reminders: bool = True


class WalletSettingsUpdate(CamelModel):
    auto_detection: bool | None = None
    notifications: bool | None = None
    expiry_reminders: bool | None = None


class Notification(CamelModel):
    """Payload handed to the user-visible notification sink. Buttons are advisory."""

    title: str
    message: str
    buttons: list[str] | None = None


class TabInfo(CamelModel):
    """The browsing context a message came from."""

    tab_id: TabId
    url: str | None = None


class ActivityItem(CamelModel):
    type: Literal["consent", "detection"]
    timestamp: UtcDatetime
    site_name: str
    status: str


class ConsentStats(CamelModel):
    active_consents: int
    total_consents: int
    by_status: dict[str, int]
