"""
Cross-context message protocol.

Observer -> Coordinator messages and Coordinator -> Observer commands are
closed tagged unions discriminated on ``action``. Anything that does not
validate against one of the variants is dropped by ``parse_message`` /
``parse_command``.
"""

import logging
from typing import Annotated, Any, Literal, Union

from pydantic import Field, TypeAdapter, ValidationError

from consent_wallet.schemas.consent import (
    CamelModel,
    ConsentData,
    IssuedConsent,
    TabInfo,
    TokenId,
    UtcDatetime,
)

logger = logging.getLogger(__name__)


# ── Observer -> Coordinator ───────────────────────────────────────────────────


class ConsentDetected(CamelModel):
    action: Literal["consentDetected"] = "consentDetected"
    data: ConsentData
    url: str
    timestamp: UtcDatetime


class ConsentIssued(CamelModel):
    action: Literal["consentIssued"] = "consentIssued"
    data: IssuedConsent


class ConsentRevoked(CamelModel):
    action: Literal["consentRevoked"] = "consentRevoked"
    token_id: TokenId


class ActivateConsent(CamelModel):
    action: Literal["activateConsent"] = "activateConsent"
    token_id: TokenId
    site: str | None = None
    url: str | None = None


class GetConsentTokens(CamelModel):
    """The only request/response message; answered with every consent record."""

    action: Literal["getConsentTokens"] = "getConsentTokens"


Message = Annotated[
    Union[ConsentDetected, ConsentIssued, ConsentRevoked, ActivateConsent, GetConsentTokens],
    Field(discriminator="action"),
]

FIRE_AND_FORGET = (ConsentDetected, ConsentIssued, ConsentRevoked, ActivateConsent)


# ── Coordinator -> Observer ───────────────────────────────────────────────────


class ScanForConsent(CamelModel):
    action: Literal["scanForConsent"] = "scanForConsent"


class InjectContractCall(CamelModel):
    """Ask the page in a tab to run a contract client call on our behalf."""

    action: Literal["injectContractCall"] = "injectContractCall"
    method: Literal["activateConsent", "abandonConsent", "revokeConsent"]
    token_id: TokenId


Command = Annotated[Union[ScanForConsent, InjectContractCall], Field(discriminator="action")]


class MessageEnvelope(CamelModel):
    """HTTP body carrying a raw message and the tab that sent it."""

    message: dict[str, Any]
    tab: TabInfo | None = None


_message_adapter: TypeAdapter = TypeAdapter(Message)
_command_adapter: TypeAdapter = TypeAdapter(Command)


def parse_message(raw: Any) -> Message | None:
    """Validate a raw payload into a message variant, or None if malformed."""
    try:
        return _message_adapter.validate_python(raw)
    except ValidationError as exc:
        action = raw.get("action") if isinstance(raw, dict) else None
        logger.warning("Ignoring malformed message (action=%s): %d errors", action, exc.error_count())
        return None


def parse_command(raw: Any) -> Command | None:
    """Validate a raw payload into a command variant, or None if malformed."""
    try:
        return _command_adapter.validate_python(raw)
    except ValidationError as exc:
        logger.warning("Ignoring malformed command: %d errors", exc.error_count())
        return None


def dump(model: CamelModel) -> dict[str, Any]:
    """Wire form of a message or command."""
    return model.model_dump(mode="json", by_alias=True)


class TabUpdate(CamelModel):
    """Page-load progress reported for a tab."""

    url: str | None = None
    status: str = "complete"
