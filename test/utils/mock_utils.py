"""
Shared test helpers: a hand-driven clock, a recording tab channel and
consent payload builders.
"""

from datetime import datetime, timedelta, timezone
from typing import Any

from consent_wallet.schemas.consent import ConsentData, IssuedConsent

# Fixed "now" for lifecycle tests, far enough ahead that no deadline is ever due in real time
T0 = datetime(2030, 1, 15, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Callable clock the tests move forward by hand."""

    def __init__(self, start: datetime = T0):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


class RecordingChannel:
    """Tab channel that keeps every command sent to it."""

    def __init__(self):
        self.sent: list[dict[str, Any]] = []

    async def send(self, payload: dict[str, Any]) -> None:
        self.sent.append(payload)

    def actions(self) -> list[str]:
        return [payload.get("action") for payload in self.sent]

    def contract_calls(self) -> list[tuple[str, str]]:
        return [(p["method"], p["tokenId"]) for p in self.sent if p.get("action") == "injectContractCall"]


def create_test_consent_data(site_name: str = "Example Shop", **overrides) -> ConsentData:
    values = {
        "site_name": site_name,
        "purpose": "Cookie usage and website functionality",
        "data_types": ["email", "cookies"],
        "privacy_policy_url": "https://shop.example.com/privacy",
    }
    values.update(overrides)
    return ConsentData(**values)


def create_test_issued_consent(token_id: str = "42", expiry_date: datetime | None = None, **overrides) -> IssuedConsent:
    data = create_test_consent_data(**overrides).model_dump()
    return IssuedConsent(
        **data,
        token_id=token_id,
        expiry_date=expiry_date if expiry_date is not None else T0 + timedelta(days=30),
        website="https://shop.example.com/checkout",
    )


def notification_titles(broadcaster) -> list[str]:
    return [event["data"]["title"] for event in broadcaster.recent() if event["type"] == "notification"]
