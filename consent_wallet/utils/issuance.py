"""
Issuance hand-off.

Builds the URL that opens the token issuance form pre-filled with the
detected consent. The form (outside this service) calls the contract client
and redirects back to ``returnUrl`` when done.
"""

from urllib.parse import urlencode

from consent_wallet.schemas.consent import ConsentData


def build_issuance_url(consent: ConsentData, page_url: str, base_url: str) -> str:
    params = {
        "to": consent.recipient_address,
        "website": page_url,
        "purpose": consent.purpose,
        "fields": ",".join(consent.data_types),
        "privacyUrl": consent.privacy_policy_url or page_url,
        "sourceUrl": page_url,
        "returnUrl": page_url,
    }
    separator = "&" if "?" in base_url else "?"
    return f"{base_url}{separator}{urlencode(params)}"
