"""
Consent payload validation helpers.
"""

import re
from datetime import datetime, timedelta

ETHEREUM_ADDRESS_PATTERN = re.compile(r"^0x[a-fA-F0-9]{40}$")

MIN_EXPIRY_LEAD = timedelta(hours=1)
MAX_EXPIRY_LEAD = timedelta(days=365)


def validate_ethereum_address(address: str | None) -> bool:
    """Return True if address is a 0x-prefixed, 40 hex digit account address."""
    if not address:
        return False
    return bool(ETHEREUM_ADDRESS_PATTERN.match(address))


def validate_expiry_date(expiry_date: datetime | None, now: datetime) -> str | None:
    """
    Check that a consent expiry date lies in the accepted window.

    Args:
        expiry_date: Requested expiry (timezone-aware)
        now: Current time (timezone-aware)

    Returns:
        An error message, or None if the date is acceptable
    """
    if expiry_date is None:
        return "Expiry date is required"
    if expiry_date <= now:
        return "Expiry date must be in the future"
    if expiry_date < now + MIN_EXPIRY_LEAD:
        return "Expiry date must be at least 1 hour from now"
    if expiry_date > now + MAX_EXPIRY_LEAD:
        return "Expiry date cannot be more than 1 year from now"
    return None
