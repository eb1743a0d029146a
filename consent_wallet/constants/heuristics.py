"""
Detection & Lifecycle Heuristics

Every pattern set, signal weight, threshold and delay used by the detection
engine, the auth scorer and the lifecycle state machine. None of these are
user-configurable.
"""

import re
from datetime import timedelta

# ── Consent prompt detection ──────────────────────────────────────────────────

# Text of a control (or rendered overlay) that asks the user to consent
CONSENT_ACTION_PATTERNS: tuple[re.Pattern, ...] = (
    re.compile(r"accept.*terms", re.IGNORECASE),
    re.compile(r"agree.*terms", re.IGNORECASE),
    re.compile(r"i\s*accept", re.IGNORECASE),
    re.compile(r"accept.*cookies", re.IGNORECASE),
    re.compile(r"accept.*privacy", re.IGNORECASE),
    re.compile(r"continue.*agree", re.IGNORECASE),
    re.compile(r"by\s*continuing", re.IGNORECASE),
    re.compile(r"accept.*all", re.IGNORECASE),
    re.compile(r"allow.*cookies", re.IGNORECASE),
    re.compile(r"consent.*processing", re.IGNORECASE),
    re.compile(r"agree.*policy", re.IGNORECASE),
)

# Link text or href pointing at a privacy document
PRIVACY_LINK_PATTERNS: tuple[re.Pattern, ...] = (
    re.compile(r"privacy.*policy", re.IGNORECASE),
    re.compile(r"terms.*service", re.IGNORECASE),
    re.compile(r"terms.*conditions", re.IGNORECASE),
    re.compile(r"cookie.*policy", re.IGNORECASE),
    re.compile(r"data.*protection", re.IGNORECASE),
    re.compile(r"privacy.*notice", re.IGNORECASE),
)

CLICKABLE_TAGS = frozenset({"button", "a"})
CLICKABLE_INPUT_TYPES = frozenset({"button", "submit"})

# class/id fragments of containers that look like a modal, overlay or cookie banner
OVERLAY_MARKERS: tuple[str, ...] = ("modal", "popup", "overlay", "consent", "cookie")

# class fragments of the container a purpose is read from
PURPOSE_CONTAINER_MARKERS: tuple[str, ...] = ("modal", "popup", "consent")

DATA_TYPE_VOCABULARY: tuple[str, ...] = (
    "email",
    "name",
    "location",
    "cookies",
    "ip address",
    "device information",
    "browsing history",
    "preferences",
    "analytics",
    "advertising",
    "personal information",
)
DEFAULT_DATA_TYPE = "general usage data"

# First keyword found in the container text wins
PURPOSE_RULES: tuple[tuple[str, str], ...] = (
    ("cookie", "Cookie usage and website functionality"),
    ("analytics", "Analytics and performance tracking"),
    ("advertising", "Advertising and marketing purposes"),
    ("personalization", "Content personalization"),
)
DEFAULT_PURPOSE_TEMPLATE = "General usage consent for {site}"

WALLET_ADDRESS_PATTERN = re.compile(r"0x[a-fA-F0-9]{40}")
ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

DETECTED_ELEMENT_MAX_LENGTH = 500

# ── Authentication signals ────────────────────────────────────────────────────

AUTH_KEY_PATTERN = re.compile(r"(token|auth|session|user|login|jwt|access)", re.IGNORECASE)
LOGOUT_TEXT_PATTERN = re.compile(r"(logout|signout|sign out|log out|sign off|log off)", re.IGNORECASE)
LOGIN_TEXT_PATTERN = re.compile(r"(login|signin|sign in|sign up|register|join)", re.IGNORECASE)
EMAIL_PATTERN = re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b")

PROFILE_MARKERS: tuple[str, ...] = ("profile", "user", "account", "avatar")
USER_CONTENT_MARKERS: tuple[str, ...] = ("welcome", "dashboard", "my")
PERSONALIZED_MARKERS: tuple[str, ...] = ("personal", "custom", "preference")

# Signal name -> weight added to the score when the signal is present
AUTH_SIGNAL_WEIGHTS: dict[str, int] = {
    "storage_keys": 3,  # auth/session/token-like local storage keys
    "auth_cookies": 2,  # auth/session/token-like cookie names
    "profile_elements": 2,  # profile/account/avatar styled elements
    "logout_control": 3,  # a control labelled log out / sign out
    "user_content": 1,  # dashboard/welcome styled content
    "no_login_control": 1,  # no control labelled log in / sign up
    "email_visible": 1,  # an email address in the page text
    "personalized_content": 1,  # personalization styled content
}
AUTH_MAX_SCORE = 10
AUTH_THRESHOLD = 4

# Intercepted requests that look like a login exchange
LOGIN_URL_PATTERN = re.compile(r"(login|signin|auth|authenticate|session|oauth|callback)", re.IGNORECASE)
LOGIN_BODY_PATTERN = re.compile(r"(email|username|password|login|signin)", re.IGNORECASE)

# ── Observer timing ───────────────────────────────────────────────────────────

INITIAL_SCAN_DELAY = timedelta(seconds=2)
FREQUENT_POLL_INTERVAL = timedelta(seconds=10)
FREQUENT_POLL_COUNT = 12  # two minutes of frequent polling
SLOW_POLL_INTERVAL = timedelta(seconds=30)
PENDING_POINTER_MAX_AGE = timedelta(minutes=10)
PENDING_POINTER_KEY = "lastIssuedConsent"

# ── Coordinator timing ────────────────────────────────────────────────────────

ABANDON_TIMEOUT = timedelta(minutes=10)
EXPIRY_REMINDER_LEAD = timedelta(hours=24)
TAB_SCAN_SETTLE_DELAY = timedelta(seconds=3)
RECENT_ACTIVITY_LIMIT = 5
