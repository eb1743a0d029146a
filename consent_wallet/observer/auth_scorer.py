"""
Authentication heuristic scorer.

Estimates from page-observable signals whether the user is signed in to the
current site. Each present signal adds its weight from
``AUTH_SIGNAL_WEIGHTS``; the total is capped at ``AUTH_MAX_SCORE`` and the
user counts as signed in at ``AUTH_THRESHOLD`` or above.
"""

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field

from consent_wallet.constants.heuristics import (
    AUTH_KEY_PATTERN,
    AUTH_MAX_SCORE,
    AUTH_SIGNAL_WEIGHTS,
    AUTH_THRESHOLD,
    CLICKABLE_TAGS,
    EMAIL_PATTERN,
    LOGIN_TEXT_PATTERN,
    LOGOUT_TEXT_PATTERN,
    PERSONALIZED_MARKERS,
    PROFILE_MARKERS,
    USER_CONTENT_MARKERS,
)
from consent_wallet.observer.document import PageDocument, text_content

logger = logging.getLogger(__name__)

_CONTROL_TYPES = frozenset({"button", "submit"})


@dataclass(frozen=True)
class AuthSignals:
    """Which signals were observed."""

    storage_keys: bool = False
    auth_cookies: bool = False
    profile_elements: bool = False
    logout_control: bool = False
    user_content: bool = False
    no_login_control: bool = False
    email_visible: bool = False
    personalized_content: bool = False

    def present(self) -> list[str]:
        return [name for name in AUTH_SIGNAL_WEIGHTS if getattr(self, name)]


def score_signals(signals: AuthSignals) -> int:
    """Capped weighted sum; monotonic in the set of present signals."""
    return min(sum(AUTH_SIGNAL_WEIGHTS[name] for name in signals.present()), AUTH_MAX_SCORE)


@dataclass
class AuthScore:
    score: int
    signals: AuthSignals = field(default_factory=AuthSignals)

    @property
    def authenticated(self) -> bool:
        return self.score >= AUTH_THRESHOLD


class AuthScorer:
    def collect(
        self,
        document: PageDocument,
        cookies: Mapping[str, str] | None = None,
        storage_keys: Iterable[str] = (),
    ) -> AuthSignals:
        controls = [element for element in document.iter() if self._is_control(element)]
        control_texts = [text_content(element).lower() for element in controls]

        return AuthSignals(
            storage_keys=any(AUTH_KEY_PATTERN.search(key) for key in storage_keys),
            auth_cookies=any(AUTH_KEY_PATTERN.search(name) for name in (cookies or {})),
            profile_elements=bool(document.select_attr(["class", "id", "data-testid"], PROFILE_MARKERS)),
            logout_control=any(LOGOUT_TEXT_PATTERN.search(text) for text in control_texts),
            user_content=bool(document.select_attr(["class", "id"], USER_CONTENT_MARKERS)),
            no_login_control=not any(LOGIN_TEXT_PATTERN.search(text) for text in control_texts),
            email_visible=bool(EMAIL_PATTERN.search(document.body_text)),
            personalized_content=bool(document.select_attr(["class", "id"], PERSONALIZED_MARKERS)),
        )

    def score(
        self,
        document: PageDocument,
        cookies: Mapping[str, str] | None = None,
        storage_keys: Iterable[str] = (),
    ) -> AuthScore:
        signals = self.collect(document, cookies, storage_keys)
        result = AuthScore(score=score_signals(signals), signals=signals)
        logger.debug(
            f"Auth score for {document.hostname or 'page'}: {result.score}/{AUTH_MAX_SCORE} "
            f"({', '.join(signals.present()) or 'no signals'})"
        )
        return result

    def _is_control(self, element) -> bool:
        if element.tag in CLICKABLE_TAGS or element.get("role") == "button":
            return True
        return (element.get("type") or "").lower() in _CONTROL_TYPES
