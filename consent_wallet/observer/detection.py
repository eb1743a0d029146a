"""
Consent prompt detection engine.

Finds page elements that ask the user to consent (buttons, links and
overlays whose text matches a consent-action pattern) and extracts a
structured ``ConsentData`` description of what is being consented to.

Scanning is read-only and does not deduplicate: every matching element of a
sweep yields one detection.
"""

import logging
from dataclasses import dataclass
from xml.etree.ElementTree import Element

from consent_wallet.constants.heuristics import (
    CLICKABLE_INPUT_TYPES,
    CLICKABLE_TAGS,
    CONSENT_ACTION_PATTERNS,
    DATA_TYPE_VOCABULARY,
    DEFAULT_DATA_TYPE,
    DEFAULT_PURPOSE_TEMPLATE,
    OVERLAY_MARKERS,
    PRIVACY_LINK_PATTERNS,
    PURPOSE_CONTAINER_MARKERS,
    PURPOSE_RULES,
    WALLET_ADDRESS_PATTERN,
    ZERO_ADDRESS,
)
from consent_wallet.observer.document import PageDocument, outer_html, text_content
from consent_wallet.schemas.consent import ConsentData
from consent_wallet.utils.sanitize import sanitize_snapshot

logger = logging.getLogger(__name__)


def matches_consent_action(text: str) -> bool:
    return any(pattern.search(text) for pattern in CONSENT_ACTION_PATTERNS)


def matches_privacy_link(text: str) -> bool:
    return any(pattern.search(text) for pattern in PRIVACY_LINK_PATTERNS)


@dataclass(frozen=True)
class Detection:
    """One matched element and the consent data extracted for it."""

    element: Element
    consent: ConsentData


class ConsentDetector:
    def is_clickable(self, element: Element) -> bool:
        if element.tag in CLICKABLE_TAGS:
            return True
        return element.tag == "input" and (element.get("type") or "").lower() in CLICKABLE_INPUT_TYPES

    def clickable_text(self, element: Element) -> str:
        return text_content(element) or element.get("value") or ""

    def scan_element(self, element: Element, document: PageDocument) -> Detection | None:
        """Check a single (newly inserted) element by its full text content."""
        if not matches_consent_action(text_content(element)):
            return None
        return Detection(element=element, consent=self.extract_consent_data(element, document))

    def sweep(self, document: PageDocument) -> list[Detection]:
        """
        Full page sweep.

        Clickables are checked first, then rendered overlay containers
        (class or id containing modal, popup, overlay, consent or cookie).
        """
        detections: list[Detection] = []

        for element in document.iter():
            if self.is_clickable(element) and matches_consent_action(self.clickable_text(element)):
                detections.append(Detection(element, self.extract_consent_data(element, document)))

        for element in document.select_attr(["class", "id"], OVERLAY_MARKERS):
            if not document.is_rendered(element):
                continue
            if matches_consent_action(text_content(element)):
                detections.append(Detection(element, self.extract_consent_data(element, document)))

        if detections:
            logger.debug(f"Sweep of {document.url} matched {len(detections)} element(s)")
        return detections

    # ── Extraction ──

    def extract_consent_data(self, element: Element, document: PageDocument) -> ConsentData:
        site_name = self.extract_site_name(document)
        return ConsentData(
            site_name=site_name,
            purpose=self.extract_purpose(element, document, site_name),
            data_types=self.extract_data_types(document),
            privacy_policy_url=self.find_privacy_policy_url(document),
            recipient_address=self.extract_recipient_address(document),
            detected_element=sanitize_snapshot(outer_html(element)),
        )

    def extract_site_name(self, document: PageDocument) -> str:
        """``<title>`` up to " - " / " | ", else the first ``<h1>``, else the hostname."""
        title = document.title
        if title:
            name = title.split(" - ")[0].split(" | ")[0].strip()
            if name:
                return name

        h1 = document.find("h1")
        if h1 is not None:
            heading = text_content(h1).strip()
            if heading:
                return heading

        host = document.hostname
        return host[4:] if host.startswith("www.") else host

    def find_privacy_policy_url(self, document: PageDocument) -> str | None:
        for link in document.iter("a"):
            href = link.get("href")
            if href is None:
                continue
            resolved = document.resolve(href)
            if matches_privacy_link(text_content(link)) or matches_privacy_link(resolved):
                return resolved
        return None

    def extract_data_types(self, document: PageDocument) -> list[str]:
        page_text = document.body_text.lower()
        found = [data_type for data_type in DATA_TYPE_VOCABULARY if data_type in page_text]
        return found or [DEFAULT_DATA_TYPE]

    def extract_purpose(self, element: Element, document: PageDocument, site_name: str) -> str:
        container = document.closest(element, "class", PURPOSE_CONTAINER_MARKERS)
        if container is None:
            container = document.parent(element)
        text = text_content(container if container is not None else element)

        for keyword, purpose in PURPOSE_RULES:
            if keyword in text:
                return purpose
        return DEFAULT_PURPOSE_TEMPLATE.format(site=site_name)

    def extract_recipient_address(self, document: PageDocument) -> str:
        match = WALLET_ADDRESS_PATTERN.search(document.body_text)
        return match.group(0) if match else ZERO_ADDRESS
