"""
Page document model.

A parsed HTML page as the Observer sees it. Parsing is done by html5lib,
the same standards-compliant parser bleach sanitises with, into a plain
ElementTree; this module adds the few DOM queries the detection engine and
the auth scorer need (text content, attribute substring selectors, closest
ancestor, rendered check).
"""

import re
from collections.abc import Iterable, Iterator
from urllib.parse import urljoin, urlparse
from xml.etree.ElementTree import Element, tostring

import html5lib

_HIDDEN_STYLE = re.compile(r"(display\s*:\s*none|visibility\s*:\s*hidden)", re.IGNORECASE)

# Elements whose content is never rendered as text
_NON_TEXT_TAGS = frozenset({"script", "style", "template", "noscript"})


def _parse_kwargs() -> dict:
    return {"treebuilder": "etree", "namespaceHTMLElements": False}


def text_content(element: Element) -> str:
    """Concatenated text of an element and its descendants (DOM ``textContent``)."""
    parts: list[str] = []

    def walk(node: Element) -> None:
        if isinstance(node.tag, str) and node.tag not in _NON_TEXT_TAGS:
            if node.text:
                parts.append(node.text)
            for child in node:
                walk(child)
        # Tail text belongs to the parent, so it is kept for skipped nodes too
        if node.tail and node is not element:
            parts.append(node.tail)

    walk(element)
    return "".join(parts)


def attribute_contains(element: Element, attribute: str, fragments: Iterable[str]) -> bool:
    """``[attribute*="fragment"]`` for any of the fragments (case-sensitive, like CSS)."""
    value = element.get(attribute)
    if not value:
        return False
    return any(fragment in value for fragment in fragments)


def outer_html(element: Element) -> str:
    # ElementTree serialises the tail text along with the element
    tail, element.tail = element.tail, None
    try:
        return tostring(element, encoding="unicode", method="html")
    finally:
        element.tail = tail


class PageDocument:
    """
    A parsed page plus its URL.

    Elements are ``xml.etree.ElementTree.Element`` instances; parent links
    are computed once at parse time.
    """

    def __init__(self, html: str, url: str = ""):
        self.url = url
        self.root: Element = html5lib.parse(html or "", **_parse_kwargs())
        self._parents: dict[Element, Element] = {}
        self._index(self.root)

    def _index(self, parent: Element) -> None:
        for child in parent:
            self._parents[child] = parent
            self._index(child)

    @staticmethod
    def parse_fragment(markup: str) -> list[Element]:
        """Top-level elements of an HTML fragment (e.g. nodes inserted by a mutation)."""
        fragment = html5lib.parseFragment(markup or "", **_parse_kwargs())
        return [child for child in fragment if isinstance(child.tag, str)]

    def insert(self, markup: str, parent: Element | None = None) -> list[Element]:
        """
        Append an HTML fragment to ``parent`` (the body by default) and return
        its top-level elements, now attached to this document.
        """
        if parent is None:
            parent = self.body
        elements = self.parse_fragment(markup)
        for element in elements:
            element.tail = None
            parent.append(element)
            self._parents[element] = parent
            self._index(element)
        return elements

    # ── Queries ──

    def iter(self, *tags: str) -> Iterator[Element]:
        for element in self.root.iter():
            if not isinstance(element.tag, str):
                continue
            if not tags or element.tag in tags:
                yield element

    def find(self, tag: str) -> Element | None:
        return next(self.iter(tag), None)

    def select_attr(self, attributes: Iterable[str], fragments: Iterable[str]) -> list[Element]:
        """Elements with any of ``attributes`` containing any of ``fragments``."""
        attributes = tuple(attributes)
        fragments = tuple(fragments)
        return [
            element
            for element in self.iter()
            if any(attribute_contains(element, attribute, fragments) for attribute in attributes)
        ]

    def parent(self, element: Element) -> Element | None:
        return self._parents.get(element)

    def closest(self, element: Element, attribute: str, fragments: Iterable[str]) -> Element | None:
        """Nearest ancestor-or-self whose ``attribute`` contains a fragment."""
        fragments = tuple(fragments)
        node: Element | None = element
        while node is not None:
            if attribute_contains(node, attribute, fragments):
                return node
            node = self._parents.get(node)
        return None

    def is_rendered(self, element: Element) -> bool:
        """False if the element or an ancestor is hidden by attribute or inline style."""
        node: Element | None = element
        while node is not None:
            if node.get("hidden") is not None:
                return False
            if _HIDDEN_STYLE.search(node.get("style", "")):
                return False
            if node.tag == "input" and (node.get("type") or "").lower() == "hidden":
                return False
            node = self._parents.get(node)
        return True

    # ── Page-level facts ──

    @property
    def body(self) -> Element:
        body = self.find("body")
        return body if body is not None else self.root

    @property
    def body_text(self) -> str:
        return text_content(self.body)

    @property
    def title(self) -> str | None:
        element = self.find("title")
        return text_content(element) if element is not None else None

    @property
    def hostname(self) -> str:
        return urlparse(self.url).hostname or ""

    def resolve(self, href: str) -> str:
        return urljoin(self.url, href)
