"""
HTML sanitization for free-text event fields.

Event descriptions, locations and titles come from an untrusted upstream
and may contain arbitrary markup. Only a small set of inline formatting
tags survives; everything executable is removed together with its content.

The sanitization engine is a capability with a single ``sanitize`` method.
The default engine is built on BeautifulSoup and is created once per
process; tests or alternative environments can swap it via
``set_sanitizer``.
"""

import re
from typing import FrozenSet, Optional, Protocol

from bs4 import BeautifulSoup
from bs4.element import Comment, Tag

from services.common.logging_config import get_logger

logger = get_logger(__name__)

ALLOWED_TAGS: FrozenSet[str] = frozenset({"b", "i", "em", "strong", "a", "br"})
ALLOWED_ATTRIBUTES: FrozenSet[str] = frozenset({"href", "target"})

# Elements dropped together with everything inside them
DROP_CONTENT_TAGS: FrozenSet[str] = frozenset(
    {
        "script",
        "style",
        "iframe",
        "frame",
        "frameset",
        "object",
        "embed",
        "applet",
        "template",
        "noscript",
        "noembed",
        "svg",
        "math",
        "head",
        "title",
        "textarea",
        "select",
        "xmp",
    }
)

UNSAFE_URL_PATTERN = re.compile(r"^\s*(javascript|vbscript|data)\s*:", re.IGNORECASE)
# Control characters browsers ignore inside URL schemes ("java\tscript:")
URL_CONTROL_CHARS = re.compile(r"[\x00-\x20]+")


class HTMLSanitizer(Protocol):
    """Anything able to turn untrusted HTML into safe HTML."""

    def sanitize(self, html: str) -> str: ...


class BeautifulSoupSanitizer:
    """Allow-list sanitizer backed by BeautifulSoup's ``html.parser``."""

    def __init__(
        self,
        allowed_tags: FrozenSet[str] = ALLOWED_TAGS,
        allowed_attributes: FrozenSet[str] = ALLOWED_ATTRIBUTES,
    ):
        self.allowed_tags = allowed_tags
        self.allowed_attributes = allowed_attributes

    def sanitize(self, html: str) -> str:
        soup = BeautifulSoup(html, "html.parser")

        for comment in soup.find_all(string=lambda text: isinstance(text, Comment)):
            comment.extract()

        # Materialize the list first; the tree is mutated while walking it
        for tag in list(soup.find_all(True)):
            if tag.decomposed:
                continue
            name = (tag.name or "").lower()
            if name in DROP_CONTENT_TAGS:
                tag.decompose()
            elif name not in self.allowed_tags:
                tag.unwrap()
            else:
                self._clean_attributes(tag)

        return str(soup)

    def _clean_attributes(self, tag: Tag) -> None:
        cleaned = {}
        for attr, value in tag.attrs.items():
            attr_name = attr.lower()
            if attr_name not in self.allowed_attributes:
                continue
            if tag.name != "a":
                continue
            if isinstance(value, list):
                value = " ".join(value)
            if attr_name == "href" and _is_unsafe_url(value):
                logger.debug("Dropped unsafe href from sanitized markup")
                continue
            cleaned[attr_name] = value
        tag.attrs = cleaned


def _is_unsafe_url(value: str) -> bool:
    return bool(UNSAFE_URL_PATTERN.match(URL_CONTROL_CHARS.sub("", value)))


_sanitizer: Optional[HTMLSanitizer] = None


def get_sanitizer() -> HTMLSanitizer:
    """Get the process-wide sanitizer, creating the default on first use."""
    global _sanitizer
    if _sanitizer is None:
        _sanitizer = BeautifulSoupSanitizer()
    return _sanitizer


def set_sanitizer(sanitizer: Optional[HTMLSanitizer]) -> None:
    """Replace the process-wide sanitizer. ``None`` restores the default."""
    global _sanitizer
    _sanitizer = sanitizer


def sanitize(text: Optional[str]) -> str:
    """
    Strip unsafe markup from a free-text field.

    Args:
        text: Untrusted text, possibly containing HTML

    Returns:
        Safe HTML restricted to inline formatting tags; empty string for
        missing input
    """
    if not text:
        return ""
    return get_sanitizer().sanitize(text)
