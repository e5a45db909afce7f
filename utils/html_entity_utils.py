"""Utilities for handling HTML entities and markup inside math content."""
from __future__ import annotations

import html
import re

TAG_PATTERN = re.compile(r"<[^>]*>")

# "amp;" left behind when "&amp;amp;" was decoded once, or when the leading
# "&" was eaten by an editor
BARE_AMP_PATTERN = re.compile(r"(?<![&\w])amp;")


def decode_html_entities(text: str) -> str:
    """
    Decode all HTML entities in a string.

    Args:
        text: String potentially containing HTML entities

    Returns:
        String with entities decoded to Unicode characters, including the
        orphaned ``amp;`` form that pasted matrices often carry.
    """
    if not text:
        return text

    # Double-encoded ampersands first: "&amp;amp;" -> "&amp;" -> "&"
    previous = None
    while previous != text:
        previous = text
        text = html.unescape(text)

    text = BARE_AMP_PATTERN.sub("&", text)
    return text.replace("\xa0", " ")


def strip_tags(text: str, replacement: str = " ") -> str:
    """Remove markup tags, leaving their text content behind."""
    if not text:
        return text
    return TAG_PATTERN.sub(replacement, text)


def collapse_whitespace(text: str) -> str:
    return re.sub(r"\s+", " ", text).strip()


def clean_fragment(text: str) -> str:
    """Strip tags, decode entities and collapse whitespace (in that order)."""
    return collapse_whitespace(decode_html_entities(strip_tags(text)))


def escape_attribute(value: str) -> str:
    """Escape a value for use inside a double-quoted HTML attribute."""
    return html.escape(value, quote=True)
