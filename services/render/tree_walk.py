"""Content-tree walking for the math renderer.

The renderer only ever needs three things from a tree: the text leaves it
may rewrite, a way to skip regions that must stay literal, and a way to swap
a leaf for a markup fragment. ``TreeAdapter`` captures that so the walk does
not depend on one HTML library; ``SoupTreeAdapter`` is the BeautifulSoup
implementation used in production.
"""
from __future__ import annotations

from typing import Any, Callable, List, Optional, Protocol

from bs4 import BeautifulSoup, NavigableString, Tag

from core.logger import logger
from services.render.engine import ERROR_CLASS, RENDERED_CLASS

PLACEHOLDER_CLASS = "math-placeholder"

# Literal regions and markup that already holds math
SKIP_TAGS = frozenset({"script", "style", "code", "pre", "textarea", "kbd", "samp", "math"})
SKIP_CLASSES = frozenset({RENDERED_CLASS, PLACEHOLDER_CLASS, ERROR_CLASS})

UNSAFE_TAGS = ["script", "iframe", "object", "embed", "form"]
UNSAFE_ATTRIBUTES = frozenset({"contenteditable", "spellcheck"})


class TreeAdapter(Protocol):
    def children(self, node: Any) -> List[Any]:
        ...

    def is_text(self, node: Any) -> bool:
        ...

    def text(self, node: Any) -> str:
        ...

    def is_skipped(self, node: Any) -> bool:
        ...

    def replace(self, node: Any, markup: str) -> None:
        ...


def parse_markup(markup: str) -> BeautifulSoup:
    return BeautifulSoup(markup, "html.parser")


class SoupTreeAdapter:
    """``TreeAdapter`` over a BeautifulSoup tree."""

    def children(self, node: Any) -> List[Any]:
        if isinstance(node, Tag):
            return list(node.children)
        return []

    def is_text(self, node: Any) -> bool:
        # Comments, CDATA and doctypes are NavigableString subclasses
        return type(node) is NavigableString

    def text(self, node: Any) -> str:
        return str(node)

    def is_skipped(self, node: Any) -> bool:
        if not isinstance(node, Tag):
            return False
        if node.name in SKIP_TAGS:
            return True
        classes = node.get("class") or []
        return any(name in SKIP_CLASSES for name in classes)

    def replace(self, node: Any, markup: str) -> None:
        for new_node in list(parse_markup(markup).contents):
            node.insert_before(new_node.extract())
        node.extract()


def text_leaves(root: Any, adapter: TreeAdapter) -> List[Any]:
    """Text leaves under ``root`` in document order, skipped regions excluded."""
    leaves = []
    stack = [root]
    while stack:
        node = stack.pop()
        if adapter.is_text(node):
            leaves.append(node)
            continue
        if node is not root and adapter.is_skipped(node):
            continue
        stack.extend(reversed(adapter.children(node)))
    return leaves


def visit_text_leaves(
    root: Any,
    adapter: TreeAdapter,
    visitor: Callable[[str], Optional[str]],
) -> int:
    """Replace each text leaf for which ``visitor`` returns markup.

    Leaves are collected before any replacement, so fragments inserted by the
    visitor are never visited themselves. Returns the number of leaves
    replaced.
    """
    replaced = 0
    for leaf in text_leaves(root, adapter):
        markup = visitor(adapter.text(leaf))
        if markup is None:
            continue
        adapter.replace(leaf, markup)
        replaced += 1
    return replaced


def strip_unsafe_markup(soup: BeautifulSoup) -> int:
    """Remove active elements and event-handler attributes in place."""
    removed = 0
    for tag in soup.find_all(UNSAFE_TAGS):
        tag.decompose()
        removed += 1
    for tag in soup.find_all(True):
        for attribute in list(tag.attrs):
            lowered = attribute.lower()
            if lowered.startswith("on") or lowered in UNSAFE_ATTRIBUTES:
                del tag.attrs[attribute]
                removed += 1
    if removed:
        logger.debug("Stripped %d unsafe elements/attributes", removed)
    return removed
