"""
Math renderer.

Walks HTML (or plain text) content, finds math in every text leaf that is
not inside a literal or already-rendered region, and replaces it with engine
output. When the engine is not loaded yet, each span becomes a placeholder
element that ``rerender_placeholders`` (or a later ``render``) turns into the
same markup direct rendering would have produced.
"""
from __future__ import annotations

import html
import re
from dataclasses import dataclass
from typing import Any, List, Match, Optional, Tuple

from bs4 import BeautifulSoup

from core.config import HeuristicLimits, settings
from core.logger import logger
from services.latex.artifacts import promote_environments
from services.latex.complexity import promote_complex
from services.latex.delimiters import contains_math, tokenize
from services.latex.matrix_reconstructor import reconstruct_matrices
from services.latex.segments import MathMode, MathSpan, Segment, segment_source
from services.render.engine import (
    EngineHandle,
    EngineLoadError,
    MathEngine,
    MathRenderError,
    default_engine_handle,
    error_fragment,
)
from services.render.tree_walk import (
    PLACEHOLDER_CLASS,
    SoupTreeAdapter,
    TreeAdapter,
    parse_markup,
    strip_unsafe_markup,
    visit_text_leaves,
)
from utils.html_entity_utils import collapse_whitespace, escape_attribute, strip_tags

LIST_ENVIRONMENTS = {"enumerate": "ol", "itemize": "ul"}
LIST_PATTERN = re.compile(
    r"\\begin\{(?P<name>enumerate|itemize)\}(?P<body>.*?)\\end\{(?P=name)\}", re.DOTALL
)

_DISPLAY_BLOCK = re.compile(r"\\\[(.*?)\\\]", re.DOTALL)
_ITEM = re.compile(r"\\item(?![A-Za-z])")
_GRID_HINT = re.compile(r"(?:&|amp;)[^\\]*\\\\")


@dataclass(frozen=True)
class RenderUnit:
    """Rendering of one math span."""

    text: str
    html: str
    engine_ready: bool


def placeholder_fragment(span: MathSpan) -> str:
    """Recoverable stand-in for a span rendered before the engine was ready."""
    mode = "true" if span.is_display else "false"
    return (
        f'<span class="{PLACEHOLDER_CLASS}" data-latex="{escape_attribute(span.body)}" '
        f'data-display="{mode}">{html.escape(span.delimited(), quote=False)}</span>'
    )


def join_split_display_blocks(markup: str) -> str:
    """Rejoin ``\\[...\\]`` blocks that an editor split across tags."""

    def rejoin(match: Match[str]) -> str:
        body = match.group(1)
        if "<" not in body:
            return match.group(0)
        return "\\[" + collapse_whitespace(strip_tags(body)) + "\\]"

    return _DISPLAY_BLOCK.sub(rejoin, markup)


def needs_render(text: str) -> bool:
    return contains_math(text) or _GRID_HINT.search(text) is not None


class MathRenderer:
    """Renders math inside content through an injected ``EngineHandle``."""

    def __init__(
        self,
        engine_handle: Optional[EngineHandle] = None,
        limits: Optional[HeuristicLimits] = None,
        strip_unsafe: Optional[bool] = None,
        adapter: Optional[TreeAdapter] = None,
    ) -> None:
        self.engine_handle = engine_handle or default_engine_handle
        self.limits = limits or settings.limits
        self.strip_unsafe = settings.strip_unsafe_markup if strip_unsafe is None else strip_unsafe
        self.adapter = adapter or SoupTreeAdapter()

    async def warm_up(self) -> bool:
        """Load the engine ahead of the first render."""
        try:
            await self.engine_handle.acquire()
        except EngineLoadError as exc:
            logger.warning("Math engine warm-up failed: %s", exc)
            return False
        return True

    async def render(self, content: Any) -> Any:
        """Render all math in ``content``, loading the engine first if needed."""
        if not content or not isinstance(content, str):
            return content
        try:
            engine: Optional[MathEngine] = await self.engine_handle.acquire()
        except EngineLoadError as exc:
            logger.warning("Math engine unavailable, emitting placeholders: %s", exc)
            engine = None
        return self._process(content, engine)

    def render_if_ready(self, content: Any) -> Any:
        """Render without waiting; spans become placeholders if the engine is not loaded."""
        if not content or not isinstance(content, str):
            return content
        return self._process(content, self.engine_handle.engine)

    def rerender_placeholders(self, content: Any) -> Any:
        """Render placeholder elements left by an earlier not-ready pass."""
        engine = self.engine_handle.engine
        if engine is None or not isinstance(content, str) or PLACEHOLDER_CLASS not in content:
            return content
        soup = parse_markup(content)
        if not self._render_placeholders(soup, engine):
            return content
        return str(soup)

    def render_span(self, span: MathSpan) -> RenderUnit:
        return self._render_unit(span, self.engine_handle.engine)

    def _render_unit(self, span: MathSpan, engine: Optional[MathEngine]) -> RenderUnit:
        source = span.delimited()
        if engine is None:
            return RenderUnit(source, placeholder_fragment(span), False)
        try:
            markup = engine.render_to_string(
                span.body,
                display_mode=span.is_display,
                throw_on_error=True,
                strict="ignore",
                trust=True,
            )
        except MathRenderError as exc:
            logger.warning("Failed to render %s: %s", source[:80], exc)
            markup = error_fragment(source)
        return RenderUnit(source, markup, True)

    def _process(self, content: str, engine: Optional[MathEngine]) -> str:
        has_markup = "<" in content
        if not has_markup and not needs_render(content):
            return content
        if has_markup:
            content = join_split_display_blocks(content)

        soup = parse_markup(content)
        changed = False
        if self.strip_unsafe and strip_unsafe_markup(soup):
            changed = True
        if engine is not None and self._render_placeholders(soup, engine):
            changed = True
        if visit_text_leaves(soup, self.adapter, lambda text: self._render_text(text, engine)):
            changed = True
        return str(soup) if changed else content

    def _render_placeholders(self, soup: BeautifulSoup, engine: MathEngine) -> int:
        count = 0
        for element in soup.find_all(class_=PLACEHOLDER_CLASS):
            body = element.get("data-latex")
            if body is None:
                continue
            mode = MathMode.DISPLAY if element.get("data-display") == "true" else MathMode.INLINE
            unit = self._render_unit(MathSpan(mode, body), engine)
            self.adapter.replace(element, unit.html)
            count += 1
        return count

    def _classify(self, text: str) -> List[Segment]:
        segments = tokenize(text)
        segments = promote_complex(segments, self.limits)
        segments = promote_environments(segments)
        return reconstruct_matrices(segments, self.limits)

    def _render_text(self, text: str, engine: Optional[MathEngine]) -> Optional[str]:
        """Markup for one text leaf, or None when the leaf holds no math."""
        if not needs_render(text):
            return None
        markup = []
        rendered = False
        pos = 0
        for match in LIST_PATTERN.finditer(text):
            fragment, found = self._render_fragment(text[pos:match.start()], engine)
            markup.append(fragment)
            markup.append(self._render_list(match, engine))
            rendered = True
            pos = match.end()
        fragment, found = self._render_fragment(text[pos:], engine)
        markup.append(fragment)
        if not (rendered or found):
            return None
        return "".join(markup)

    def _render_fragment(self, text: str, engine: Optional[MathEngine]) -> Tuple[str, bool]:
        """Escaped markup for text outside lists, and whether it held math.

        Environments other than lists (proofs, theorems) stay as text, so
        the spans inside them are rendered like any others.
        """
        segments = self._classify(text) if needs_render(text) else []
        if not any(isinstance(segment, MathSpan) for segment in segments):
            return html.escape(text, quote=False), False
        parts = []
        for segment in segments:
            if isinstance(segment, MathSpan):
                parts.append(self._render_unit(segment, engine).html)
            else:
                parts.append(html.escape(segment_source(segment), quote=False))
        return "".join(parts), True

    def _render_list(self, match: Match[str], engine: Optional[MathEngine]) -> str:
        tag = LIST_ENVIRONMENTS[match.group("name")]
        items = [item.strip() for item in _ITEM.split(match.group("body"))]
        rendered = [
            self._render_text(item, engine) or html.escape(item, quote=False)
            for item in items[1:]
            if item
        ]
        return f"<{tag}>" + "".join(f"<li>{item}</li>" for item in rendered) + f"</{tag}>"
