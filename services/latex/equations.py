"""Formatting of multi-line display equations."""
from __future__ import annotations

import re
from typing import List

from core.config import HeuristicLimits
from services.latex.matrix_reconstructor import looks_like_grid
from services.latex.segments import MathSpan, Segment, display, merge_text

_ALIGNED = re.compile(r"\\begin\{align(?:ed)?\*?\}")
_ROW_BREAK = re.compile(r"\\\\(?:\[[^\]]*\])?")
_CELL_SEPARATOR = re.compile(r"(?<!\\)&")
_LINE_BREAK = re.compile(r"\s*\n\s*")


def single_line(body: str) -> str:
    return _LINE_BREAK.sub(" ", body).strip()


def _aligned(body: str) -> str:
    return f"\\begin{{aligned}}{single_line(body)}\\end{{aligned}}"


def format_block(span: MathSpan, limits: HeuristicLimits) -> List[Segment]:
    """Lay out one display block.

    Row-structured content with at most one ``=`` is split into separate
    display blocks when it is short, and wrapped in ``aligned`` when it is
    long. Several ``=`` across rows always means an alignment.
    """
    body = span.body.strip()
    if _ALIGNED.search(body):
        return [span.with_body(body)]
    if "\\begin{" in body or looks_like_grid(body, limits):
        return [span.with_body(single_line(body))]

    if _CELL_SEPARATOR.search(body) and _ROW_BREAK.search(body):
        if body.count("=") > 1:
            return [span.with_body(_aligned(body))]
        rows = [row.strip() for row in _ROW_BREAK.split(body) if row.strip()]
        if len(rows) > limits.max_split_rows:
            return [span.with_body(_aligned(body))]
        if len(rows) > 1:
            return [
                display(single_line(_CELL_SEPARATOR.sub(" ", row)), span.offset)
                for row in rows
            ]

    return [span.with_body(single_line(body))]


def format_equations(segments: List[Segment], limits: HeuristicLimits) -> List[Segment]:
    result: List[Segment] = []
    for segment in segments:
        if isinstance(segment, MathSpan) and segment.is_display:
            result.extend(format_block(segment, limits))
        else:
            result.append(segment)
    return merge_text(result)
