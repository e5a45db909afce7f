"""Complexity classification for inline math.

An inline span that would render cramped inside a line of prose (fractions,
big operators, matrices, long chains of operators) is promoted to display
mode. Classification runs in two passes: explicit structural markers first,
then the numeric heuristics over whatever is still inline.
"""
from __future__ import annotations

import re
from typing import List

from core.config import HeuristicLimits
from core.logger import logger
from services.latex.segments import MathMode, MathSpan, Segment, map_math

STRUCTURAL_MARKERS = [
    re.compile(r"\\[dt]?frac\{[^{}]+\}\{[^{}]+\}"),
    re.compile(r"\\sqrt(?![A-Za-z])"),
    re.compile(r"\\sum(?![A-Za-z])"),
    re.compile(r"\\prod(?![A-Za-z])"),
    re.compile(r"\\[io]?int(?![A-Za-z])"),
    re.compile(r"\\lim(?![A-Za-z])"),
    re.compile(r"\\begin\{[pbBvV]?matrix\}"),
    re.compile(r"\\(?:vec|hat)\{"),
    re.compile(r"\\(?:overbrace|underbrace)(?![A-Za-z])"),
    re.compile(r"\\binom(?![A-Za-z])"),
    re.compile(r"\\choose(?![A-Za-z])"),
    re.compile(r"\\(?:stackrel|overset|underset|substack)(?![A-Za-z])"),
    re.compile(r"\\(?:leftrightarrow|rightleftharpoons)(?![A-Za-z])"),
    re.compile(r"\\(?:xrightarrow|xleftarrow|overrightarrow|overleftarrow)(?![A-Za-z])"),
]

OPERATOR_PATTERN = re.compile(r"[+\-*/=<>]")
CONTROL_WORD_PATTERN = re.compile(r"\\[A-Za-z]+")
_FRACTION = re.compile(r"\\[dt]?frac(?![A-Za-z])")
_RADICAL = re.compile(r"\\sqrt(?![A-Za-z])")
_LIMIT = re.compile(r"\\(?:lim|limits)(?![A-Za-z])")
_STACKED = re.compile(r"\\(?:overset|underset|stackrel|substack)(?![A-Za-z])")


def brace_depth(body: str) -> int:
    """Deepest nesting of unescaped braces in ``body``."""
    depth = deepest = 0
    escaped = False
    for char in body:
        if escaped:
            escaped = False
            continue
        if char == "\\":
            escaped = True
        elif char == "{":
            depth += 1
            deepest = max(deepest, depth)
        elif char == "}" and depth:
            depth -= 1
    return deepest


def operator_count(body: str) -> int:
    return len(OPERATOR_PATTERN.findall(body))


def stripped_length(body: str) -> int:
    """Length of ``body`` once control-sequence names are removed."""
    return len(CONTROL_WORD_PATTERN.sub("", body).strip())


def has_structural_marker(body: str) -> bool:
    return any(pattern.search(body) for pattern in STRUCTURAL_MARKERS)


def exceeds_inline_budget(body: str, limits: HeuristicLimits) -> bool:
    """Numeric heuristics for math too busy to sit inside a sentence."""
    if brace_depth(body) > limits.max_brace_depth:
        return True
    if operator_count(body) > limits.max_inline_operators:
        return True
    if stripped_length(body) > limits.max_inline_length:
        return True
    fractions = len(_FRACTION.findall(body))
    radicals = len(_RADICAL.findall(body))
    if "_" in body and (fractions or radicals):
        return True
    if _LIMIT.search(body):
        return True
    if fractions > 1 or radicals > 1:
        return True
    if "matrix" in body:
        return True
    return bool(_STACKED.search(body))


def is_complex(body: str, limits: HeuristicLimits) -> bool:
    return has_structural_marker(body) or exceeds_inline_budget(body, limits)


def promote_complex(segments: List[Segment], limits: HeuristicLimits) -> List[Segment]:
    """Promote inline spans to display when they look structurally complex."""

    def promote(span: MathSpan) -> MathSpan:
        if is_complex(span.body, limits):
            logger.debug("Promoting complex inline math: %s", span.body)
            return span.promoted()
        return span

    return map_math(segments, promote, mode=MathMode.INLINE)
