"""Text/math separation.

Display blocks sometimes swallow the sentence that introduced them, and
inline delimiters are often wrapped around ordinary words. This stage moves
prose out of display math, demotes inline "math" that is really prose, and
gives the remaining inline spans a second chance at promotion.
"""
from __future__ import annotations

import re
from typing import List, Tuple, Union

from core.config import HeuristicLimits
from core.logger import logger
from services.latex.complexity import has_structural_marker
from services.latex.segments import MathMode, MathSpan, Segment, Text, map_math
from utils.html_entity_utils import collapse_whitespace

# A capitalised word followed by at least two lowercase words
SENTENCE_PATTERN = re.compile(r"(?<![\\A-Za-z])[A-Z][a-z]+(?:[ \t]+[a-z]{2,}){2,}")
LITERAL_TEXT_PATTERN = re.compile(
    r"\\(?:text|textrm|textit|textbf|mathrm|mbox|operatorname)\s*\{[^{}]*\}"
)
_PROSE_CHARS = re.compile(r"[A-Za-z\s]")
_MATH_SYNTAX = re.compile(r"[\\^_]")


def _inside(span: Tuple[int, int], regions: List[Tuple[int, int]]) -> bool:
    start, end = span
    return any(lo <= start and end <= hi for lo, hi in regions)


def extract_prose(span: MathSpan) -> Union[MathSpan, List[Segment]]:
    """Move English sentences out of a display block, ahead of it."""
    body = span.body
    protected = [m.span() for m in LITERAL_TEXT_PATTERN.finditer(body)]
    sentences = [
        m for m in SENTENCE_PATTERN.finditer(body) if not _inside(m.span(), protected)
    ]
    if not sentences:
        return span

    pieces = []
    last = 0
    for match in sentences:
        pieces.append(body[last:match.start()])
        last = match.end()
    pieces.append(body[last:])
    remainder = collapse_whitespace(" ".join(pieces))
    prose = " ".join(match.group(0) for match in sentences)
    logger.debug("Moved prose out of display math: %s", prose)

    result: List[Segment] = [Text(f" {prose} ")]
    if remainder:
        result.append(span.with_body(remainder))
    return result


def is_prose(body: str, limits: HeuristicLimits) -> bool:
    """True when an inline span holds words rather than math."""
    body = body.strip()
    if len(body) <= limits.prose_min_length or _MATH_SYNTAX.search(body):
        return False
    ratio = len(_PROSE_CHARS.findall(body)) / len(body)
    return ratio > limits.prose_ratio


def separate_text_and_math(segments: List[Segment], limits: HeuristicLimits) -> List[Segment]:
    def classify_inline(span: MathSpan) -> Segment:
        if is_prose(span.body, limits):
            logger.debug("Demoting prose out of inline math: %s", span.body)
            return Text(span.body)
        if has_structural_marker(span.body) or len(span.body) > limits.second_chance_length:
            return span.promoted()
        return span

    segments = map_math(segments, extract_prose, mode=MathMode.DISPLAY)
    return map_math(segments, classify_inline, mode=MathMode.INLINE)
