"""Delimiter normalization.

Every math run in the input, whatever notation it arrived in, is rewritten to
one canonical pair: ``\\(...\\)`` for inline math and ``\\[...\\]`` for
display math. ``$$`` is matched before ``$`` so a display run is never read as
two empty inline runs.
"""
from __future__ import annotations

import re
from typing import List, Match

from services.latex.segments import (
    DISPLAY_ENVIRONMENTS,
    MATH_ENVIRONMENTS,
    Environment,
    MathMode,
    MathSpan,
    Segment,
    Text,
    merge_text,
    serialize,
)

_DOLLAR_DISPLAY = r"(?<!\\)\$\$(?P<dollar_display>.+?)(?<!\\)\$\$"
_BRACKET_DISPLAY = r"(?<!\\)\\\[(?P<bracket_display>.*?)\\\]"
_PAREN_INLINE = r"(?<!\\)\\\((?P<paren_inline>.*?)\\\)"
# No newline inside, no whitespace just inside either dollar, and a closing
# dollar followed by a digit is a price ("$5 and $10"), not math.
_DOLLAR_INLINE = r"(?<![\\$])\$(?![\s$])(?P<dollar_inline>[^$\n]*?[^\s$\\])\$(?![$\d])"
# Only math environments are tokens. Lists, proofs and theorems stay in the
# text, so the math inside them is found like any other.
_ENVIRONMENT_NAMES = "|".join(
    re.escape(name) for name in sorted(MATH_ENVIRONMENTS | DISPLAY_ENVIRONMENTS)
)
_ENVIRONMENT = (
    r"(?<!\\)\\begin\{(?P<env>" + _ENVIRONMENT_NAMES + r")\}(?P<env_body>.*?)\\end\{(?P=env)\}"
)

MATH_SPAN_PATTERN = re.compile(
    "|".join((_DOLLAR_DISPLAY, _BRACKET_DISPLAY, _PAREN_INLINE, _DOLLAR_INLINE)),
    re.DOTALL,
)

_TOKEN_PATTERN = re.compile(
    "|".join((_DOLLAR_DISPLAY, _BRACKET_DISPLAY, _PAREN_INLINE, _ENVIRONMENT, _DOLLAR_INLINE)),
    re.DOTALL,
)

_CANONICAL_DELIMITER = re.compile(r"(?<!\\)\\[\[\]()]")
_NESTED_DELIMITER = re.compile(r"(?<!\\)(?:\\[\[\]()]|\$)")

_MATH_HINT = re.compile(r"\$|\\\(|\\\[|\\begin\{")


def contains_math(text: str) -> bool:
    """Cheap check for anything the tokenizer could turn into a math span."""
    return bool(text) and _MATH_HINT.search(text) is not None


def tokenize(text: str) -> List[Segment]:
    """Split ``text`` into text, math span and environment segments.

    Unterminated delimiters do not match and stay in the surrounding text.
    """
    if not text:
        return []

    segments: List[Segment] = []
    pos = 0
    for match in _TOKEN_PATTERN.finditer(text):
        if match.start() > pos:
            segments.append(Text(text[pos:match.start()]))
        segments.extend(_segments_for(match))
        pos = match.end()
    if pos < len(text):
        segments.append(Text(text[pos:]))
    return merge_text(segments)


def _segments_for(match: Match[str]) -> List[Segment]:
    groups = match.groupdict()
    if groups["env"] is not None:
        return [Environment(groups["env"], groups["env_body"])]

    if groups["dollar_display"] is not None:
        body, mode, dollar = groups["dollar_display"], MathMode.DISPLAY, True
    elif groups["bracket_display"] is not None:
        body, mode, dollar = groups["bracket_display"], MathMode.DISPLAY, False
    elif groups["paren_inline"] is not None:
        body, mode, dollar = groups["paren_inline"], MathMode.INLINE, False
    else:
        body, mode, dollar = groups["dollar_inline"], MathMode.INLINE, True

    # A dollar run wrapping already-canonical math: keep the inner delimiters
    if dollar and _CANONICAL_DELIMITER.search(body):
        return tokenize(body)

    body = _NESTED_DELIMITER.sub("", body).strip()
    if not body:
        return []
    return [MathSpan(mode, body, match.start())]


def normalize_delimiters(text: str) -> str:
    """Rewrite every math run in ``text`` to canonical delimiters."""
    return serialize(tokenize(text))
