"""Spacing normalization and final layout."""
from __future__ import annotations

import re
from typing import List

from services.latex.segments import MathMode, MathSpan, Segment, map_math, segment_source

_ALIGNED = re.compile(r"\\begin\{align(?:ed)?\*?\}")
_WHITESPACE = re.compile(r"\s+")
_RELATIONS = [
    (re.compile(r"(?<=[A-Za-z0-9])\s*=\s*(?=[A-Za-z0-9])"), " = "),
    (re.compile(r"(?<=[A-Za-z0-9])\s*\+\s*(?=[A-Za-z0-9])"), " + "),
    (re.compile(r"(?<=[A-Za-z0-9])\s*-\s*(?=[A-Za-z0-9])"), " - "),
    (re.compile(r"(?<=[A-Za-z0-9])\s*\*\s*(?=[A-Za-z0-9])"), r" \\cdot "),
]
_BLANK_LINES = re.compile(r"\n[ \t]*(?:\n[ \t]*){2,}")


def normalize_operator_spacing(body: str) -> str:
    """One space around ``=``, ``+`` and ``-``; ``*`` becomes ``\\cdot``."""
    body = _WHITESPACE.sub(" ", body).strip()
    for pattern, replacement in _RELATIONS:
        body = pattern.sub(replacement, body)
    return body


def normalize_spacing(segments: List[Segment]) -> List[Segment]:
    """Tidy operator spacing inside display blocks that are not alignments."""

    def tidy(span: MathSpan) -> MathSpan:
        if _ALIGNED.search(span.body):
            return span
        return span.with_body(normalize_operator_spacing(span.body))

    return map_math(segments, tidy, mode=MathMode.DISPLAY)


def layout(segments: List[Segment]) -> str:
    """Serialize segments with every display block on its own paragraph."""
    output = ""
    after_display = False
    for segment in segments:
        source = segment_source(segment)
        if isinstance(segment, MathSpan) and segment.is_display:
            output = output.rstrip()
            if output:
                output += "\n\n"
            output += source
            after_display = True
            continue
        if after_display:
            source = source.lstrip()
            if not source:
                continue
            output += "\n\n"
        output += source
        after_display = False
    return _BLANK_LINES.sub("\n\n", output).strip()
