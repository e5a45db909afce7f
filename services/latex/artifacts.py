"""Repair of conversion artifacts left by OCR and word-processor exports."""
from __future__ import annotations

import re
from typing import List, Match

from core.config import HeuristicLimits
from services.latex.segments import (
    MATH_ENVIRONMENTS,
    Environment,
    MathSpan,
    Segment,
    Text,
    display,
    merge_text,
)

_LEFT_RIGHT_PAREN = re.compile(r"\\left\(((?:(?!\\left|\\right).)*?)\\right\)", re.DOTALL)
_LEFT_RIGHT_BRACKET = re.compile(r"\\left\[((?:(?!\\left|\\right).)*?)\\right\]", re.DOTALL)
_SIZING_BLOCKERS = re.compile(r"[()\[\]]|\\frac|\\sqrt")

_BARE_FRACTION = re.compile(r"\\frac\s+([A-Za-z0-9.]+)\s+([A-Za-z0-9.]+)")
_BARE_SCRIPT = re.compile(r"(?<!\\)([_^])([A-Za-z0-9])(?![A-Za-z0-9{])")

_EQUATION_IN_ALIGN = re.compile(
    r"\\begin\{(align\*?|aligned)\}(.*?)\\begin\{(equation\*?)\}(.*?)\\end\{\3\}(.*?)\\end\{\1\}",
    re.DOTALL,
)
_EQUATION_WRAPPER = re.compile(r"\\begin\{(equation\*?)\}(.*?)\\end\{\1\}", re.DOTALL)
_ALIGN = re.compile(r"\\(begin|end)\{align\*?\}")
_TRAILING_EQUALS = re.compile(r"^([^\n]*=)[ \t]*\n[ \t]*([^\n]+)", re.MULTILINE)

def _strip_sizing(match: Match[str]) -> str:
    interior = match.group(1)
    if _SIZING_BLOCKERS.search(interior):
        return match.group(0)
    opening, closing = ("(", ")") if match.group(0).endswith(")") else ("[", "]")
    return f"{opening}{interior}{closing}"


def strip_redundant_sizing(body: str) -> str:
    """Drop ``\\left``/``\\right`` around interiors with nothing to size against."""
    body = _LEFT_RIGHT_PAREN.sub(_strip_sizing, body)
    return _LEFT_RIGHT_BRACKET.sub(_strip_sizing, body)


def brace_bare_fractions(body: str) -> str:
    """``\\frac a b`` -> ``\\frac{a}{b}``."""
    return _BARE_FRACTION.sub(r"\\frac{\1}{\2}", body)


def brace_bare_scripts(body: str) -> str:
    """``x^2`` -> ``x^{2}``; multi-character scripts are left alone."""
    return _BARE_SCRIPT.sub(r"\1{\2}", body)


def rejoin_split_lines(body: str, limits: HeuristicLimits) -> str:
    """Join a line ending in ``=`` with a short continuation line."""

    def join(match: Match[str]) -> str:
        continuation = match.group(2).strip()
        if (
            "=" in continuation
            or len(continuation) >= limits.continuation_max_length
            or continuation.startswith(("\\end", "\\begin"))
        ):
            return match.group(0)
        return f"{match.group(1)} {continuation}"

    return _TRAILING_EQUALS.sub(join, body)


def collapse_nested_environments(body: str, inside_display: bool) -> str:
    """Fold ``equation`` nested in an alignment into a single ``aligned``."""
    body = _EQUATION_IN_ALIGN.sub(r"\\begin{aligned}\2\4\5\\end{aligned}", body)
    if inside_display:
        return _EQUATION_WRAPPER.sub(lambda m: m.group(2).strip(), body)
    return _ALIGN.sub(r"\\\1{aligned}", body)


def promote_environments(segments: List[Segment]) -> List[Segment]:
    """Turn top-level math environments into display spans.

    ``align`` becomes ``aligned`` (the starred form too), ``equation`` is
    unwrapped, and the matrix family, cases, gathered and array are wrapped
    as they are.
    """
    result: List[Segment] = []
    for segment in segments:
        if not isinstance(segment, Environment):
            result.append(segment)
            continue
        name = segment.name
        if name in ("align", "align*"):
            result.append(display(f"\\begin{{aligned}}{segment.body}\\end{{aligned}}"))
        elif name in ("equation", "equation*"):
            body = segment.body.strip()
            if body:
                result.append(display(body))
        elif name in ("gather", "gather*"):
            result.append(display(f"\\begin{{gathered}}{segment.body}\\end{{gathered}}"))
        elif name in MATH_ENVIRONMENTS:
            result.append(display(segment.source()))
        else:
            result.append(segment)
    return merge_text(result)


def _repair_math(span: MathSpan, limits: HeuristicLimits) -> MathSpan:
    body = strip_redundant_sizing(span.body)
    body = brace_bare_fractions(body)
    body = brace_bare_scripts(body)
    body = rejoin_split_lines(body, limits)
    body = collapse_nested_environments(body, inside_display=span.is_display)
    return span.with_body(body)


def repair_artifacts(segments: List[Segment], limits: HeuristicLimits) -> List[Segment]:
    segments = promote_environments(segments)
    result: List[Segment] = []
    for segment in segments:
        if isinstance(segment, MathSpan):
            result.append(_repair_math(segment, limits))
        elif isinstance(segment, Text):
            result.append(Text(rejoin_split_lines(segment.body, limits)))
        else:
            result.append(segment)
    return merge_text(result)
