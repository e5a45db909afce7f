"""Subject-specific rewrite rules.

Exam content from different subjects breaks in different ways: physics
papers write vectors as ``F→`` and tack units onto equations, chemistry
papers type reactions with ASCII arrows and bare subscripts, mathematics
papers use ``a/b`` for fractions and biology papers put species names in
math mode. When the caller does not name a subject, one is picked from
keyword frequencies.
"""
from __future__ import annotations

import re
from typing import Dict, List, Match, Optional, Pattern

from core.logger import logger
from services.latex.segments import (
    MathMode,
    MathSpan,
    Segment,
    SubjectHint,
    Text,
    display,
    inline,
    map_math,
    map_text,
    serialize,
    split_text,
)

SUBJECT_KEYWORDS: Dict[SubjectHint, Dict[str, int]] = {
    SubjectHint.PHYSICS: {
        "\\vec": 2,
        "velocity": 1,
        "acceleration": 1,
        "force": 1,
        "momentum": 1,
        "energy": 1,
        "electric": 1,
        "magnetic": 1,
        "newton": 1,
        "joule": 1,
    },
    SubjectHint.CHEMISTRY: {
        "\\rightarrow": 2,
        "->": 2,
        "reaction": 1,
        "molecule": 1,
        "compound": 1,
        "element": 1,
        "atom": 1,
        "ion": 1,
        "mole": 1,
    },
    SubjectHint.MATHEMATICS: {
        "\\sum": 2,
        "\\int": 2,
        "\\lim": 2,
        "\\frac": 1,
        "derivative": 1,
        "integral": 1,
        "matrix": 1,
        "determinant": 1,
    },
    SubjectHint.BIOLOGY: {
        "species": 1,
        "genus": 1,
        "organism": 1,
        "cell": 1,
        "dna": 1,
        "rna": 1,
        "protein": 1,
        "enzyme": 1,
    },
}


def _keyword_pattern(keyword: str) -> Pattern[str]:
    if keyword.startswith("\\"):
        return re.compile(re.escape(keyword) + r"(?![A-Za-z])")
    if not keyword[0].isalpha():
        return re.compile(re.escape(keyword))
    return re.compile(r"(?<![A-Za-z])" + re.escape(keyword) + r"(?:e?s)?(?![A-Za-z])")


_KEYWORD_PATTERNS = {
    subject: [(_keyword_pattern(word), weight) for word, weight in keywords.items()]
    for subject, keywords in SUBJECT_KEYWORDS.items()
}


def detect_subject(text: str) -> SubjectHint:
    """Pick the subject with the highest weighted keyword count.

    No hits at all, or a tie for first place, falls back to mathematics.
    """
    lowered = (text or "").lower()
    scores = {
        subject: sum(len(pattern.findall(lowered)) * weight for pattern, weight in patterns)
        for subject, patterns in _KEYWORD_PATTERNS.items()
    }
    best = max(scores.values())
    leaders = [subject for subject, score in scores.items() if score == best]
    if best == 0 or len(leaders) > 1:
        return SubjectHint.MATHEMATICS
    logger.debug("Detected subject %s (scores: %s)", leaders[0].value, scores)
    return leaders[0]


def _promote_matching(segments: List[Segment], pattern: Pattern[str]) -> List[Segment]:
    return map_math(
        segments,
        lambda span: span.promoted() if pattern.search(span.body) else span,
        mode=MathMode.INLINE,
    )


def _rewrite_math(segments: List[Segment], rewrite) -> List[Segment]:
    return map_math(segments, lambda span: span.with_body(rewrite(span.body)))


# --- Physics --------------------------------------------------------------

_VECTOR_ARROW = re.compile(r"(?<![\\A-Za-z])([A-Za-z])(?:\s*→|\u20d7)")
_VECTOR = re.compile(r"\\vec(?![A-Za-z])")
UNITS = ("kg", "Hz", "rad", "deg", "mol", "Pa", "m", "s", "N", "J", "W", "V", "A", "C", "K")
_TRAILING_UNIT = re.compile(
    r"^(?P<math>.*?[0-9}])(?:\s+|\\[,;: ])\s*"
    r"(?:\\(?:text|mathrm)\{(?P<wrapped>[A-Za-z]+)\}|(?P<bare>[A-Za-z]+))\s*$",
    re.DOTALL,
)
_STAR_PRODUCT = re.compile(r"(\d)\s*\*\s*([0-9A-Za-z])")


def _vectorize_math(body: str) -> str:
    return _VECTOR_ARROW.sub(r"\\vec{\1}", body)


def _vectorize_text(body: str) -> List[Segment]:
    return split_text(body, _VECTOR_ARROW, lambda m: [inline(f"\\vec{{{m.group(1)}}}")])


def _move_units_out(span: MathSpan):
    match = _TRAILING_UNIT.match(span.body)
    if match is None:
        return span
    unit = match.group("wrapped") or match.group("bare")
    if unit not in UNITS:
        return span
    return [span.with_body(match.group("math").strip()), Text(f" {unit}")]


def apply_physics(segments: List[Segment]) -> List[Segment]:
    segments = map_text(segments, _vectorize_text)
    segments = _rewrite_math(segments, _vectorize_math)
    segments = _rewrite_math(segments, lambda body: _STAR_PRODUCT.sub(r"\1 \\cdot \2", body))
    segments = map_math(segments, _move_units_out, mode=MathMode.DISPLAY)
    return _promote_matching(segments, _VECTOR)


# --- Chemistry ------------------------------------------------------------

ARROWS = {
    "<=>": "\\rightleftharpoons",
    "<->": "\\leftrightarrow",
    "->": "\\rightarrow",
}
_ASCII_ARROW = re.compile(r"\s*(<=>|<->|->)\s*")
_CHARGE = re.compile(r"(?<![A-Za-z_\\^])((?:[A-Z][a-z]?\d*)+)([+-])(\d?)(?=$|[\s,.;:)\]}])")
_FORMULA = re.compile(r"(?<![A-Za-z_\\^])((?:[A-Z][a-z]?\d*)+)(?![A-Za-z0-9_{])")
_ELEMENT_COUNT = re.compile(r"([A-Z][a-z]?)(\d+)")
_SPECIES = r"[A-Za-z0-9()]+(?:[_^]\{[^{}]*\}[A-Za-z0-9()]*)*"
_SIDE = r"(?:" + _SPECIES + r"\s*\+\s*)*" + _SPECIES
_REACTION = re.compile(
    r"(?<![\w\\}])(?P<lhs>" + _SIDE + r")\s*(?P<arrow><=>|<->|->)\s*(?P<rhs>" + _SIDE + r")"
)
_CHEMICAL_ARROW = re.compile(r"\\(?:rightarrow|leftrightarrow|rightleftharpoons)(?![A-Za-z])")


def convert_arrows(body: str) -> str:
    return _ASCII_ARROW.sub(lambda m: f" {ARROWS[m.group(1)]} ", body).strip()


def format_charges(body: str) -> str:
    """``Na+`` -> ``Na^{+}``, ``Cl-`` -> ``Cl^{-}``."""
    return _CHARGE.sub(lambda m: f"{m.group(1)}^{{{m.group(3)}{m.group(2)}}}", body)


def format_subscripts(body: str) -> str:
    """``H2O`` -> ``H_{2}O``; tokens without digits are left alone."""

    def subscript(match: Match[str]) -> str:
        return _ELEMENT_COUNT.sub(r"\1_{\2}", match.group(1))

    return _FORMULA.sub(subscript, body)


def _extract_reactions(body: str) -> List[Segment]:
    def build(match: Match[str]) -> Optional[List[Segment]]:
        arrow = ARROWS[match.group("arrow")]
        return [display(f"{match.group('lhs').strip()} {arrow} {match.group('rhs').strip()}")]

    return split_text(body, _REACTION, build)


def apply_chemistry(segments: List[Segment]) -> List[Segment]:
    segments = map_text(segments, lambda body: format_subscripts(format_charges(body)))
    segments = map_text(segments, _extract_reactions)
    segments = _rewrite_math(
        segments, lambda body: format_subscripts(format_charges(convert_arrows(body)))
    )
    return _promote_matching(segments, _CHEMICAL_ARROW)


# --- Mathematics ----------------------------------------------------------

_DIVISION = re.compile(r"(?<![\w/.\\{])(\d+|[A-Za-z])\s*/\s*(\d+|[A-Za-z])(?![\w/])")
_BIG_OPERATOR = re.compile(r"\\(?:lim|sum|int)(?![A-Za-z])")
_BOUND_VARIABLE = re.compile(
    r"(\\(?:sum|int|prod|oint)(?![A-Za-z])(?:_\{[^{}]*\}|_\w)?(?:\^\{[^{}]*\}|\^\w)?)\s*(?=[A-Za-z0-9(])"
)


def _fraction(match: Match[str]) -> str:
    return f"\\frac{{{match.group(1)}}}{{{match.group(2)}}}"


def _divisions_in_text(body: str) -> List[Segment]:
    return split_text(body, _DIVISION, lambda match: [display(_fraction(match))])


def _divisions_inline(span: MathSpan) -> MathSpan:
    body, count = _DIVISION.subn(_fraction, span.body)
    if not count:
        return span
    return span.with_body(body).promoted()


def apply_mathematics(segments: List[Segment]) -> List[Segment]:
    segments = map_text(segments, _divisions_in_text)
    segments = map_math(segments, _divisions_inline, mode=MathMode.INLINE)
    segments = _promote_matching(segments, _BIG_OPERATOR)
    return _rewrite_math(segments, lambda body: _BOUND_VARIABLE.sub(r"\1 ", body))


# --- Biology --------------------------------------------------------------

_WORDS_ONLY = re.compile(r"[A-Za-z\s]+")
_BINOMIAL_NAME = re.compile(r"(?<![\\{A-Za-z])([A-Z][a-z]+) ([a-z]{3,})(?![a-z])")
# Sentence openers that are never a genus
_NOT_A_GENUS = frozenset(
    {
        "The", "This", "That", "These", "Those", "There", "Their", "They", "Then",
        "What", "Which", "When", "Where", "Why", "How", "Who", "Each", "Every",
        "All", "Some", "Many", "Most", "Its", "And", "But", "For", "From", "With",
        "In", "On", "At", "If", "An", "As", "It", "Is", "Are", "Was", "Were",
        "Name", "Explain", "Describe", "State", "Give", "Find", "Calculate",
        "Identify", "List", "Draw", "Define", "Compare", "Choose", "Select",
    }
)
_NOT_A_SPECIES = frozenset(
    {
        "are", "and", "the", "was", "were", "has", "have", "had", "can", "will",
        "for", "with", "that", "this", "from", "into", "not", "may", "use", "uses",
    }
)


def _demote_words(span: MathSpan):
    if _WORDS_ONLY.fullmatch(span.body):
        return Text(span.body)
    return span


def _italicize_species(body: str) -> str:
    def italic(match: Match[str]) -> str:
        if match.group(1) in _NOT_A_GENUS or match.group(2) in _NOT_A_SPECIES:
            return match.group(0)
        return f"\\textit{{{match.group(1)} {match.group(2)}}}"

    return _BINOMIAL_NAME.sub(italic, body)


def apply_biology(segments: List[Segment]) -> List[Segment]:
    segments = map_math(segments, _demote_words, mode=MathMode.INLINE)
    return map_text(segments, _italicize_species)


_RULES = {
    SubjectHint.PHYSICS: apply_physics,
    SubjectHint.CHEMISTRY: apply_chemistry,
    SubjectHint.MATHEMATICS: apply_mathematics,
    SubjectHint.BIOLOGY: apply_biology,
}


def apply_subject_rules(segments: List[Segment], subject: SubjectHint) -> List[Segment]:
    """Run the rule set for ``subject`` (detected when ``AUTO``)."""
    if subject is SubjectHint.AUTO:
        subject = detect_subject(serialize(segments))
    return _RULES[subject](segments)
