"""Tokenized representation of math-bearing content.

Every sanitizer stage after delimiter normalization works on a list of
segments instead of re-scanning the raw string, so a stage that rewrites one
span can never corrupt the delimiters of its neighbours.
"""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Callable, Iterable, List, Match, Optional, Pattern, Union


class MathMode(str, Enum):
    INLINE = "inline"
    DISPLAY = "display"


class SubjectHint(str, Enum):
    PHYSICS = "physics"
    CHEMISTRY = "chemistry"
    MATHEMATICS = "mathematics"
    BIOLOGY = "biology"
    AUTO = "auto"


@dataclass(frozen=True)
class SanitizeOptions:
    subject: SubjectHint = SubjectHint.AUTO
    strict: bool = True


@dataclass(frozen=True)
class Text:
    """Plain prose or markup between math spans."""

    body: str


@dataclass(frozen=True)
class MathSpan:
    """One delimited math run; ``body`` excludes the delimiters."""

    mode: MathMode
    body: str
    # Position in the original input, informational only
    offset: int = field(default=0, compare=False)

    @property
    def is_display(self) -> bool:
        return self.mode is MathMode.DISPLAY

    @property
    def is_inline(self) -> bool:
        return self.mode is MathMode.INLINE

    def delimited(self) -> str:
        if self.is_display:
            return f"\\[{self.body}\\]"
        return f"\\({self.body}\\)"

    def promoted(self) -> "MathSpan":
        return replace(self, mode=MathMode.DISPLAY)

    def with_body(self, body: str) -> "MathSpan":
        return replace(self, body=body)


# Environments whose body is math. Any other environment (lists, proofs,
# theorems) is document structure and its body is scanned like prose.
MATH_ENVIRONMENTS = frozenset(
    {
        "matrix",
        "pmatrix",
        "bmatrix",
        "Bmatrix",
        "vmatrix",
        "Vmatrix",
        "smallmatrix",
        "cases",
        "aligned",
        "gathered",
        "array",
        "split",
    }
)
# Numbered or multi-line forms that become a display block of their own
DISPLAY_ENVIRONMENTS = frozenset(
    {"align", "align*", "equation", "equation*", "gather", "gather*"}
)


@dataclass(frozen=True)
class Environment:
    """A math environment found outside any delimiters."""

    name: str
    body: str

    def source(self) -> str:
        return f"\\begin{{{self.name}}}{self.body}\\end{{{self.name}}}"


Segment = Union[Text, MathSpan, Environment]


def inline(body: str, offset: int = 0) -> MathSpan:
    return MathSpan(MathMode.INLINE, body, offset)


def display(body: str, offset: int = 0) -> MathSpan:
    return MathSpan(MathMode.DISPLAY, body, offset)


def segment_source(segment: Segment) -> str:
    if isinstance(segment, MathSpan):
        return segment.delimited()
    if isinstance(segment, Environment):
        return segment.source()
    return segment.body


def serialize(segments: Iterable[Segment]) -> str:
    """Join segments back into a string with no layout changes."""
    return "".join(segment_source(segment) for segment in segments)


def merge_text(segments: Iterable[Segment]) -> List[Segment]:
    """Merge adjacent text segments and drop empty ones."""
    merged: List[Segment] = []
    for segment in segments:
        if isinstance(segment, Text):
            if not segment.body:
                continue
            if merged and isinstance(merged[-1], Text):
                merged[-1] = Text(merged[-1].body + segment.body)
                continue
        merged.append(segment)
    return merged


def map_math(
    segments: Iterable[Segment],
    transform: Callable[[MathSpan], Union[Segment, List[Segment]]],
    mode: Optional[MathMode] = None,
) -> List[Segment]:
    """Apply ``transform`` to every math span (optionally of one mode).

    ``transform`` may return a single segment or a list of segments, which
    lets a stage split one span into several or move text out of it.
    """
    result: List[Segment] = []
    for segment in segments:
        if isinstance(segment, MathSpan) and (mode is None or segment.mode is mode):
            produced = transform(segment)
            if isinstance(produced, list):
                result.extend(produced)
            else:
                result.append(produced)
        else:
            result.append(segment)
    return merge_text(result)


def map_text(
    segments: Iterable[Segment],
    transform: Callable[[str], Union[str, List[Segment]]],
) -> List[Segment]:
    """Apply ``transform`` to the body of every text segment."""
    result: List[Segment] = []
    for segment in segments:
        if isinstance(segment, Text):
            produced = transform(segment.body)
            if isinstance(produced, str):
                result.append(Text(produced))
            else:
                result.extend(produced)
        else:
            result.append(segment)
    return merge_text(result)


def split_text(
    body: str,
    pattern: Pattern[str],
    build: Callable[[Match[str]], Optional[List[Segment]]],
) -> List[Segment]:
    """Cut ``body`` at every match of ``pattern``.

    ``build`` returns the segments that replace a match, or None to leave the
    matched text where it is.
    """
    result: List[Segment] = []
    pos = 0
    for match in pattern.finditer(body):
        produced = build(match)
        if produced is None:
            continue
        result.append(Text(body[pos:match.start()]))
        result.extend(produced)
        pos = match.end()
    result.append(Text(body[pos:]))
    return merge_text(result)
