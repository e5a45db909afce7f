"""Structural validation: whatever comes out must be closed and balanced."""
from __future__ import annotations

import re
from collections import Counter
from typing import List

from core.logger import logger
from services.latex.segments import Environment, MathSpan, Segment, Text, merge_text

CONTROL_CHARS = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F-\x9F]")
_BEGIN = re.compile(r"\\begin\{([^{}]+)\}")
_END = re.compile(r"\\end\{([^{}]+)\}")
# Stands in for a math segment while the surrounding text is repaired
_SLOT = "\x00"


def strip_control_characters(text: str) -> str:
    return CONTROL_CHARS.sub("", text)


def close_environments(text: str) -> str:
    """Append missing ``\\end{...}`` and drop surplus ones."""
    opened = Counter(_BEGIN.findall(text))
    closed = Counter(_END.findall(text))

    surplus = closed - opened
    if surplus:
        drop = []
        for match in reversed(list(_END.finditer(text))):
            name = match.group(1)
            if surplus[name] > 0:
                surplus[name] -= 1
                drop.append(match.span())
        for start, end in drop:
            text = text[:start] + text[end:]
        logger.debug("Removed %d unmatched \\end", len(drop))

    missing = opened - closed
    if missing:
        for match in reversed(list(_BEGIN.finditer(text))):
            name = match.group(1)
            if missing[name] > 0:
                missing[name] -= 1
                text += f"\\end{{{name}}}"
    return text


def balance_braces(text: str) -> str:
    """Drop unmatched ``}`` and append missing ``}``; escaped braces are ignored."""
    chars = []
    depth = 0
    i = 0
    while i < len(text):
        char = text[i]
        if char == "\\" and i + 1 < len(text):
            chars.append(text[i:i + 2])
            i += 2
            continue
        if char == "{":
            depth += 1
        elif char == "}":
            if depth == 0:
                i += 1
                continue
            depth -= 1
        chars.append(char)
        i += 1
    return "".join(chars) + "}" * depth


def validate_latex(text: str) -> str:
    return balance_braces(close_environments(strip_control_characters(text)))


def validate_segments(segments: List[Segment]) -> List[Segment]:
    """Repair every segment so the serialized output is well formed.

    Math bodies are repaired one span at a time. Text segments are repaired
    together, because a list or proof environment opens in the text before a
    span and closes in the text after it.
    """
    texts = []
    for segment in segments:
        if isinstance(segment, Text):
            texts.append(strip_control_characters(segment.body))
        else:
            texts.append(_SLOT)
    pieces = balance_braces(close_environments("".join(texts))).split(_SLOT)

    result: List[Segment] = [Text(pieces[0])]
    slots = iter(pieces[1:])
    for segment in segments:
        if isinstance(segment, MathSpan):
            result.append(segment.with_body(validate_latex(segment.body)))
        elif isinstance(segment, Environment):
            result.append(Environment(segment.name, validate_latex(segment.body)))
        else:
            continue
        result.append(Text(next(slots)))
    return merge_text(result)
