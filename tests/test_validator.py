"""Tests for structural validation."""
from __future__ import annotations

from services.latex.segments import Text, display, inline
from services.latex.validator import (
    balance_braces,
    close_environments,
    strip_control_characters,
    validate_segments,
)


def test_unmatched_closing_brace_is_dropped() -> None:
    assert balance_braces("{a}}") == "{a}"


def test_missing_closing_brace_is_appended() -> None:
    assert balance_braces("{{a}") == "{{a}}"


def test_escaped_braces_are_ignored() -> None:
    assert balance_braces(r"\{a") == r"\{a"
    assert balance_braces(r"a \\{b") == r"a \\{b}"


def test_missing_end_is_appended() -> None:
    assert close_environments(r"\begin{pmatrix}1") == r"\begin{pmatrix}1\end{pmatrix}"


def test_nested_missing_ends_close_inner_first() -> None:
    text = r"\begin{cases}\begin{array}x"
    assert close_environments(text) == text + r"\end{array}\end{cases}"


def test_surplus_end_is_removed() -> None:
    assert close_environments(r"x\end{cases}") == "x"


def test_control_characters_are_stripped() -> None:
    assert strip_control_characters("a\x00b\x07c") == "abc"


def test_validate_segments_repairs_each_segment() -> None:
    segments = [Text("x}"), display(r"\frac{1}{2")]
    assert validate_segments(segments) == [Text("x"), display(r"\frac{1}{2}")]


def test_environment_around_math_is_kept_intact() -> None:
    """An environment may open before a span and close after it."""
    segments = [Text(r"\begin{proof}Let "), inline("x"), Text(r" be real\end{proof}")]
    assert validate_segments(segments) == segments


def test_environment_around_math_is_closed_after_it() -> None:
    segments = [Text(r"\begin{itemize}\item "), inline("x")]
    assert validate_segments(segments) == [
        Text(r"\begin{itemize}\item "),
        inline("x"),
        Text(r"\end{itemize}"),
    ]
