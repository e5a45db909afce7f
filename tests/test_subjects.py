"""Tests for subject detection and subject rules."""
from __future__ import annotations

from services.latex.segments import SubjectHint, Text, display, inline
from services.latex.subjects import (
    apply_biology,
    apply_chemistry,
    apply_mathematics,
    apply_physics,
    apply_subject_rules,
    convert_arrows,
    detect_subject,
    format_charges,
    format_subscripts,
)


class TestDetectSubject:
    """Keyword-weighted subject detection."""

    def test_physics(self) -> None:
        assert detect_subject("The force and velocity of the body") is SubjectHint.PHYSICS

    def test_chemistry(self) -> None:
        assert detect_subject("A reaction: A -> B") is SubjectHint.CHEMISTRY

    def test_biology(self) -> None:
        assert detect_subject("Each cell stores DNA") is SubjectHint.BIOLOGY

    def test_no_keywords_means_mathematics(self) -> None:
        assert detect_subject("") is SubjectHint.MATHEMATICS
        assert detect_subject("hello there") is SubjectHint.MATHEMATICS

    def test_tie_means_mathematics(self) -> None:
        assert detect_subject("force and cell") is SubjectHint.MATHEMATICS


class TestChemistry:
    """Chemistry rules."""

    def test_subscripts(self) -> None:
        assert format_subscripts("H2O") == "H_{2}O"
        assert format_subscripts("CO2 gas") == "CO_{2} gas"
        assert format_subscripts("H_{2}O") == "H_{2}O"

    def test_charges(self) -> None:
        assert format_charges("Na+") == "Na^{+}"
        assert format_charges("Cl-.") == "Cl^{-}."
        assert format_charges("A+B") == "A+B"

    def test_arrows_longest_first(self) -> None:
        assert convert_arrows("A<=>B") == r"A \rightleftharpoons B"
        assert convert_arrows("A <-> B") == r"A \leftrightarrow B"
        assert convert_arrows("A->B") == r"A \rightarrow B"

    def test_reaction_in_text_becomes_display(self) -> None:
        assert apply_chemistry([Text("A -> B")]) == [display(r"A \rightarrow B")]

    def test_reaction_with_ions(self) -> None:
        result = apply_chemistry([Text("Na+ + Cl- -> NaCl")])
        assert result == [display(r"Na^{+} + Cl^{-} \rightarrow NaCl")]

    def test_inline_arrow_is_promoted(self) -> None:
        assert apply_chemistry([inline("A -> B")]) == [display(r"A \rightarrow B")]


class TestPhysics:
    """Physics rules."""

    def test_arrow_vector_in_text(self) -> None:
        result = apply_physics([Text("F→ acts")])
        assert result == [display(r"\vec{F}"), Text(" acts")]

    def test_trailing_unit_moves_out(self) -> None:
        assert apply_physics([display("x = 5 m")]) == [display("x = 5"), Text(" m")]

    def test_unknown_unit_stays(self) -> None:
        assert apply_physics([display("v = 3 t")]) == [display("v = 3 t")]

    def test_star_becomes_cdot(self) -> None:
        assert apply_physics([inline("2*x")]) == [inline(r"2 \cdot x")]


class TestMathematics:
    """Mathematics rules."""

    def test_division_in_text(self) -> None:
        result = apply_mathematics([Text("Take 3/4 of it")])
        assert result == [Text("Take "), display(r"\frac{3}{4}"), Text(" of it")]

    def test_dates_are_not_fractions(self) -> None:
        assert apply_mathematics([Text("on 3/4/2024")]) == [Text("on 3/4/2024")]

    def test_division_inline_is_promoted(self) -> None:
        assert apply_mathematics([inline("a/b")]) == [display(r"\frac{a}{b}")]

    def test_bound_variable_spacing(self) -> None:
        result = apply_mathematics([display(r"\sum_{i=1}^{n}i")])
        assert result == [display(r"\sum_{i=1}^{n} i")]


class TestBiology:
    """Biology rules."""

    def test_word_inline_is_demoted(self) -> None:
        assert apply_biology([inline("cell wall")]) == [Text("cell wall")]

    def test_species_name_is_italicised(self) -> None:
        result = apply_biology([Text("The bacterium Escherichia coli divides")])
        assert result == [Text(r"The bacterium \textit{Escherichia coli} divides")]


def test_auto_subject_dispatch() -> None:
    assert apply_subject_rules([Text("A -> B")], SubjectHint.AUTO) == [
        display(r"A \rightarrow B")
    ]
