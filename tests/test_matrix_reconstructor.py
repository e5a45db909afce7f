"""Tests for matrix reconstruction."""
from __future__ import annotations

import time

from core.config import HeuristicLimits
from services.latex.matrix_reconstructor import (
    GridRegion,
    choose_environment,
    find_grids,
    looks_like_grid,
    parse_grid,
    reconstruct_matrices,
    scan_grids,
)
from services.latex.segments import Text, display, inline


class TestParseGrid:
    """Grid validation."""

    limits = HeuristicLimits()

    def test_two_by_two(self) -> None:
        assert parse_grid(r"1 & 2 \\ 3 & 4", self.limits) == [["1", "2"], ["3", "4"]]

    def test_inconsistent_columns(self) -> None:
        assert parse_grid(r"1 & 2 \\ 3", self.limits) is None

    def test_relation_in_cell(self) -> None:
        assert parse_grid(r"a = 1 & 2 \\ 3 & 4", self.limits) is None

    def test_too_few_cells(self) -> None:
        limits = HeuristicLimits(min_matrix_cells=6)
        assert parse_grid(r"1 & 2 \\ 3 & 4", limits) is None

    def test_encoded_separators_and_tags(self) -> None:
        grid = r"1 &amp; 2 <br/>\\ 3 amp; 4"
        assert parse_grid(grid, self.limits) == [["1", "2"], ["3", "4"]]


def test_choose_environment() -> None:
    two_by_two = [["1", "2"], ["3", "4"]]
    three_by_two = [["1", "2"], ["3", "4"], ["5", "6"]]
    assert choose_environment(two_by_two) == "pmatrix"
    assert choose_environment(two_by_two, "bar") == "vmatrix"
    assert choose_environment(two_by_two, "bracket") == "bmatrix"
    assert choose_environment(three_by_two) == "vmatrix"


class TestReconstructMatrices:
    """Rebuilding grids inside segment lists."""

    def test_encoded_ampersands_in_text(self) -> None:
        result = reconstruct_matrices([Text(r"1 &amp; 2 \\ 3 &amp; 4")])
        assert result == [display(r"\begin{pmatrix}1 & 2 \\ 3 & 4\end{pmatrix}")]

    def test_vertical_bars(self) -> None:
        result = reconstruct_matrices([Text(r"|a & b \\ c & d|")])
        assert result == [display(r"\begin{vmatrix}a & b \\ c & d\end{vmatrix}")]

    def test_square_brackets(self) -> None:
        result = reconstruct_matrices([Text(r"[a & b \\ c & d]")])
        assert result == [display(r"\begin{bmatrix}a & b \\ c & d\end{bmatrix}")]

    def test_name_prefix_goes_inside_display(self) -> None:
        result = reconstruct_matrices([Text(r"A = 1 & 2 \\ 3 & 4")])
        assert result == [display(r"A = \begin{pmatrix}1 & 2 \\ 3 & 4\end{pmatrix}")]

    def test_surrounding_text_is_kept(self) -> None:
        result = reconstruct_matrices([Text(r"Solve 1 & 2 \\ 3 & 4 now")])
        assert result == [
            Text("Solve "),
            display(r"\begin{pmatrix}1 & 2 \\ 3 & 4\end{pmatrix}"),
            Text(" now"),
        ]

    def test_inline_grid_is_promoted(self) -> None:
        result = reconstruct_matrices([inline(r"1 & 2 \\ 3 & 4")])
        assert result == [display(r"\begin{pmatrix}1 & 2 \\ 3 & 4\end{pmatrix}")]

    def test_rendered_output_is_skipped(self) -> None:
        segments = [Text(r'<span class="math-rendered">1 & 2 \\ 3 & 4</span>')]
        assert reconstruct_matrices(segments) == segments

    def test_existing_environment_is_skipped(self) -> None:
        span = display(r"\begin{pmatrix}1 & 2 \\ 3 & 4\end{pmatrix}")
        assert reconstruct_matrices([span]) == [span]


def test_looks_like_grid() -> None:
    assert looks_like_grid(r"1 & 2 \\ 3 & 4")
    assert not looks_like_grid(r"a &= b \\ c &= d")


def test_find_grids() -> None:
    found = find_grids(r"Solve 1 & 2 \\ 3 & 4 now")
    assert [(region.start, region.grid) for region, _ in found] == [(6, r"1 & 2 \\ 3 & 4")]
    assert found[0][1] == r"\begin{pmatrix}1 & 2 \\ 3 & 4\end{pmatrix}"


class TestScanGrids:
    """Locating grid regions."""

    def test_delimited_region(self) -> None:
        assert scan_grids(r"so [a & b \\ c & d]!") == [
            GridRegion(3, 19, r"a & b \\ c & d", "bracket")
        ]

    def test_named_region(self) -> None:
        assert scan_grids(r"A = 1 & 2 \\ 3 & 4") == [
            GridRegion(0, 18, r"1 & 2 \\ 3 & 4", name="A")
        ]

    def test_single_row_is_not_a_grid(self) -> None:
        assert scan_grids(r"1 & 2 \\ 3") == []

    def test_long_unfinished_row_is_linear(self) -> None:
        text = " & ".join(["x+y-z"] * 4000) + r" \\ q"
        started = time.perf_counter()
        assert reconstruct_matrices([Text(text)]) == [Text(text)]
        assert time.perf_counter() - started < 1.0
