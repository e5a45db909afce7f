"""
Matrix reconstruction from flattened grid text.

Matrices pasted out of PDFs and word processors lose their environment and
arrive as ``1 & 2 \\\\ 3 & 4``, frequently with the ampersands HTML-encoded
(``&amp;`` or a bare ``amp;``) and markup tags sprinkled between cells. This
module recognises such grids and rebuilds them as ``pmatrix``, ``bmatrix`` or
``vmatrix`` display blocks.

Grids are found by one left-to-right pass over cell, separator and gap
tokens, so a long run of cells that never closes into a second row costs a
single scan.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import List, Optional, Tuple

from core.config import HeuristicLimits, settings
from core.logger import logger
from services.latex.segments import MathSpan, Segment, Text, display, merge_text
from utils.html_entity_utils import clean_fragment, strip_tags

# Text that already went through the renderer is never re-parsed
RENDERED_MARKERS = ("math-rendered", "<math")

_CHUNK = r"[+\-]?(?:\\[A-Za-z]+|[A-Za-z0-9^_{}.'])+"
_CELL = _CHUNK + r"(?:[ \t]*[+\-*/][ \t]*" + _CHUNK + r")*"

_GRID_TOKEN = re.compile(
    r"(?P<sep>&amp;|&|amp;)"
    r"|(?P<row>\\\\)"
    r"|(?P<cell>" + _CELL + r")"
    r"|(?P<gap>\s+|<[^<>]*>)"
    r"|(?P<other>.)",
    re.DOTALL,
)

_ROW_SPLIT = re.compile(r"\\\\")
_CELL_SPLIT = re.compile(r"&amp;|&|amp;")
_RELATION = re.compile(r"[=<>]|\\(?:le|ge|leq|geq|neq|ne|approx|equiv|sim)(?![A-Za-z])")
_NAME = re.compile(r"[A-Za-z][A-Za-z0-9]*")

_DELIMITERS = {"|": ("|", "bar"), "[": ("]", "bracket"), "(": (")", "paren")}

# (kind, start, end)
Token = Tuple[str, int, int]


@dataclass(frozen=True)
class GridRegion:
    """Where a grid sits in its text, with the delimiter or name around it."""

    start: int
    end: int
    grid: str
    delimiter: str = "loose"
    name: Optional[str] = None


def parse_grid(text: str, limits: HeuristicLimits) -> Optional[List[List[str]]]:
    """Split grid text into rows of cells, or None if it is not a matrix."""
    rows: List[List[str]] = []
    for raw_row in _ROW_SPLIT.split(strip_tags(text)):
        cells = [clean_fragment(cell) for cell in _CELL_SPLIT.split(raw_row)]
        if any(not cell for cell in cells):
            return None
        rows.append(cells)

    if len(rows) < 2 or len({len(row) for row in rows}) != 1:
        return None
    if sum(len(row) for row in rows) < limits.min_matrix_cells:
        return None
    if any(_RELATION.search(cell) for row in rows for cell in row):
        return None
    return rows


def choose_environment(rows: List[List[str]], delimiter: Optional[str] = None) -> str:
    if delimiter == "bar":
        return "vmatrix"
    if delimiter == "bracket":
        return "bmatrix"
    if len(rows) == 3 and len(rows[0]) == 2:
        return "vmatrix"
    return "pmatrix"


def build_matrix(rows: List[List[str]], environment: str) -> str:
    inner = " \\\\ ".join(" & ".join(row) for row in rows)
    return f"\\begin{{{environment}}}{inner}\\end{{{environment}}}"


def _tokens(text: str) -> List[Token]:
    return [(match.lastgroup, match.start(), match.end()) for match in _GRID_TOKEN.finditer(text)]


def _next(tokens: List[Token], index: int, text: str, spaces_only: bool = False) -> int:
    """Index of the first token at or after ``index`` that is not a gap."""
    while index < len(tokens) and tokens[index][0] == "gap":
        if spaces_only and not text[tokens[index][1]:tokens[index][2]].isspace():
            break
        index += 1
    return index


def _previous(tokens: List[Token], index: int, text: str) -> int:
    """Index of the last non-whitespace token at or before ``index``, or -1."""
    while index >= 0 and tokens[index][0] == "gap":
        if not text[tokens[index][1]:tokens[index][2]].isspace():
            break
        index -= 1
    return index


def _kind(tokens: List[Token], index: int) -> Optional[str]:
    if 0 <= index < len(tokens):
        return tokens[index][0]
    return None


def _row_end(tokens: List[Token], index: int, text: str) -> Optional[int]:
    """Index just past the last cell of a row starting at ``index``.

    None when the cell at ``index`` is not followed by a separator and
    another cell.
    """
    cells = 1
    end = index + 1
    while True:
        separator = _next(tokens, end, text)
        if _kind(tokens, separator) != "sep":
            break
        cell = _next(tokens, separator + 1, text)
        if _kind(tokens, cell) != "cell":
            break
        cells += 1
        end = cell + 1
    return end if cells > 1 else None


def _region(text: str, tokens: List[Token], first: int, last: int) -> GridRegion:
    start, end = tokens[first][1], tokens[last - 1][2]
    grid = text[start:end]
    before = _previous(tokens, first - 1, text)
    after = _next(tokens, last, text, spaces_only=True)

    if _kind(tokens, before) == "other" and _kind(tokens, after) == "other":
        closer, delimiter = _DELIMITERS.get(text[tokens[before][1]], (None, None))
        if closer is not None and text[tokens[after][1]] == closer:
            return GridRegion(tokens[before][1], tokens[after][2], grid, delimiter)

    if _kind(tokens, before) == "other" and text[tokens[before][1]] == "=":
        named = _previous(tokens, before - 1, text)
        if _kind(tokens, named) == "cell":
            name = text[tokens[named][1]:tokens[named][2]]
            if _NAME.fullmatch(name):
                return GridRegion(tokens[named][1], end, grid, name=name)
    return GridRegion(start, end, grid)


def scan_grids(text: str) -> List[GridRegion]:
    """Every run of two or more ``&``-separated rows in ``text``.

    Regions do not overlap. Whether a region really is a matrix is decided
    by ``parse_grid``.
    """
    tokens = _tokens(text)
    regions: List[GridRegion] = []
    index = 0
    while index < len(tokens):
        if tokens[index][0] != "cell":
            index += 1
            continue
        rows = 0
        last = index + 1
        end = _row_end(tokens, index, text)
        while end is not None:
            rows += 1
            last = end
            row_break = _next(tokens, end, text)
            if _kind(tokens, row_break) != "row":
                break
            cell = _next(tokens, row_break + 1, text)
            if _kind(tokens, cell) != "cell":
                break
            end = _row_end(tokens, cell, text)
        # Every cell of a failed first row ends up at the same row break
        if rows >= 2:
            regions.append(_region(text, tokens, index, last))
        index = last
    return regions


def _matrix_for(region: GridRegion, limits: HeuristicLimits) -> Optional[str]:
    rows = parse_grid(region.grid, limits)
    if rows is None:
        return None
    matrix = build_matrix(rows, choose_environment(rows, region.delimiter))
    if region.name:
        matrix = f"{region.name} = {matrix}"
    logger.debug("Reconstructed %dx%d matrix", len(rows), len(rows[0]))
    return matrix


def find_grids(
    text: str, limits: Optional[HeuristicLimits] = None
) -> List[Tuple[GridRegion, str]]:
    """Grid regions in ``text`` that rebuild as matrices, with the matrix LaTeX."""
    limits = limits or settings.limits
    found = []
    for region in scan_grids(text):
        matrix = _matrix_for(region, limits)
        if matrix is not None:
            found.append((region, matrix))
    return found


def _whole_grid(body: str, limits: HeuristicLimits) -> Optional[str]:
    body = body.strip()
    found = find_grids(body, limits)
    if len(found) != 1:
        return None
    region, matrix = found[0]
    if region.start != 0 or region.end != len(body):
        return None
    return matrix


def looks_like_grid(body: str, limits: Optional[HeuristicLimits] = None) -> bool:
    """True when ``body`` is nothing but a recognisable matrix grid."""
    return _whole_grid(body, limits or settings.limits) is not None


def _is_rendered(text: str) -> bool:
    return any(marker in text for marker in RENDERED_MARKERS)


def _rebuild_span(span: MathSpan, limits: HeuristicLimits) -> MathSpan:
    if "\\begin{" in span.body or _is_rendered(span.body):
        return span
    matrix = _whole_grid(span.body, limits)
    if matrix is None:
        return span
    return display(matrix, span.offset)


def _rebuild_text(body: str, limits: HeuristicLimits) -> List[Segment]:
    if _is_rendered(body) or "\\\\" not in body or not _CELL_SPLIT.search(body):
        return [Text(body)]
    result: List[Segment] = []
    pos = 0
    for region, matrix in find_grids(body, limits):
        result.append(Text(body[pos:region.start]))
        result.append(display(matrix, region.start))
        pos = region.end
    result.append(Text(body[pos:]))
    return merge_text(result)


def reconstruct_matrices(
    segments: List[Segment], limits: Optional[HeuristicLimits] = None
) -> List[Segment]:
    """Rebuild grids found in text segments and in bare-grid math spans."""
    limits = limits or settings.limits
    result: List[Segment] = []
    for segment in segments:
        if isinstance(segment, Text):
            result.extend(_rebuild_text(segment.body, limits))
        elif isinstance(segment, MathSpan):
            result.append(_rebuild_span(segment, limits))
        else:
            result.append(segment)
    return merge_text(result)
