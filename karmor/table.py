"""Plain-text tables for terminal output."""

from __future__ import annotations

import math
import re
import textwrap
from typing import Iterable, Sequence

_ANSI = re.compile(r"\x1b\[[0-9;]*m")
_NUMERIC = re.compile(r"^-?(?:\d{1,3}(?:,\d{3})*|\d+)(?:\.\d+)?$")
_WRAP_WIDTH = 30


def _width(text: str) -> int:
    return len(_ANSI.sub("", text))


def _pad_right(text: str, width: int) -> str:
    return text + " " * max(0, width - _width(text))


def _pad_left(text: str, width: int) -> str:
    return " " * max(0, width - _width(text)) + text


def _pad_center(text: str, width: int) -> str:
    gap = max(0, width - _width(text))
    left = math.floor(gap / 2)
    return " " * left + text + " " * (gap - left)


def _title(name: str) -> str:
    chars = list(name)
    last = len(chars) - 1
    for i, ch in enumerate(chars):
        if ch == "_":
            chars[i] = " "
        elif ch == ".":
            before = i != 0 and not (chars[i - 1].isdigit() or chars[i - 1] == " ")
            after = i != last and not (chars[i + 1].isdigit() or chars[i + 1] == " ")
            if before or after:
                chars[i] = " "
    result = "".join(chars).strip()
    if not result and name:
        result = " "
    return result.upper()


class Table:
    """A bordered text table with optional row lines and merged column cells."""

    def __init__(
        self,
        header: Sequence[str] | None = None,
        *,
        border: bool = True,
        row_line: bool = False,
        merge_columns: Iterable[int] = (),
        align_left: bool = False,
        auto_wrap: bool = True,
        auto_format_headers: bool = True,
    ) -> None:
        header = [str(h) for h in header or []]
        self.header = [_title(h) for h in header] if auto_format_headers else header
        self.border = border
        self.row_line = row_line
        self.merge_columns = frozenset(merge_columns)
        self.align_left = align_left
        self.auto_wrap = auto_wrap
        self.rows: list[list[str]] = []

    def append(self, row: Iterable[object]) -> None:
        """Add one row."""
        self.rows.append([str(cell) for cell in row])

    def extend(self, rows: Iterable[Iterable[object]]) -> None:
        """Add several rows."""
        for row in rows:
            self.append(row)

    def clear_rows(self) -> None:
        """Remove all rows, keeping the header and settings."""
        self.rows.clear()

    def _lines(self, cell: str) -> list[str]:
        lines: list[str] = []
        for line in cell.split("\n"):
            if self.auto_wrap and _width(line) > _WRAP_WIDTH:
                wrapped = textwrap.wrap(
                    line, _WRAP_WIDTH, break_long_words=False, break_on_hyphens=False
                )
                lines.extend(wrapped or [""])
            else:
                lines.append(line)
        return lines

    def _separator(self, widths: list[int], blank: Sequence[bool] = ()) -> str:
        parts = [
            (" " if i < len(blank) and blank[i] else "-") * (w + 2)
            for i, w in enumerate(widths)
        ]
        line = "+".join(parts)
        return f"+{line}+" if self.border else line

    def _row(self, cells: list[list[str]], widths: list[int], aligns: list) -> list[str]:
        height = max((len(c) for c in cells), default=1)
        out = []
        for k in range(height):
            parts = [
                " " + align(cell[k] if k < len(cell) else "", w) + " "
                for cell, w, align in zip(cells, widths, aligns)
            ]
            line = "|".join(parts)
            out.append(f"|{line}|" if self.border else line)
        return out

    def render(self) -> str:
        """Return the table as text, one line per row line, ending in a newline."""
        ncols = max([len(self.header)] + [len(r) for r in self.rows])
        if ncols == 0:
            return ""
        rows = [r + [""] * (ncols - len(r)) for r in self.rows]
        header = self.header + [""] * (ncols - len(self.header)) if self.header else []
        header_cells = [self._lines(c) for c in header]
        body = [[self._lines(c) for c in row] for row in rows]
        widths = [0] * ncols
        for cells in ([header_cells] if header else []) + body:
            for i, cell in enumerate(cells):
                widths[i] = max([widths[i]] + [_width(line) for line in cell])

        lines: list[str] = []
        if self.border:
            lines.append(self._separator(widths))
        if header:
            lines.extend(self._row(header_cells, widths, [_pad_center] * ncols))
            lines.append(self._separator(widths))
        for index, (row, cells) in enumerate(zip(rows, body)):
            merged = [
                index > 0 and c in self.merge_columns and row[c] == rows[index - 1][c]
                for c in range(ncols)
            ]
            if index > 0 and self.row_line:
                lines.append(self._separator(widths, merged))
            shown = [[""] if merged[c] else cells[c] for c in range(ncols)]
            aligns = [
                _pad_right if self.align_left or not _NUMERIC.match(row[c]) else _pad_left
                for c in range(ncols)
            ]
            lines.extend(self._row(shown, widths, aligns))
        if self.border and rows:
            lines.append(self._separator(widths))
        return "".join(line + "\n" for line in lines)


def render_plain(rows: Iterable[Iterable[object]]) -> str:
    """Render rows without borders: left-aligned columns separated by tabs."""
    table = [[str(cell) for cell in row] for row in rows]
    if not table:
        return ""
    ncols = max(len(r) for r in table)
    table = [r + [""] * (ncols - len(r)) for r in table]
    widths = [max(_width(r[c]) for r in table) for c in range(ncols)]
    lines = ["\t".join(_pad_right(cell, w) for cell, w in zip(r, widths)) for r in table]
    return "".join(line + "\n" for line in lines)