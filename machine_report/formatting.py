"""Fixed-width table drawing: glyph sets, cell fitting and bar graphs."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import List, Optional

from rich.text import Text

LABEL_WIDTH = 12
DATA_WIDTH = 32
GB = 1024**3
LABEL_STYLE = "bold cyan"


@dataclass(frozen=True)
class Glyphs:
    horizontal: str
    vertical: str
    top_left: str
    top_right: str
    bottom_left: str
    bottom_right: str
    down_tee: str
    up_tee: str
    left_tee: str
    right_tee: str
    cross: str
    bar_filled: str
    bar_empty: str
    ellipsis: str


UNICODE = Glyphs(
    horizontal="─",
    vertical="│",
    top_left="┌",
    top_right="┐",
    bottom_left="└",
    bottom_right="┘",
    down_tee="┬",
    up_tee="┴",
    left_tee="├",
    right_tee="┤",
    cross="┼",
    bar_filled="█",
    bar_empty="░",
    ellipsis="…",
)

ASCII = Glyphs(
    horizontal="-",
    vertical="|",
    top_left="+",
    top_right="+",
    bottom_left="+",
    bottom_right="+",
    down_tee="+",
    up_tee="+",
    left_tee="+",
    right_tee="+",
    cross="+",
    bar_filled="#",
    bar_empty=".",
    ellipsis="...",
)


def filled_cells(percent: Optional[float], width: int = DATA_WIDTH) -> int:
    """Number of filled bar cells: percent of width, rounded half up."""
    if percent is None or width <= 0:
        return 0
    clamped = max(0.0, min(100.0, float(percent)))
    return min(width, int(math.floor(clamped / 100.0 * width + 0.5)))


def bar_style(percent: float) -> str:
    if percent < 60:
        return "green"
    if percent < 85:
        return "yellow"
    return "red"


def render_bar(percent: Optional[float], width: int = DATA_WIDTH, glyphs: Glyphs = UNICODE, color: bool = False) -> Text:
    filled = filled_cells(percent, width)
    bar = Text()
    bar.append(glyphs.bar_filled * filled, style=bar_style(percent or 0.0) if color else None)
    bar.append(glyphs.bar_empty * (width - filled))
    return bar


def fit_cell(text: str, width: int, marker: str = UNICODE.ellipsis) -> str:
    """Pad to ``width``, or cut to exactly ``width`` ending in ``marker``."""
    if len(text) <= width:
        return text.ljust(width)
    if len(marker) >= width:
        return marker[:width]
    return text[: width - len(marker)] + marker


def center_cell(text: str, width: int, marker: str = UNICODE.ellipsis) -> str:
    if len(text) > width:
        return fit_cell(text, width, marker)
    return text.center(width)


def format_gb(num: float) -> str:
    return f"{num / GB:.2f}"


def format_uptime(seconds: int) -> str:
    minutes_total = max(int(seconds), 0) // 60
    days, rest = divmod(minutes_total, 24 * 60)
    hours, minutes = divmod(rest, 60)
    if days:
        return f"{days}d {hours}h {minutes}m"
    if hours:
        return f"{hours}h {minutes}m"
    return f"{minutes}m"


class TableBuilder:
    """Accumulates table lines; every line comes out the same width."""

    def __init__(self, glyphs: Glyphs = UNICODE, color: bool = True, label_width: int = LABEL_WIDTH, data_width: int = DATA_WIDTH) -> None:
        self.glyphs = glyphs
        self.color = color
        self.label_width = label_width
        self.data_width = data_width
        self._lines: List[Text] = []

    @property
    def width(self) -> int:
        # "│ " + label + " │ " + data + " │"
        return self.label_width + self.data_width + 7

    @property
    def interior(self) -> int:
        return self.width - 2

    def header(self, title: str, subtitle: str) -> None:
        g = self.glyphs
        self._plain(g.top_left + g.down_tee * self.interior + g.top_right)
        self._plain(g.left_tee + g.up_tee * self.interior + g.right_tee)
        self._centered(title, style="bold" if self.color else None)
        self._centered(subtitle)
        self._rule(g.left_tee, g.down_tee, g.right_tee)

    def divider(self) -> None:
        self._rule(self.glyphs.left_tee, self.glyphs.cross, self.glyphs.right_tee)

    def footer(self) -> None:
        self._rule(self.glyphs.bottom_left, self.glyphs.up_tee, self.glyphs.bottom_right)

    def row(self, label: str, value: str) -> None:
        self._row(label, Text(fit_cell(value, self.data_width, self.glyphs.ellipsis)))

    def bar_row(self, label: str, percent: Optional[float]) -> None:
        self._row(label, render_bar(percent, self.data_width, self.glyphs, self.color))

    def render(self) -> Text:
        return Text("\n").join(self._lines)

    def _row(self, label: str, data: Text) -> None:
        g = self.glyphs
        line = Text(f"{g.vertical} ")
        line.append(fit_cell(label, self.label_width, g.ellipsis), style=LABEL_STYLE if self.color else None)
        line.append(f" {g.vertical} ")
        line.append_text(data)
        line.append(f" {g.vertical}")
        self._lines.append(line)

    def _centered(self, text: str, style: Optional[str] = None) -> None:
        g = self.glyphs
        line = Text(g.vertical)
        line.append(center_cell(text, self.interior, g.ellipsis), style=style)
        line.append(g.vertical)
        self._lines.append(line)

    def _rule(self, left: str, junction: str, right: str) -> None:
        h = self.glyphs.horizontal
        self._plain(left + h * (self.label_width + 2) + junction + h * (self.data_width + 2) + right)

    def _plain(self, line: str) -> None:
        self._lines.append(Text(line))
