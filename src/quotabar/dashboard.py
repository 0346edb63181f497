"""Terminal dashboard: renders a DashboardView with rich.

Rendering is a pure function of the view, the theme and the clock; the
dashboard never talks to the controller.
"""

from __future__ import annotations

import logging
from datetime import datetime

from rich.console import Group, RenderableType
from rich.panel import Panel
from rich.table import Table
from rich.text import Text
from rich import box

from .config import (
    APP_TAGLINE, LABEL_CURRENT, LABEL_WEEKLY, MARK_ART, MIN_BAR_WIDTH,
    MIN_CONTAINER_WIDTH, MIN_LABEL_WIDTH, TEXT_INTERVAL, TEXT_NO_DATA,
    TEXT_SEPARATOR, TEXT_SKELETON_LEFT, TEXT_SKELETON_RESET, TEXT_STATUS_FETCH,
    TEXT_STATUS_WAITING,
)
from .errors import format_error
from .shared_state import DashboardView, UsageRow
from .theme import Theme
from .utils import format_interval, human_time, pct_str

log = logging.getLogger(__name__)

SPINNER_FRAMES = "⣾⣽⣻⢿⡿⣟⣯⣷"
BAR_FILL = "█"
BAR_EMPTY = "░"
VALUE_WIDTH = len("100.0%")
# label/bar separator (1) + bar/value gap (2)
LAYOUT_SPACING = 3
# panel border (2) + horizontal padding (4)
CHART_FRAME = 6
PAGE_PADDING = 2

_SKELETON_ROWS = [
    UsageRow(LABEL_CURRENT, 65.0, TEXT_SKELETON_RESET, TEXT_SKELETON_LEFT),
    UsageRow(LABEL_WEEKLY, 40.0, TEXT_SKELETON_RESET, TEXT_SKELETON_LEFT),
]


def bar_widths(total_width: int, rows: list[UsageRow]) -> tuple[int, int]:
    """Split the row width into (label_width, bar_width)."""
    available = max(1, total_width - VALUE_WIDTH - LAYOUT_SPACING)
    desired = max([MIN_LABEL_WIDTH] + [len(r.label) for r in rows])
    label_width = min(desired, max(0, available - MIN_BAR_WIDTH))
    if label_width == 0 and available > 1:
        label_width = 1
    bar_width = max(1, available - label_width)
    return label_width, bar_width


def progress_bar(width: int, fraction: float, fill_style: str, empty_style: str) -> Text:
    if width <= 0:
        return Text()
    fill = min(width, max(0, round(fraction * width)))
    bar = Text(BAR_FILL * fill, style=fill_style)
    bar.append(BAR_EMPTY * (width - fill), style=empty_style)
    return bar


class Dashboard:
    """Builds the full-screen frame for the live display."""

    def __init__(self, theme: Theme) -> None:
        self._theme = theme
        # Static for the lifetime of the process
        self._header = self._render_header()
        self._help = self._render_help()

    @property
    def theme(self) -> Theme:
        return self._theme

    def render(
        self,
        view: DashboardView,
        width: int = 80,
        now: datetime | None = None,
        spinner_frame: int = 0,
    ) -> RenderableType:
        content_width = max(width, MIN_CONTAINER_WIDTH) - PAGE_PADDING * 2
        content_width = max(content_width, 8)
        return Panel(
            Group(
                self._header,
                Text(),
                self._render_body(view, content_width, now),
                Text(),
                self._render_footer(view, now, spinner_frame),
            ),
            box=box.SIMPLE,
            padding=(0, PAGE_PADDING - 1),
            expand=True,
        )

    # ── header / footer ───────────────────────────────────────

    def _render_header(self) -> RenderableType:
        grid = Table.grid(padding=(0, 2))
        grid.add_column()
        grid.add_column(vertical="middle")
        title = Text(f"  {APP_TAGLINE}  ", style=self._theme.header)
        grid.add_row(Text(MARK_ART, style=self._theme.accent), title)
        return grid

    def _render_help(self) -> Text:
        t = self._theme
        return Text.assemble(
            ("r", f"bold {t.accent_hi}".strip()), " ", ("refresh now", t.muted),
            (TEXT_SEPARATOR, t.muted),
            ("q/ctrl+c", f"bold {t.accent_hi}".strip()), " ", ("quit", t.muted),
        )

    def status_text(self, view: DashboardView, now: datetime | None = None, spinner_frame: int = 0) -> str:
        if view.loading:
            spinner = SPINNER_FRAMES[spinner_frame % len(SPINNER_FRAMES)]
            return TEXT_STATUS_FETCH.format(spinner=spinner)
        if view.last_updated is not None:
            return human_time(view.last_updated, now)
        return TEXT_STATUS_WAITING

    def _render_footer(self, view: DashboardView, now: datetime | None, spinner_frame: int) -> RenderableType:
        status = self.status_text(view, now, spinner_frame)
        interval = TEXT_INTERVAL.format(interval=format_interval(view.refresh_interval))
        right = Text(f"{status}{TEXT_SEPARATOR}{interval}", style=f"italic {self._theme.muted}")

        grid = Table.grid(expand=True)
        grid.add_column(justify="left", no_wrap=True)
        grid.add_column(justify="right", no_wrap=True)
        grid.add_row(self._help, right)
        return grid

    # ── body ──────────────────────────────────────────────────

    def _render_body(self, view: DashboardView, width: int, now: datetime | None) -> RenderableType:
        if view.last_error is not None:
            return self._error_box(format_error(view.last_error))

        rows = view.snapshot.rows(now) if view.snapshot is not None else []
        if not rows:
            if view.loading or view.last_updated is None:
                return self._chart(_SKELETON_ROWS, width, skeleton=True)
            return Text(TEXT_NO_DATA, style=self._theme.muted)
        return self._chart(rows, width)

    def _error_box(self, message: str) -> RenderableType:
        return Panel(
            Text(message, style=self._theme.error),
            box=box.ROUNDED,
            border_style=self._theme.error,
            padding=(0, 1),
        )

    def _chart(self, rows: list[UsageRow], width: int, skeleton: bool = False) -> RenderableType:
        inner = max(4, width - CHART_FRAME)
        label_width, bar_width = bar_widths(inner, rows)
        t = self._theme

        blocks: list[RenderableType] = []
        for i, row in enumerate(rows):
            if skeleton:
                fill_style, value, value_style = t.track, "···", t.muted
            else:
                fill_style, value, value_style = t.bar(row.percent), pct_str(row.percent), t.value(row.percent)

            line = Text(no_wrap=True, overflow="ellipsis")
            line.append(row.label[:label_width].ljust(label_width), style=t.muted if skeleton else t.label)
            line.append(" ")
            line.append_text(progress_bar(bar_width, row.percent / 100, fill_style, t.track))
            line.append("  ")
            line.append(value.rjust(VALUE_WIDTH), style=value_style)
            blocks.append(line)

            meta = self._meta(row, bar_width, skeleton)
            if meta is not None:
                blocks.append(Text(" " * (label_width + 1)) + meta)
            if i < len(rows) - 1:
                blocks.append(Text())

        return Panel(
            Group(*blocks),
            box=box.ROUNDED,
            border_style=t.accent,
            padding=(1, 2),
        )

    def _meta(self, row: UsageRow, max_width: int, skeleton: bool) -> Text | None:
        t = self._theme
        reset, remaining = row.reset, row.remaining
        if skeleton:
            reset, remaining = reset[:max_width], remaining[:max_width]
        parts = []
        if reset:
            parts.append((reset, f"italic {t.muted}"))
        if remaining:
            parts.append((remaining, t.muted if skeleton else t.accent_hi))
        if not parts:
            return None
        meta = Text()
        for i, (text, style) in enumerate(parts):
            if i:
                meta.append(TEXT_SEPARATOR)
            meta.append(text, style=style)
        return meta
