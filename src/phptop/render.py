"""Report output: column-aligned text (rich) or a self-contained HTML page."""

from __future__ import annotations

import html
import os
import shutil
import socket
from datetime import datetime
from string import Template
from typing import IO

from rich.console import Console
from rich.table import Table
from rich.text import Text
from rich.theme import Theme

from phptop.errors import ConfigError
from phptop.models import METRIC_KEYS, Report
from phptop.report import IDENTIFIER_HEADER

NUMERIC_WIDTH = 8
MIN_IDENTIFIER_WIDTH = 20
COLUMN_GAP = 2

PHPTOP_THEME = Theme(
    {
        "header": "bold",
        "sort": "bold cyan",
        "total": "bold",
        "url": "default",
        "metric": "default",
    }
)

# ============================================================
# TEXT OUTPUT
# ============================================================


def detect_width(stream: IO[str]) -> int | None:
    """Usable width when ``stream`` is a terminal, None for pipes and files.

    The COLUMNS environment variable overrides the detected size.
    """
    isatty = getattr(stream, "isatty", None)
    if isatty is None or not isatty():
        return None
    if columns := os.environ.get("COLUMNS"):
        try:
            return int(columns)
        except ValueError as e:
            raise ConfigError(f"COLUMNS is not a number: {columns!r}") from e
    return shutil.get_terminal_size().columns


class TextRenderer:
    """One aligned table per report, separated by blank lines."""

    def __init__(self, width: int | None = None) -> None:
        self.width = width

    def identifier_width(self, reports: list[Report]) -> int:
        numeric = len(METRIC_KEYS) * (NUMERIC_WIDTH + COLUMN_GAP)
        if self.width is None:
            labels = [IDENTIFIER_HEADER]
            for report in reports:
                labels.extend(row.label for row in report.rows)
                labels.append(report.total.label)
            return max(len(label) for label in labels)

        available = self.width - numeric
        if available < MIN_IDENTIFIER_WIDTH:
            raise ConfigError(
                f"terminal too narrow ({self.width} columns, need at least "
                f"{MIN_IDENTIFIER_WIDTH + numeric})"
            )
        return available

    def build_table(self, report: Report, identifier_width: int) -> Table:
        table = Table(
            box=None,
            padding=(0, 1),
            pad_edge=False,
            show_edge=False,
            header_style="header",
        )
        table.add_column(
            IDENTIFIER_HEADER,
            style="url",
            width=identifier_width,
            no_wrap=True,
            overflow="ellipsis",
        )
        for key in METRIC_KEYS:
            label = report.headers[key]
            is_sort = key == report.sort_key
            table.add_column(
                Text(label.upper() if is_sort else label, style="sort" if is_sort else "header"),
                style="metric",
                justify="right",
                width=NUMERIC_WIDTH,
                no_wrap=True,
            )

        for row in report.rows:
            table.add_row(row.label, *(row.cells[key] for key in METRIC_KEYS))
        table.add_section()
        table.add_row(
            report.total.label,
            *(report.total.cells[key] for key in METRIC_KEYS),
            style="total",
        )
        return table

    def render(self, reports: list[Report], stream: IO[str]) -> None:
        identifier_width = self.identifier_width(reports)
        console_width = self.width or (
            identifier_width + len(METRIC_KEYS) * (NUMERIC_WIDTH + COLUMN_GAP) + 1
        )
        console = Console(
            file=stream,
            width=console_width,
            theme=PHPTOP_THEME,
            highlight=False,
        )
        for index, report in enumerate(reports):
            if index:
                console.print()
            console.print(self.build_table(report, identifier_width))


# ============================================================
# MARKUP OUTPUT
# ============================================================

HTML_TEMPLATE = Template(
    """<!DOCTYPE html>
<html>
<head>
<meta charset="utf-8">
<title>$title</title>
<style>
body { font-family: sans-serif; font-size: 13px; color: #222; }
table.phptop { border-collapse: collapse; margin-bottom: 2em; }
table.phptop caption { text-align: left; font-weight: bold; padding: 4px 0; }
table.phptop th, table.phptop td { padding: 2px 8px; border-bottom: 1px solid #ddd; }
table.phptop .url { text-align: left; font-family: monospace; }
table.phptop .num { text-align: right; }
table.phptop .sort { background: #eef4ff; }
table.phptop th.sort { text-decoration: underline; }
table.phptop tr.sum td { font-weight: bold; border-top: 2px solid #888; }
p.footer { color: #888; font-size: 11px; }
</style>
</head>
<body>
<h1>$title</h1>
$tables
<p class="footer">$footer</p>
</body>
</html>
"""
)


class MarkupRenderer:
    """Renders every report into one HTML document."""

    def __init__(
        self,
        title: str = "phptop",
        *,
        argv: list[str] | None = None,
        hostname: str | None = None,
        generated_at: datetime | None = None,
    ) -> None:
        self.title = title
        self.argv = argv or []
        self.hostname = hostname or socket.gethostname()
        self.generated_at = generated_at or datetime.now()

    def footer(self) -> str:
        text = (
            f"Generated by phptop on {self.hostname} "
            f"at {self.generated_at.strftime('%Y-%m-%d %H:%M:%S')}"
        )
        if self.argv:
            text += f" with arguments: {' '.join(self.argv)}"
        return html.escape(text)

    def render_table(self, report: Report) -> str:
        def cell_class(key: str) -> str:
            return "num sort" if key == report.sort_key else "num"

        lines = ['<table class="phptop">']
        lines.append(
            f"<caption>Top {len(report.rows)} by {html.escape(report.headers[report.sort_key])}"
            "</caption>"
        )
        header_cells = [f'<th class="url">{IDENTIFIER_HEADER}</th>']
        header_cells += [
            f'<th class="{cell_class(key)}">{html.escape(report.headers[key])}</th>'
            for key in METRIC_KEYS
        ]
        lines.append(f"<tr>{''.join(header_cells)}</tr>")

        for row, row_class in [(row, "row") for row in report.rows] + [(report.total, "sum")]:
            cells = [f'<td class="url">{html.escape(row.label)}</td>']
            cells += [
                f'<td class="{cell_class(key)}">{html.escape(row.cells[key])}</td>'
                for key in METRIC_KEYS
            ]
            lines.append(f'<tr class="{row_class}">{"".join(cells)}</tr>')

        lines.append("</table>")
        return "\n".join(lines)

    def render_document(self, reports: list[Report]) -> str:
        return HTML_TEMPLATE.substitute(
            title=html.escape(self.title),
            tables="\n".join(self.render_table(report) for report in reports),
            footer=self.footer(),
        )

    def render(self, reports: list[Report], stream: IO[str]) -> None:
        stream.write(self.render_document(reports))
