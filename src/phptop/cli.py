#!/usr/bin/env python3
"""phptop - rank PHP requests by resource usage over the last N seconds.

Reads the samples written by the phptop PHP hook into web server or PHP-FPM
error logs and summarises them per URL:
- Hits, wall time, user and system CPU time
- Average and maximum peak memory per request
- Absolute, relative (percent of window) or per-hit averaged figures
- One ranked table per sort key, as text or as an HTML page
"""

from __future__ import annotations

import glob
import logging
import sys
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.theme import Theme

from phptop import __version__
from phptop.aggregate import Aggregator
from phptop.config import PhptopConfig
from phptop.ingest import ScanResult, scan_file
from phptop.models import FinalizedStats, Report
from phptop.parser import RecordParser
from phptop.render import MarkupRenderer, TextRenderer, detect_width
from phptop.report import RenderPolicy, ReportBuilder
from phptop.window import TimeWindow

logger = logging.getLogger("phptop")

BOGUS_WARNING_RATIO = 0.05
GLOB_CHARS = frozenset("*?[")

# ============================================================
# DIAGNOSTICS
# ============================================================

PHPTOP_DIAGNOSTIC_THEME = Theme(
    {
        "critical": "bold red",
        "warning": "bold yellow",
        "info": "cyan",
    }
)

err_console = Console(stderr=True, theme=PHPTOP_DIAGNOSTIC_THEME)


def setup_logging(verbose: bool = False) -> None:
    """Route the phptop logger to stderr through rich."""
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)
    handler = RichHandler(
        console=err_console,
        show_time=False,
        show_path=False,
        markup=False,
        rich_tracebacks=verbose,
    )
    handler.setFormatter(logging.Formatter("%(message)s"))
    logger.addHandler(handler)
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)


# ============================================================
# ORCHESTRATION
# ============================================================


def expand_log_patterns(patterns: list[str]) -> list[Path]:
    """Expand glob patterns in order; plain paths are kept even when missing."""
    paths: list[Path] = []
    seen: set[Path] = set()
    for pattern in patterns:
        matches = sorted(glob.glob(pattern)) if GLOB_CHARS.intersection(pattern) else [pattern]
        if not matches:
            logger.debug("No file matches %s", pattern)
            continue
        for match in matches:
            path = Path(match)
            if path not in seen:
                seen.add(path)
                paths.append(path)
    return paths


def collect_stats(
    config: PhptopConfig, paths: list[Path]
) -> tuple[FinalizedStats, list[ScanResult]]:
    """Scan every file once and finalize the aggregate."""
    window = TimeWindow(config.span, end=config.end)
    parser = RecordParser(full_query=config.full_query, path_only=config.path_only)
    aggregator = Aggregator(now=window.now, span=config.span)

    results = [
        scan_file(path, parser, window, aggregator, salvage=config.salvage) for path in paths
    ]
    return aggregator.finalize(), results


def build_reports(config: PhptopConfig, stats: FinalizedStats) -> list[Report]:
    policy = RenderPolicy.from_flags(relative=config.relative, average=config.average)
    builder = ReportBuilder(stats, count=config.count, policy=policy)
    return [builder.build(sort_key) for sort_key in config.sort_keys]


def warn_on_bogus_ratio(stats: FinalizedStats) -> bool:
    if stats.bogus and stats.bogus >= stats.hits * BOGUS_WARNING_RATIO:
        logger.warning(
            "%d bogus records for %d valid hits (truncated log lines?)",
            stats.bogus,
            stats.hits,
        )
        return True
    return False


# ============================================================
# TYPER CLI INTERFACE
# ============================================================

app = typer.Typer(
    name="phptop",
    help="Rank PHP requests by CPU, memory and wall time from recent log samples",
    add_completion=False,
    rich_markup_mode="rich",
)


@app.command()
def report(
    span: Annotated[
        int,
        typer.Option("--span", "-t", help="Window length in seconds (default: 300)"),
    ] = 300,
    end: Annotated[
        str | None,
        typer.Option("--end", "-e", help="End the window at this date/time instead of now"),
    ] = None,
    log: Annotated[
        list[str] | None,
        typer.Option("--log", "-l", help="Log file or glob pattern (repeatable)"),
    ] = None,
    output: Annotated[
        str,
        typer.Option("--output", "-o", help="Output mode: text or html"),
    ] = "text",
    count: Annotated[
        int,
        typer.Option("--count", "-n", help="Number of rows per report (default: 10)"),
    ] = 10,
    sort: Annotated[
        list[str] | None,
        typer.Option(
            "--sort",
            "-s",
            help="Sort key: hit, time, user, sys, mem, mem_max (repeatable or comma-separated)",
        ),
    ] = None,
    full: Annotated[
        bool,
        typer.Option("--full", "-f", help="Keep the query string in URLs"),
    ] = False,
    path_only: Annotated[
        bool,
        typer.Option("--path", "-p", help="Strip scheme and host from URLs"),
    ] = False,
    relative: Annotated[
        bool,
        typer.Option("--relative", "-r", help="Show times and hits as percentages"),
    ] = False,
    average: Annotated[
        bool,
        typer.Option("--average", "-a", help="Show times as per-hit averages"),
    ] = False,
    salvage: Annotated[
        bool,
        typer.Option(
            "--salvage",
            help="Drop only a malformed record instead of the whole URL's statistics",
        ),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Log per-file and per-record diagnostics"),
    ] = False,
) -> None:
    """Summarise phptop samples from the last SPAN seconds of logs.

    Exit codes: 0 = report produced (possibly empty), 1 = no log could be opened
    or invalid configuration.
    """
    setup_logging(verbose)

    try:
        options: dict[str, object] = {
            "span": span,
            "end": end,
            "output": output,
            "count": count,
            "full_query": full,
            "path_only": path_only,
            "relative": relative,
            "average": average,
            "salvage": salvage,
        }
        if log:
            options["logs"] = log
        if sort:
            options["sort_keys"] = sort
        config = PhptopConfig.from_options(**options)

        paths = expand_log_patterns(config.logs)
        stats, results = collect_stats(config, paths)

        if not any(result.opened for result in results):
            err_console.print("[critical]ERROR: no log file could be opened[/critical]")
            sys.exit(1)

        if verbose:
            opened = sum(1 for result in results if result.opened)
            logger.info("Read %d of %d log files", opened, len(results))

        warn_on_bogus_ratio(stats)

        if not stats.entries:
            logger.warning("No phptop records found in the last %d seconds", config.span)
            return

        reports = build_reports(config, stats)
        if config.output == "html":
            MarkupRenderer(argv=sys.argv[1:]).render(reports, sys.stdout)
        else:
            TextRenderer(width=detect_width(sys.stdout)).render(reports, sys.stdout)

    except ValueError as e:
        err_console.print(f"[critical]ERROR: {escape(str(e))}[/critical]")
        sys.exit(1)
    except Exception as e:
        err_console.print(f"[critical]ERROR: {escape(str(e))}[/critical]")
        if verbose:
            err_console.print_exception()
        sys.exit(1)


@app.command()
def version() -> None:
    """Display version."""
    typer.echo(f"phptop {__version__}")


if __name__ == "__main__":
    app()
