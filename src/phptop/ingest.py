"""Scan loop: log files -> parser -> window filter -> aggregator."""

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path

from pydantic import BaseModel

from phptop.aggregate import Aggregator
from phptop.errors import BogusRecordError, MalformedRecordError
from phptop.parser import RecordParser
from phptop.sources import DECOMPRESSION_ERRORS, LineSource, open_line_source
from phptop.window import EarlyStop, TimeWindow, Verdict

logger = logging.getLogger(__name__)


class ScanResult(BaseModel):
    """What one file contributed."""

    path: Path
    opened: bool
    lines: int = 0
    merged: int = 0
    bogus: int = 0
    stopped_early: bool = False


def scan_source(
    source: LineSource,
    parser: RecordParser,
    window: TimeWindow,
    aggregator: Aggregator,
    *,
    salvage: bool = False,
) -> ScanResult:
    """Feed every in-window record of ``source`` into ``aggregator``.

    Backward sources stop after EarlyStop's threshold of consecutive records
    older than the window; forward sources always run to the end.
    """
    result = ScanResult(path=source.path, opened=True)
    early_stop = EarlyStop() if source.backward else None

    try:
        for line in source:
            result.lines += 1
            raw = parser.split(line)
            if raw is None:
                continue

            verdict = window.classify(raw.timestamp)
            if early_stop is not None and early_stop.observe(verdict):
                logger.debug(
                    "%s: %d consecutive records before %s, stopping",
                    source.path,
                    early_stop.consecutive,
                    datetime.fromtimestamp(window.start).isoformat(sep=" ", timespec="seconds"),
                )
                result.stopped_early = True
                break
            if verdict is not Verdict.INSIDE:
                continue

            try:
                record = parser.parse(raw)
            except BogusRecordError as e:
                logger.debug("%s: bogus record, %s", source.path, e)
                result.bogus += 1
                if isinstance(e, MalformedRecordError) and not salvage:
                    aggregator.invalidate(e.identifier)
                else:
                    aggregator.reject(e.identifier)
                continue

            aggregator.merge(record)
            result.merged += 1
    except (OSError, *DECOMPRESSION_ERRORS) as e:
        logger.warning("%s: read failed after %d lines: %s", source.path, result.lines, e)

    return result


def scan_file(
    path: Path,
    parser: RecordParser,
    window: TimeWindow,
    aggregator: Aggregator,
    *,
    salvage: bool = False,
) -> ScanResult:
    """Open and scan one file; an unopenable file contributes nothing."""
    try:
        source = open_line_source(path, backward=True)
    except OSError as e:
        logger.warning("Cannot open %s: %s", path, e.strerror or e)
        return ScanResult(path=Path(path), opened=False)

    with source:
        result = scan_source(source, parser, window, aggregator, salvage=salvage)
    logger.debug(
        "%s: %d lines read, %d records merged, %d bogus",
        path,
        result.lines,
        result.merged,
        result.bogus,
    )
    return result
