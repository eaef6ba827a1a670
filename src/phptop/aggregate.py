"""Per-identifier accumulation and the one-shot finalization step."""

from __future__ import annotations

import logging

from phptop.errors import PhptopError
from phptop.models import (
    MEGABYTE,
    AggregateEntry,
    EpochSeconds,
    FinalizedEntry,
    FinalizedStats,
    GlobalCounters,
    MetricRecord,
)

logger = logging.getLogger(__name__)


class Aggregator:
    """Owns the identifier -> AggregateEntry mapping for one run."""

    def __init__(self, now: EpochSeconds, span: int) -> None:
        self.entries: dict[str, AggregateEntry] = {}
        self.counters = GlobalCounters(now=now, span=span)
        self._finalized = False

    def merge(self, record: MetricRecord) -> None:
        self._check_open()
        entry = self.entries.get(record.identifier)
        if entry is None:
            entry = self.entries[record.identifier] = AggregateEntry()
        entry.add(record)
        self.counters.hits += 1

    def invalidate(self, identifier: str) -> None:
        """Drop everything accumulated for ``identifier`` and count one bogus record."""
        self._check_open()
        if (dropped := self.entries.pop(identifier, None)) is not None:
            logger.debug("Discarded %d accumulated hits for %s", dropped.hit, identifier)
        self.counters.bogus += 1

    def reject(self, identifier: str) -> None:
        """Count one bogus record for ``identifier`` without touching its entry."""
        self._check_open()
        self.counters.bogus += 1

    def finalize(self) -> FinalizedStats:
        """Convert totals to display values: per-hit average memory and peak in MB.

        May only be called once; the aggregator accepts no records afterwards.
        """
        self._check_open()
        self._finalized = True

        finalized: dict[str, FinalizedEntry] = {}
        for identifier, entry in self.entries.items():
            mem = entry.mem / (entry.hit * MEGABYTE) if entry.mem is not None else None
            mem_max = entry.mem_max / MEGABYTE if entry.mem_max is not None else None
            finalized[identifier] = FinalizedEntry(
                hit=entry.hit,
                time=entry.time,
                user=entry.user,
                sys=entry.sys,
                mem=mem,
                mem_max=mem_max,
            )

        return FinalizedStats(
            entries=finalized,
            hits=self.counters.hits,
            bogus=self.counters.bogus,
            now=self.counters.now,
            span=self.counters.span,
        )

    def _check_open(self) -> None:
        if self._finalized:
            raise PhptopError("aggregator already finalized")
