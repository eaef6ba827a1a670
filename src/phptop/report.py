"""Top-N report construction and per-cell formatting."""

from __future__ import annotations

from collections.abc import Callable
from enum import Enum

from phptop.models import (
    METRIC_KEYS,
    TIME_KEYS,
    TOTAL_KEYS,
    FinalizedEntry,
    FinalizedStats,
    MetricKey,
    Report,
    ReportRow,
)

HEADERS: dict[str, str] = {
    "hit": "Hits",
    "time": "Time",
    "user": "User",
    "sys": "Sys",
    "mem": "Mem/hit",
    "mem_max": "Mem_max",
}
IDENTIFIER_HEADER = "URL"


class RenderPolicy(Enum):
    """How numeric cells are derived, resolved once per run."""

    ABSOLUTE = "absolute"
    RELATIVE = "relative"
    AVERAGE = "average"
    AVERAGE_RELATIVE = "average_relative"

    @classmethod
    def from_flags(cls, *, relative: bool, average: bool) -> RenderPolicy:
        if relative and average:
            return cls.AVERAGE_RELATIVE
        if relative:
            return cls.RELATIVE
        if average:
            return cls.AVERAGE
        return cls.ABSOLUTE

    @property
    def average(self) -> bool:
        return self in (RenderPolicy.AVERAGE, RenderPolicy.AVERAGE_RELATIVE)

    @property
    def relative(self) -> bool:
        return self in (RenderPolicy.RELATIVE, RenderPolicy.AVERAGE_RELATIVE)


def _percent(value: float, whole: float) -> str:
    if whole <= 0:
        return ""
    return f"{value * 100 / whole:.1f}%"


def format_cell(
    key: MetricKey,
    value: float | None,
    *,
    hits: int,
    policy: RenderPolicy,
    span: int,
    total_hits: int,
) -> str:
    """Render one metric value for a row that accounts for ``hits`` requests."""
    if value is None:
        return ""

    if key in TIME_KEYS:
        if policy.average:
            return f"{value / hits:.3f}" if hits else ""
        if policy.relative:
            return _percent(value, span)
    elif key == "hit":
        if policy.relative:
            return _percent(value, total_hits)
        return str(int(value))

    return f"{value:.3f}" if policy.average else f"{value:.1f}"


class ReportBuilder:
    """Builds one Report per sort key from finalized statistics."""

    def __init__(
        self,
        stats: FinalizedStats,
        *,
        count: int = 10,
        policy: RenderPolicy = RenderPolicy.ABSOLUTE,
    ) -> None:
        self.stats = stats
        self.count = count
        self.policy = policy

    def rank(self, sort_key: MetricKey) -> list[tuple[str, FinalizedEntry]]:
        """Entries by descending ``sort_key``, ties by identifier, top ``count``."""

        def sort_key_of(item: tuple[str, FinalizedEntry]) -> tuple[float, str]:
            identifier, entry = item
            value = entry.value(sort_key)
            return (-(value if value is not None else 0.0), identifier)

        return sorted(self.stats.entries.items(), key=sort_key_of)[: self.count]

    def build(self, sort_key: MetricKey) -> Report:
        ranked = self.rank(sort_key)
        rows = [
            ReportRow(label=identifier, cells=self._cells(entry.hit, entry.value))
            for identifier, entry in ranked
        ]
        sort_values = [entry.value(sort_key) or 0.0 for _, entry in ranked]
        return Report(
            sort_key=sort_key,
            headers=dict(HEADERS),
            rows=rows,
            total=self._total_row(),
            sort_values=sort_values,
        )

    def _total_row(self) -> ReportRow:
        sums: dict[str, float | None] = {key: None for key in METRIC_KEYS}
        for entry in self.stats.entries.values():
            for key in TOTAL_KEYS:
                value = entry.value(key)
                if value is not None:
                    sums[key] = (sums[key] or 0.0) + value
        hits = int(sums["hit"] or 0)
        return ReportRow(
            label=f"Total ({self.stats.span}s window)",
            cells=self._cells(hits, sums.get),
        )

    def _cells(self, hits: int, lookup: Callable[[MetricKey], float | None]) -> dict[str, str]:
        return {
            key: format_cell(
                key,
                lookup(key),
                hits=hits,
                policy=self.policy,
                span=self.stats.span,
                total_hits=self.stats.hits,
            )
            for key in METRIC_KEYS
        }
