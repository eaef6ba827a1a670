"""Data models shared by the ingestion and reporting stages."""

from __future__ import annotations

from typing import Literal, TypeAlias

from pydantic import BaseModel, ConfigDict, Field

# ============================================================
# TYPE ALIASES & CONSTANTS
# ============================================================

MetricKey: TypeAlias = Literal["hit", "time", "user", "sys", "mem", "mem_max"]
SampleKey: TypeAlias = Literal["time", "user", "sys", "mem"]
EpochSeconds: TypeAlias = float
Megabytes: TypeAlias = float

METRIC_KEYS: tuple[MetricKey, ...] = ("hit", "time", "user", "sys", "mem", "mem_max")
SAMPLE_KEYS: tuple[SampleKey, ...] = ("time", "user", "sys", "mem")
TIME_KEYS: frozenset[str] = frozenset({"time", "user", "sys"})
TOTAL_KEYS: tuple[MetricKey, ...] = ("hit", "time", "user", "sys")

MEGABYTE = 2**20


# ============================================================
# INGESTION MODELS
# ============================================================


class RawRecord(BaseModel):
    """A line that carries the marker, split but not yet validated."""

    model_config = ConfigDict(frozen=True)

    identifier: str
    timestamp: EpochSeconds | None = None
    pairs: list[str] = Field(default_factory=list)


class MetricRecord(BaseModel):
    """One validated per-request sample."""

    model_config = ConfigDict(frozen=True)

    identifier: str
    timestamp: EpochSeconds | None = None

    time: float | None = None
    user: float | None = None
    sys: float | None = None
    mem: float | None = None  # bytes


class AggregateEntry(BaseModel):
    """Running totals for one identifier (raw units, mem in bytes)."""

    hit: int = 0
    time: float | None = None
    user: float | None = None
    sys: float | None = None
    mem: float | None = None
    mem_max: float | None = None

    def add(self, record: MetricRecord) -> None:
        for key in SAMPLE_KEYS:
            value = getattr(record, key)
            if value is None:
                continue
            current = getattr(self, key)
            setattr(self, key, value if current is None else current + value)
        if record.mem is not None and (self.mem_max is None or record.mem > self.mem_max):
            self.mem_max = record.mem
        self.hit += 1


class FinalizedEntry(BaseModel):
    """Display-ready statistics for one identifier.

    ``mem`` is the average peak memory per hit and ``mem_max`` the largest
    peak seen, both in megabytes. Time metrics stay as totals in seconds.
    """

    model_config = ConfigDict(frozen=True)

    hit: int
    time: float | None = None
    user: float | None = None
    sys: float | None = None
    mem: Megabytes | None = None
    mem_max: Megabytes | None = None

    def value(self, key: MetricKey) -> float | None:
        value = getattr(self, key)
        return None if value is None else float(value)


class GlobalCounters(BaseModel):
    """Run-wide counters, written during ingestion only."""

    hits: int = 0
    bogus: int = 0
    now: EpochSeconds
    span: int


class FinalizedStats(BaseModel):
    """Read-only result of ingestion handed to the report stage."""

    model_config = ConfigDict(frozen=True)

    entries: dict[str, FinalizedEntry]
    hits: int
    bogus: int
    now: EpochSeconds
    span: int


# ============================================================
# REPORT MODELS
# ============================================================


class ReportRow(BaseModel):
    """One rendered table row: a label plus one text cell per metric."""

    model_config = ConfigDict(frozen=True)

    label: str
    cells: dict[str, str]


class Report(BaseModel):
    """A top-N table for one sort key, with its totals row."""

    model_config = ConfigDict(frozen=True)

    sort_key: MetricKey
    headers: dict[str, str]
    rows: list[ReportRow]
    total: ReportRow
    sort_values: list[float] = Field(default_factory=list)
