"""Time window filtering and the backward-scan early stop."""

from __future__ import annotations

import time
from enum import Enum

from phptop.models import EpochSeconds

# Scanning stops on the 10th consecutive too-old record, not the 11th
EARLY_STOP_THRESHOLD = 10


class Verdict(Enum):
    INSIDE = "inside"
    BEFORE = "before"  # older than the window start
    AFTER = "after"  # newer than an explicit end time


class TimeWindow:
    """The trailing interval ``[end - span, end]``.

    ``end`` defaults to the wall clock at construction time. Records without
    a usable timestamp are always inside the window.
    """

    def __init__(self, span: int, end: EpochSeconds | None = None) -> None:
        self.span = span
        self.explicit_end = end is not None
        self.now: EpochSeconds = end if end is not None else time.time()

    @property
    def start(self) -> EpochSeconds:
        return self.now - self.span

    def classify(self, timestamp: EpochSeconds | None) -> Verdict:
        if timestamp is None:
            return Verdict.INSIDE
        if self.now - timestamp > self.span:
            return Verdict.BEFORE
        # A wall-clock window tolerates slightly future stamps (clock skew)
        if self.explicit_end and timestamp > self.now:
            return Verdict.AFTER
        return Verdict.INSIDE


class EarlyStop:
    """Counts consecutive too-old records seen while scanning newest-first."""

    def __init__(self, threshold: int = EARLY_STOP_THRESHOLD) -> None:
        self.threshold = threshold
        self.consecutive = 0

    def observe(self, verdict: Verdict) -> bool:
        """Record one verdict; return True once scanning should stop."""
        if verdict is Verdict.BEFORE:
            self.consecutive += 1
        elif verdict is Verdict.INSIDE:
            self.consecutive = 0
        return self.consecutive >= self.threshold
