"""Exception hierarchy for phptop."""

from __future__ import annotations


class PhptopError(Exception):
    """Base class for all phptop errors."""


class ConfigError(PhptopError, ValueError):
    """Invalid or unusable configuration (fatal)."""


class BogusRecordError(PhptopError):
    """A marker line whose metric payload failed validation."""

    def __init__(self, identifier: str, reason: str) -> None:
        super().__init__(f"{identifier}: {reason}")
        self.identifier = identifier
        self.reason = reason


class TruncatedRecordError(BogusRecordError):
    """Too few key:value pairs, the line was most likely cut short."""


class MalformedRecordError(BogusRecordError):
    """At least one key:value pair is not a valid numeric sample."""
