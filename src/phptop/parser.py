"""Extraction of phptop samples from raw web server / PHP log lines.

The instrumentation hook writes one line per request through PHP's
``error_log()``, so the sample ends up wrapped in whatever the host adds:

    [Mon Oct 19 12:00:00.123456 2026] [php:notice] [pid 42] [client 10.0.0.1:5555]
        phptop https://example.org/index.php time:0.12 user:0.08 sys:0.01 mem:2097152,
        referer: https://example.org/
    2026/10/19 12:00:00 [error] 42#0: *7 FastCGI sent in stderr: "PHP message:
        phptop https://example.org/ time:0.12 ..." while reading response header
    [19-Oct-2026 12:00:00 Europe/Paris] phptop /srv/cron.php time:1.5 user:1.2 ...

(wrapped here for readability, each sample is a single log line).
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, timezone, tzinfo
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from phptop.errors import MalformedRecordError, TruncatedRecordError
from phptop.models import SAMPLE_KEYS, EpochSeconds, MetricRecord, RawRecord

logger = logging.getLogger(__name__)

DEFAULT_MARKER = "phptop"
MIN_PAIRS = 4

# ============================================================
# TIMESTAMPS
# ============================================================

BRACKETED_TIMESTAMP_PATTERN: re.Pattern[str] = re.compile(r"^\s*\[(?P<timestamp>[^\]]+)\]")
NGINX_TIMESTAMP_PATTERN: re.Pattern[str] = re.compile(
    r"^\s*(?P<timestamp>\d{4}/\d{2}/\d{2} \d{2}:\d{2}:\d{2})"
)
ZONE_NAME_PATTERN: re.Pattern[str] = re.compile(r"^[A-Za-z_]+(?:/[A-Za-z_+-]+)*$")
UTC_NAMES = frozenset({"UTC", "GMT", "Z"})

TIMESTAMP_FORMATS: tuple[str, ...] = (
    "%a %b %d %H:%M:%S.%f %Y",  # Apache 2.4
    "%a %b %d %H:%M:%S %Y",  # Apache 2.2
    "%d-%b-%Y %H:%M:%S",  # PHP / PHP-FPM
    "%Y/%m/%d %H:%M:%S",  # nginx
    "%d/%b/%Y:%H:%M:%S %z",  # common log format
    "%Y-%m-%d %H:%M:%S.%f",
    "%Y-%m-%d %H:%M:%S",
)


def _parse_with_formats(text: str) -> datetime | None:
    iso_text = text.replace("Z", "+00:00") if text.endswith("Z") else text
    try:
        return datetime.fromisoformat(iso_text)
    except ValueError:
        pass
    for fmt in TIMESTAMP_FORMATS:
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue
    return None


def parse_timestamp(text: str) -> EpochSeconds | None:
    """Parse a log timestamp into epoch seconds, or None if unrecognised.

    Naive timestamps are interpreted in local time. A trailing zone name
    (``UTC``, ``Europe/Paris``) as written by PHP is honoured.
    """
    text = " ".join(text.split())
    if not text:
        return None

    if (parsed := _parse_with_formats(text)) is not None:
        return parsed.timestamp()

    head, _, zone_name = text.rpartition(" ")
    if head and ZONE_NAME_PATTERN.match(zone_name):
        zone: tzinfo
        if zone_name in UTC_NAMES:
            zone = timezone.utc
        else:
            try:
                zone = ZoneInfo(zone_name)
            except (ZoneInfoNotFoundError, ValueError):
                return None
        if (parsed := _parse_with_formats(head)) is not None and parsed.tzinfo is None:
            return parsed.replace(tzinfo=zone).timestamp()
    return None


# ============================================================
# IDENTIFIERS
# ============================================================

SCHEME_HOST_PATTERN: re.Pattern[str] = re.compile(r"^[A-Za-z][A-Za-z0-9+.-]*://[^/]*")
INDEX_SEGMENT_PATTERN: re.Pattern[str] = re.compile(r"/index\.[A-Za-z0-9]+$")
TRAILING_SLASHES_PATTERN: re.Pattern[str] = re.compile(r"//+$")


def normalize_identifier(url: str, *, full_query: bool = False, path_only: bool = False) -> str:
    """Turn a raw request URL into the aggregation key."""
    base, _, query = url.partition("?")
    base = INDEX_SEGMENT_PATTERN.sub("/", base)
    base = TRAILING_SLASHES_PATTERN.sub("/", base)
    if path_only:
        base = SCHEME_HOST_PATTERN.sub("", base) or "/"
    if full_query and query:
        return f"{base}?{query}"
    return base


# ============================================================
# RECORD PARSER
# ============================================================

NUMERIC_VALUE_PATTERN: re.Pattern[str] = re.compile(r"^(?:\d+\.?\d*|\.\d+)$")
DECIMAL_COMMA_PATTERN: re.Pattern[str] = re.compile(r"(?<=\d),(?=\d)")
PAYLOAD_END_PATTERN: re.Pattern[str] = re.compile(r"[\"']|\\n")


class RecordParser:
    """Splits marker lines and validates their key:value payload."""

    def __init__(
        self,
        marker: str = DEFAULT_MARKER,
        *,
        full_query: bool = False,
        path_only: bool = False,
    ) -> None:
        self.marker = marker
        self.full_query = full_query
        self.path_only = path_only
        self._marker_pattern = re.compile(
            rf"(?:^|[\s\"']){re.escape(marker)}\s+(?P<identifier>\S+)(?P<payload>.*)$"
        )

    def split(self, line: str) -> RawRecord | None:
        """Return the raw record carried by ``line``, or None for unrelated lines."""
        # Substring guard: most log lines are not ours
        if self.marker not in line:
            return None
        match = self._marker_pattern.search(line)
        if match is None:
            return None

        timestamp: EpochSeconds | None = None
        if stamp := (
            BRACKETED_TIMESTAMP_PATTERN.match(line) or NGINX_TIMESTAMP_PATTERN.match(line)
        ):
            timestamp = parse_timestamp(stamp.group("timestamp"))

        payload = match.group("payload")
        payload = payload.split(", referer", 1)[0]
        payload = PAYLOAD_END_PATTERN.split(payload, 1)[0]
        payload = DECIMAL_COMMA_PATTERN.sub(".", payload)

        identifier = normalize_identifier(
            match.group("identifier"), full_query=self.full_query, path_only=self.path_only
        )
        return RawRecord(identifier=identifier, timestamp=timestamp, pairs=payload.split())

    def parse(self, raw: RawRecord) -> MetricRecord:
        """Validate a raw record.

        Raises TruncatedRecordError when fewer than MIN_PAIRS pairs are
        present and MalformedRecordError when any pair is not ``key:number``.
        """
        if len(raw.pairs) < MIN_PAIRS:
            raise TruncatedRecordError(
                raw.identifier, f"only {len(raw.pairs)} key:value pairs (need {MIN_PAIRS})"
            )

        values: dict[str, float] = {}
        for pair in raw.pairs:
            key, sep, value = pair.partition(":")
            if not key or not sep or not NUMERIC_VALUE_PATTERN.match(value):
                raise MalformedRecordError(raw.identifier, f"malformed pair {pair!r}")
            if key not in SAMPLE_KEYS:
                logger.debug("Ignoring unknown key %r for %s", key, raw.identifier)
                continue
            values[key] = float(value)

        return MetricRecord(identifier=raw.identifier, timestamp=raw.timestamp, **values)
