"""Run configuration, validated once before any log is read."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from phptop.errors import ConfigError
from phptop.models import METRIC_KEYS, EpochSeconds, MetricKey
from phptop.parser import parse_timestamp

DEFAULT_SPAN = 300
DEFAULT_COUNT = 10
DEFAULT_LOGS: tuple[str, ...] = (
    "/var/log/apache2/*error*.log",
    "/var/log/nginx/*error*.log",
    "/var/log/php*-fpm.log",
)


class PhptopConfig(BaseModel):
    """Everything the core needs to know about one invocation."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    span: int = Field(default=DEFAULT_SPAN, gt=0)
    end: EpochSeconds | None = None
    logs: list[str] = Field(default_factory=lambda: list(DEFAULT_LOGS))
    output: Literal["text", "html"] = "text"
    count: int = Field(default=DEFAULT_COUNT, gt=0)
    sort_keys: list[MetricKey] = Field(default_factory=lambda: ["hit"], min_length=1)

    full_query: bool = False
    path_only: bool = False
    relative: bool = False
    average: bool = False
    salvage: bool = False

    @field_validator("end", mode="before")
    @classmethod
    def _parse_end(cls, value: Any) -> Any:
        if not isinstance(value, str):
            return value
        timestamp = parse_timestamp(value)
        if timestamp is None:
            raise ValueError(f"unparsable end time: {value!r}")
        return timestamp

    @field_validator("sort_keys", mode="before")
    @classmethod
    def _split_sort_keys(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = [value]
        if not isinstance(value, (list, tuple)):
            return value
        keys: list[str] = []
        for item in value:
            for key in str(item).split(","):
                key = key.strip().lower()
                if key and key not in METRIC_KEYS:
                    raise ValueError(
                        f"unknown sort key {key!r} (expected one of {', '.join(METRIC_KEYS)})"
                    )
                if key:
                    keys.append(key)
        return keys

    @field_validator("logs", mode="after")
    @classmethod
    def _require_logs(cls, value: list[str]) -> list[str]:
        if not value:
            return list(DEFAULT_LOGS)
        return value

    @classmethod
    def from_options(cls, **options: Any) -> PhptopConfig:
        """Build a config, turning validation failures into ConfigError."""
        try:
            return cls(**options)
        except ValidationError as e:
            problems = "; ".join(
                f"{'.'.join(str(part) for part in error['loc']) or 'config'}: {error['msg']}"
                for error in e.errors()
            )
            raise ConfigError(problems) from e
