import gzip
from datetime import datetime, timezone
from pathlib import Path

import pytest

NOW = datetime(2026, 10, 19, 12, 0, 0, tzinfo=timezone.utc).timestamp()
END = "2026-10-19T12:00:00+00:00"


def stamp(seconds_ago: float) -> str:
    """Bracketed ISO timestamp ``seconds_ago`` before NOW."""
    moment = datetime.fromtimestamp(NOW - seconds_ago, tz=timezone.utc)
    return f"[{moment.isoformat()}]"


def sample(
    identifier: str,
    seconds_ago: float | None = None,
    *,
    time: float = 1.0,
    user: float = 0.5,
    sys: float = 0.1,
    mem: int = 1048576,
) -> str:
    prefix = f"{stamp(seconds_ago)} " if seconds_ago is not None else ""
    return (
        f"{prefix}phptop {identifier} "
        f"time:{time:.6f} user:{user:.6f} sys:{sys:.6f} mem:{mem}"
    )


@pytest.fixture
def write_log(tmp_path: Path):
    """Write lines to a log file (gzip-compressed when the name ends in .gz)."""

    def _write(lines: list[str], name: str = "error.log") -> Path:
        path = tmp_path / name
        content = "".join(f"{line}\n" for line in lines)
        if name.endswith(".gz"):
            with gzip.open(path, "wt", encoding="utf-8") as handle:
                handle.write(content)
        else:
            path.write_text(content, encoding="utf-8")
        return path

    return _write
