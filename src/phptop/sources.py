"""Line sources: forward streaming and backward (newest-first) reading."""

from __future__ import annotations

import bz2
import gzip
import lzma
import os
import zlib
from pathlib import Path
from types import ModuleType, TracebackType
from typing import IO, Iterator, Protocol, TypeVar

DEFAULT_BLOCK_SIZE = 64 * 1024
ENCODING = "utf-8"

# Single-file compression formats, read through the matching stdlib module
DECOMPRESSORS: dict[str, ModuleType] = {
    ".gz": gzip,
    ".gzip": gzip,
    ".bz2": bz2,
    ".xz": lzma,
    ".lzma": lzma,
}

# Raised mid-stream on corrupt compressed data, besides OSError
DECOMPRESSION_ERRORS: tuple[type[Exception], ...] = (
    EOFError,
    zlib.error,
    lzma.LZMAError,
)

_SourceT = TypeVar("_SourceT", bound="_ClosingSource")

# ============================================================
# LINE SOURCE ABSTRACTION
# ============================================================


class LineSource(Protocol):
    """A lazy, finite, non-restartable sequence of lines from one file."""

    path: Path
    backward: bool

    def __iter__(self) -> Iterator[str]:
        """Yield lines without their trailing newline."""
        ...

    def close(self) -> None: ...


class _ClosingSource:
    path: Path
    backward: bool
    _handle: IO

    def close(self) -> None:
        self._handle.close()

    def __enter__(self: _SourceT) -> _SourceT:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()


class ForwardLineSource(_ClosingSource):
    """Oldest-to-newest lines from a text stream (plain or decompressed)."""

    backward = False

    def __init__(self, path: Path, handle: IO[str]) -> None:
        self.path = path
        self._handle = handle

    def __iter__(self) -> Iterator[str]:
        for line in self._handle:
            yield line.rstrip("\r\n")


class BackwardLineSource(_ClosingSource):
    """Newest-to-oldest lines, read in blocks from the end of a plain file.

    Only the bytes present when the source was opened are read, so lines
    appended meanwhile are not seen. A file shrinking under us ends the scan
    early instead of failing.
    """

    backward = True

    def __init__(self, path: Path, handle: IO[bytes], block_size: int = DEFAULT_BLOCK_SIZE) -> None:
        self.path = path
        self.block_size = block_size
        self._handle = handle
        self._size = handle.seek(0, os.SEEK_END)

    def __iter__(self) -> Iterator[str]:
        position = self._size
        remainder = b""
        while position > 0:
            read_size = min(self.block_size, position)
            position -= read_size
            self._handle.seek(position)
            chunk = self._handle.read(read_size)
            if len(chunk) < read_size:
                # Truncated concurrently (log rotation): keep what we have
                break
            lines = (chunk + remainder).split(b"\n")
            remainder = lines.pop(0)
            for raw_line in reversed(lines):
                if raw_line:
                    yield _decode(raw_line)
        if remainder:
            yield _decode(remainder)


def _decode(raw_line: bytes) -> str:
    return raw_line.rstrip(b"\r").decode(ENCODING, errors="replace")


def is_compressed(path: Path) -> bool:
    return path.suffix.lower() in DECOMPRESSORS


def open_line_source(path: Path, *, backward: bool = True) -> ForwardLineSource | BackwardLineSource:
    """Open ``path`` eagerly so that open failures surface here as OSError.

    Compressed files are always read forward since they cannot be seeked
    from the end.
    """
    path = Path(path)
    if is_compressed(path):
        module = DECOMPRESSORS[path.suffix.lower()]
        handle = module.open(path, "rt", encoding=ENCODING, errors="replace")
        return ForwardLineSource(path, handle)
    if backward:
        return BackwardLineSource(path, path.open("rb"))
    return ForwardLineSource(path, path.open("r", encoding=ENCODING, errors="replace"))
