"""Incremental newline-delimited reader that never consumes a partial trailing line."""

from __future__ import annotations

from typing import BinaryIO, Iterator, Optional

READ_CHUNK_BYTES = 4096


def read_line(stream: BinaryIO, buffer: bytearray, chunk: int = READ_CHUNK_BYTES) -> Optional[str]:
    """Return the next complete line from ``stream``, or None once it is exhausted.

    Bytes are pulled in ``chunk``-sized reads into ``buffer``. A complete line
    and its newline are removed from the buffer; an unterminated tail is left
    in the buffer so the caller can account for it when recording an offset.
    """
    while True:
        newline = buffer.find(b"\n")
        if newline >= 0:
            raw = bytes(buffer[:newline])
            del buffer[: newline + 1]
            return raw.decode("utf-8", errors="replace")

        data = stream.read(chunk)
        if not data:
            return None
        buffer.extend(data)


def iter_lines(stream: BinaryIO, buffer: bytearray, chunk: int = READ_CHUNK_BYTES) -> Iterator[str]:
    while True:
        line = read_line(stream, buffer, chunk)
        if line is None:
            return
        yield line
