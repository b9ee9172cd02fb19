# narrachat/infra/llm/frames.py
from __future__ import annotations
import codecs
from typing import Iterator, Optional


class FrameReader:
    """
    Turns raw byte chunks into complete text lines.

    Bytes are decoded incrementally, so a multi-byte character split across
    two reads is held until it is complete. Malformed sequences become U+FFFD.
    A trailing partial line stays buffered until its terminator arrives (or
    until `flush()` at end of stream).
    """

    def __init__(self, encoding: str = "utf-8"):
        self._decoder = codecs.getincrementaldecoder(encoding)(errors="replace")
        self._buffer = ""

    @property
    def pending(self) -> str:
        """Text of the incomplete final line, if any."""
        return self._buffer

    def feed(self, chunk: bytes) -> Iterator[str]:
        # decode eagerly; only line extraction is lazy
        self._buffer += self._decoder.decode(chunk)
        return self._drain()

    def flush(self) -> Optional[str]:
        self._buffer += self._decoder.decode(b"", final=True)
        tail, self._buffer = self._buffer, ""
        if tail.endswith("\r"):
            tail = tail[:-1]
        return tail or None

    def _drain(self) -> Iterator[str]:
        while True:
            idx = self._buffer.find("\n")
            if idx < 0:
                return
            line = self._buffer[:idx]
            self._buffer = self._buffer[idx + 1:]
            if line.endswith("\r"):
                line = line[:-1]
            yield line
