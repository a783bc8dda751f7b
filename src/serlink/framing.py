# -*- coding: utf-8 -*-

"""
Line framing on top of asyncio byte streams.

Inbound:  bytes -> incremental decoder -> LineFramer -> records
Outbound: text -> encoder -> StreamWriter
"""
import asyncio
import codecs
import logging

from collections import deque
from typing import Deque
from typing import List
from typing import Optional

from .exceptions import SerlinkError
from .exceptions import SerialReadError
from .exceptions import SerialWriteError

log = logging.getLogger('serlink.framing')


class LineFramer:
    """
    Rebuilds newline-delimited records from text chunks of any size.

    The unterminated tail of the stream is kept in ``pending`` until a
    later chunk completes it or ``flush()`` is called at stream end.
    Consecutive delimiters produce empty records.

    Example:
        >>> framer = LineFramer()
        >>> framer.feed("ab")
        []
        >>> framer.feed("c\\nd")
        ['abc']
        >>> framer.flush()
        ['d']
    """

    def __init__(self, newline: str = "\n"):
        self._newline = newline
        self._pending = ""

    @property
    def pending(self) -> str:
        return self._pending

    def feed(self, chunk: str) -> List[str]:
        if not chunk:
            return []

        segments = (self._pending + chunk).split(self._newline)
        self._pending = segments.pop()
        return segments

    def flush(self) -> List[str]:
        tail, self._pending = self._pending, ""
        return [tail] if tail else []


class LineReader:
    """
    Pull-based inbound pipeline yielding one record per ``read_record()``.

    The underlying stream is only read when no decoded record is waiting,
    so a slow consumer leaves bytes in the StreamReader, whose buffer limit
    pauses the transport.
    """

    def __init__(
            self,
            stream: asyncio.StreamReader,
            *,
            encoding: str = "utf-8",
            newline: str = "\n",
            read_size: int = 4096
        ):
        self._stream: Optional[asyncio.StreamReader] = stream
        self._decoder = codecs.getincrementaldecoder(encoding)(errors="replace")
        self._framer = LineFramer(newline)
        self._read_size = read_size
        self._records: Deque[str] = deque()
        self._eof = False
        self._cancelled = False

    @property
    def released(self) -> bool:
        return self._stream is None

    async def read_record(self) -> Optional[str]:
        """Return the next record, or None once the stream is over."""
        while not self._records:
            if self._cancelled or self._eof or self._stream is None:
                return None

            try:
                chunk = await self._stream.read(self._read_size)
            except (OSError, SerlinkError) as e:
                raise SerialReadError(f"Read failed: {e}") from e
            if self._cancelled:
                return None

            if chunk:
                self._records.extend(self._framer.feed(self._decoder.decode(chunk)))
            else:
                self._eof = True
                self._records.extend(self._framer.feed(self._decoder.decode(b"", final=True)))
                self._records.extend(self._framer.flush())

        return self._records.popleft()

    def cancel(self) -> None:
        """Stop the pipeline; a read in progress is woken up with end of stream."""
        self._cancelled = True
        self._records.clear()
        if self._stream is not None and not self._stream.at_eof():
            self._stream.feed_eof()

    def release(self) -> None:
        if self._stream is not None:
            log.debug("Releasing line reader")
        self._stream = None
        self._records.clear()


class LineWriter:
    """Outbound pipeline: encodes text and writes it to the stream."""

    def __init__(self, stream: asyncio.StreamWriter, *, encoding: str = "utf-8"):
        self._stream = stream
        self._encoding = encoding

    async def write(self, text: str) -> None:
        try:
            self._stream.write(text.encode(self._encoding))
            await self._stream.drain()
        except (OSError, UnicodeError, SerlinkError) as e:
            raise SerialWriteError(f"Write failed: {e}") from e

    def close(self) -> None:
        self._stream.close()

    async def wait_closed(self) -> None:
        await self._stream.wait_closed()
