"""Per-stream output routing.

Each child stream is resolved before spawn to either the null device (discard)
or a pipe. Piped streams are pumped until EOF and every chunk is passed to the
sink: raw bytes to the runner's own stdout/stderr, decoded text to a handler.
"""

from __future__ import annotations

import asyncio
import codecs
import logging
import sys
from typing import BinaryIO, TextIO

from ..types import OutputSink, OutputTarget

__all__ = [
    "stdio_for",
    "pump_stream",
    "ChunkDecoder",
]

logger = logging.getLogger(__name__)


def stdio_for(sink: OutputSink) -> int:
    """Return the subprocess stdio argument for a sink."""
    if sink.target is OutputTarget.DISCARD:
        return asyncio.subprocess.DEVNULL
    return asyncio.subprocess.PIPE


class ChunkDecoder:
    """Incremental UTF-8 decoder that drops undecodable chunks.

    Multi-byte characters split across reads are carried over to the next
    chunk. A chunk containing invalid bytes decodes to "" and the decoder
    starts fresh.
    """

    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")()

    def decode(self, chunk: bytes, final: bool = False) -> str:
        try:
            return self._decoder.decode(chunk, final)
        except UnicodeDecodeError:
            self._decoder.reset()
            return ""


def _write_inherited(target: TextIO | None, chunk: bytes) -> None:
    # Resolve at write time so redirected sys.stdout/sys.stderr are honored.
    # No stream at all (pythonw, detached daemons) means discard.
    if target is None:
        return
    binary: BinaryIO | None = getattr(target, "buffer", None)
    if binary is not None:
        binary.write(chunk)
        binary.flush()
    else:
        target.write(chunk.decode("utf-8", errors="replace"))
        target.flush()


def _deliver(sink: OutputSink, text: str) -> None:
    if not text or sink.handler is None:
        return
    try:
        sink.handler(text)
    except Exception as e:
        logger.warning(f"Output handler raised: {e!r}")


async def pump_stream(
    stream: asyncio.StreamReader | None,
    sink: OutputSink,
    chunk_size: int,
) -> None:
    """Read ``stream`` until EOF and route each chunk to ``sink``.

    Args:
        stream: Read end of the child pipe (None when discarded)
        sink: Routing policy for this stream
        chunk_size: Maximum bytes per read
    """
    if stream is None:
        return

    decoder = ChunkDecoder() if sink.target is OutputTarget.HANDLER else None

    while True:
        chunk = await stream.read(chunk_size)
        if not chunk:
            break
        if sink.target is OutputTarget.STDOUT:
            _write_inherited(sys.stdout, chunk)
        elif sink.target is OutputTarget.STDERR:
            _write_inherited(sys.stderr, chunk)
        elif decoder is not None:
            _deliver(sink, decoder.decode(chunk))

    if decoder is not None:
        _deliver(sink, decoder.decode(b"", final=True))
