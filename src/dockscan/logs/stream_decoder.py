"""Stateful decoder for the Engine's multiplexed stdout/stderr log framing.

A frame is an 8-byte header (stream type, three zero bytes, big-endian u32
payload length) followed by the payload. Containers started with a TTY send
plain bytes instead; the first bytes of a stream decide which it is.
"""

from __future__ import annotations

import codecs
from enum import IntEnum

from dockscan.engine.errors import StreamDecodeError
from dockscan.infrastructure.config import MAX_FRAME_SIZE
from dockscan.infrastructure.logger import logger

HEADER_SIZE = 8
_RESERVED = b"\x00\x00\x00"


class StreamType(IntEnum):
    STDIN = 0
    STDOUT = 1
    STDERR = 2


def _utf8_decoder() -> codecs.IncrementalDecoder:
    return codecs.getincrementaldecoder("utf-8")(errors="replace")


def header_problem(header: bytes, max_frame_size: int = MAX_FRAME_SIZE) -> str | None:
    """Why ``header`` is not a valid frame header, or None if it is."""
    if len(header) < HEADER_SIZE:
        return "short header"
    if header[0] not in (StreamType.STDIN, StreamType.STDOUT, StreamType.STDERR):
        return f"unknown stream type {header[0]}"
    if header[1:4] != _RESERVED:
        return "non-zero reserved bytes"
    length = int.from_bytes(header[4:8], "big")
    if length > max_frame_size:
        return f"frame length {length} exceeds {max_frame_size}"
    return None


def _could_be_header(prefix: bytes) -> bool:
    """A prefix shorter than a header that does not yet rule one out."""
    if prefix[0] not in (StreamType.STDIN, StreamType.STDOUT, StreamType.STDERR):
        return False
    return all(b == 0 for b in prefix[1:4])


class LogStreamDecoder:
    """Turns raw log-stream chunks into text, one instance per connection.

    The multiplexed/raw decision is made once and never revised. A malformed
    header later in a multiplexed stream is recorded in ``anomaly`` and the
    rest of the stream is passed through as raw text.
    """

    def __init__(self, max_frame_size: int = MAX_FRAME_SIZE) -> None:
        self._max_frame_size = max_frame_size
        self._multiplexed: bool | None = None
        self._degraded = False
        self._buffer = bytearray()
        self._stream_decoders = {
            StreamType.STDOUT: _utf8_decoder(),
            StreamType.STDERR: _utf8_decoder(),
        }
        self._raw_decoder = _utf8_decoder()
        self.anomaly: StreamDecodeError | None = None

    @property
    def multiplexed(self) -> bool | None:
        """None until enough bytes have arrived to decide."""
        return self._multiplexed

    @property
    def degraded(self) -> bool:
        return self._degraded

    def push(self, chunk: bytes) -> str:
        """Feed one chunk; returns whatever text became complete."""
        if not chunk:
            return ""

        if self._multiplexed is None:
            self._buffer.extend(chunk)
            prefix = bytes(self._buffer)
            if len(prefix) < HEADER_SIZE and _could_be_header(prefix):
                return ""
            self._multiplexed = header_problem(prefix[:HEADER_SIZE], self._max_frame_size) is None
            if not self._multiplexed:
                self._buffer.clear()
                return self._raw_decoder.decode(prefix)
            return self._drain()

        if not self._multiplexed or self._degraded:
            return self._raw_decoder.decode(chunk)

        self._buffer.extend(chunk)
        return self._drain()

    def _drain(self) -> str:
        out: list[str] = []
        while len(self._buffer) >= HEADER_SIZE:
            header = bytes(self._buffer[:HEADER_SIZE])
            problem = header_problem(header, self._max_frame_size)
            if problem is not None:
                out.append(self._degrade(problem))
                break

            frame_end = HEADER_SIZE + int.from_bytes(header[4:8], "big")
            if len(self._buffer) < frame_end:
                break
            payload = bytes(self._buffer[HEADER_SIZE:frame_end])
            del self._buffer[:frame_end]

            stream = StreamType(header[0])
            if stream is StreamType.STDIN:
                continue
            out.append(self._stream_decoders[stream].decode(payload))
        return "".join(out)

    def _degrade(self, problem: str) -> str:
        self.anomaly = StreamDecodeError(f"Malformed log stream frame: {problem}")
        self._degraded = True
        logger.warning("Log stream degraded to raw pass-through", reason=problem)

        pending = [d.decode(b"", final=True) for d in self._stream_decoders.values()]
        pending.append(self._raw_decoder.decode(bytes(self._buffer)))
        self._buffer.clear()
        return "".join(pending)

    def flush(self) -> str:
        """End of stream: release partial characters and any undecided prefix."""
        out: list[str] = []
        if self._multiplexed is None and self._buffer:
            # Stream ended before a full header arrived; treat it as raw.
            self._multiplexed = False
            out.append(self._raw_decoder.decode(bytes(self._buffer)))
            self._buffer.clear()
        elif self._buffer:
            logger.debug("Dropping truncated log frame", size=len(self._buffer))
            self._buffer.clear()

        out.extend(d.decode(b"", final=True) for d in self._stream_decoders.values())
        out.append(self._raw_decoder.decode(b"", final=True))
        return "".join(out)


def decode_log_payload(data: bytes, max_frame_size: int = MAX_FRAME_SIZE) -> str:
    """Decode a complete, non-follow log response."""
    decoder = LogStreamDecoder(max_frame_size)
    return decoder.push(data) + decoder.flush()
