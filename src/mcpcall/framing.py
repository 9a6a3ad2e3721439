"""
Content-Length framing for the stdio transport.

Each message on the wire is::

    Content-Length: <N>\\r\\n
    \\r\\n
    <N bytes of UTF-8 JSON>

N is a byte count, not a character count. The decoder accepts data in
arbitrary chunks: a chunk may end mid-header, mid-body, or contain several
messages.

There is no resynchronization marker in this format, so a missing or
malformed Content-Length discards everything buffered so far.
"""

import json
import logging
from typing import Any, Callable, Optional

from .errors import FramingError, ProtocolError

logger = logging.getLogger('mcpcall')

HEADER_SEPARATOR = b"\r\n\r\n"

# Maximum buffer size to prevent memory exhaustion (100 MB)
MAX_BUFFER_SIZE = 100 * 1024 * 1024


def encode_frame(payload: Any) -> bytes:
    """Serialize ``payload`` as compact JSON and prefix it with its byte length."""
    body = json.dumps(payload, separators=(',', ':'), ensure_ascii=False).encode('utf-8')
    return b"Content-Length: %d\r\n\r\n" % len(body) + body


def parse_content_length(header: bytes) -> int:
    """
    Extract the Content-Length value from a header block.

    Raises:
        FramingError: If the header is absent or its value is not a decimal integer.
    """
    text = header.decode('ascii', errors='replace')
    for line in text.split('\r\n'):
        if ':' not in line:
            continue
        name, value = line.split(':', 1)
        if name.strip().lower() != 'content-length':
            continue
        value = value.strip()
        if not (value.isascii() and value.isdigit()):
            raise FramingError(f"Invalid Content-Length: {value!r}")
        try:
            return int(value)
        except ValueError as e:
            # More digits than int() accepts
            raise FramingError(f"Invalid Content-Length: {value[:20]!r}...") from e
    raise FramingError(f"Missing Content-Length in header: {text!r}")


def _log_decode_error(error: Exception) -> None:
    logger.warning(f"Dropping undecodable stdio data: {error}")


class FrameDecoder:
    """
    Incremental decoder turning a byte stream into parsed JSON payloads.

    Errors never propagate out of feed(); they are passed to ``on_error``
    (by default a warning on the 'mcpcall' logger).
    """

    def __init__(
        self,
        on_error: Optional[Callable[[Exception], None]] = None,
        max_buffer_size: int = MAX_BUFFER_SIZE
    ) -> None:
        self.on_error = on_error or _log_decode_error
        self.max_buffer_size = max_buffer_size
        self._buffer = bytearray()

    @property
    def buffered(self) -> int:
        """Number of bytes held waiting for the rest of a frame."""
        return len(self._buffer)

    def feed(self, data: bytes) -> list[Any]:
        """Add ``data`` to the buffer and return every payload it completes."""
        self._buffer.extend(data)
        messages = []

        while True:
            header_end = self._buffer.find(HEADER_SEPARATOR)
            if header_end == -1:
                break

            try:
                length = parse_content_length(bytes(self._buffer[:header_end]))
            except FramingError as e:
                self._discard(e)
                return messages
            if length > self.max_buffer_size:
                self._discard(FramingError(
                    f"Content-Length {length} exceeds {self.max_buffer_size} bytes"
                ))
                return messages

            start = header_end + len(HEADER_SEPARATOR)
            end = start + length
            if len(self._buffer) < end:
                break

            body = bytes(self._buffer[start:end])
            del self._buffer[:end]

            try:
                messages.append(json.loads(body.decode('utf-8')))
            except (ValueError, RecursionError) as e:
                # Frame boundaries are intact, so keep going with the next one
                self.on_error(ProtocolError(f"Invalid JSON payload: {e}"))

        if len(self._buffer) > self.max_buffer_size:
            self._discard(FramingError(
                f"Buffer size exceeded {self.max_buffer_size} bytes"
            ))

        return messages

    def reset(self) -> None:
        """Drop any partially received frame."""
        self._buffer.clear()

    def _discard(self, error: Exception) -> None:
        self._buffer.clear()
        self.on_error(error)
