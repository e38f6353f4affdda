"""Native messaging protocol framing.

Implements the 4-byte length-prefix protocol used between
browsers and native messaging companions. The header is a
little-endian unsigned 32-bit payload length, fixed
regardless of the byte order of the running machine. The
payload is UTF-8 JSON of exactly that many bytes.
"""
from __future__ import annotations

import json
import struct
from collections import deque
from typing import Any

from returns.result import Failure, Result, Success

from nmconnect.errors import MALFORMED_FRAME, NativeMessagingError

HEADER_SIZE = 4
HEADER_FORMAT = "<I"
MAX_PAYLOAD_SIZE = 0xFFFFFFFF


def encode_message(msg: Any) -> bytes:  # noqa: ANN401
    """Encode a JSON value as a length-prefixed native message.

    Returns 4-byte LE length prefix + UTF-8 JSON body. The
    length counts encoded bytes, not characters. Raises
    TypeError or ValueError if msg is not JSON-serializable.
    """
    body = json.dumps(
        msg, separators=(",", ":"), ensure_ascii=False,
    ).encode("utf-8")
    if len(body) > MAX_PAYLOAD_SIZE:
        msg = f"Message of {len(body)} bytes does not fit a 32-bit header"
        raise ValueError(msg)
    header = struct.pack(HEADER_FORMAT, len(body))
    return header + body


def decode_payload(
    payload: bytes,
) -> Result[Any, NativeMessagingError]:
    """Decode the body of one complete frame (pure function).

    Returns Success(value) or Failure(NativeMessagingError)
    with error_type MalformedFrame when the bytes are not
    UTF-8 JSON.
    """
    try:
        return Success(json.loads(payload.decode("utf-8")))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        return Failure(
            NativeMessagingError(
                operation="decode_payload",
                error_type=MALFORMED_FRAME,
                message=f"Invalid JSON in native message: {exc}",
                context={
                    "length": len(payload),
                    "snippet": payload[:100].decode(
                        "utf-8", errors="replace",
                    ),
                },
            ),
        )


class FrameBuffer:
    """Inbound byte queue that yields complete frame payloads.

    Chunks are appended as they arrive from the companion and
    consumed from the head only when next_frame() is called,
    so bytes stay buffered until someone wants a frame. Chunk
    boundaries may fall anywhere, including inside the
    header. At most one frame is in progress at a time.

    The head chunk is read through an offset rather than
    re-sliced, so a chunk holding many small frames is
    walked once.
    """

    def __init__(self) -> None:
        self._chunks: deque[bytes] = deque()
        self._offset = 0
        self._buffered = 0
        self._header = bytearray()
        self._payload = bytearray()
        self._remaining: int | None = None

    @property
    def buffered_bytes(self) -> int:
        """Bytes received but not yet returned as part of a frame."""
        partial = len(self._header) + len(self._payload)
        if self._remaining is not None:
            partial += HEADER_SIZE
        return self._buffered + partial

    @property
    def has_partial_frame(self) -> bool:
        """True between consuming a header byte and completing its frame."""
        return bool(self._header) or self._remaining is not None

    def feed(self, chunk: bytes) -> None:
        """Append a chunk read from the companion. Empty chunks are ignored."""
        if chunk:
            self._chunks.append(bytes(chunk))
            self._buffered += len(chunk)

    def clear(self) -> None:
        """Drop all buffered bytes and any partial frame."""
        self._chunks.clear()
        self._offset = 0
        self._buffered = 0
        self._reset_partial()

    def next_frame(self) -> bytes | None:
        """Consume and return the next complete payload, or None.

        Returns None when the buffered bytes do not hold a full
        frame yet; whatever was consumed is kept as partial
        frame state for the next call.
        """
        while self._chunks:
            head = self._chunks[0]
            start = self._offset
            if self._remaining is None:
                # Whole frame in the head chunk: slice it out directly
                if not self._header and len(head) - start >= HEADER_SIZE:
                    length = struct.unpack_from(HEADER_FORMAT, head, start)[0]
                    end = start + HEADER_SIZE + length
                    if len(head) >= end:
                        self._consume_head(end - start)
                        return head[start + HEADER_SIZE:end]
                needed = HEADER_SIZE - len(self._header)
                taken = head[start:start + needed]
                self._header += taken
                self._consume_head(len(taken))
                if len(self._header) < HEADER_SIZE:
                    continue
                self._remaining = struct.unpack(
                    HEADER_FORMAT, bytes(self._header),
                )[0]
                self._header.clear()
                if self._remaining == 0:
                    return self._complete()
                continue
            taken = head[start:start + self._remaining]
            self._payload += taken
            self._remaining -= len(taken)
            self._consume_head(len(taken))
            if self._remaining == 0:
                return self._complete()
        return None

    def _consume_head(self, count: int) -> None:
        self._buffered -= count
        self._offset += count
        if self._offset >= len(self._chunks[0]):
            self._chunks.popleft()
            self._offset = 0

    def _complete(self) -> bytes:
        payload = bytes(self._payload)
        self._reset_partial()
        return payload

    def _reset_partial(self) -> None:
        self._header.clear()
        self._payload.clear()
        self._remaining = None
