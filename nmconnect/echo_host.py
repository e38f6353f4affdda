"""Echo companion for native messaging.

Speaks the same 4-byte length-prefix framing over its own
stdin/stdout: every message is answered with
``{"echo": <message>}``, and ``{"action": "ping"}`` with
``{"success": true}``. Exits cleanly on EOF. Run it with
``python -m nmconnect.echo_host`` or point a manifest at a
wrapper script.

stdout is the wire, so diagnostics only go to the file
named by NMCONNECT_ECHO_LOG, if set.
"""
from __future__ import annotations

import json
import logging
import os
import struct
import sys
from typing import IO, Any

from nmconnect.protocol import HEADER_FORMAT, HEADER_SIZE, encode_message

LOG_ENV_VAR = "NMCONNECT_ECHO_LOG"

_logger = logging.getLogger("nmconnect-echo-host")


def _setup_debug_logging() -> None:
    """Attach a file handler when LOG_ENV_VAR names a log file."""
    log_file = os.environ.get(LOG_ENV_VAR)
    if not log_file or _logger.handlers:
        return
    _logger.setLevel(logging.DEBUG)
    try:
        handler = logging.FileHandler(log_file)
    except OSError:
        # If we can't write logs, continue without them
        return
    handler.setFormatter(
        logging.Formatter(
            "%(asctime)s [%(levelname)s] %(message)s",
            datefmt="%Y-%m-%dT%H:%M:%S",
        ),
    )
    _logger.addHandler(handler)


def read_message(stream: IO[bytes]) -> bytes | None:
    """Read one frame body from stream. Returns None on EOF.

    A truncated header or body also counts as EOF: the
    browser closed the pipe mid-message.
    """
    header = stream.read(HEADER_SIZE)
    if len(header) < HEADER_SIZE:
        return None
    length = struct.unpack(HEADER_FORMAT, header)[0]
    body = stream.read(length)
    if len(body) < length:
        _logger.warning("Truncated body: %d of %d bytes", len(body), length)
        return None
    return body


def write_message(stream: IO[bytes], msg: Any) -> None:  # noqa: ANN401
    """Write msg as one frame and flush."""
    stream.write(encode_message(msg))
    stream.flush()


def handle_message(request: Any) -> dict[str, Any]:  # noqa: ANN401
    """Build the reply for one decoded request."""
    if isinstance(request, dict) and request.get("action") == "ping":
        _logger.debug("Ping received")
        return {"success": True}
    return {"echo": request}


def serve(stdin: IO[bytes], stdout: IO[bytes]) -> int:
    """Answer messages until EOF. Returns the number handled."""
    handled = 0
    while True:
        body = read_message(stdin)
        if body is None:
            _logger.debug("EOF after %d messages", handled)
            return handled
        try:
            request = json.loads(body.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            _logger.warning("Failed to decode message: %s", exc)
            write_message(
                stdout,
                {"success": False, "error": "Failed to decode message"},
            )
        else:
            write_message(stdout, handle_message(request))
        handled += 1


def main() -> None:
    """Run the echo companion on the process's stdin/stdout."""
    _setup_debug_logging()
    _logger.debug("--- echo host started (argv=%s) ---", sys.argv[1:])
    serve(sys.stdin.buffer, sys.stdout.buffer)
    _logger.debug("--- echo host finished ---")


if __name__ == "__main__":
    main()
