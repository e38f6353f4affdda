"""Framing engine -- ordered JSON message exchange with a companion.

Owns the inbound FrameBuffer, a FIFO of pending readers and
the companion process handle. Two events drive dispatch,
both on the event loop: bytes arriving from the companion
(the read pump task) and a reader being registered
(receive). Each completed frame goes to the oldest pending
reader; frames and bytes with nobody waiting stay buffered.

The connection closes when the companion's output ends, when
reading it fails, when the companion exits (even if a child
of it still holds the output open) or on disconnect().
Frames that were complete before the connection closed are
still delivered, to pending and to later readers. Once none
remain, readers fail with ConnectionClosed.
"""
from __future__ import annotations

import asyncio
import enum
import logging
from collections import deque
from typing import TYPE_CHECKING, Any

from returns.io import IOFailure, IOResult, IOSuccess

from nmconnect import io_ops
from nmconnect.errors import (
    CONNECTION_CLOSED,
    ENCODE_FAILED,
    TIMEOUT,
    WRITE_FAILED,
    NativeMessagingError,
)
from nmconnect.protocol import FrameBuffer, decode_payload, encode_message
from nmconnect.types import ConnectionSettings, ConnectionState

if TYPE_CHECKING:
    from asyncio.subprocess import Process

    from nmconnect.types import AppType

logger = logging.getLogger(__name__)


class _Default(enum.Enum):
    TIMEOUT = "settings"


_SETTINGS_TIMEOUT = _Default.TIMEOUT


class NativeConnection:
    """Connection to one already-spawned companion process.

    Must be created inside a running event loop; the read
    pump and the exit watcher start immediately.
    """

    def __init__(
        self,
        process: Process,
        app_type: AppType,
        settings: ConnectionSettings | None = None,
    ) -> None:
        self._process = process
        self._app_type = app_type
        self._settings = settings or ConnectionSettings()
        self._state = ConnectionState.OPEN
        self._close_reason = ""
        self._frames = FrameBuffer()
        # Outcomes handed back by readers cancelled after delivery
        self._ready: deque[IOResult[Any, NativeMessagingError]] = deque()
        self._readers: deque[
            asyncio.Future[IOResult[Any, NativeMessagingError]]
        ] = deque()
        loop = asyncio.get_running_loop()
        self._pump = loop.create_task(self._read_pump())
        self._exit_watch = loop.create_task(self._watch_exit())

    @property
    def app_type(self) -> AppType:
        return self._app_type

    @property
    def settings(self) -> ConnectionSettings:
        return self._settings

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state is ConnectionState.OPEN

    @property
    def pending_readers(self) -> int:
        return len(self._readers)

    @property
    def buffered_bytes(self) -> int:
        """Inbound bytes not yet handed to a reader."""
        return self._frames.buffered_bytes

    @property
    def returncode(self) -> int | None:
        return self._process.returncode

    async def send(
        self,
        msg: Any,  # noqa: ANN401
    ) -> IOResult[None, NativeMessagingError]:
        """Serialize msg and write it as one frame to the companion.

        The header and payload go out in a single write, so
        concurrent sends keep call order. No retry on failure.
        """
        if self._state is ConnectionState.CLOSED:
            return IOFailure(self._closed_error("send"))
        try:
            frame = encode_message(msg)
        except (TypeError, ValueError) as exc:
            return IOFailure(
                NativeMessagingError(
                    operation="send",
                    error_type=ENCODE_FAILED,
                    message=f"Message is not JSON-serializable: {exc}",
                    context={"message_type": type(msg).__name__},
                ),
            )
        stdin = self._process.stdin
        try:
            stdin.write(frame)
            await stdin.drain()
        except OSError as exc:
            logger.warning("Write to companion failed: %s", exc)
            return IOFailure(
                NativeMessagingError(
                    operation="send",
                    error_type=WRITE_FAILED,
                    message=f"Write to companion failed: {exc}",
                    context={"frame_size": len(frame)},
                ),
            )
        logger.debug("Sent frame of %d bytes", len(frame))
        return IOSuccess(None)

    async def receive(
        self,
        timeout: float | None | _Default = _SETTINGS_TIMEOUT,
    ) -> IOResult[Any, NativeMessagingError]:
        """Wait for the next frame and return its JSON value.

        timeout is in seconds. Left out, it is
        settings.receive_timeout; None waits forever and 0
        only takes an already buffered frame. A reader that
        times out is removed from the queue before this
        returns, so a later frame goes to the next reader.
        If the calling task is cancelled after a frame was
        handed to it, the frame is put back for the next
        reader.
        """
        if isinstance(timeout, _Default):
            timeout = self._settings.receive_timeout
        reader: asyncio.Future[IOResult[Any, NativeMessagingError]] = (
            asyncio.get_running_loop().create_future()
        )
        self._readers.append(reader)
        self._dispatch()
        try:
            await asyncio.wait({reader}, timeout=timeout)
        except asyncio.CancelledError:
            if reader.done() and not reader.cancelled():
                self._ready.appendleft(reader.result())
                self._dispatch()
            raise
        finally:
            # Deregister in the same step as the done() check
            if not reader.done():
                self._readers.remove(reader)
                reader.cancel()
        if reader.cancelled():
            return IOFailure(
                NativeMessagingError(
                    operation="receive",
                    error_type=TIMEOUT,
                    message=f"No message received within {timeout}s",
                    context={"timeout": timeout},
                ),
            )
        return reader.result()

    def disconnect(self) -> None:
        """Kill the companion and close the connection.

        Idempotent: a closed connection is left alone, so the
        process is killed at most once.
        """
        if self._state is ConnectionState.CLOSED:
            return
        logger.debug("Disconnecting companion")
        io_ops.kill_process(self._process)
        self._pump.cancel()
        self._exit_watch.cancel()
        self._close("disconnected")

    async def wait_closed(self) -> None:
        """Wait for the read pump to stop and the companion to be reaped."""
        await asyncio.wait({self._pump})
        await self._reap()
        self._exit_watch.cancel()
        await asyncio.wait({self._exit_watch})

    async def __aenter__(self) -> NativeConnection:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        self.disconnect()
        await self.wait_closed()

    async def _read_pump(self) -> None:
        reason = "companion closed its output"
        stdout = self._process.stdout
        try:
            while True:
                chunk = await stdout.read(self._settings.read_chunk_size)
                if not chunk:
                    break
                logger.debug("Received %d bytes from companion", len(chunk))
                self._frames.feed(chunk)
                self._dispatch()
        except Exception as exc:  # noqa: BLE001
            logger.exception("Reading from companion failed")
            reason = f"read failed: {exc}"
        self._close(reason)
        await self._reap()

    async def _watch_exit(self) -> None:
        # Process.wait() can block until every pipe is closed, so poll
        while self._process.returncode is None:
            await asyncio.sleep(self._settings.exit_poll_interval)
        returncode = self._process.returncode
        # Output written just before exit is normally still in the pipe
        done, _ = await asyncio.wait(
            {self._pump}, timeout=self._settings.kill_timeout,
        )
        if not done:
            logger.warning(
                "Companion exited with code %s but its output is still open",
                returncode,
            )
            self._pump.cancel()
        self._close(f"companion exited with code {returncode}")

    async def _reap(self) -> None:
        try:
            returncode = await asyncio.wait_for(
                self._process.wait(), self._settings.kill_timeout,
            )
        except TimeoutError:
            logger.warning(
                "Companion still running %.1fs after its output closed",
                self._settings.kill_timeout,
            )
            return
        logger.debug("Companion exited with code %s", returncode)

    def _close(self, reason: str) -> None:
        if self._state is ConnectionState.CLOSED:
            return
        self._state = ConnectionState.CLOSED
        self._close_reason = reason
        logger.debug("Connection closed: %s", reason)
        self._dispatch()

    def _next_result(self) -> IOResult[Any, NativeMessagingError] | None:
        if self._ready:
            return self._ready.popleft()
        payload = self._frames.next_frame()
        if payload is None:
            return None
        result = IOResult.from_result(decode_payload(payload))
        if isinstance(result, IOFailure):
            logger.warning(
                "Malformed frame of %d bytes from companion", len(payload),
            )
        return result

    def _dispatch(self) -> None:
        while self._readers:
            result = self._next_result()
            if result is None:
                break
            self._readers.popleft().set_result(result)
        if self._state is not ConnectionState.CLOSED or not self._readers:
            return
        if self._frames.buffered_bytes:
            logger.warning(
                "Discarding %d bytes of incomplete frame after close",
                self._frames.buffered_bytes,
            )
            self._frames.clear()
        while self._readers:
            self._readers.popleft().set_result(
                IOFailure(self._closed_error("receive")),
            )

    def _closed_error(self, operation: str) -> NativeMessagingError:
        return NativeMessagingError(
            operation=operation,
            error_type=CONNECTION_CLOSED,
            message=f"Connection is closed ({self._close_reason})",
            context={"returncode": self._process.returncode},
        )
