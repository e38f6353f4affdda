"""Shared test fixtures for the nmconnect test suite."""
from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import pytest

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable
    from unittest.mock import MagicMock


class FakeStdin:
    """Writable side of a fake companion. Records every write."""

    def __init__(self) -> None:
        self.data = bytearray()
        self.writes: list[bytes] = []
        self.error: OSError | None = None

    def write(self, data: bytes) -> None:
        if self.error is not None:
            raise self.error
        self.writes.append(bytes(data))
        self.data += data

    async def drain(self) -> None:
        if self.error is not None:
            raise self.error


class FakeProcess:
    """Stands in for asyncio.subprocess.Process.

    stdout is a real asyncio.StreamReader, so bytes fed here
    reach the connection's read pump exactly as pipe data
    would. Must be created inside a running event loop.
    """

    def __init__(self) -> None:
        self.stdout = asyncio.StreamReader()
        self.stdin = FakeStdin()
        self.returncode: int | None = None
        self.pid = 4242
        self.kill_count = 0
        self._exited = asyncio.Event()

    def feed(self, data: bytes) -> None:
        self.stdout.feed_data(data)

    def exit(self, code: int = 0, *, close_output: bool = True) -> None:
        """Mark the process exited.

        close_output=False leaves stdout open, as when a child
        of the companion inherited it and is still running.
        """
        self.returncode = code
        if close_output:
            self.stdout.feed_eof()
        self._exited.set()

    def kill(self) -> None:
        self.kill_count += 1
        if self.returncode is None:
            self.exit(-9)

    async def wait(self) -> int | None:
        await self._exited.wait()
        return self.returncode


async def settle(rounds: int = 5) -> None:
    """Let the read pump consume whatever was fed."""
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def mock_io_ops(mocker: MagicMock) -> MagicMock:
    """Return a mocked io_ops module for boundary testing."""
    return mocker.patch("nmconnect.connector.io_ops")  # type: ignore[no-any-return]


@pytest.fixture
def make_process() -> type[FakeProcess]:
    """Return the FakeProcess factory; call it inside the test's loop."""
    return FakeProcess


@pytest.fixture
def pump() -> Callable[..., Awaitable[None]]:
    """Return settle() for yielding to the connection's read pump."""
    return settle
