"""End-to-end tests against a real echo companion process.

A manifest in a temp directory points at a small shell
wrapper that runs ``python -m nmconnect.echo_host`` with the
repo on PYTHONPATH, so the installed-host condition is
reproduced without touching the real browser directories.
"""
from __future__ import annotations

import json
import stat
import sys
from pathlib import Path
from typing import TYPE_CHECKING, Any

import pytest
from returns.io import IOFailure, IOResult, IOSuccess
from returns.unsafe import unsafe_perform_io

from nmconnect.cli import exchange
from nmconnect.connector import NativeConnector
from nmconnect.errors import CONNECTION_CLOSED, NativeMessagingError
from nmconnect.types import AppType, ConnectionSettings, ConnectionState, SearchLocation

if TYPE_CHECKING:
    from pytest_mock import MockerFixture

_REPO_ROOT = Path(__file__).resolve().parents[3]

pytestmark = pytest.mark.skipif(
    sys.platform == "win32", reason="shell wrapper needs a POSIX shell",
)


def _value(result: IOResult[Any, NativeMessagingError]) -> Any:  # noqa: ANN401
    assert isinstance(result, IOSuccess), result
    return unsafe_perform_io(result.unwrap())


@pytest.fixture
def echo_manifest_dir(tmp_path: Path, mocker: MockerFixture) -> Path:
    """Install an echo host manifest and search only its directory."""
    wrapper = tmp_path / "echo-host.sh"
    wrapper.write_text(
        "#!/bin/sh\n"
        f'PYTHONPATH="{_REPO_ROOT}" exec "{sys.executable}" '
        '-m nmconnect.echo_host "$@"\n',
    )
    wrapper.chmod(wrapper.stat().st_mode | stat.S_IXUSR)
    hosts = tmp_path / "NativeMessagingHosts"
    hosts.mkdir()
    (hosts / "org.example.echo.json").write_text(
        json.dumps(
            {
                "name": "org.example.echo",
                "description": "echo companion",
                "path": str(wrapper),
                "type": "stdio",
                "allowed_extensions": ["echo@example.org"],
            },
        ),
    )
    mocker.patch(
        "nmconnect.connector.manifest_locations",
        side_effect=lambda _scope: iter([(hosts, AppType.FIREFOX)]),
    )
    return hosts


class TestEchoCompanion:
    """Tests driving the echo host through the full stack."""

    @pytest.mark.asyncio
    async def test_send_and_receive(self, echo_manifest_dir: Path) -> None:
        """Messages round-trip through a real child process."""
        connector = _value(
            NativeConnector.create("org.example.echo", SearchLocation.FIREFOX),
        )
        settings = ConnectionSettings(receive_timeout=10)
        conn = _value(await connector.connect(settings))
        async with conn:
            for value in ({"action": "ping"}, "héllo ✓", [1, {"x": None}]):
                _value(await conn.send(value))
            replies = [_value(await conn.receive()) for _ in range(3)]
        assert replies == [
            {"success": True},
            {"echo": "héllo ✓"},
            {"echo": [1, {"x": None}]},
        ]
        assert conn.state is ConnectionState.CLOSED

    @pytest.mark.asyncio
    async def test_large_message_spans_many_chunks(
        self, echo_manifest_dir: Path,
    ) -> None:
        """A payload far larger than one read is reassembled."""
        connector = _value(NativeConnector.create("org.example.echo"))
        settings = ConnectionSettings(read_chunk_size=512, receive_timeout=10)
        conn = _value(await connector.connect(settings))
        big = {"data": "x" * 200_000}
        async with conn:
            _value(await conn.send(big))
            assert _value(await conn.receive()) == {"echo": big}

    @pytest.mark.asyncio
    async def test_companion_exit_closes(self, echo_manifest_dir: Path) -> None:
        """Closing the companion's stdin ends it and closes the connection."""
        connector = _value(NativeConnector.create("org.example.echo"))
        conn = _value(
            await connector.connect(ConnectionSettings(receive_timeout=10)),
        )
        conn._process.stdin.close()  # noqa: SLF001
        result = await conn.receive()
        assert isinstance(result, IOFailure)
        assert unsafe_perform_io(result.failure()).error_type == CONNECTION_CLOSED
        await conn.wait_closed()
        assert conn.returncode == 0

    @pytest.mark.asyncio
    async def test_exchange_helper(self, echo_manifest_dir: Path) -> None:
        """The CLI exchange coroutine collects replies."""
        result = await exchange(
            "org.example.echo",
            SearchLocation.ALL,
            {"action": "ping"},
            1,
            ConnectionSettings(receive_timeout=10),
        )
        assert _value(result) == [{"success": True}]
