"""I/O boundary module -- ALL filesystem and process access goes through here.

This is the single mock point for the test suite. The
connector and connection never touch the OS directly; they
call io_ops functions.
"""
from __future__ import annotations

import asyncio
import os
import stat
import sys
from pathlib import Path
from typing import TYPE_CHECKING

from returns.io import IOFailure, IOResult, IOSuccess

from nmconnect.errors import SPAWN_FAILED, NativeMessagingError

if TYPE_CHECKING:
    from collections.abc import Sequence


def current_platform() -> str:
    """Return sys.platform. Mockable seam."""
    return sys.platform


def home_dir() -> Path:
    """Return the user's home directory. Mockable seam."""
    return Path.home()


def is_regular_file(path: Path) -> bool:
    """Check that path is a regular file, without following symlinks.

    A missing or unreadable path is simply not a regular file.
    """
    try:
        st = os.lstat(path)  # noqa: PTH116
    except OSError:
        return False
    return stat.S_ISREG(st.st_mode)


def read_file(path: Path) -> IOResult[str, NativeMessagingError]:
    """Read file contents as UTF-8. Returns IOResult, never raises."""
    try:
        return IOSuccess(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        return IOFailure(
            NativeMessagingError(
                operation="io_ops.read_file",
                error_type="FileNotFoundError",
                message=f"File not found: {path}",
                context={"path": str(path)},
            ),
        )
    except PermissionError:
        return IOFailure(
            NativeMessagingError(
                operation="io_ops.read_file",
                error_type="PermissionError",
                message=f"Permission denied: {path}",
                context={"path": str(path)},
            ),
        )
    except (OSError, UnicodeDecodeError) as exc:
        return IOFailure(
            NativeMessagingError(
                operation="io_ops.read_file",
                error_type=type(exc).__name__,
                message=f"Error reading {path}: {exc}",
                context={"path": str(path)},
            ),
        )


async def spawn_process(
    executable: str,
    args: Sequence[str] = (),
) -> IOResult[asyncio.subprocess.Process, NativeMessagingError]:
    """Start the companion with piped stdin/stdout.

    stderr is inherited so companion diagnostics reach the
    terminal. Commands are passed as explicit argument lists,
    never through a shell.
    """
    try:
        process = await asyncio.create_subprocess_exec(
            executable,
            *args,
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.PIPE,
        )
    except OSError as exc:
        return IOFailure(
            NativeMessagingError(
                operation="io_ops.spawn_process",
                error_type=SPAWN_FAILED,
                message=f"Could not start {executable}: {exc}",
                context={"executable": executable, "args": list(args)},
            ),
        )
    return IOSuccess(process)


def kill_process(process: asyncio.subprocess.Process) -> bool:
    """Kill the companion. Returns False if it had already exited."""
    try:
        process.kill()
    except ProcessLookupError:
        return False
    return True
