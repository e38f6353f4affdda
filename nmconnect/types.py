"""Shared type definitions for the native messaging connection layer."""
from __future__ import annotations

import enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_READ_CHUNK_SIZE = 65536
DEFAULT_KILL_TIMEOUT = 5.0
DEFAULT_EXIT_POLL_INTERVAL = 0.1


class SearchLocation(enum.IntFlag):
    """Browser families whose manifest directories are searched."""

    FIREFOX = 1 << 0
    CHROME = 1 << 1
    CHROMIUM = 1 << 2
    VIVALDI = 1 << 3
    ALL = FIREFOX | CHROME | CHROMIUM | VIVALDI


class AppType(enum.Enum):
    """Browser family a located companion was registered for."""

    FIREFOX = "firefox"
    CHROME = "chrome"
    CHROMIUM = "chromium"
    VIVALDI = "vivaldi"


class ConnectionState(enum.Enum):
    """Lifecycle of a NativeConnection. CLOSED is terminal."""

    OPEN = "open"
    CLOSED = "closed"


class NativeManifest(BaseModel):
    """Native messaging host manifest as installed by the companion.

    Only ``path`` is required. Firefox manifests carry
    ``allowed_extensions``, Chromium-family ones ``allowed_origins``.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    name: str = ""
    description: str = ""
    path: str
    type: Literal["stdio"] = "stdio"
    allowed_extensions: list[str] = Field(default_factory=list)
    allowed_origins: list[str] = Field(default_factory=list)

    @field_validator("path")
    @classmethod
    def _path_not_blank(cls, value: str) -> str:
        if not value.strip():
            msg = "path must not be empty"
            raise ValueError(msg)
        return value


class ConnectionSettings(BaseModel):
    """Runtime knobs for a NativeConnection.

    kill_timeout bounds how long the connection waits for the
    companion's exit and the end of its output to catch up
    with each other, in either order. exit_poll_interval is
    how often the companion's exit status is checked while
    its output is still open.
    """

    model_config = ConfigDict(frozen=True)

    read_chunk_size: int = Field(default=DEFAULT_READ_CHUNK_SIZE, gt=0)
    receive_timeout: float | None = Field(default=None, ge=0)
    kill_timeout: float = Field(default=DEFAULT_KILL_TIMEOUT, gt=0)
    exit_poll_interval: float = Field(
        default=DEFAULT_EXIT_POLL_INTERVAL, gt=0,
    )
