"""Connection bootstrap -- manifest lookup and companion launch.

Searches the platform's native messaging host directories
for ``<app_name>.json``, validates the manifest and spawns
the executable it points to. Search order matters only in
that the first directory holding the manifest as a regular
file wins.
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING

from pydantic import ValidationError
from returns.io import IOFailure, IOResult, IOSuccess
from returns.unsafe import unsafe_perform_io

from nmconnect import io_ops
from nmconnect.connection import NativeConnection
from nmconnect.errors import INVALID_MANIFEST, NOT_FOUND, NativeMessagingError
from nmconnect.types import AppType, NativeManifest, SearchLocation

if TYPE_CHECKING:
    from collections.abc import Iterator, Sequence

    from nmconnect.types import ConnectionSettings

logger = logging.getLogger(__name__)

# (family, app type, system dirs, dirs relative to home)
_LINUX_LOCATIONS: list[
    tuple[SearchLocation, AppType, list[str], list[str]]
] = [
    (
        SearchLocation.FIREFOX,
        AppType.FIREFOX,
        ["/usr/lib/mozilla/native-messaging-hosts"],
        [".mozilla/native-messaging-hosts"],
    ),
    (
        SearchLocation.CHROME,
        AppType.CHROME,
        ["/etc/opt/chrome/native-messaging-hosts"],
        [],
    ),
    (
        SearchLocation.CHROMIUM,
        AppType.CHROMIUM,
        ["/etc/chromium/native-messaging-hosts"],
        [],
    ),
    (
        SearchLocation.VIVALDI,
        AppType.VIVALDI,
        [],
        [".config/vivaldi/NativeMessagingHosts"],
    ),
]

_MACOS_LOCATIONS: list[
    tuple[SearchLocation, AppType, list[str], list[str]]
] = [
    (
        SearchLocation.FIREFOX,
        AppType.FIREFOX,
        ["/Library/Application Support/Mozilla/NativeMessagingHosts"],
        ["Library/Application Support/Mozilla/NativeMessagingHosts"],
    ),
    (
        SearchLocation.CHROME,
        AppType.CHROME,
        ["/Library/Google/Chrome/NativeMessagingHosts"],
        ["Library/Application Support/Google/Chrome/NativeMessagingHosts"],
    ),
    (
        SearchLocation.CHROMIUM,
        AppType.CHROMIUM,
        ["/Library/Application Support/Chromium/NativeMessagingHosts"],
        ["Library/Application Support/Chromium/NativeMessagingHosts"],
    ),
    (
        SearchLocation.VIVALDI,
        AppType.VIVALDI,
        [],
        ["Library/Application Support/Vivaldi/NativeMessagingHosts"],
    ),
]


def manifest_locations(
    scope: SearchLocation,
    platform: str | None = None,
    home: Path | None = None,
) -> Iterator[tuple[Path, AppType]]:
    """Yield (directory, app type) candidates in search order.

    Only families enabled in scope are yielded. Platforms
    without a directory convention (Windows registers hosts
    in the registry) yield nothing.
    """
    platform = platform or io_ops.current_platform()
    if platform.startswith("linux"):
        table = _LINUX_LOCATIONS
    elif platform == "darwin":
        table = _MACOS_LOCATIONS
    else:
        return
    for family, app_type, system_dirs, user_dirs in table:
        if not scope & family:
            continue
        for directory in system_dirs:
            yield Path(directory), app_type
        if user_dirs:
            base = home or io_ops.home_dir()
            for directory in user_dirs:
                yield base / directory, app_type


def find_manifest(
    app_name: str,
    scope: SearchLocation = SearchLocation.ALL,
) -> IOResult[tuple[Path, AppType], NativeMessagingError]:
    """Find the first ``<app_name>.json`` regular file in scope."""
    searched: list[str] = []
    for directory, app_type in manifest_locations(scope):
        candidate = directory / f"{app_name}.json"
        searched.append(str(candidate))
        if io_ops.is_regular_file(candidate):
            logger.debug("Found manifest %s (%s)", candidate, app_type.value)
            return IOSuccess((candidate, app_type))
    return IOFailure(
        NativeMessagingError(
            operation="find_manifest",
            error_type=NOT_FOUND,
            message=f"No manifest for '{app_name}' in any searched location",
            context={"app_name": app_name, "searched": searched},
        ),
    )


def parse_manifest(
    content: str,
    manifest_path: Path,
) -> IOResult[NativeManifest, NativeMessagingError]:
    """Validate manifest JSON and resolve a relative executable path."""
    try:
        manifest = NativeManifest.model_validate_json(content)
    except ValidationError as exc:
        return IOFailure(
            NativeMessagingError(
                operation="parse_manifest",
                error_type=INVALID_MANIFEST,
                message=f"Manifest {manifest_path} is not usable: {exc}",
                context={
                    "path": str(manifest_path),
                    "errors": [err["msg"] for err in exc.errors()],
                },
            ),
        )
    executable = Path(manifest.path)
    if not executable.is_absolute():
        manifest = manifest.model_copy(
            update={"path": str(manifest_path.parent / executable)},
        )
    return IOSuccess(manifest)


def load_manifest(
    manifest_path: Path,
) -> IOResult[NativeManifest, NativeMessagingError]:
    """Read and validate the manifest at manifest_path."""
    read_result = io_ops.read_file(manifest_path)
    if isinstance(read_result, IOFailure):
        err = unsafe_perform_io(read_result.failure())
        return IOFailure(
            NativeMessagingError(
                operation="load_manifest",
                error_type=INVALID_MANIFEST,
                message=f"Manifest could not be read: {err.message}",
                context={"path": str(manifest_path), "cause": err.error_type},
            ),
        )
    content = unsafe_perform_io(read_result.unwrap())
    return parse_manifest(content, manifest_path)


def locate(
    app_name: str,
    scope: SearchLocation = SearchLocation.ALL,
) -> IOResult[tuple[str, AppType], NativeMessagingError]:
    """Resolve app_name to (executable path, app type)."""
    return find_manifest(app_name, scope).bind(
        lambda found: load_manifest(found[0]).map(
            lambda manifest: (manifest.path, found[1]),
        ),
    )


class NativeConnector:
    """A located companion, ready to be launched."""

    def __init__(self, manifest: NativeManifest, app_type: AppType) -> None:
        self._manifest = manifest
        self._app_type = app_type

    @property
    def manifest(self) -> NativeManifest:
        return self._manifest

    @property
    def app_type(self) -> AppType:
        return self._app_type

    @classmethod
    def create(
        cls,
        app_name: str,
        scope: SearchLocation = SearchLocation.ALL,
    ) -> IOResult[NativeConnector, NativeMessagingError]:
        """Locate and load the manifest for app_name."""
        return find_manifest(app_name, scope).bind(
            lambda found: load_manifest(found[0]).map(
                lambda manifest: cls(manifest, found[1]),
            ),
        )

    async def connect(
        self,
        settings: ConnectionSettings | None = None,
        args: Sequence[str] = (),
    ) -> IOResult[NativeConnection, NativeMessagingError]:
        """Spawn the companion and wrap it in a NativeConnection."""
        spawn_result = await io_ops.spawn_process(self._manifest.path, args)
        if isinstance(spawn_result, IOFailure):
            return spawn_result
        process = unsafe_perform_io(spawn_result.unwrap())
        logger.debug(
            "Started companion %s (%s)",
            self._manifest.path,
            self._app_type.value,
        )
        return IOSuccess(NativeConnection(process, self._app_type, settings))
