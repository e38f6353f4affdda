"""Length-prefixed JSON messaging with native messaging companions."""
from nmconnect.connection import NativeConnection
from nmconnect.connector import (
    NativeConnector,
    find_manifest,
    load_manifest,
    locate,
    manifest_locations,
)
from nmconnect.errors import NativeMessagingError
from nmconnect.protocol import FrameBuffer, decode_payload, encode_message
from nmconnect.types import (
    AppType,
    ConnectionSettings,
    ConnectionState,
    NativeManifest,
    SearchLocation,
)

__all__ = [
    "AppType",
    "ConnectionSettings",
    "ConnectionState",
    "FrameBuffer",
    "NativeConnection",
    "NativeConnector",
    "NativeManifest",
    "NativeMessagingError",
    "SearchLocation",
    "decode_payload",
    "encode_message",
    "find_manifest",
    "load_manifest",
    "locate",
    "manifest_locations",
]
