"""Error types for the native messaging connection layer."""
from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field

NOT_FOUND = "NotFound"
INVALID_MANIFEST = "InvalidManifest"
SPAWN_FAILED = "SpawnFailed"
ENCODE_FAILED = "EncodeFailed"
WRITE_FAILED = "WriteFailed"
TIMEOUT = "Timeout"
CONNECTION_CLOSED = "ConnectionClosed"
MALFORMED_FRAME = "MalformedFrame"

_MAX_CONTEXT_CHARS = 500


def _jsonable(value: object) -> object:
    """Coerce a context value into something json.dumps accepts."""
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, os.PathLike):
        return os.fspath(value)
    if isinstance(value, Mapping):
        return {str(key): _jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [_jsonable(item) for item in value]
    return repr(value)


@dataclass(frozen=True)
class NativeMessagingError:
    """Structured error for bootstrap and connection failures.

    error_type is one of the module constants; context holds
    whatever the failing operation knew (paths searched, the
    timeout, the companion's return code).
    """

    operation: str
    error_type: str
    message: str
    context: dict[str, object] = field(default_factory=dict)

    def to_dict(self) -> dict[str, object]:
        """Return the error as a JSON-ready dict (used by --json-errors)."""
        return {
            "error_type": self.error_type,
            "operation": self.operation,
            "message": self.message,
            "context": _jsonable(self.context),
        }

    def __str__(self) -> str:
        text = f"{self.error_type} in {self.operation}: {self.message}"
        if not self.context:
            return text
        ctx = repr(self.context)
        if len(ctx) > _MAX_CONTEXT_CHARS:
            ctx = ctx[: _MAX_CONTEXT_CHARS - 3] + "..."
        return f"{text} ({ctx})"
