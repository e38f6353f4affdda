"""Tests for shared types and settings."""
from __future__ import annotations

import pytest
from pydantic import ValidationError

from nmconnect.types import (
    DEFAULT_EXIT_POLL_INTERVAL,
    DEFAULT_KILL_TIMEOUT,
    DEFAULT_READ_CHUNK_SIZE,
    AppType,
    ConnectionSettings,
    NativeManifest,
    SearchLocation,
)


class TestSearchLocation:
    """Tests for the SearchLocation mask."""

    def test_all_covers_every_family(self) -> None:
        """ALL includes each individual family."""
        for family in (
            SearchLocation.FIREFOX,
            SearchLocation.CHROME,
            SearchLocation.CHROMIUM,
            SearchLocation.VIVALDI,
        ):
            assert SearchLocation.ALL & family

    def test_families_are_distinct_bits(self) -> None:
        """Each family is a single bit."""
        assert SearchLocation.FIREFOX == 1
        assert SearchLocation.CHROME == 2
        assert SearchLocation.CHROMIUM == 4
        assert SearchLocation.VIVALDI == 8

    def test_app_type_values(self) -> None:
        """AppType values are lowercase family names."""
        assert [a.value for a in AppType] == [
            "firefox", "chrome", "chromium", "vivaldi",
        ]


class TestNativeManifest:
    """Tests for manifest validation."""

    def test_minimal_manifest(self) -> None:
        """Only path is required."""
        manifest = NativeManifest.model_validate({"path": "/bin/x"})
        assert manifest.type == "stdio"
        assert manifest.allowed_extensions == []
        assert manifest.allowed_origins == []

    def test_unknown_fields_ignored(self) -> None:
        """Extra keys in the manifest do not fail validation."""
        manifest = NativeManifest.model_validate(
            {"path": "/bin/x", "future_key": 1},
        )
        assert manifest.path == "/bin/x"

    def test_blank_path_rejected(self) -> None:
        """Whitespace is not a usable path."""
        with pytest.raises(ValidationError):
            NativeManifest.model_validate({"path": "   "})

    def test_manifest_is_frozen(self) -> None:
        """Manifests are immutable."""
        manifest = NativeManifest(path="/bin/x")
        with pytest.raises(ValidationError):
            manifest.path = "/bin/y"  # type: ignore[misc]


class TestConnectionSettings:
    """Tests for ConnectionSettings."""

    def test_defaults(self) -> None:
        """Defaults match the module constants."""
        settings = ConnectionSettings()
        assert settings.read_chunk_size == DEFAULT_READ_CHUNK_SIZE
        assert settings.receive_timeout is None
        assert settings.kill_timeout == DEFAULT_KILL_TIMEOUT
        assert settings.exit_poll_interval == DEFAULT_EXIT_POLL_INTERVAL

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"read_chunk_size": 0},
            {"receive_timeout": -1},
            {"kill_timeout": 0},
            {"exit_poll_interval": 0},
        ],
    )
    def test_invalid_values_rejected(self, kwargs: dict[str, float]) -> None:
        """Out-of-range values fail validation."""
        with pytest.raises(ValidationError):
            ConnectionSettings(**kwargs)
