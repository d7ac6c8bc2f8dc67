"""Tests for environment-driven Settings."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from firecracker_control.retry import DEFAULT_RETRY
from firecracker_control.settings import Settings


class TestSettings:
    def test_defaults_match_default_retry(self) -> None:
        assert Settings().retry_config() == DEFAULT_RETRY

    def test_env_prefix(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("FIRECRACKER_CONTROL_REQUEST_TIMEOUT", "2.5")
        monkeypatch.setenv("FIRECRACKER_CONTROL_SNAPSHOT_DIR", "/var/lib/fc/snapshots")
        monkeypatch.setenv("FIRECRACKER_CONTROL_RETRY_MAX_ATTEMPTS", "7")

        settings = Settings()

        assert settings.request_timeout == pytest.approx(2.5)
        assert settings.snapshot_dir == Path("/var/lib/fc/snapshots")
        assert settings.retry_config().max_attempts == 7

    def test_unprefixed_env_ignored(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("REQUEST_TIMEOUT", "99")
        assert Settings().request_timeout != 99

    def test_invalid_env_value(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("FIRECRACKER_CONTROL_POLL_INTERVAL", "0")
        with pytest.raises(ValidationError):
            Settings()

    def test_retry_config_validates_combination(self) -> None:
        settings = Settings(retry_initial_delay=2.0, retry_max_delay=1.0)
        with pytest.raises(ValidationError):
            settings.retry_config()
