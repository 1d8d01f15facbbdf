"""Unit tests for configuration module.

Tests the IdempotencyConfig class including validation, factory methods,
and immutability.
"""

import os

import pytest
from pydantic import ValidationError

from idempotency_guard.config import VALID_LOG_LEVELS, IdempotencyConfig


class TestIdempotencyConfigDefaults:
    """Tests for default configuration values."""

    def test_default_values(self) -> None:
        config = IdempotencyConfig()

        assert config.max_key_length == 50
        assert config.wait_timeout_seconds == 30.0
        assert config.poll_interval_seconds == 0.1
        assert config.storage_adapter == "memory"
        assert config.database_url.startswith("postgresql+asyncpg://")
        assert config.log_level == "INFO"
        assert config.json_logs is True

    def test_config_is_frozen(self) -> None:
        config = IdempotencyConfig()
        with pytest.raises(ValidationError):
            config.max_key_length = 10  # type: ignore[misc]


class TestFieldValidation:
    """Tests for range checks on individual fields."""

    @pytest.mark.parametrize("value", [1, 50, 255])
    def test_max_key_length_accepted(self, value: int) -> None:
        assert IdempotencyConfig(max_key_length=value).max_key_length == value

    @pytest.mark.parametrize("value", [0, -1, 256])
    def test_max_key_length_rejected(self, value: int) -> None:
        with pytest.raises(ValidationError) as exc_info:
            IdempotencyConfig(max_key_length=value)
        assert "max_key_length must be between 1 and 255" in str(exc_info.value)

    @pytest.mark.parametrize("value", [0, -1.0, 300.5])
    def test_wait_timeout_rejected(self, value: float) -> None:
        with pytest.raises(ValidationError):
            IdempotencyConfig(wait_timeout_seconds=value)

    def test_wait_timeout_upper_bound_inclusive(self) -> None:
        assert IdempotencyConfig(wait_timeout_seconds=300).wait_timeout_seconds == 300

    @pytest.mark.parametrize("value", [0, 5.5])
    def test_poll_interval_rejected(self, value: float) -> None:
        with pytest.raises(ValidationError):
            IdempotencyConfig(poll_interval_seconds=value)

    def test_poll_interval_cannot_exceed_wait_timeout(self) -> None:
        with pytest.raises(ValidationError) as exc_info:
            IdempotencyConfig(wait_timeout_seconds=1.0, poll_interval_seconds=2.0)
        assert "must not exceed wait_timeout_seconds" in str(exc_info.value)

    def test_storage_adapter_choices(self) -> None:
        assert IdempotencyConfig(storage_adapter="sql").storage_adapter == "sql"
        with pytest.raises(ValidationError):
            IdempotencyConfig(storage_adapter="redis")  # type: ignore[arg-type]

    @pytest.mark.parametrize("level", sorted(VALID_LOG_LEVELS))
    def test_log_level_normalized(self, level: str) -> None:
        assert IdempotencyConfig(log_level=level.lower()).log_level == level

    def test_log_level_invalid(self) -> None:
        with pytest.raises(ValidationError) as exc_info:
            IdempotencyConfig(log_level="verbose")
        assert "Invalid log level" in str(exc_info.value)


class TestFromEnv:
    """Tests for IdempotencyConfig.from_env()."""

    def test_from_env_defaults(self, monkeypatch: pytest.MonkeyPatch) -> None:
        for name in list(os.environ):
            if name.startswith("IDEMPOTENCY_"):
                monkeypatch.delenv(name)

        assert IdempotencyConfig.from_env() == IdempotencyConfig()

    def test_from_env_converts_types(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("IDEMPOTENCY_MAX_KEY_LENGTH", "64")
        monkeypatch.setenv("IDEMPOTENCY_WAIT_TIMEOUT_SECONDS", "2.5")
        monkeypatch.setenv("IDEMPOTENCY_POLL_INTERVAL_SECONDS", "0.05")
        monkeypatch.setenv("IDEMPOTENCY_STORAGE_ADAPTER", "sql")
        monkeypatch.setenv("IDEMPOTENCY_DATABASE_URL", "sqlite+aiosqlite:///guard.db")
        monkeypatch.setenv("IDEMPOTENCY_LOG_LEVEL", "debug")
        monkeypatch.setenv("IDEMPOTENCY_JSON_LOGS", "false")

        config = IdempotencyConfig.from_env()

        assert config.max_key_length == 64
        assert config.wait_timeout_seconds == 2.5
        assert config.poll_interval_seconds == 0.05
        assert config.storage_adapter == "sql"
        assert config.database_url == "sqlite+aiosqlite:///guard.db"
        assert config.log_level == "DEBUG"
        assert config.json_logs is False

    def test_from_env_custom_prefix(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("NEWSLETTER_MAX_KEY_LENGTH", "20")
        assert IdempotencyConfig.from_env(prefix="NEWSLETTER_").max_key_length == 20

    def test_from_env_invalid_value(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("IDEMPOTENCY_MAX_KEY_LENGTH", "1000")
        with pytest.raises(ValidationError):
            IdempotencyConfig.from_env()


class TestFromDict:
    def test_from_dict(self) -> None:
        config = IdempotencyConfig.from_dict(
            {"max_key_length": 32, "wait_timeout_seconds": 5}
        )
        assert config.max_key_length == 32
        assert config.wait_timeout_seconds == 5

    def test_from_dict_invalid(self) -> None:
        with pytest.raises(ValidationError):
            IdempotencyConfig.from_dict({"poll_interval_seconds": -1})
