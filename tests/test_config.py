"""Tests for settings and logging configuration."""

import logging

import pytest
from pydantic import ValidationError

from pgpartition.config import (
    PartitionSettings,
    configure_logging,
    get_settings,
    reset_settings,
    set_settings,
)


class TestPartitionSettings:
    def test_defaults(self) -> None:
        settings = PartitionSettings(_env_file=None)

        assert settings.database_url.startswith("postgresql+psycopg://")
        assert settings.cache_enabled is True
        assert settings.cache_ttl_seconds is None
        assert settings.name_suffix_length == 7
        assert settings.log_level == "INFO"

    def test_environment_prefix(self, monkeypatch) -> None:
        monkeypatch.setenv("PGPARTITION_CACHE_TTL_SECONDS", "300")
        monkeypatch.setenv("PGPARTITION_CACHE_ENABLED", "false")

        settings = PartitionSettings(_env_file=None)

        assert settings.cache_ttl_seconds == 300
        assert settings.cache_enabled is False

    def test_log_level_uppercased(self) -> None:
        assert PartitionSettings(_env_file=None, log_level="debug").log_level == "DEBUG"

    @pytest.mark.parametrize(
        "field, value",
        [
            ("log_level", "VERBOSE"),
            ("cache_ttl_seconds", 0),
            ("name_suffix_length", 3),
            ("name_suffix_length", 33),
        ],
    )
    def test_invalid_values(self, field, value) -> None:
        with pytest.raises(ValidationError):
            PartitionSettings(_env_file=None, **{field: value})

    def test_engine_config(self) -> None:
        settings = PartitionSettings(_env_file=None, database_url="postgresql+psycopg://db/app", echo=True)

        config = settings.get_engine_config()

        assert config["url"] == "postgresql+psycopg://db/app"
        assert config["echo"] is True
        assert config["pool_pre_ping"] is True
        assert set(config) == {"url", "echo", "pool_pre_ping"}


class TestGlobalSettings:
    def test_set_and_reset(self) -> None:
        custom = PartitionSettings(_env_file=None, name_suffix_length=12)

        set_settings(custom)
        assert get_settings() is custom

        reset_settings()
        assert get_settings() is not custom


def test_configure_logging() -> None:
    logger = logging.getLogger("pgpartition")
    previous = logger.level
    try:
        configure_logging(PartitionSettings(_env_file=None, log_level="WARNING"))
        assert logger.level == logging.WARNING
    finally:
        logger.setLevel(previous)
