"""
Unit tests for configuration loading and logging setup.

Tests cover:
- Environment parsing per section
- Validation failures
- HTTP settings prefix
- Log formatter selection
"""

import logging

import json_log_formatter
import pytest

from modeling.layersync_server.api.settings import Settings
from modeling.layersync_server.config import (
    ObservabilityConfig,
    ServerConfig,
    StorageConfig,
    SyncConfig,
)
from modeling.layersync_server.main import setup_logging
from modeling.layersync_server.schema.types import RelationshipType


class TestServerConfig:
    """Tests for environment-driven configuration."""

    def test_defaults(self):
        config = ServerConfig()
        assert config.storage.db_name == "layersync.db"
        assert config.sync.default_relationship_type is RelationshipType.ONE_TO_MANY
        assert config.sync.heuristic_foreign_keys is True
        assert config.http.port == 8080

    def test_from_env(self, monkeypatch, tmp_path):
        monkeypatch.setenv("DATA_DIR", str(tmp_path))
        monkeypatch.setenv("SQLITE_WAL_MODE", "false")
        monkeypatch.setenv("DEFAULT_RELATIONSHIP_TYPE", "N:1")
        monkeypatch.setenv("HEURISTIC_FOREIGN_KEYS", "false")
        monkeypatch.setenv("NAME_FALLBACK_MATCHING", "false")
        monkeypatch.setenv("HTTP_PORT", "9090")
        monkeypatch.setenv("LOG_FORMAT", "text")

        config = ServerConfig.from_env()

        assert config.storage.data_dir == str(tmp_path)
        assert config.storage.wal_mode is False
        assert config.sync.default_relationship_type is RelationshipType.MANY_TO_ONE
        assert config.sync.heuristic_foreign_keys is False
        assert config.sync.name_fallback_matching is False
        assert config.http.port == 9090
        assert config.observability.log_format == "text"

    def test_invalid_relationship_type(self, monkeypatch):
        monkeypatch.setenv("DEFAULT_RELATIONSHIP_TYPE", "many")
        with pytest.raises(ValueError, match="DEFAULT_RELATIONSHIP_TYPE"):
            SyncConfig.from_env()

    def test_invalid_log_format(self, tmp_path):
        config = ServerConfig(
            storage=StorageConfig(data_dir=str(tmp_path)),
            observability=ObservabilityConfig(log_format="xml"),
        )
        with pytest.raises(ValueError, match="LOG_FORMAT"):
            config.validate()

    def test_config_is_immutable(self):
        config = SyncConfig()
        with pytest.raises(AttributeError):
            config.heuristic_foreign_keys = False


class TestSettings:
    """Tests for HTTP layer settings."""

    def test_env_prefix(self, monkeypatch):
        monkeypatch.setenv("LAYERSYNC_DATA_DIR", "/tmp/layersync-test")
        monkeypatch.setenv("LAYERSYNC_TITLE", "Modeling")

        settings = Settings()

        assert settings.data_dir == "/tmp/layersync-test"
        assert settings.title == "Modeling"

    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("LAYERSYNC_DATA_DIR", raising=False)
        assert Settings().data_dir is None


class TestSetupLogging:
    """Tests for log formatter selection."""

    @pytest.fixture(autouse=True)
    def restore_root_logger(self):
        root = logging.getLogger()
        handlers, level = root.handlers[:], root.level
        yield
        root.handlers = handlers
        root.setLevel(level)

    def test_json_format(self):
        setup_logging(ServerConfig(observability=ObservabilityConfig(log_level="DEBUG")))

        root = logging.getLogger()
        assert root.level == logging.DEBUG
        assert isinstance(root.handlers[0].formatter, json_log_formatter.JSONFormatter)

    def test_text_format(self):
        setup_logging(ServerConfig(observability=ObservabilityConfig(log_format="text")))

        formatter = logging.getLogger().handlers[0].formatter
        assert not isinstance(formatter, json_log_formatter.JSONFormatter)
        assert "%(levelname)s" in formatter._fmt
