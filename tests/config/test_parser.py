"""Tests for YAML configuration loading."""

import pytest

from sqlhandle.config import ConfigParser, create_sample_config, validate_config_file
from sqlhandle.config.models import DatabaseType, HandleSettings
from sqlhandle.exceptions import ConfigurationError


@pytest.fixture
def parser():
    return ConfigParser()


def write(path, content):
    path.write_text(content, encoding="utf-8")
    return path


class TestConfigParser:

    def test_load_sqlite_config(self, parser, tmp_path):
        config_file = write(tmp_path / "sqlhandle.yaml", f"""
databases:
  local:
    type: sqlite
    path: {tmp_path / 'local.db'}
handle_settings:
  default_isolation_level: read_committed
  statement_cache_size: 16
""")

        config = parser.load_config(config_file)

        assert config.default_database == "local"
        assert config.databases["local"].type == DatabaseType.SQLITE
        assert config.handle_settings.default_isolation_level == "READ COMMITTED"
        assert config.handle_settings.statement_cache_size == 16
        assert config.handle_settings.force_end_transactions is True

    def test_environment_interpolation(self, parser, tmp_path, monkeypatch):
        monkeypatch.setenv("SQLHANDLE_TEST_PASSWORD", "s3cret")
        config_file = write(tmp_path / "pg.yaml", """
databases:
  main:
    type: postgresql
    host: ${SQLHANDLE_TEST_HOST:-db.internal}
    database: app
    username: app
    password: ${SQLHANDLE_TEST_PASSWORD}
""")

        config = parser.load_config(config_file)

        assert config.databases["main"].host == "db.internal"
        assert config.databases["main"].password == "s3cret"

    def test_missing_environment_variable(self, parser, tmp_path, monkeypatch):
        monkeypatch.delenv("SQLHANDLE_TEST_MISSING", raising=False)
        config_file = write(tmp_path / "bad.yaml", """
databases:
  main:
    type: sqlite
    path: ${SQLHANDLE_TEST_MISSING}
""")

        with pytest.raises(ConfigurationError, match="SQLHANDLE_TEST_MISSING"):
            parser.load_config(config_file)

    def test_include_is_merged_with_local_priority(self, parser, tmp_path):
        write(tmp_path / "base.yaml", f"""
databases:
  local:
    type: sqlite
    path: {tmp_path / 'base.db'}
handle_settings:
  read_only: true
  statement_cache_size: 4
""")
        config_file = write(tmp_path / "main.yaml", """
include: base.yaml
handle_settings:
  statement_cache_size: 32
""")

        config = parser.load_config(config_file)

        assert config.handle_settings.read_only is True
        assert config.handle_settings.statement_cache_size == 32

    def test_invalid_isolation_level(self, parser, tmp_path):
        config_file = write(tmp_path / "bad.yaml", f"""
databases:
  local:
    type: sqlite
    path: {tmp_path / 'x.db'}
handle_settings:
  default_isolation_level: chaos
""")

        with pytest.raises(ConfigurationError, match="validation failed"):
            parser.load_config(config_file)

    def test_unknown_default_database(self, parser, tmp_path):
        config_file = write(tmp_path / "bad.yaml", f"""
databases:
  local:
    type: sqlite
    path: {tmp_path / 'x.db'}
default_database: remote
""")

        with pytest.raises(ConfigurationError):
            parser.load_config(config_file)

    def test_empty_file(self, parser, tmp_path):
        with pytest.raises(ConfigurationError, match="empty"):
            parser.load_config(write(tmp_path / "empty.yaml", ""))

    def test_missing_file(self, parser, tmp_path):
        with pytest.raises(ConfigurationError, match="not found"):
            parser.load_config(tmp_path / "nope.yaml")

    def test_sample_config_is_valid(self, tmp_path):
        output = tmp_path / "sample.yaml"
        create_sample_config(output)

        assert validate_config_file(output)


class TestHandleSettings:

    def test_defaults(self):
        settings = HandleSettings()

        assert settings.force_end_transactions is True
        assert settings.default_isolation_level is None
        assert settings.read_only is False
        assert settings.statement_cache_size == 0

    def test_negative_cache_size_rejected(self):
        with pytest.raises(ValueError):
            HandleSettings(statement_cache_size=-1)
