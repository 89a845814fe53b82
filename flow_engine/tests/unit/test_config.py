"""Unit tests for flow_engine.config."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from flow_engine.config import FlowEnv, Settings, load_settings
from flow_engine.sql_toolkit import Dialect


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    for name in ("DEFAULT_DIALECT", "LOG_LEVEL", "MAX_QUERY_COUNT", "DEBUG", "ENV"):
        monkeypatch.delenv(f"SQLFLOW_{name}", raising=False)


class TestSettings:
    def test_defaults(self):
        settings = load_settings()
        assert settings.env == FlowEnv.DEV
        assert settings.default_dialect == Dialect.MYSQL
        assert settings.log_level == "INFO"
        assert settings.include_external is True

    def test_dialect_from_env(self, monkeypatch):
        monkeypatch.setenv("SQLFLOW_DEFAULT_DIALECT", "postgresql")
        assert Settings().default_dialect == Dialect.POSTGRESQL

    def test_unknown_dialect_rejected(self):
        with pytest.raises(ValidationError):
            Settings(default_dialect="cobol")

    def test_limits_must_be_positive(self, monkeypatch):
        monkeypatch.setenv("SQLFLOW_MAX_QUERY_COUNT", "0")
        with pytest.raises(ValidationError):
            Settings()

    def test_log_level_normalised(self):
        assert Settings(log_level="debug").log_level == "DEBUG"
        with pytest.raises(ValidationError):
            Settings(log_level="loud")

    def test_validation_limits(self):
        limits = load_settings(max_sql_size_bytes=2048, max_query_count=7).validation_limits()
        assert limits.max_sql_size_bytes == 2048
        assert limits.max_query_count == 7

    def test_env_file(self, tmp_path):
        (tmp_path / ".env").write_text("SQLFLOW_ENV=prod\n")
        assert Settings().env == FlowEnv.PROD
