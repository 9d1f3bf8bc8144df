"""Config validation, log formatting and response headers."""

import json
import logging

import pytest

from specforge.config import ProductionConfig, TestingConfig
from specforge.middleware.logging_config import JSONFormatter, ReadableFormatter


class TestConfig:
    def test_production_requires_database_url(self, monkeypatch):
        monkeypatch.setattr(ProductionConfig, "SQLALCHEMY_DATABASE_URI", None)
        with pytest.raises(RuntimeError, match="DATABASE_URL"):
            ProductionConfig()

    def test_production_requires_secret_key(self, monkeypatch):
        monkeypatch.setattr(ProductionConfig, "SQLALCHEMY_DATABASE_URI", "postgresql://db/specforge")
        monkeypatch.delenv("SECRET_KEY", raising=False)
        with pytest.raises(RuntimeError, match="SECRET_KEY"):
            ProductionConfig()

    def test_testing_uses_stub_model(self, app):
        assert app.config["TESTING"] is True
        assert app.config["LLM_DEFAULT_CHAT_MODEL"] == TestingConfig.LLM_DEFAULT_CHAT_MODEL == "local-stub"


def _record(**extra):
    record = logging.LogRecord("specforge.test", logging.INFO, __file__, 10,
                               "generated %s", ("v1",), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestLogFormatters:
    def test_json_formatter_includes_known_extras(self):
        entry = json.loads(JSONFormatter().format(_record(project_id="p1", unrelated="x")))
        assert entry["message"] == "generated v1"
        assert entry["level"] == "INFO"
        assert entry["project_id"] == "p1"
        assert "unrelated" not in entry

    def test_readable_formatter_suffixes(self):
        line = ReadableFormatter().format(_record(project_id="p1", duration_ms=12.4))
        assert "generated v1 project=p1 [12ms]" in line


def test_security_headers_on_api_responses(client):
    res = client.get("/api/v1/health")
    assert res.headers["X-Frame-Options"] == "DENY"
    assert res.headers["X-Content-Type-Options"] == "nosniff"
    assert "no-store" in res.headers["Cache-Control"]
