"""
Tests for structured logging
"""

import json
import logging

from geoip_api.logging_config import JsonFormatter, setup_logging, trace_id_var


def _record(**extra):
    record = logging.LogRecord("geoip.refresh", logging.ERROR, __file__, 1,
                               "update of %s failed", ("GeoLite2-City",), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_json_formatter_fields():
    token = trace_id_var.set("abc123")
    try:
        entry = json.loads(JsonFormatter().format(_record(component="refresh", edition="GeoLite2-City")))
    finally:
        trace_id_var.reset(token)

    assert entry["msg"] == "update of GeoLite2-City failed"
    assert entry["level"] == "ERROR"
    assert entry["logger"] == "geoip.refresh"
    assert entry["trace_id"] == "abc123"
    assert entry["component"] == "refresh"
    assert entry["edition"] == "GeoLite2-City"
    assert "args" not in entry


def test_setup_logging_from_yaml(tmp_path, monkeypatch):
    config_file = tmp_path / "LOGGING.yaml"
    config_file.write_text(
        "version: 1\n"
        "disable_existing_loggers: false\n"
        "loggers:\n"
        "  geoip:\n"
        "    level: INFO\n"
    )
    monkeypatch.setenv("LOG_LEVEL", "debug")
    config = setup_logging(str(config_file))
    assert config["loggers"]["geoip"]["level"] == "DEBUG"
    assert logging.getLogger("geoip").level == logging.DEBUG


def test_setup_logging_text_format(tmp_path, monkeypatch):
    monkeypatch.setenv("LOG_FORMAT", "text")
    monkeypatch.setenv("LOG_LEVEL", "INFO")
    config = setup_logging(str(tmp_path / "missing.yaml"))
    assert config["handlers"]["console"]["formatter"] == "text"
