"""Unit tests for structured JSON logging."""

import json
import logging

import pytest

from utm_tracker.core.logging import EXTRA_FIELDS, JSONFormatter, get_logger, log_fields


def _record(**extra):
    record = logging.LogRecord("utm_tracker.test", logging.INFO, __file__, 1, "✅ done", None, None)
    record.__dict__.update(extra)
    return record


def test_log_fields_drops_missing_values():
    assert log_fields(session_id="s1", attribution=None) == {"session_id": "s1"}


def test_log_fields_rejects_unknown_names():
    with pytest.raises(ValueError, match="sessionId"):
        log_fields(sessionId="s1")


def test_formatter_emits_structured_fields():
    entry = json.loads(
        JSONFormatter().format(_record(**log_fields(session_id="s1", record_count=3)))
    )

    assert entry["message"] == "✅ done"
    assert entry["level"] == "INFO"
    assert entry["session_id"] == "s1"
    assert entry["record_count"] == 3
    assert "stage" not in entry


def test_formatter_ignores_unlisted_attributes():
    entry = json.loads(JSONFormatter().format(_record(secret="x")))

    assert "secret" not in entry
    assert set(entry) == {"timestamp", "level", "logger", "message"}


def test_logger_writes_every_structured_field(capsys):
    logger = get_logger("test.fields")
    fields = {name: f"value-{name}" for name in EXTRA_FIELDS}

    logger.warning("sync", extra=log_fields(**fields))

    entry = json.loads(capsys.readouterr().out.strip().splitlines()[-1])
    assert {name: entry[name] for name in EXTRA_FIELDS} == fields
