import io
import json
import re

import pytest

from toybucket.jsonlog import Level, Logger


def _entries(buffer):
    return [json.loads(line) for line in buffer.getvalue().splitlines()]


def test_info_entry_fields():
    out = io.StringIO()
    Logger(out).print_info("connection pool established", {"port": "2000"})
    (entry,) = _entries(out)
    assert entry["level"] == "INFO"
    assert entry["message"] == "connection pool established"
    assert entry["properties"] == {"port": "2000"}
    assert "trace" not in entry


def test_time_is_rfc3339_utc():
    out = io.StringIO()
    count = Logger(out).write("x")
    assert count == len(out.getvalue())
    (entry,) = _entries(out)
    assert re.fullmatch(r"\d{4}-\d\d-\d\dT\d\d:\d\d:\d\dZ", entry["time"])


def test_empty_properties_omitted():
    out = io.StringIO()
    Logger(out).print_info("x", {})
    assert "properties" not in _entries(out)[0]


def test_error_has_trace_and_message_from_exception():
    out = io.StringIO()
    Logger(out).print_error(ValueError("missing metadata"), None)
    (entry,) = _entries(out)
    assert entry["level"] == "ERROR"
    assert entry["message"] == "missing metadata"
    assert entry["trace"]


def test_min_level_filters_info():
    out = io.StringIO()
    logger = Logger(out, Level.ERROR)
    logger.print_info("dropped")
    logger.print_error(RuntimeError("kept"))
    assert [e["message"] for e in _entries(out)] == ["kept"]


def test_fatal_exits_with_status_one():
    out = io.StringIO()
    with pytest.raises(SystemExit) as info:
        Logger(out).print_fatal(RuntimeError("boom"), {"method": "main"})
    assert info.value.code == 1
    assert _entries(out)[0]["level"] == "FATAL"


def test_write_logs_bytes_at_error_level():
    out = io.StringIO()
    count = Logger(out).write(b"raw message")
    (entry,) = _entries(out)
    assert entry["message"] == "raw message"
    assert entry["level"] == "ERROR"
    assert count == len(out.getvalue())


def test_write_when_off_returns_zero():
    out = io.StringIO()
    assert Logger(out, Level.OFF).write("ignored") == 0
    assert out.getvalue() == ""


def test_level_names_in_entries():
    out = io.StringIO()
    logger = Logger(out)
    logger.print_info("info")
    logger.print_error(RuntimeError("error"))
    with pytest.raises(SystemExit):
        logger.print_fatal(RuntimeError("fatal"))
    assert [e["level"] for e in _entries(out)] == ["INFO", "ERROR", "FATAL"]
    assert str(Level.OFF) == ""