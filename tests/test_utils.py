"""Tests for log redaction, log level control and the session clock."""

import logging

import pytest

from photolab.utils import RedactingFormatter, _redact, logger, now_ms, set_log_level


def format_line(msg: str, *args) -> str:
    fmt = RedactingFormatter("%(message)s")
    record = logging.LogRecord("PhotoLab", logging.INFO, __file__, 1, msg, args, None)
    return fmt.format(record)


@pytest.mark.parametrize("line,expected", [
    ("checking pin=123456 now", "checking pin=*** now"),
    ("pending_pin=654321", "pending_pin=***"),
    ("PIN=000000", "PIN=***"),
])
def test_redact_key_value_pins(line, expected) -> None:
    assert _redact(line) == expected


def test_redact_json_credential() -> None:
    line = 'wrote {"photo_lab_pin": "123456", "other": "x"}'
    assert _redact(line) == 'wrote {"photo_lab_pin": "***REDACTED***", "other": "x"}'


def test_formatter_redacts_interpolated_args() -> None:
    assert format_line("[PinSession] pin=%s", "246810") == "[PinSession] pin=***"


def test_config_summary_is_not_masked() -> None:
    line = format_line(
        "[Config] Summary: pin_length=%s, max_attempts=%s, lockout_ms=%s, auto_submit=%s",
        6, 3, 30000, True,
    )
    assert line == "[Config] Summary: pin_length=6, max_attempts=3, lockout_ms=30000, auto_submit=True"


def test_redact_passes_empty_text() -> None:
    assert _redact("") == ""


def test_set_log_level_updates_logger_and_handlers() -> None:
    before = logger.level
    try:
        set_log_level("debug")
        assert logger.level == logging.DEBUG
        assert all(h.level == logging.DEBUG for h in logger.handlers)
        set_log_level("nonsense")
        assert logger.level == logging.INFO
    finally:
        set_log_level(logging.getLevelName(before))


def test_now_ms_is_monotonic() -> None:
    a = now_ms()
    b = now_ms()
    assert b >= a
