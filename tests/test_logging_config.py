"""
Brief: Tests for eyrie.config.logging_config.init_logging and formatters.

Inputs:
  - None

Outputs:
  - None
"""

import logging
import logging.handlers
from pathlib import Path

from eyrie.config.logging_config import (
    BracketLevelFormatter,
    SyslogFormatter,
    init_logging,
)


def _record(level=logging.WARNING, msg="hello %s", args=("world",)):
    return logging.LogRecord("eyrie.test", level, __file__, 1, msg, args, None)


def test_init_logging_adds_stderr_handler():
    init_logging({"level": "debug"})
    root = logging.getLogger()
    assert root.level == logging.DEBUG
    assert any(isinstance(h, logging.StreamHandler) for h in root.handlers)


def test_init_logging_without_stderr_and_unknown_level():
    init_logging({"level": "chatty", "stderr": False})
    root = logging.getLogger()
    assert root.level == logging.INFO
    assert root.handlers == []


def test_init_logging_file_handler_writes(tmp_path):
    log_path = tmp_path / "logs" / "eyrie.log"
    init_logging({"level": "info", "file": str(log_path), "stderr": False})
    logging.getLogger("test").info("file message")
    for h in logging.getLogger().handlers:
        h.flush()
    content = Path(log_path).read_text()
    assert "file message" in content
    assert "[info]" in content


def test_init_logging_syslog_handler(monkeypatch):
    created = {}

    class _FakeSysLogHandler(logging.Handler):
        LOG_USER = logging.handlers.SysLogHandler.LOG_USER
        LOG_DAEMON = logging.handlers.SysLogHandler.LOG_DAEMON

        def __init__(self, address, facility):
            super().__init__()
            created["address"] = address
            created["facility"] = facility

        def emit(self, record):
            created["line"] = self.format(record)

    monkeypatch.setattr(logging.handlers, "SysLogHandler", _FakeSysLogHandler)
    init_logging(
        {
            "stderr": False,
            "syslog": {"address": ["127.0.0.1", 514], "facility": "daemon", "tag": "dns"},
        }
    )
    logging.getLogger("eyrie.x").warning("up")

    assert created["address"] == ("127.0.0.1", 514)
    assert created["facility"] == _FakeSysLogHandler.LOG_DAEMON
    assert created["line"] == "dns: [warn] eyrie.x: up"


def test_bracket_formatter_uses_record_time_in_utc():
    fmt = BracketLevelFormatter(fmt="%(asctime)s %(level_tag)s %(message)s")
    rec = _record()
    rec.created = 0.0
    assert fmt.format(rec) == "1970-01-01T00:00:00Z [warn] hello world"


def test_syslog_formatter_levels():
    fmt = SyslogFormatter()
    assert fmt.format(_record(logging.ERROR)) == "eyrie: [error] eyrie.test: hello world"
    assert fmt.format(_record(5)).startswith("eyrie: [lvl5]")
