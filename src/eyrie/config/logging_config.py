from __future__ import annotations

import logging
import logging.handlers
import os
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional

LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "crit": logging.CRITICAL,
    "critical": logging.CRITICAL,
}

_TAGS = {
    logging.DEBUG: "[debug]",
    logging.INFO: "[info]",
    logging.WARNING: "[warn]",
    logging.ERROR: "[error]",
    logging.CRITICAL: "[crit]",
}


def _level_tag(levelno: int) -> str:
    return _TAGS.get(levelno, f"[lvl{levelno}]")


class SyslogFormatter(logging.Formatter):
    """Syslog lines: "tag: [level] logger: message" (syslog adds the timestamp)."""

    def __init__(self, tag: str = "eyrie") -> None:
        super().__init__()
        self.tag = tag

    def format(self, record):
        record.level_tag = _level_tag(record.levelno)
        return f"{self.tag}: {record.level_tag} {record.name}: {record.getMessage()}"


class BracketLevelFormatter(logging.Formatter):
    """Bracketed lowercase level tags with UTC ISO-8601 timestamps."""

    def formatTime(self, record, datefmt=None):
        stamp = datetime.fromtimestamp(record.created, tz=timezone.utc)
        return stamp.strftime(datefmt or "%Y-%m-%dT%H:%M:%SZ")

    def format(self, record):
        record.level_tag = _level_tag(record.levelno)
        return super().format(record)


def init_logging(cfg: Optional[Dict[str, Any]]) -> None:
    """
    Brief: Configure the root logger from the ``logging`` config section.

    Inputs:
      - cfg: Mapping with optional keys:
          - level: debug, info, warn, error, crit (default: info)
          - stderr: log to stderr (default: True)
          - file: path of a log file to append to
          - syslog: True, or a mapping with address (socket path or
            [host, port]), facility (default: USER) and tag (default: eyrie)

    Outputs:
      - None. Existing root handlers are replaced and Python warnings are
        routed through logging.

    Example:
        >>> init_logging({"level": "debug", "stderr": True})
    """
    cfg = cfg or {}

    level = LEVELS.get(str(cfg.get("level", "info")).lower(), logging.INFO)
    formatter = BracketLevelFormatter(fmt="%(asctime)s %(level_tag)s %(name)s: %(message)s")

    root = logging.getLogger()
    root.setLevel(level)
    for h in list(root.handlers):
        root.removeHandler(h)

    if cfg.get("stderr", True):
        stderr_handler = logging.StreamHandler(sys.stderr)
        stderr_handler.setFormatter(formatter)
        root.addHandler(stderr_handler)

    file_path = cfg.get("file")
    if isinstance(file_path, str) and file_path.strip():
        path = os.path.abspath(os.path.expanduser(file_path.strip()))
        os.makedirs(os.path.dirname(path), exist_ok=True)
        file_handler = logging.FileHandler(path, mode="a", encoding="utf-8")
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

    syslog_cfg = cfg.get("syslog")
    if syslog_cfg:
        options = syslog_cfg if isinstance(syslog_cfg, dict) else {}
        address = options.get("address", "/dev/log")
        if isinstance(address, list):
            address = tuple(address)
        facility = getattr(
            logging.handlers.SysLogHandler,
            f"LOG_{str(options.get('facility', 'USER')).upper()}",
            logging.handlers.SysLogHandler.LOG_USER,
        )
        try:
            syslog_handler = logging.handlers.SysLogHandler(address=address, facility=facility)
        except (OSError, ValueError) as e:  # pragma: no cover - depends on host syslog
            root.warning("Failed to configure syslog: %s", e)
        else:
            syslog_handler.setFormatter(SyslogFormatter(tag=str(options.get("tag", "eyrie"))))
            root.addHandler(syslog_handler)

    logging.captureWarnings(True)
