from __future__ import annotations

import json
import logging
import os
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict


# Log rotation settings (configurable via environment)
MAX_LOG_BYTES = int(os.getenv("OPL_LOG_MAX_BYTES", 10 * 1024 * 1024))  # 10MB default
LOG_BACKUP_COUNT = int(os.getenv("OPL_LOG_BACKUP_COUNT", 5))  # Keep 5 backups

_file_handler: RotatingFileHandler | None = None
_handler_path: Path | None = None


def get_log_dir() -> Path:
    """Return the structured log directory (``OPL_LOG_DIR``, default ``logs``)."""
    return Path(os.getenv("OPL_LOG_DIR", "logs"))


def get_log_file() -> Path:
    return get_log_dir() / "events.jsonl"


def _get_file_handler() -> RotatingFileHandler:
    """Get or create the rotating file handler for the current log file."""
    global _file_handler, _handler_path
    log_file = get_log_file()
    if _file_handler is None or _handler_path != log_file:
        if _file_handler is not None:
            _file_handler.close()
        log_file.parent.mkdir(parents=True, exist_ok=True)
        _file_handler = RotatingFileHandler(
            str(log_file),
            maxBytes=MAX_LOG_BYTES,
            backupCount=LOG_BACKUP_COUNT,
            encoding="utf-8",
        )
        _handler_path = log_file
    return _file_handler


def jlog(event: str, level: str = "INFO", **fields: Any) -> None:
    """
    Write a structured JSON log entry with automatic rotation.

    Args:
        event: Event name/type
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        **fields: Additional fields to include in the log entry
    """
    rec: Dict[str, Any] = {
        "ts": datetime.now(timezone.utc).isoformat(),
        "level": level,
        "event": event,
        **fields,
    }
    line = json.dumps(rec, default=str)

    levelno = logging.getLevelName(level.upper())
    if not isinstance(levelno, int):
        levelno = logging.INFO

    handler = _get_file_handler()
    record = logging.LogRecord(
        name="opl", level=levelno, pathname="", lineno=0,
        msg=line, args=(), exc_info=None,
    )
    if handler.shouldRollover(record):
        handler.doRollover()
    handler.stream.write(line + "\n")
    handler.stream.flush()

    # Also echo concise line to console
    print(f"[{rec['level']}] {rec['event']} | {fields}")


def read_recent_logs(count: int = 100, level: str | None = None) -> list[Dict[str, Any]]:
    """
    Read the most recent log entries.

    Args:
        count: Maximum number of entries to return
        level: Optional filter by log level

    Returns:
        List of log entries (most recent last)
    """
    entries: list[Dict[str, Any]] = []
    log_file = get_log_file()
    if not log_file.exists():
        return entries

    with log_file.open("r", encoding="utf-8") as f:
        lines = f.readlines()

    for line in reversed(lines):
        if len(entries) >= count:
            break
        try:
            entry = json.loads(line.strip())
        except json.JSONDecodeError:
            continue
        if level is None or entry.get("level") == level:
            entries.append(entry)

    return list(reversed(entries))
