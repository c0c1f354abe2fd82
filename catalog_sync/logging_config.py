"""Logging for catalog sync runs.

Two sinks: a short coloured line on stdout for whoever watches the run, and
one JSONL file per day under ``logs/`` so a batch can be triaged afterwards
(which URL failed, for which product, with what exception).
"""

import json
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

__all__ = [
    "setup_logging",
    "get_logger",
    "log_sync_event",
    "LOG_DIR",
]

LOG_DIR = Path(__file__).parent.parent / "logs"

ROOT_LOGGER = "catalog_sync"

# Libraries that get chatty at DEBUG
NOISY_LOGGERS = ("urllib3", "charset_normalizer", "asyncio")


class JsonLineFormatter(logging.Formatter):
    """One JSON object per record; structured event fields are merged in."""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        event_type = getattr(record, "event_type", None)
        if event_type:
            entry["event_type"] = event_type
        entry.update(getattr(record, "event_data", None) or {})
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


class DailyJSONLHandler(logging.Handler):
    """Appends to ``<prefix>_YYYYMMDD.jsonl``, switching files at midnight."""

    def __init__(self, log_dir: Path, prefix: str = "catalog_sync"):
        super().__init__()
        self.log_dir = Path(log_dir)
        self.log_dir.mkdir(parents=True, exist_ok=True)
        self.prefix = prefix
        self.setFormatter(JsonLineFormatter())

    def path_for(self, when: datetime) -> Path:
        return self.log_dir / f"{self.prefix}_{when:%Y%m%d}.jsonl"

    def emit(self, record: logging.LogRecord) -> None:
        try:
            line = self.format(record)
            with open(self.path_for(datetime.fromtimestamp(record.created)), "a", encoding="utf-8") as f:
                f.write(line + "\n")
        except Exception:
            self.handleError(record)


class ColoredConsoleHandler(logging.StreamHandler):
    """Colours the ``[LEVEL]`` tag when attached to a TTY."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        color = self.COLORS.get(record.levelname)
        if color and getattr(self.stream, "isatty", lambda: False)():
            tag = f"[{record.levelname}]"
            message = message.replace(tag, f"[{color}{record.levelname}{self.RESET}]", 1)
        return message


def setup_logging(
    level: int = logging.INFO,
    log_to_file: bool = True,
    log_to_console: bool = True,
    log_dir: Optional[Path] = None,
) -> logging.Logger:
    """Configure the ``catalog_sync`` logger and return it.

    Args:
        level: Console level (default: INFO). The JSONL file always gets DEBUG.
        log_to_file: Write ``logs/catalog_sync_YYYYMMDD.jsonl``
        log_to_console: Write to stdout
        log_dir: Override the log directory
    """
    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(logging.DEBUG if log_to_file else level)
    logger.propagate = False
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    if log_to_console:
        console = ColoredConsoleHandler(sys.stdout)
        console.setLevel(level)
        console.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(message)s", datefmt="%H:%M:%S"))
        logger.addHandler(console)

    if log_to_file:
        jsonl = DailyJSONLHandler(log_dir or LOG_DIR)
        jsonl.setLevel(logging.DEBUG)
        logger.addHandler(jsonl)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return logger


def get_logger(name: str = ROOT_LOGGER) -> logging.Logger:
    """``catalog_sync.<name>``; the bare package name returns the package logger."""
    if name == ROOT_LOGGER:
        return logging.getLogger(ROOT_LOGGER)
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")


def log_sync_event(
    event_type: str,
    data: Dict[str, Any],
    level: int = logging.INFO,
    logger_name: str = ROOT_LOGGER,
) -> None:
    """Log a structured event such as ``run_start``, ``item_error`` or ``run_complete``.

    ``data["message"]`` becomes the log message; the other keys become fields
    of the JSONL record.
    """
    fields = {k: v for k, v in data.items() if k != "message"}
    get_logger(logger_name).log(
        level,
        data.get("message", event_type),
        extra={"event_type": event_type, "event_data": fields},
    )
