"""Logging configuration for the crawler.

Console output for humans, a daily JSONL file for machines. Structured
crawl events (page drops, flush results, metadata parse failures) carry
their fields into the JSONL entries under ``data``.
"""

import json
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

from catalog_crawl.config import LOG_DIR

__all__ = [
    "CRAWL_LOGGER",
    "CrawlLogFileHandler",
    "setup_logging",
    "get_logger",
    "log_crawl_event",
]

CRAWL_LOGGER = "catalog_crawl"

_CONSOLE_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


class CrawlLogFileHandler(logging.Handler):
    """Appends one JSON object per record to ``crawl_YYYYMMDD.jsonl``."""

    def __init__(self, log_dir: Path):
        super().__init__(level=logging.DEBUG)
        self.log_dir = Path(log_dir)
        self.log_dir.mkdir(parents=True, exist_ok=True)

    @property
    def path(self) -> Path:
        return self.log_dir / f"crawl_{datetime.now():%Y%m%d}.jsonl"

    def emit(self, record: logging.LogRecord) -> None:
        entry: Dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created).isoformat(timespec="seconds"),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        event = getattr(record, "crawl_event", None)
        if event:
            entry["event"] = event
            entry["data"] = getattr(record, "crawl_data", {})
        if record.exc_info and record.exc_info[1] is not None:
            entry["error"] = repr(record.exc_info[1])

        try:
            with open(self.path, "a", encoding="utf-8") as f:
                f.write(json.dumps(entry, ensure_ascii=False, default=str) + "\n")
        except OSError:
            self.handleError(record)


class _LevelColorFormatter(logging.Formatter):
    """Colors the level name when writing to a terminal."""

    _COLORS = {
        logging.DEBUG: "\033[36m",
        logging.INFO: "\033[32m",
        logging.WARNING: "\033[33m",
        logging.ERROR: "\033[31m",
        logging.CRITICAL: "\033[35m",
    }

    def __init__(self, use_color: bool):
        super().__init__(_CONSOLE_FORMAT, datefmt="%H:%M:%S")
        self.use_color = use_color

    def format(self, record: logging.LogRecord) -> str:
        text = super().format(record)
        color = self._COLORS.get(record.levelno) if self.use_color else None
        if color:
            text = text.replace(f"[{record.levelname}]", f"[{color}{record.levelname}\033[0m]", 1)
        return text


def setup_logging(
    verbose: bool = False,
    log_dir: Optional[Path] = None,
    console: bool = True,
    jsonl: bool = True,
) -> logging.Logger:
    """Configure the ``catalog_crawl`` logger tree.

    Args:
        verbose: Show DEBUG on the console instead of INFO
        log_dir: Where the JSONL files go (default: project logs/)
        console: Whether to log to stdout
        jsonl: Whether to log to the daily JSONL file

    Returns:
        The configured root crawler logger
    """
    root = logging.getLogger(CRAWL_LOGGER)
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    root.setLevel(logging.DEBUG)
    root.propagate = False

    if console:
        stream = logging.StreamHandler(sys.stdout)
        stream.setLevel(logging.DEBUG if verbose else logging.INFO)
        stream.setFormatter(_LevelColorFormatter(use_color=sys.stdout.isatty()))
        root.addHandler(stream)

    if jsonl:
        root.addHandler(CrawlLogFileHandler(log_dir or LOG_DIR))

    return root


def get_logger(name: str) -> logging.Logger:
    """Child logger ``catalog_crawl.<name>``."""
    return logging.getLogger(f"{CRAWL_LOGGER}.{name}")


def log_crawl_event(
    event_type: str,
    data: Dict[str, Any],
    level: int = logging.INFO,
    logger_name: str = "events",
) -> None:
    """Emit a structured crawl event.

    Args:
        event_type: e.g. 'page_dropped', 'batch_failed'
        data: Event fields; kept whole in the JSONL entry
        level: Log level
        logger_name: Child logger to emit on
    """
    fields = ", ".join(f"{key}={value}" for key, value in data.items())
    get_logger(logger_name).log(
        level,
        f"{event_type} {fields}".rstrip(),
        extra={"crawl_event": event_type, "crawl_data": dict(data)},
    )
