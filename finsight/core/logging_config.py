"""
Logging setup for pipeline runs and the health monitor.

Two output shapes:
- JSON lines (one object per record, ``extra`` fields flattened in) for files and log shipping
- Console lines with the run context (pipeline, stage, duration) appended

Usage:
    from finsight.core.logging_config import get_logger

    logger = get_logger(__name__)
    logger.info("Stage complete", extra={"stage": "detect_anomalies", "duration_ms": 12.4})
"""

import json
import logging
import sys
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

# Attributes every LogRecord carries; anything else arrived through ``extra``
_RESERVED_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {"message", "asctime"}

# Shown inline on console lines when present
RUN_CONTEXT_FIELDS = ("pipeline", "stage", "task")

# Client libraries that log every request at INFO
NOISY_LIBRARIES = ("httpx", "httpcore", "urllib3")

CONSOLE_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"


def record_fields(record: logging.LogRecord) -> dict[str, Any]:
    """Fields a record received through ``extra``, with ``log_with_context`` fields unnested."""
    fields = {key: value for key, value in vars(record).items() if key not in _RESERVED_ATTRS}
    nested = fields.pop("extra_fields", None)
    if isinstance(nested, dict):
        fields.update(nested)
    return fields


class JSONFormatter(logging.Formatter):
    """One JSON object per record; ``extra`` fields become top-level keys."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "source": f"{record.module}:{record.lineno}",
        }
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        for key, value in record_fields(record).items():
            payload.setdefault(key, value)
        return json.dumps(payload, default=str)


class ContextFormatter(logging.Formatter):
    """
    Console formatter.

    Appends ``[pipeline/stage 12.4ms]`` when the record carries run context, and
    colors the level name on a terminal.
    """

    LEVEL_COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def __init__(self, fmt: str = CONSOLE_FORMAT, datefmt: str = "%H:%M:%S", color: bool | None = None):
        super().__init__(fmt=fmt, datefmt=datefmt)
        self.color = sys.stderr.isatty() if color is None else color

    def format(self, record: logging.LogRecord) -> str:
        if self.color:
            record = logging.makeLogRecord(record.__dict__)
            record.levelname = f"{self.LEVEL_COLORS.get(record.levelname, '')}{record.levelname}{self.RESET}"

        line = super().format(record)
        context = run_context(record_fields(record))
        return f"{line} [{context}]" if context else line


def run_context(fields: dict[str, Any]) -> str:
    parts = "/".join(str(fields[name]) for name in RUN_CONTEXT_FIELDS if fields.get(name) is not None)
    duration = fields.get("duration_ms")
    if duration is not None:
        parts = f"{parts} {duration}ms".strip()
    return parts


def setup_logging(
    level: str = "INFO",
    log_file: Path | None = None,
    json_output: bool = False,
    library_level: str = "WARNING",
) -> None:
    """
    Configure the root logger.

    Args:
        level: Level for finsight loggers (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional JSON-lines file, parent directories are created
        json_output: Write JSON to the console instead of context lines
        library_level: Level applied to ``NOISY_LIBRARIES``

    Example:
        setup_logging(level="DEBUG")
        setup_logging(log_file=Path("data/logs/monitor.jsonl"), json_output=True)
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    root = logging.getLogger()
    root.setLevel(log_level)
    root.handlers.clear()

    console = logging.StreamHandler(sys.stdout)
    console.setFormatter(JSONFormatter() if json_output else ContextFormatter())
    root.addHandler(console)

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(JSONFormatter())
        root.addHandler(file_handler)

    for name in NOISY_LIBRARIES:
        logging.getLogger(name).setLevel(getattr(logging, library_level.upper(), logging.WARNING))


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def log_with_context(logger: logging.Logger, level: str, message: str, **context: Any) -> None:
    """
    Log ``message`` with keyword context fields.

    Example:
        log_with_context(logger, "info", "Pipeline finished", pipeline="health_monitoring", error_count=0)
    """
    getattr(logger, level.lower())(message, extra={"extra_fields": context})
