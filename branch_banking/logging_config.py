"""
Structured Logging Configuration Module

Every money movement is logged as one record carrying who acted, what was
done and on which account. Records render as one JSON object per line, or
as a readable line with the structured fields appended as ``key=value``.
"""

import logging
import json
from datetime import datetime, timezone
from typing import Any, Dict, Optional


STRUCTURED_FIELDS = ("user_id", "action", "resource", "extra")


def structured_fields(record: logging.LogRecord) -> Dict[str, Any]:
    """Structured attributes set on a record by log_action"""
    fields = {}
    for name in STRUCTURED_FIELDS:
        value = getattr(record, name, None)
        if value is not None:
            fields[name] = value
    return fields


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging"""

    def format(self, record):
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "module": record.name,
            "message": record.getMessage(),
        }
        log_entry.update(structured_fields(record))

        if record.exc_info:
            log_entry['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str)


class TextFormatter(logging.Formatter):
    """Human-readable lines for running the menu in a terminal"""

    def __init__(self):
        super().__init__(
            fmt="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    def format(self, record):
        line = super().format(record)
        fields = structured_fields(record)
        extra = fields.pop("extra", None) or {}
        pairs = [f"{key}={value}" for key, value in fields.items()]
        pairs += [f"{key}={value}" for key, value in extra.items()]
        if pairs:
            line += " | " + " ".join(pairs)
        return line


def setup_logging(level: str = "INFO", logger_name: str = "branch_banking",
                  log_format: str = "json", log_file: Optional[str] = None) -> logging.Logger:
    """
    Setup structured logging for the application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        logger_name: Name of the logger
        log_format: "json" or "text"
        log_file: Write to this file instead of stderr

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(logger_name)

    # Remove existing handlers to avoid duplicates
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)
        handler.close()

    if log_file:
        handler = logging.FileHandler(log_file, encoding="utf-8")
    else:
        handler = logging.StreamHandler()
    handler.setFormatter(JSONFormatter() if log_format == "json" else TextFormatter())

    logger.addHandler(handler)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    logger.propagate = False

    return logger


def get_logger(name: str = "branch_banking") -> logging.Logger:
    return logging.getLogger(name)


def log_action(logger: logging.Logger, level: str, message: str,
               user_id: Optional[str] = None, action: Optional[str] = None,
               resource: Optional[str] = None, extra: Optional[dict] = None):
    """
    Log an action with structured data.

    Args:
        logger: Logger instance
        level: Log level name (info, warning, error)
        message: Log message
        user_id: CPR number of the acting user
        action: deposit, withdraw, transfer, overdraft, inconsistency, ...
        resource: Target, e.g. ``account:100001``
        extra: Amounts, balances and other details
    """
    levelno = getattr(logging, level.upper())
    if not logger.isEnabledFor(levelno):
        return

    record = logger.makeRecord(logger.name, levelno, __name__, 0, message, (), None)
    record.user_id = user_id
    record.action = action
    record.resource = resource
    record.extra = extra or None
    logger.handle(record)
