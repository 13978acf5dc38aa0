"""
Structured Logging Configuration Module

JSON log lines for calculation, cache and remote-service activity. Records
may carry a loan id, an action name, a correlation id and a dict of extra
fields; absent fields are left out of the output.
"""

import logging
import json
from datetime import datetime, timezone
from typing import Optional

# Record attributes copied into every JSON line when set
STRUCTURED_FIELDS = ("correlation_id", "loan_id", "action", "extra")

TEXT_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


class JSONFormatter(logging.Formatter):
    """One JSON object per record"""

    def format(self, record):
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "module": getattr(record, "module", record.name),
            "message": record.getMessage(),
        }
        for name in STRUCTURED_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                entry[name] = value

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)


def _build_handler(log_format: str, log_file: Optional[str]) -> logging.Handler:
    handler = logging.FileHandler(log_file) if log_file else logging.StreamHandler()
    if log_format == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(TEXT_FORMAT))
    return handler


def setup_logging(level: str = "INFO", logger_name: str = "loancalc",
                  log_format: str = "json", log_file: Optional[str] = None) -> logging.Logger:
    """
    Configure the package logger

    Calling it again replaces the handler installed by the previous call.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        logger_name: Logger to configure; module loggers are its children
        log_format: "json" for structured lines, anything else for plain text
        log_file: File to append to; stderr when None

    Returns:
        The configured logger
    """
    logger = logging.getLogger(logger_name)
    for existing in list(logger.handlers):
        logger.removeHandler(existing)

    logger.addHandler(_build_handler(log_format, log_file))
    logger.setLevel(getattr(logging, level.upper()))
    # Module loggers propagate here; stopping at this logger keeps lines single
    logger.propagate = False
    return logger


def get_logger(name: str = "loancalc") -> logging.Logger:
    return logging.getLogger(name)


def log_action(logger: logging.Logger, level: str, message: str,
               loan_id: Optional[str] = None, action: Optional[str] = None,
               correlation_id: Optional[str] = None,
               extra: Optional[dict] = None):
    """
    Emit a record tagged with the loan and the action taken on it

    Args:
        logger: Logger to emit through
        level: Level name (info, warning, error, ...)
        message: Human-readable message
        loan_id: Loan the action concerns
        action: Machine-readable action name, e.g. "update_loan_amount"
        correlation_id: Request correlation id
        extra: Further structured fields
    """
    levelno = getattr(logging, level.upper())
    if not logger.isEnabledFor(levelno):
        return

    record = logger.makeRecord(logger.name, levelno, __name__, 0, message, (), None)
    fields = {"loan_id": loan_id, "action": action, "correlation_id": correlation_id, "extra": extra}
    for name, value in fields.items():
        if value:
            setattr(record, name, value)

    logger.handle(record)
