"""Structured JSON logging for chainbridge."""

import json
import logging
from datetime import UTC, datetime
from typing import Any

# Attributes every LogRecord carries; anything else came in through `extra=`
_STANDARD_LOGRECORD_KEYS: frozenset[str] = frozenset(
    logging.LogRecord(
        name="", level=0, pathname="", lineno=0, msg="", args=(), exc_info=None
    ).__dict__.keys()
)

ENGINE_LOGGER_NAME = "chainbridge.engine"
CONTEXT_LOGGER_NAME = "chainbridge.context"


class JSONFormatter(logging.Formatter):
    """JSON formatter with UTC ISO8601 timestamps."""

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname,
            "message": record.getMessage(),
            "logger": record.name,
        }

        # Standard chainbridge fields first so they keep a stable position
        for field in ("event", "step_index", "epoch", "from_key", "context_id"):
            if hasattr(record, field):
                log_data[field] = getattr(record, field)

        for key, value in vars(record).items():
            if key not in _STANDARD_LOGRECORD_KEYS and key not in log_data:
                log_data[key] = value

        try:
            return json.dumps(log_data, default=str)
        except Exception:
            return str(log_data)


def get_logger(name: str, level: int = logging.INFO) -> logging.Logger:
    """Return the named chainbridge logger wired to a JSON stream handler.

    The handler is attached once; later calls only adjust the level.
    """
    logger = logging.getLogger(name)
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(JSONFormatter())
        logger.addHandler(handler)
    logger.setLevel(level)
    logger.propagate = False
    return logger


def configure_engine_logger(level: int = logging.INFO) -> logging.Logger:
    """Configure and return the default Engine logger with JSON formatting.

    Args:
        level: The logging level to set. Defaults to logging.INFO.
    """
    return get_logger(ENGINE_LOGGER_NAME, level)
