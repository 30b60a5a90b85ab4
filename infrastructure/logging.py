"""Structured logging for the order service."""
import json
import logging
import sys
import traceback
from datetime import datetime, timezone


class StructuredLogger:
    """Logger that outputs structured JSON logs."""

    def __init__(self, service_name: str, level: int = logging.INFO):
        self.service_name = service_name
        self.logger = logging.getLogger(service_name)
        self.logger.setLevel(level)
        self.logger.propagate = False

        # Remove existing handlers to avoid duplicates
        self.logger.handlers.clear()
        self.logger.addHandler(self._setup_handler(sys.stdout))

    def _setup_handler(self, stream):
        """Setup handler with JSON formatter."""
        handler = logging.StreamHandler(stream)
        handler.setFormatter(JsonFormatter(self.service_name))
        return handler

    def debug(self, message: str, **context):
        self.logger.debug(message, extra={"context": context})

    def info(self, message: str, **context):
        """Log info level message with extra context."""
        self.logger.info(message, extra={"context": context})

    def warning(self, message: str, **context):
        """Log warning level message with extra context."""
        self.logger.warning(message, extra={"context": context})

    def error(self, message: str, exc_info=False, **context):
        """Log error level message with optional exception info."""
        self.logger.error(message, exc_info=exc_info, extra={"context": context})


class JsonFormatter(logging.Formatter):
    """Custom formatter that outputs logs as JSON."""

    def __init__(self, service_name: str):
        super().__init__()
        self.service_name = service_name

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "service": self.service_name,
            "logger": record.name,
            "message": record.getMessage(),
        }

        context = getattr(record, "context", None)
        if context:
            log_entry.update(context)

        if record.exc_info:
            log_entry["exception"] = self._format_exception(record.exc_info)

        return json.dumps(log_entry, default=str)

    def _format_exception(self, exc_info) -> str:
        """Format exception info as string."""
        return "".join(traceback.format_exception(*exc_info))


_loggers: dict[str, StructuredLogger] = {}


def get_logger(name: str, level: int | str | None = None) -> StructuredLogger:
    """Get a structured logger, creating it once per name.

    Passing ``level`` (re)configures an existing logger; omitting it keeps
    whatever level the logger already has.
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
    logger = _loggers.get(name)
    if logger is None:
        logger = StructuredLogger(service_name=name, level=level or logging.INFO)
        _loggers[name] = logger
    elif level is not None:
        logger.logger.setLevel(level)
    return logger
