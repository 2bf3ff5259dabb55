import logging
import logging.config
import sys
import uuid
from datetime import datetime
from typing import Optional

import structlog

# Keys SchedulingContext binds for the duration of one queue mutation
OPERATION_KEYS = ("operation_id", "operation_type")


def add_schedule_timezone(tz_name: Optional[str]):
    """Processor stamping every event with the timezone that defines "today"."""
    def processor(logger, method_name, event_dict):
        if tz_name:
            event_dict.setdefault("schedule_tz", tz_name)
        return event_dict
    return processor


def configure_logging(log_level: str = "INFO", log_file: Optional[str] = None,
                      schedule_timezone: Optional[str] = None):
    """
    Configure structured logging for the application.

    structlog events and plain stdlib records (the pure scheduling modules log
    through logging.getLogger) share one processor chain, so both carry the
    bound operation id of the queue mutation they ran under.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_file: Optional log file path; receives JSON lines
        schedule_timezone: Business timezone name added to every event
    """
    shared_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        add_schedule_timezone(schedule_timezone),
    ]

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            *shared_processors,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.UnicodeDecoder(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handlers = ["console"]
    log_config = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "console": {
                "()": structlog.stdlib.ProcessorFormatter,
                "processors": [
                    structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                    structlog.dev.ConsoleRenderer(colors=False),
                ],
                "foreign_pre_chain": shared_processors,
            },
            "json": {
                "()": structlog.stdlib.ProcessorFormatter,
                "processors": [
                    structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                    structlog.processors.format_exc_info,
                    structlog.processors.JSONRenderer(),
                ],
                "foreign_pre_chain": shared_processors,
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": log_level,
                "formatter": "console",
                "stream": sys.stdout,
            }
        },
        "loggers": {
            "": {"level": log_level, "handlers": handlers, "propagate": False},
            # Werkzeug's per-request lines are noise next to the operation logs
            "werkzeug": {"level": "WARNING"},
        },
    }

    if log_file:
        log_config["handlers"]["file"] = {
            "class": "logging.handlers.RotatingFileHandler",
            "level": log_level,
            "formatter": "json",
            "filename": log_file,
            "maxBytes": 10485760,  # 10MB
            "backupCount": 5,
        }
        handlers.append("file")

    logging.config.dictConfig(log_config)

    logger = structlog.get_logger("jobcal")
    logger.info("Logging configured", level=log_level, file=log_file)
    return logger


def get_logger(name: str) -> structlog.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)


class SchedulingContext:
    """
    Context manager for one queue mutation.

    Binds operation_id/operation_type into structlog's contextvars so every
    log line emitted inside the block, from any module, can be correlated.
    Nested contexts (a mutation whose recompute triggers a rank backfill)
    restore the outer operation's ids on exit.
    """

    def __init__(self, operation_type: str, operation_id: Optional[str] = None, **context):
        self.operation_type = operation_type
        self.operation_id = operation_id or str(uuid.uuid4())[:8]
        self.context = context
        self.logger = get_logger("jobcal.scheduling")
        self.start_time = None
        self._outer = {}

    def __enter__(self):
        bound = structlog.contextvars.get_contextvars()
        self._outer = {key: bound[key] for key in OPERATION_KEYS if key in bound}
        structlog.contextvars.bind_contextvars(
            operation_id=self.operation_id,
            operation_type=self.operation_type,
        )
        self.start_time = datetime.utcnow()
        self.logger.info("Scheduling operation started", **self.context)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        duration = (datetime.utcnow() - self.start_time).total_seconds()
        try:
            if exc_type is None:
                self.logger.info("Scheduling operation completed", duration_seconds=duration, status="success")
            else:
                self.logger.error(
                    "Scheduling operation failed",
                    duration_seconds=duration,
                    status="error",
                    error_type=exc_type.__name__,
                    error_message=str(exc_val)
                )
        finally:
            structlog.contextvars.unbind_contextvars(*OPERATION_KEYS)
            if self._outer:
                structlog.contextvars.bind_contextvars(**self._outer)

        return False  # Don't suppress exceptions
