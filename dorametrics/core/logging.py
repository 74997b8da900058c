"""Structured logging — structlog rendered through stdlib logging handlers."""

from __future__ import annotations

import logging
import logging.config
import os

import structlog

# third-party loggers that are too chatty at INFO
_QUIET_LOGGERS = {
    "uvicorn.access": "WARNING",
    "sqlalchemy.engine": "WARNING",
    "asyncpg": "WARNING",
    "httpx": "WARNING",
    "httpcore": "WARNING",
}

_SHARED_PROCESSORS: list[structlog.types.Processor] = [
    structlog.contextvars.merge_contextvars,
    structlog.stdlib.add_log_level,
    structlog.stdlib.add_logger_name,
    structlog.processors.TimeStamper(fmt="iso", utc=True),
    structlog.processors.StackInfoRenderer(),
    structlog.processors.format_exc_info,
    structlog.processors.UnicodeDecoder(),
]


def _renderer(log_format: str) -> structlog.types.Processor:
    if log_format == "json":
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer()


def setup_logging(level: str | None = None, log_format: str | None = None) -> None:
    """Configure structlog and the stdlib root logger.

    Arguments win over the environment:
        DORAMETRICS_LOG_LEVEL  — log level (default: INFO)
        DORAMETRICS_LOG_FORMAT — console | json (default: console)
    """
    level = (level or os.environ.get("DORAMETRICS_LOG_LEVEL", "INFO")).upper()
    log_format = (log_format or os.environ.get("DORAMETRICS_LOG_FORMAT", "console")).lower()

    structlog.configure(
        processors=[*_SHARED_PROCESSORS, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    loggers = {name: {"level": lvl} for name, lvl in _QUIET_LOGGERS.items()}
    loggers["dorametrics"] = {"level": level}

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "structlog": {
                    "()": structlog.stdlib.ProcessorFormatter,
                    "foreign_pre_chain": _SHARED_PROCESSORS,
                    "processors": [
                        structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                        _renderer(log_format),
                    ],
                },
            },
            "handlers": {
                "stdout": {
                    "class": "logging.StreamHandler",
                    "stream": "ext://sys.stdout",
                    "formatter": "structlog",
                },
            },
            "root": {"handlers": ["stdout"], "level": level},
            "loggers": loggers,
        }
    )
