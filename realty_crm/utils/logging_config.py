"""Logging setup for the engine, driven by environment variables."""

import os
import logging
import sys
from pythonjsonlogger import jsonlogger

# Loggers of the HTTP and Supabase client stack, kept at WARNING
NOISY_LOGGERS = ("httpx", "httpcore", "hpack", "postgrest", "supabase", "realtime", "gotrue")


class LoggingConfig:
    """Logging settings.

    ``LOG_LEVEL`` applies to the root logger, ``LOG_ENGINE_LEVEL`` to the
    ``realty_crm`` loggers only (defaults to ``LOG_LEVEL``).
    """

    SERVICE_NAME = os.environ.get("SERVICE_NAME", "realty-crm-engine")
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()
    LOG_ENGINE_LEVEL = os.environ.get("LOG_ENGINE_LEVEL", LOG_LEVEL).upper()
    LOG_FORMAT = os.environ.get("LOG_FORMAT", "json").lower()
    LOG_MASK_SENSITIVE = os.environ.get("LOG_MASK_SENSITIVE", "true").lower() == "true"
    LOG_SLOW_OPERATION_THRESHOLD_MS = int(os.environ.get("LOG_SLOW_OPERATION_THRESHOLD_MS", "1000"))

    @classmethod
    def level(cls, name: str) -> int:
        return getattr(logging, name, logging.INFO)

    @classmethod
    def build_formatter(cls) -> logging.Formatter:
        if cls.LOG_FORMAT == "json":
            return jsonlogger.JsonFormatter(
                "%(asctime)s %(levelname)s %(name)s %(message)s",
                rename_fields={"asctime": "timestamp", "levelname": "level"},
                static_fields={"service": cls.SERVICE_NAME},
            )
        return logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - [%(correlation_id)s] %(message)s"
        )

    @classmethod
    def setup_logging(cls) -> None:
        """Install one stdout handler on the root logger."""
        root_logger = logging.getLogger()
        root_logger.setLevel(cls.level(cls.LOG_LEVEL))
        root_logger.handlers.clear()

        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(cls.build_formatter())
        handler.addFilter(CorrelationIdFilter())
        root_logger.addHandler(handler)

        logging.getLogger("realty_crm").setLevel(cls.level(cls.LOG_ENGINE_LEVEL))
        for name in NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)


class CorrelationIdFilter(logging.Filter):
    """Guarantees every record has a ``correlation_id`` attribute for the text format."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "correlation_id"):
            record.correlation_id = "-"
        return True


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance with the given name."""
    return logging.getLogger(name)
