# bursar/core/logging.py - Logging setup (plain, detailed or JSON lines)
import logging
import sys
from logging.handlers import RotatingFileHandler

from pythonjsonlogger import jsonlogger

from bursar.core.config import settings

ALERT_LOGGER_NAME = "bursar.alerts"

_FORMATS = {
    "simple": "%(levelname)s %(name)s: %(message)s",
    "detailed": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
}


class LedgerJsonFormatter(jsonlogger.JsonFormatter):
    """JSON formatter that stamps every record with environment details"""

    def add_fields(self, log_record: dict, record: logging.LogRecord, message_dict: dict) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["level"] = record.levelname
        log_record["logger"] = record.name
        log_record["environment"] = settings.ENV
        if hasattr(record, "school_id"):
            log_record["school_id"] = str(record.school_id)


def _build_formatter() -> logging.Formatter:
    if settings.LOG_FORMAT == "json":
        return LedgerJsonFormatter(fmt="%(asctime)s %(level)s %(name)s %(message)s", datefmt="%Y-%m-%d %H:%M:%S")
    return logging.Formatter(fmt=_FORMATS[settings.LOG_FORMAT], datefmt="%Y-%m-%d %H:%M:%S")


def setup_logging() -> None:
    """Configure the root logger once; safe to call repeatedly"""
    root_logger = logging.getLogger()
    if getattr(root_logger, "_bursar_configured", False):
        return

    formatter = _build_formatter()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)
    root_logger.addHandler(handler)

    if settings.LOG_FILE_PATH:
        file_handler = RotatingFileHandler(
            settings.LOG_FILE_PATH,
            maxBytes=settings.LOG_MAX_SIZE,
            backupCount=settings.LOG_BACKUP_COUNT,
        )
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    root_logger.setLevel(getattr(logging, settings.LOG_LEVEL))

    # Reduce noise from third-party libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)

    root_logger._bursar_configured = True


def get_alert_logger() -> logging.Logger:
    """Logger for conditions an operator must look at (ledger corruption)"""
    return logging.getLogger(ALERT_LOGGER_NAME)
